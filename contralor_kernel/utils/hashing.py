"""
Deterministic hashing for the audit chain and rule-set checksums.

Payloads are rendered as canonical JSON (sorted keys, no whitespace,
UUIDs, dates and enums as strings, kilograms without trailing zeros)
before hashing, so the same register fact always hashes the same way
whatever database it was read back from.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, (UUID, datetime, date)):
        return value.isoformat() if isinstance(value, (datetime, date)) else str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def canonical_payload(data: dict[str, Any] | None) -> dict[str, Any]:
    """``data`` reduced to plain JSON types, as it will be stored and re-read."""
    return json.loads(canonicalize_json(data or {}))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict[str, Any]) -> str:
    return sha256_hex(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """Chain link: the record's identity, its payload hash and its predecessor."""
    return sha256_hex(
        "|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS))
    )
