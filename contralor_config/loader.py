"""
Configuration Loader (``contralor_config.loader``).

Responsibility
--------------
Loads a regulatory rule set YAML file and parses it into the frozen
``contralor_config.schema.RuleSet``.  Callers outside this package use
``contralor_config.get_active_config()`` instead.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or malformed keys  -> ``ConfigError`` (a ``ValueError``).

Audit relevance
---------------
``compute_checksum`` identifies the exact rule set that governed every
approval; it is logged whenever a rule set is activated.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

import yaml

from contralor_config.schema import DeadlineDef, GuidePairDef, RuleSet
from contralor_kernel.utils.hashing import hash_payload


class ConfigError(ValueError):
    """Rule set file is structurally invalid."""


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top-level YAML must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON rendering of ``data``."""
    return hash_payload(data)


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def parse_month_day(value: Any) -> tuple[int, int]:
    """Parse ``"MM-DD"`` into ``(month, day)``."""
    try:
        month_str, day_str = str(value).split("-")
        month, day = int(month_str), int(day_str)
        # Validates the day against a leap year so 02-29 is accepted
        date(2024, month, day)
    except ValueError as exc:
        raise ConfigError(f"Invalid month-day value: {value!r}") from exc
    return month, day


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required key: {key}")
    return data[key]


def _parse_deadlines(data: dict[str, Any]) -> DeadlineDef:
    deadline_days = int(_require(data, "filing_deadline_days"))
    warning_days = int(_require(data, "deadline_warning_days"))
    if deadline_days <= 0 or warning_days < 0:
        raise ConfigError("Deadline day counts must be positive")
    return DeadlineDef(
        filing_deadline_days=deadline_days,
        deadline_warning_days=warning_days,
        deadline_event_types=tuple(
            str(t) for t in _require(data, "deadline_event_types")
        ),
    )


def _parse_pairs(items: list[Any]) -> tuple[GuidePairDef, ...]:
    pairs = []
    for item in items:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise ConfigError(f"Guide counterpart pair must have two entries: {item!r}")
        pairs.append(GuidePairDef(first=str(item[0]), second=str(item[1])))
    return tuple(pairs)


def _parse_code_map(data: dict[str, Any], key: str) -> tuple[tuple[str, str], ...]:
    mapping = _require(data, key)
    if not isinstance(mapping, dict):
        raise ConfigError(f"{key} must be a mapping")
    return tuple(sorted((str(k).upper(), str(v).upper()) for k, v in mapping.items()))


def parse_rule_set(data: dict[str, Any]) -> RuleSet:
    """Parse a loaded YAML mapping into a ``RuleSet``."""
    return RuleSet(
        config_id=str(_require(data, "config_id")),
        version=int(_require(data, "version")),
        effective_from=parse_date(_require(data, "effective_from")),
        deadlines=_parse_deadlines(_require(data, "deadlines")),
        species_sheet_types=_parse_code_map(data, "species_sheet_types"),
        guide_counterpart_pairs=_parse_pairs(_require(data, "guide_counterpart_pairs")),
        registration_codes=_parse_code_map(data, "registration_codes"),
        birth_campaign_cutoff=parse_month_day(_require(data, "birth_campaign_cutoff")),
        withdrawal_blocked_event_types=tuple(
            str(t) for t in data.get("withdrawal_blocked_event_types", ())
        ),
        checksum=compute_checksum(data),
    )


def load_rule_set(path: Path) -> RuleSet:
    return parse_rule_set(load_yaml_file(path))
