"""
Configuration schema (``contralor_config.schema``).

Frozen dataclasses describing one regulatory rule set as loaded from YAML.
Values are kept as plain strings here; translation into kernel types
happens in ``contralor_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class DeadlineDef:
    """Filing deadline parameters."""

    filing_deadline_days: int
    deadline_warning_days: int
    deadline_event_types: tuple[str, ...]


@dataclass(frozen=True)
class GuidePairDef:
    """Two event types that may share a movement guide on one premise."""

    first: str
    second: str


@dataclass(frozen=True)
class RuleSet:
    """
    A complete regulatory rule set.

    Contract:
        Produced by ``loader.parse_rule_set``; identified by ``config_id``,
        ``version`` and the content ``checksum``.

    Guarantees:
        - Immutable.
        - ``checksum`` is the SHA-256 of the canonical source mapping.
    """

    config_id: str
    version: int
    effective_from: date
    deadlines: DeadlineDef
    species_sheet_types: tuple[tuple[str, str], ...]
    guide_counterpart_pairs: tuple[GuidePairDef, ...]
    registration_codes: tuple[tuple[str, str], ...]
    birth_campaign_cutoff: tuple[int, int]
    withdrawal_blocked_event_types: tuple[str, ...] = field(default_factory=tuple)
    checksum: str = ""
