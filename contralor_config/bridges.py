"""
Config-to-kernel bridge.

Translates a loaded ``RuleSet`` into the kernel's ``RegulatoryRules``.
The kernel never imports from this package; the dependency runs one way.
"""

from __future__ import annotations

from contralor_config.loader import ConfigError
from contralor_config.schema import RuleSet
from contralor_kernel.domain.event_types import EventType
from contralor_kernel.domain.rules import RegulatoryRules


def _event_type(name: str) -> EventType:
    try:
        return EventType(name.upper())
    except ValueError as exc:
        raise ConfigError(f"Unknown event type in rule set: {name!r}") from exc


def build_regulatory_rules(rule_set: RuleSet) -> RegulatoryRules:
    """
    Build kernel rules from a parsed rule set.

    Raises:
        ConfigError: if the rule set names an unknown event type.
        ValueError: if the resulting rules are inconsistent.
    """
    deadlines = rule_set.deadlines
    return RegulatoryRules(
        filing_deadline_days=deadlines.filing_deadline_days,
        deadline_warning_days=deadlines.deadline_warning_days,
        deadline_event_types=frozenset(
            _event_type(t) for t in deadlines.deadline_event_types
        ),
        species_sheet_types=dict(rule_set.species_sheet_types),
        guide_counterpart_pairs=frozenset(
            frozenset({_event_type(p.first), _event_type(p.second)})
            for p in rule_set.guide_counterpart_pairs
        ),
        registration_codes={
            _event_type(t): code for t, code in rule_set.registration_codes
        },
        birth_campaign_cutoff=rule_set.birth_campaign_cutoff,
        withdrawal_blocked_event_types=frozenset(
            _event_type(t) for t in rule_set.withdrawal_blocked_event_types
        ),
    )
