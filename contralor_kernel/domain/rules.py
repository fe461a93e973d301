"""
RegulatoryRules -- the regulatory parameters the pure core is evaluated against.

Responsibility:
    Carries deadlines, species routing, the guide counterpart whitelist,
    registration code fallbacks, the birth campaign cutoff and the
    withdrawal-blocked event types as one immutable value.

Architecture position:
    Kernel > Domain -- pure value object.  Built from configuration by
    ``contralor_config.bridges``; the kernel never reads configuration files.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

from contralor_kernel.domain.event_types import EventType


@dataclass(frozen=True)
class RegulatoryRules:
    """
    Immutable regulatory parameter set.

    Contract:
        Injected into the validator, the guide rules and the synthesizer.
        Two engines configured with equal rules behave identically.

    Guarantees:
        - ``guide_counterpart_pairs`` holds unordered pairs; membership is
          symmetric.
        - ``sheet_type_for`` returns None for a species with no sheet.
    """

    filing_deadline_days: int
    deadline_warning_days: int
    deadline_event_types: frozenset[EventType]
    species_sheet_types: Mapping[str, str]
    guide_counterpart_pairs: frozenset[frozenset[EventType]]
    registration_codes: Mapping[EventType, str]
    birth_campaign_cutoff: tuple[int, int]
    withdrawal_blocked_event_types: frozenset[EventType] = field(
        default_factory=frozenset
    )

    def __post_init__(self) -> None:
        if self.deadline_warning_days > self.filing_deadline_days:
            raise ValueError(
                "deadline_warning_days must not exceed filing_deadline_days"
            )
        for pair in self.guide_counterpart_pairs:
            if len(pair) != 2:
                raise ValueError(f"Guide counterpart pair must name two types: {pair}")

    def sheet_type_for(self, species: str | None) -> str | None:
        if not species:
            return None
        return self.species_sheet_types.get(species.upper())

    def is_counterpart_pair(
        self, first: EventType | str, second: EventType | str
    ) -> bool:
        return frozenset({EventType(first), EventType(second)}) in self.guide_counterpart_pairs

    def registration_code_for(self, event_type: EventType | str) -> str | None:
        return self.registration_codes.get(EventType(event_type))
