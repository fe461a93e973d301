"""GuideRules -- Pure movement-guide validation and duplicate-use rules."""

from collections.abc import Iterable
from uuid import UUID

from contralor_kernel.domain.dtos import (
    GuideCheck,
    GuideInfo,
    GuideUse,
    IssueKind,
    ValidationIssue,
)
from contralor_kernel.domain.event_types import (
    INBOUND_TYPES,
    MIRROR_COUNTERPARTS,
    EventStatus,
    EventType,
    GuideStatus,
)
from contralor_kernel.domain.rules import RegulatoryRules


def normalize_guide_key(series: str, number: str) -> tuple[str, str]:
    """Canonical (series, number): trimmed, series upper-cased."""
    return series.strip().upper(), number.strip()


def mirror_type_for(event_type: EventType | str) -> EventType | None:
    """Complementary type for mirror matching; None outside SALE/PURCHASE."""
    return MIRROR_COUNTERPARTS.get(EventType(event_type))


def check_guide(
    *,
    event_type: EventType | str,
    species: str | None,
    series: str,
    number: str,
    guide: GuideInfo | None,
    prior_uses: Iterable[GuideUse],
    sheet_registration: str | None,
    rules: RegulatoryRules,
    event_id: UUID | None = None,
) -> GuideCheck:
    """
    Validate a guide cited by an event of ``event_type``.

    An unknown guide is valid and flagged for auto-registration.  A known
    guide must be VALID, match the event species and, for inbound types,
    name the receiving premise's registration as destination.  Every prior
    non-rejected use on the premise must form a whitelisted counterpart
    pair with the event type.
    """
    issues: list[ValidationIssue] = []
    event_type = EventType(event_type)
    series, number = normalize_guide_key(series, number)
    key = f"{series}-{number}"

    if guide is not None:
        if guide.status != GuideStatus.VALID:
            issues.append(
                ValidationIssue(
                    code="GUIDE_NOT_VALID",
                    message=f"Guide {key} has status {GuideStatus(guide.status).value}",
                    field="guide_number",
                    details={"guide_status": GuideStatus(guide.status).value},
                )
            )
        if (
            guide.species
            and species
            and guide.species.upper() != species.upper()
        ):
            issues.append(
                ValidationIssue(
                    code="GUIDE_SPECIES_MISMATCH",
                    message=(
                        f"Guide {key} is for {guide.species}, event is {species}"
                    ),
                    field="species",
                )
            )
        if (
            event_type in INBOUND_TYPES
            and guide.destination_registration
            and sheet_registration
            and guide.destination_registration != sheet_registration
        ):
            issues.append(
                ValidationIssue(
                    code="GUIDE_DESTINATION_MISMATCH",
                    message=(
                        f"Guide {key} is addressed to {guide.destination_registration}, "
                        f"not to this premise ({sheet_registration})"
                    ),
                    field="guide_number",
                    details={
                        "guide_destination": guide.destination_registration,
                        "premise_registration": sheet_registration,
                    },
                )
            )

    for use in prior_uses:
        if use.event_id == event_id or use.status == EventStatus.REJECTED:
            continue
        if not rules.is_counterpart_pair(event_type, use.event_type):
            issues.append(
                ValidationIssue(
                    code="GUIDE_ALREADY_CONSUMED",
                    message=(
                        f"Guide {key} already used by {EventType(use.event_type).value} "
                        f"event {use.event_id}"
                    ),
                    field="guide_number",
                    kind=IssueKind.CONFLICT,
                    details={
                        "existing_event_id": str(use.event_id),
                        "existing_event_type": EventType(use.event_type).value,
                    },
                )
            )

    return GuideCheck(
        valid=not issues,
        issues=tuple(issues),
        auto_register=guide is None,
        guide=guide,
    )
