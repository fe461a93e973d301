"""EventValidator -- Pure livestock event validation functions."""

from datetime import date

from contralor_kernel.domain.dtos import (
    EventSnapshot,
    IssueKind,
    Notice,
    ValidationContext,
    ValidationIssue,
    ValidationResult,
)
from contralor_kernel.domain.event_types import (
    GUIDE_REQUIRED_TYPES,
    QUANTITY_REQUIRED_TYPES,
    EventScope,
    EventType,
    is_reportable,
)
from contralor_kernel.domain.ledger_synthesis import resolve_category
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.logging_config import get_logger

logger = get_logger("domain.event_validator")


def validate_event(
    event: EventSnapshot,
    context: ValidationContext,
    rules: RegulatoryRules,
) -> ValidationResult:
    """
    Validate an event against every approval rule.

    All rules run; the result lists every blocking issue plus the advisory
    notices (deadline approaching, guide auto-registration, birth campaign).
    """
    errors: list[ValidationIssue] = []
    notices: list[Notice] = []

    errors.extend(validate_subject(event))
    errors.extend(validate_quantity(event))
    errors.extend(validate_guide(event, context))
    errors.extend(validate_category_change(event, context))
    errors.extend(validate_event_date(event, context.today))

    deadline_errors, deadline_notices = check_filing_deadline(event, context.today, rules)
    errors.extend(deadline_errors)
    notices.extend(deadline_notices)

    errors.extend(validate_open_sheet(event, context))
    errors.extend(validate_species(event, rules))
    errors.extend(validate_line_category(event, context))
    errors.extend(validate_withdrawal(event, context, rules))

    notices.extend(guide_notices(context))
    notices.extend(birth_campaign_notices(event, rules))

    if errors:
        logger.warning(
            "validation_failed",
            extra={
                "event_id": str(event.id),
                "event_type": EventType(event.event_type).value,
                "error_codes": [e.code for e in errors],
            },
        )
    return ValidationResult(errors=tuple(errors), notices=tuple(notices))


def validate_subject(event: EventSnapshot) -> list[ValidationIssue]:
    if event.scope == EventScope.ANIMAL and event.animal_id is None:
        return [
            ValidationIssue(
                code="SUBJECT_REQUIRED",
                message="Animal-scope events must reference an animal",
                field="animal_id",
            )
        ]
    if event.scope == EventScope.HERD and event.herd_id is None:
        return [
            ValidationIssue(
                code="SUBJECT_REQUIRED",
                message="Herd-scope events must reference a herd",
                field="herd_id",
            )
        ]
    return []


def validate_quantity(event: EventSnapshot) -> list[ValidationIssue]:
    if EventType(event.event_type) not in QUANTITY_REQUIRED_TYPES:
        return []
    if event.qty_heads is None or event.qty_heads <= 0:
        return [
            ValidationIssue(
                code="QUANTITY_REQUIRED",
                message=f"{EventType(event.event_type).value} requires a head count above zero",
                field="qty_heads",
                details={"qty_heads": event.qty_heads},
            )
        ]
    return []


def validate_guide(
    event: EventSnapshot, context: ValidationContext
) -> list[ValidationIssue]:
    """Guide presence for guide-bound types, plus the registry's verdict."""
    if EventType(event.event_type) in GUIDE_REQUIRED_TYPES and not event.has_guide:
        return [
            ValidationIssue(
                code="GUIDE_REQUIRED",
                message=(
                    f"{EventType(event.event_type).value} requires guide series and number"
                ),
                field="guide_series" if not event.guide_series else "guide_number",
            )
        ]
    if context.guide_check is not None:
        return list(context.guide_check.issues)
    return []


def validate_category_change(
    event: EventSnapshot, context: ValidationContext
) -> list[ValidationIssue]:
    if EventType(event.event_type) != EventType.CATEGORY_CHANGE:
        return []

    if event.category_from_id is None or event.category_to_id is None:
        return [
            ValidationIssue(
                code="CATEGORY_CHANGE_INCOMPLETE",
                message="Category change requires both source and destination categories",
                field="category_from_id" if event.category_from_id is None else "category_to_id",
            )
        ]
    if event.category_from_id == event.category_to_id:
        return [
            ValidationIssue(
                code="CATEGORY_CHANGE_SAME_CATEGORY",
                message="Source and destination categories must differ",
                field="category_to_id",
            )
        ]

    errors = []
    for field_name in ("category_from_id", "category_to_id"):
        category_id = getattr(event, field_name)
        if category_id not in context.known_category_ids:
            errors.append(
                ValidationIssue(
                    code="UNKNOWN_CATEGORY",
                    message=f"Category {category_id} is not in the catalog",
                    field=field_name,
                )
            )
    return errors


def validate_event_date(event: EventSnapshot, today: date) -> list[ValidationIssue]:
    if event.event_date > today:
        return [
            ValidationIssue(
                code="EVENT_DATE_IN_FUTURE",
                message=f"Event date {event.event_date} is after today ({today})",
                field="event_date",
            )
        ]
    return []


def check_filing_deadline(
    event: EventSnapshot, today: date, rules: RegulatoryRules
) -> tuple[list[ValidationIssue], list[Notice]]:
    """
    Legal filing deadline for deadline-bound event types.

    Past the deadline approval is blocked; inside the warning window
    (warning days up to the deadline, inclusive) a notice is returned.
    """
    if EventType(event.event_type) not in rules.deadline_event_types:
        return [], []

    elapsed = (today - event.event_date).days
    if elapsed > rules.filing_deadline_days:
        return [
            ValidationIssue(
                code="DEADLINE_EXCEEDED",
                message=(
                    f"Filed {elapsed} days after the event; the limit is "
                    f"{rules.filing_deadline_days} days"
                ),
                field="event_date",
                details={
                    "days_elapsed": elapsed,
                    "days_exceeded": elapsed - rules.filing_deadline_days,
                },
            )
        ], []
    if elapsed >= rules.deadline_warning_days:
        remaining = rules.filing_deadline_days - elapsed
        return [], [
            Notice(
                code="DEADLINE_APPROACHING",
                message=f"{remaining} days left to file this event",
                details={"days_elapsed": elapsed, "days_remaining": remaining},
            )
        ]
    return [], []


def validate_open_sheet(
    event: EventSnapshot, context: ValidationContext
) -> list[ValidationIssue]:
    """Reportable events need an OPEN sheet whose period covers the event."""
    if not is_reportable(event.event_type):
        return []
    sheet = context.open_sheet
    open_and_covering = sheet is not None and sheet.is_open and sheet.covers(event.event_date)
    if context.closed_sheet is not None and not open_and_covering:
        return [
            ValidationIssue(
                code="SHEET_CLOSED",
                message=(
                    f"The sheet for {event.event_date} "
                    f"({context.closed_sheet.period_start}..{context.closed_sheet.period_end}) "
                    "is closed"
                ),
                field="event_date",
                kind=IssueKind.CONFLICT,
                details={"sheet_id": str(context.closed_sheet.id)},
            )
        ]
    if sheet is None or not sheet.is_open:
        return [
            ValidationIssue(
                code="NO_OPEN_SHEET",
                message="The premise has no open ledger sheet for this species",
                field="species",
            )
        ]
    if not sheet.covers(event.event_date):
        return [
            ValidationIssue(
                code="EVENT_OUTSIDE_SHEET_PERIOD",
                message=(
                    f"Event date {event.event_date} is outside the open sheet period "
                    f"{sheet.period_start}..{sheet.period_end}"
                ),
                field="event_date",
                details={"sheet_id": str(sheet.id)},
            )
        ]
    return []


def validate_species(event: EventSnapshot, rules: RegulatoryRules) -> list[ValidationIssue]:
    if not event.species:
        return [
            ValidationIssue(
                code="SPECIES_REQUIRED",
                message="Species is required to route the event to a sheet",
                field="species",
            )
        ]
    if is_reportable(event.event_type) and rules.sheet_type_for(event.species) is None:
        return [
            ValidationIssue(
                code="SPECIES_UNSUPPORTED",
                message=f"No ledger sheet type for species {event.species}",
                field="species",
            )
        ]
    return []


def validate_line_category(
    event: EventSnapshot, context: ValidationContext
) -> list[ValidationIssue]:
    """Single-line events need a category from the event or its subject."""
    event_type = EventType(event.event_type)
    if not is_reportable(event_type) or event_type == EventType.CATEGORY_CHANGE:
        return []

    category_id = resolve_category(event, context.subject)
    if category_id is None:
        return [
            ValidationIssue(
                code="CATEGORY_UNRESOLVED",
                message="The event names no category and its subject has none",
                field="category_id",
            )
        ]
    if category_id not in context.known_category_ids:
        return [
            ValidationIssue(
                code="UNKNOWN_CATEGORY",
                message=f"Category {category_id} is not in the catalog",
                field="category_id",
            )
        ]
    return []


def validate_withdrawal(
    event: EventSnapshot, context: ValidationContext, rules: RegulatoryRules
) -> list[ValidationIssue]:
    """Animals inside a sanitary withdrawal period cannot be sold or slaughtered."""
    if EventType(event.event_type) not in rules.withdrawal_blocked_event_types:
        return []
    subject = context.subject
    if event.scope != EventScope.ANIMAL or subject is None or subject.withdraw_until is None:
        return []
    if context.today < subject.withdraw_until:
        return [
            ValidationIssue(
                code="SUBJECT_IN_WITHDRAWAL",
                message=f"Animal is in a withdrawal period until {subject.withdraw_until}",
                field="animal_id",
                details={"withdraw_until": subject.withdraw_until.isoformat()},
            )
        ]
    return []


def guide_notices(context: ValidationContext) -> list[Notice]:
    check = context.guide_check
    if check is not None and check.valid and check.auto_register:
        return [
            Notice(
                code="GUIDE_AUTO_REGISTER",
                message="Guide not yet registered; it will be registered on approval",
            )
        ]
    return []


def birth_campaign_notices(event: EventSnapshot, rules: RegulatoryRules) -> list[Notice]:
    """Births after the campaign cutoff belong to the next campaign."""
    if EventType(event.event_type) != EventType.BIRTH:
        return []
    if (event.event_date.month, event.event_date.day) > rules.birth_campaign_cutoff:
        campaign = event.event_date.year + 1
        return [
            Notice(
                code="BIRTH_NEXT_CAMPAIGN",
                message=f"Birth is classified in the {campaign} campaign",
                details={"campaign_year": campaign},
            )
        ]
    return []
