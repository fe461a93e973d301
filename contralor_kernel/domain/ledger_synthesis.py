"""
LedgerSynthesis -- Pure mapping from an approved event to register lines.

Responsibility:
    Decides which lines (category, direction, heads) an approved event
    writes, and how the resulting entry is labelled (operation label,
    registration code, origin and destination registrations).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by the
    LedgerSynthesizer service, which persists the draft.

Invariants enforced:
    - Non-reportable types produce no draft.
    - CATEGORY_CHANGE produces exactly one OUT line on the source category
      and one IN line on the destination category with equal heads;
      ``LineImbalanceError`` otherwise.

Failure modes:
    - ValueError if a line-producing event reaches synthesis without a
      resolvable category or heads (the validator rules them out first).
"""

from collections.abc import Iterable
from uuid import UUID

from contralor_kernel.domain.dtos import (
    EntryDraft,
    EventSnapshot,
    GuideInfo,
    LineSpec,
    SubjectInfo,
)
from contralor_kernel.domain.event_types import (
    EXIT_TYPES,
    INBOUND_TYPES,
    NON_REPORTABLE_TYPES,
    OUTBOUND_TYPES,
    Direction,
    EventType,
)
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.exceptions import LineImbalanceError


def resolve_category(event: EventSnapshot, subject: SubjectInfo | None) -> UUID | None:
    """Category a single-line event is booked against."""
    if event.category_id is not None:
        return event.category_id
    if subject is not None:
        return subject.category_id
    return None


def check_line_balance(lines: Iterable[LineSpec]) -> None:
    """Raise LineImbalanceError unless IN heads equal OUT heads."""
    heads_in = heads_out = 0
    for line in lines:
        if line.direction == Direction.IN:
            heads_in += line.qty_heads
        else:
            heads_out += line.qty_heads
    if heads_in != heads_out:
        raise LineImbalanceError(heads_in=heads_in, heads_out=heads_out)


def synthesize_lines(
    event: EventSnapshot,
    subject: SubjectInfo | None = None,
) -> tuple[LineSpec, ...]:
    """
    Lines written by an approved event.

    Returns an empty tuple for non-reportable types.
    """
    event_type = EventType(event.event_type)
    if event_type in NON_REPORTABLE_TYPES:
        return ()

    heads = event.qty_heads or 0
    if heads <= 0:
        raise ValueError(f"Event {event.id} has no heads to book")

    if event_type == EventType.CATEGORY_CHANGE:
        if event.category_from_id is None or event.category_to_id is None:
            raise ValueError(f"Category change {event.id} lacks from/to categories")
        lines = (
            LineSpec(event.category_from_id, Direction.OUT, heads),
            LineSpec(event.category_to_id, Direction.IN, heads),
        )
        check_line_balance(lines)
        return lines

    category_id = resolve_category(event, subject)
    if category_id is None:
        raise ValueError(f"Event {event.id} has no resolvable category")

    if event_type == EventType.BIRTH or event_type in INBOUND_TYPES:
        return (LineSpec(category_id, Direction.IN, heads),)
    if event_type in EXIT_TYPES or event_type in OUTBOUND_TYPES:
        return (LineSpec(category_id, Direction.OUT, heads),)

    raise ValueError(f"No line mapping for event type {event_type.value}")


def registration_code_for(
    event_type: EventType | str,
    guide: GuideInfo | None,
    rules: RegulatoryRules,
) -> str | None:
    """The guide's own code when it carries one, else the configured code."""
    if guide is not None and guide.registration_code:
        return guide.registration_code
    return rules.registration_code_for(event_type)


def build_entry_draft(
    event: EventSnapshot,
    subject: SubjectInfo | None,
    guide: GuideInfo | None,
    rules: RegulatoryRules,
) -> EntryDraft | None:
    """Draft of the entry an approved event writes; None if non-reportable."""
    lines = synthesize_lines(event, subject)
    if not lines:
        return None

    return EntryDraft(
        operation_label=EventType(event.event_type).value,
        entry_date=event.event_date,
        lines=lines,
        registration_code=registration_code_for(event.event_type, guide, rules),
        origin_registration=event.origin_registration
        or (guide.origin_registration if guide else None),
        destination_registration=event.destination_registration
        or (guide.destination_registration if guide else None),
    )
