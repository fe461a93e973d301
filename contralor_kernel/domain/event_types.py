"""
Event type catalogue -- livestock event kinds and their structural groupings.

Responsibility:
    Names every livestock event type, scope, lifecycle status and line
    direction handled by the engine, and groups event types by the rules
    that apply to them (quantity required, guide required, inbound,
    outbound, non-reportable).

Architecture position:
    Kernel > Domain -- pure constants, zero I/O.  Imported by the validator,
    the line synthesis rules, the ORM models and the services.

Invariants enforced:
    - The groupings are fixed by the structure of the register; only the
      regulatory parameters (deadlines, pairs, codes) live in configuration.

Audit relevance:
    The string values are persisted verbatim in ``events.event_type`` and
    ``ledger_entries.operation_label``; renaming a member is a data migration.
"""

from enum import Enum


class EventType(str, Enum):
    """Kinds of livestock events accepted at intake."""

    MOVE_INTERNAL = "MOVE_INTERNAL"
    MOVE_EXTERNAL_IN = "MOVE_EXTERNAL_IN"
    MOVE_EXTERNAL_OUT = "MOVE_EXTERNAL_OUT"
    CONSIGNACION_IN = "CONSIGNACION_IN"
    CONSIGNACION_OUT = "CONSIGNACION_OUT"
    REMATE_IN = "REMATE_IN"
    REMATE_OUT = "REMATE_OUT"
    WEIGHING = "WEIGHING"
    HEALTH_TREATMENT = "HEALTH_TREATMENT"
    BIRTH = "BIRTH"
    DEATH = "DEATH"
    CATEGORY_CHANGE = "CATEGORY_CHANGE"
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    CONSUMPTION = "CONSUMPTION"
    LOST_WITH_HIDE = "LOST_WITH_HIDE"
    FAENA = "FAENA"


class EventScope(str, Enum):
    """Subject kind an event refers to."""

    ANIMAL = "ANIMAL"
    HERD = "HERD"


class EventStatus(str, Enum):
    """Event lifecycle.  APPROVED and REJECTED are terminal."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Direction(str, Enum):
    """Direction of a head-count movement on a ledger line."""

    IN = "IN"
    OUT = "OUT"


class SheetStatus(str, Enum):
    """LedgerSheet lifecycle.  CLOSED is terminal."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class GuideStatus(str, Enum):
    """Status of a movement guide as issued by the authority."""

    VALID = "VALID"
    ANNULLED = "ANNULLED"
    EXPIRED = "EXPIRED"


INBOUND_TYPES: frozenset[EventType] = frozenset({
    EventType.PURCHASE,
    EventType.MOVE_EXTERNAL_IN,
    EventType.CONSIGNACION_IN,
    EventType.REMATE_IN,
})

OUTBOUND_TYPES: frozenset[EventType] = frozenset({
    EventType.SALE,
    EventType.MOVE_EXTERNAL_OUT,
    EventType.CONSIGNACION_OUT,
    EventType.REMATE_OUT,
})

# Stock leaving the register without a counterpart premise
EXIT_TYPES: frozenset[EventType] = frozenset({
    EventType.DEATH,
    EventType.CONSUMPTION,
    EventType.LOST_WITH_HIDE,
    EventType.FAENA,
})

GUIDE_REQUIRED_TYPES: frozenset[EventType] = INBOUND_TYPES | OUTBOUND_TYPES

QUANTITY_REQUIRED_TYPES: frozenset[EventType] = (
    GUIDE_REQUIRED_TYPES
    | EXIT_TYPES
    | {EventType.BIRTH, EventType.CATEGORY_CHANGE}
)

NON_REPORTABLE_TYPES: frozenset[EventType] = frozenset({
    EventType.MOVE_INTERNAL,
    EventType.WEIGHING,
    EventType.HEALTH_TREATMENT,
})

# Approved ANIMAL-scope events of these types retire the animal
ANIMAL_RETIRING_TYPES: frozenset[EventType] = EXIT_TYPES | OUTBOUND_TYPES

MIRROR_COUNTERPARTS: dict[EventType, EventType] = {
    EventType.SALE: EventType.PURCHASE,
    EventType.PURCHASE: EventType.SALE,
}


def is_reportable(event_type: EventType | str) -> bool:
    """True when approving the event writes to the register."""
    return EventType(event_type) not in NON_REPORTABLE_TYPES
