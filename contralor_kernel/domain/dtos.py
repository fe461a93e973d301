"""
Domain DTOs -- immutable values crossing the pure core / service boundary.

Responsibility:
    Carries event snapshots, validation context, validation issues and
    notices, line specifications, balance rows and operation results
    between the services (which do I/O) and the pure domain functions.

Architecture position:
    Kernel > Domain -- pure data, no ORM, no I/O.

Invariants enforced:
    - Every DTO is a frozen dataclass; collections are tuples or frozensets.
    - ``ValidationIssue.code`` is always present and machine-readable.
    - ``ValidationResult.is_valid`` is True iff there are no issues;
      notices never affect validity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from contralor_kernel.domain.event_types import (
    Direction,
    EventScope,
    EventStatus,
    EventType,
    GuideStatus,
    SheetStatus,
)


# ---------------------------------------------------------------------------
# Validation outcomes
# ---------------------------------------------------------------------------


class IssueKind(str, Enum):
    """Category of a blocking issue."""

    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"


@dataclass(frozen=True)
class ValidationIssue:
    """
    A single blocking rule violation.

    Contract:
        Carries a machine-readable code, human-readable message, optional
        field name, the issue kind and optional structured details.

    Non-goals:
        - Does NOT raise -- it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    kind: IssueKind = IssueKind.VALIDATION
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class Notice:
    """An advisory, non-blocking message surfaced to the caller."""

    code: str
    message: str
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validating one event.

    Guarantees:
        - ``errors`` and ``notices`` are tuples (never None).
        - bool(result) == result.is_valid.
    """

    errors: tuple[ValidationIssue, ...] = ()
    notices: tuple[Notice, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    @property
    def notice_codes(self) -> tuple[str, ...]:
        return tuple(n.code for n in self.notices)

    @classmethod
    def success(cls, *notices: Notice) -> ValidationResult:
        return cls(errors=(), notices=tuple(notices))

    @classmethod
    def failure(cls, *errors: ValidationIssue) -> ValidationResult:
        return cls(errors=tuple(errors))

    def with_notices(self, *notices: Notice) -> ValidationResult:
        return ValidationResult(errors=self.errors, notices=self.notices + tuple(notices))

    def __bool__(self) -> bool:
        return self.is_valid


# ---------------------------------------------------------------------------
# Validation inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventSnapshot:
    """Read-only view of a livestock event as the validator sees it."""

    id: UUID
    firm_id: UUID
    premise_id: UUID
    event_type: EventType
    scope: EventScope
    event_date: date
    status: EventStatus = EventStatus.PENDING
    species: str | None = None
    animal_id: UUID | None = None
    herd_id: UUID | None = None
    qty_heads: int | None = None
    qty_kg: Decimal | None = None
    category_id: UUID | None = None
    category_from_id: UUID | None = None
    category_to_id: UUID | None = None
    guide_series: str | None = None
    guide_number: str | None = None
    origin_registration: str | None = None
    destination_registration: str | None = None
    withdraw_days: int | None = None

    @property
    def has_guide(self) -> bool:
        return bool(self.guide_series) and bool(self.guide_number)

    @property
    def subject_id(self) -> UUID | None:
        return self.animal_id if self.scope == EventScope.ANIMAL else self.herd_id


@dataclass(frozen=True)
class SubjectInfo:
    """Current attributes of the animal or herd an event refers to."""

    id: UUID
    scope: EventScope
    species: str
    category_id: UUID | None = None
    withdraw_until: date | None = None
    is_active: bool = True


@dataclass(frozen=True)
class SheetInfo:
    """Read-only view of a ledger sheet."""

    id: UUID
    premise_id: UUID
    firm_id: UUID
    sheet_type: str
    period_start: date
    period_end: date
    registration_number: str
    status: SheetStatus

    @property
    def is_open(self) -> bool:
        return self.status == SheetStatus.OPEN

    def covers(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end


@dataclass(frozen=True)
class GuideInfo:
    """Read-only view of a registered guide."""

    id: UUID
    series: str
    number: str
    species: str | None
    status: GuideStatus
    origin_registration: str | None = None
    destination_registration: str | None = None
    registration_code: str | None = None


@dataclass(frozen=True)
class GuideUse:
    """A prior non-rejected event on the same premise citing the guide."""

    event_id: UUID
    event_type: EventType
    status: EventStatus


@dataclass(frozen=True)
class GuideCheck:
    """
    Outcome of guide validation.

    Guarantees:
        - ``valid`` is False iff ``issues`` is non-empty.
        - ``auto_register`` is True only for an unknown guide.
    """

    valid: bool
    issues: tuple[ValidationIssue, ...] = ()
    auto_register: bool = False
    guide: GuideInfo | None = None

    @property
    def reason(self) -> str | None:
        return self.issues[0].message if self.issues else None


@dataclass(frozen=True)
class ValidationContext:
    """
    Read-only context an event is validated against.

    Contract:
        Assembled by the approval service from persistence; the validator
        never fetches anything itself.
    """

    today: date
    open_sheet: SheetInfo | None = None
    guide_check: GuideCheck | None = None
    subject: SubjectInfo | None = None
    known_category_ids: frozenset[UUID] = field(default_factory=frozenset)
    # CLOSED sheet of the same species group whose period covers the event
    closed_sheet: SheetInfo | None = None


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineSpec:
    """One category/direction/head-count movement to write."""

    category_id: UUID
    direction: Direction
    qty_heads: int

    def __post_init__(self) -> None:
        if self.qty_heads <= 0:
            raise ValueError(f"Line head count must be positive, got {self.qty_heads}")


@dataclass(frozen=True)
class EntryDraft:
    """Everything needed to write one ledger entry, minus identity."""

    operation_label: str
    entry_date: date
    lines: tuple[LineSpec, ...]
    registration_code: str | None = None
    origin_registration: str | None = None
    destination_registration: str | None = None


@dataclass(frozen=True)
class CorrectionRequest:
    """
    Overrides for a corrective entry.

    Contract:
        Fields left as None are copied from the entry being corrected.
        ``lines`` replaces the original lines verbatim when given.
    """

    entry_date: date | None = None
    operation_label: str | None = None
    registration_code: str | None = None
    guide_id: UUID | None = None
    origin_registration: str | None = None
    destination_registration: str | None = None
    lines: tuple[LineSpec, ...] | None = None


@dataclass(frozen=True)
class CategoryBalanceInfo:
    """Head-count balance of one category over one sheet."""

    category_id: UUID
    initial_heads: int = 0
    total_in_heads: int = 0
    total_out_heads: int = 0

    @property
    def final_heads(self) -> int:
        return self.initial_heads + self.total_in_heads - self.total_out_heads


@dataclass(frozen=True)
class EntryInfo:
    """Read-only view of a ledger entry and its lines."""

    id: UUID
    sheet_id: UUID
    source_event_id: UUID
    seq: int
    entry_date: date
    operation_label: str
    lines: tuple[LineSpec, ...]
    registration_code: str | None = None
    guide_id: UUID | None = None
    is_voided: bool = False
    void_reason: str | None = None
    corrected_entry_id: UUID | None = None
    correction_reason: str | None = None


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class ApprovalOutcome(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    BLOCKED = "BLOCKED"


@dataclass(frozen=True)
class ApprovalResult:
    """
    Result of an approve or reject call.

    Guarantees:
        - BLOCKED carries every blocking issue; the event is still PENDING.
        - APPROVED carries ``entry_id`` when the event wrote to the register.
    """

    outcome: ApprovalOutcome
    event_id: UUID
    errors: tuple[ValidationIssue, ...] = ()
    notices: tuple[Notice, ...] = ()
    entry_id: UUID | None = None
    mirror_event_id: UUID | None = None

    @property
    def is_approved(self) -> bool:
        return self.outcome == ApprovalOutcome.APPROVED

    @property
    def is_blocked(self) -> bool:
        return self.outcome == ApprovalOutcome.BLOCKED

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.errors)

    @property
    def notice_codes(self) -> tuple[str, ...]:
        return tuple(n.code for n in self.notices)


@dataclass(frozen=True)
class EventSubmission:
    """Raw event as received from intake."""

    firm_id: UUID
    premise_id: UUID
    event_type: EventType | str
    scope: EventScope | str
    event_date: date
    species: str | None = None
    animal_id: UUID | None = None
    herd_id: UUID | None = None
    qty_heads: int | None = None
    qty_kg: Decimal | None = None
    category_id: UUID | None = None
    category_from_id: UUID | None = None
    category_to_id: UUID | None = None
    guide_series: str | None = None
    guide_number: str | None = None
    origin_registration: str | None = None
    destination_registration: str | None = None
    withdraw_days: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ViolationInfo:
    """Read-only view of a compliance violation."""

    id: UUID
    premise_id: UUID
    violation_type: str
    severity: str
    rule_code: str
    days_exceeded: int
    detected_at: datetime
    event_id: UUID | None = None
    animal_id: UUID | None = None
    resolved_at: datetime | None = None
