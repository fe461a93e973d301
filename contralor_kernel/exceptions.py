"""
Typed exception hierarchy for the contralor kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers catch by type, never by message text.  Every exception carries a
machine-readable ``code`` class attribute and keeps its context as
attributes, so an API layer can render it without parsing strings.

Rule violations found while validating an event are NOT raised: the
validator accumulates them as ``domain.dtos.ValidationIssue`` values and
``approve()`` returns the complete list.  Exceptions cover the cases where
a single operation cannot proceed at all.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ContralorKernelError (base)
    |
    +-- NotFoundError
    |   +-- EventNotFoundError
    |   +-- SheetNotFoundError
    |   +-- EntryNotFoundError
    |   +-- GuideNotFoundError
    |   +-- ViolationNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- SubjectNotFoundError
    |
    +-- ConflictError
    |   +-- EventAlreadyDecidedError
    |   +-- SheetAlreadyClosedError
    |   +-- SheetAlreadyOpenError
    |   +-- SheetPeriodOverlapError
    |   +-- SheetClosedError
    |   +-- EntryAlreadyVoidedError
    |   +-- ViolationAlreadyResolvedError
    |
    +-- InvalidRequestError
    |   +-- InvalidSubmissionError
    |   +-- InvalidCorrectionError
    |
    +-- ConsistencyFault
    |   +-- UnknownCategoryBalanceError
    |   +-- CorrectionCycleError
    |   +-- LineImbalanceError
    |   +-- MissingOpenSheetError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

ConflictError subclasses are recoverable: report ``e.code`` and the
structured attributes to the caller.

ConsistencyFault subclasses mean an atomicity guarantee was broken.  Let
them propagate so the enclosing transaction is rolled back; never repair
partially.

    try:
        sheets.close_sheet(sheet_id, actor_id)
    except SheetAlreadyClosedError as e:
        return {"error": e.code, "sheet_id": e.sheet_id}
"""


class ContralorKernelError(Exception):
    """
    Base exception for all contralor kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "CONTRALOR_KERNEL_ERROR"


# Lookup failures


class NotFoundError(ContralorKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class EventNotFoundError(NotFoundError):
    """Event with given ID was not found."""

    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class SheetNotFoundError(NotFoundError):
    """LedgerSheet with given ID was not found."""

    code: str = "SHEET_NOT_FOUND"

    def __init__(self, sheet_id: str):
        self.sheet_id = sheet_id
        super().__init__(f"Ledger sheet not found: {sheet_id}")


class EntryNotFoundError(NotFoundError):
    """LedgerEntry with given ID was not found."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class GuideNotFoundError(NotFoundError):
    """No guide registered under the given series and number."""

    code: str = "GUIDE_NOT_FOUND"

    def __init__(self, series: str, number: str):
        self.series = series
        self.number = number
        super().__init__(f"Guide not found: {series}-{number}")


class ViolationNotFoundError(NotFoundError):
    """ComplianceViolation with given ID was not found."""

    code: str = "VIOLATION_NOT_FOUND"

    def __init__(self, violation_id: str):
        self.violation_id = violation_id
        super().__init__(f"Compliance violation not found: {violation_id}")


class CategoryNotFoundError(NotFoundError):
    """Category referenced by a correction line does not exist."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class SubjectNotFoundError(NotFoundError):
    """Animal or herd referenced by a submission does not exist."""

    code: str = "SUBJECT_NOT_FOUND"

    def __init__(self, scope: str, subject_id: str):
        self.scope = scope
        self.subject_id = subject_id
        super().__init__(f"{scope} not found: {subject_id}")


# Conflicts


class ConflictError(ContralorKernelError):
    """Base exception for operations that conflict with current state."""

    code: str = "CONFLICT"


class EventAlreadyDecidedError(ConflictError):
    """Approve or reject called on an event that is no longer PENDING."""

    code: str = "EVENT_ALREADY_DECIDED"

    def __init__(self, event_id: str, status: str):
        self.event_id = event_id
        self.status = status
        super().__init__(f"Event {event_id} is already {status}")


class SheetAlreadyClosedError(ConflictError):
    """Close called on a CLOSED sheet."""

    code: str = "SHEET_ALREADY_CLOSED"

    def __init__(self, sheet_id: str):
        self.sheet_id = sheet_id
        super().__init__(f"Ledger sheet {sheet_id} is already closed")


class SheetAlreadyOpenError(ConflictError):
    """An OPEN sheet already exists for the premise and sheet type."""

    code: str = "SHEET_ALREADY_OPEN"

    def __init__(self, premise_id: str, sheet_type: str, existing_sheet_id: str):
        self.premise_id = premise_id
        self.sheet_type = sheet_type
        self.existing_sheet_id = existing_sheet_id
        super().__init__(
            f"Premise {premise_id} already has an open sheet of type {sheet_type}: "
            f"{existing_sheet_id}"
        )


class SheetPeriodOverlapError(ConflictError):
    """New sheet period overlaps an existing sheet of the same type."""

    code: str = "SHEET_PERIOD_OVERLAP"

    def __init__(self, premise_id: str, sheet_type: str, existing_sheet_id: str):
        self.premise_id = premise_id
        self.sheet_type = sheet_type
        self.existing_sheet_id = existing_sheet_id
        super().__init__(
            f"Period overlaps sheet {existing_sheet_id} "
            f"(premise {premise_id}, type {sheet_type})"
        )


class SheetClosedError(ConflictError):
    """Write attempted against a CLOSED sheet."""

    code: str = "SHEET_CLOSED"

    def __init__(self, sheet_id: str, operation: str):
        self.sheet_id = sheet_id
        self.operation = operation
        super().__init__(f"Cannot {operation}: ledger sheet {sheet_id} is closed")


class EntryAlreadyVoidedError(ConflictError):
    """Void or correction requested for an entry that is already voided."""

    code: str = "ENTRY_ALREADY_VOIDED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry {entry_id} is already voided")


class ViolationAlreadyResolvedError(ConflictError):
    """Resolve called on an already resolved violation."""

    code: str = "VIOLATION_ALREADY_RESOLVED"

    def __init__(self, violation_id: str):
        self.violation_id = violation_id
        super().__init__(f"Compliance violation {violation_id} is already resolved")


# Malformed requests


class InvalidRequestError(ContralorKernelError):
    """Base exception for structurally invalid requests."""

    code: str = "INVALID_REQUEST"


class InvalidSubmissionError(InvalidRequestError):
    """Raw event submission is missing fields needed to store it."""

    code: str = "INVALID_SUBMISSION"

    def __init__(self, reason: str, field: str | None = None):
        self.reason = reason
        self.field = field
        super().__init__(f"Invalid event submission: {reason}")


class InvalidCorrectionError(InvalidRequestError):
    """Correction request cannot produce a well-formed entry."""

    code: str = "INVALID_CORRECTION"

    def __init__(self, entry_id: str, reason: str):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Invalid correction of entry {entry_id}: {reason}")


# Consistency faults (should never occur if the atomicity guarantees hold)


class ConsistencyFault(ContralorKernelError):
    """Base exception for broken ledger invariants."""

    code: str = "CONSISTENCY_FAULT"


class UnknownCategoryBalanceError(ConsistencyFault):
    """Balance would be persisted for categories missing from the catalog."""

    code: str = "UNKNOWN_CATEGORY_BALANCE"

    def __init__(self, sheet_id: str, category_ids: list[str]):
        self.sheet_id = sheet_id
        self.category_ids = category_ids
        super().__init__(
            f"Sheet {sheet_id} has balances for unknown categories: "
            f"{', '.join(category_ids)}"
        )


class CorrectionCycleError(ConsistencyFault):
    """Amendment chain loops back on itself."""

    code: str = "CORRECTION_CYCLE"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Correction chain through entry {entry_id} contains a cycle")


class LineImbalanceError(ConsistencyFault):
    """CATEGORY_CHANGE entry whose IN and OUT head counts differ."""

    code: str = "LINE_IMBALANCE"

    def __init__(self, heads_in: int, heads_out: int):
        self.heads_in = heads_in
        self.heads_out = heads_out
        super().__init__(
            f"Category change lines unbalanced: IN={heads_in} OUT={heads_out}"
        )


class MissingOpenSheetError(ConsistencyFault):
    """Synthesis reached without an OPEN sheet for the species group."""

    code: str = "MISSING_OPEN_SHEET"

    def __init__(self, premise_id: str, sheet_type: str | None):
        self.premise_id = premise_id
        self.sheet_type = sheet_type
        super().__init__(
            f"No open sheet of type {sheet_type} for premise {premise_id}"
        )


# Audit chain


class AuditError(ContralorKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability


class ImmutabilityError(ContralorKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
