"""
ORM-level immutability enforcement for the register.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  Listeners registered here inspect attribute history and raise
ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity             | When immutable                 | Permitted change
-------------------|--------------------------------|---------------------------------
LivestockEvent     | Once APPROVED or REJECTED      | mirror_event_id: NULL -> value
LedgerEntry        | Always                         | void fields, once (not voided ->
                   |                                | voided)
LedgerEntryLine    | Always                         | none
CategoryBalance    | Always                         | none
LedgerSheet        | Once CLOSED                    | none
AuditEvent         | Always                         | none

updated_at and updated_by_id are audit metadata and may always change.
Only column attributes are inspected: a relationship collection change
(appending lines to a new entry) is not a modification of the row.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from contralor_kernel.domain.event_types import EventStatus, SheetStatus
from contralor_kernel.exceptions import ImmutabilityViolationError
from contralor_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})

_VOID_FIELDS = frozenset({"is_voided", "void_reason", "voided_at", "voided_by_id"})


def _changed_columns(target) -> list[str]:
    """Names of column attributes with pending changes, minus audit metadata."""
    insp = inspect(target)
    changed = []
    for attr in insp.mapper.column_attrs:
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if insp.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _previous_value(target, field: str):
    """Value the row held before this flush."""
    history = get_history(target, field)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, field)


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# LivestockEvent


def _check_event_immutability(mapper, connection, target):
    """A decided event only accepts its first mirror link."""
    previous_status = _previous_value(target, "status")
    if previous_status == EventStatus.PENDING:
        return

    for field in _changed_columns(target):
        if field == "mirror_event_id" and _previous_value(target, field) is None:
            continue
        _block(
            "LivestockEvent",
            target,
            "UPDATE",
            f"Cannot modify field '{field}' on {previous_status} event",
            field,
        )


def _check_event_delete(mapper, connection, target):
    _block("LivestockEvent", target, "DELETE", "Events are never deleted")


# LedgerEntry / LedgerEntryLine


def _check_entry_immutability(mapper, connection, target):
    """Entries change only by being voided, and only once."""
    changed = _changed_columns(target)
    if not changed:
        return

    was_voided = bool(_previous_value(target, "is_voided"))
    for field in changed:
        if field not in _VOID_FIELDS:
            _block(
                "LedgerEntry",
                target,
                "UPDATE",
                f"Cannot modify field '{field}' on a ledger entry",
                field,
            )
        if was_voided:
            _block(
                "LedgerEntry",
                target,
                "UPDATE",
                "Voided ledger entries cannot be modified",
                field,
            )
    if not target.is_voided:
        _block("LedgerEntry", target, "UPDATE", "A voided entry cannot be restored")


def _check_entry_delete(mapper, connection, target):
    _block("LedgerEntry", target, "DELETE", "Ledger entries are never deleted")


def _check_line_immutability(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "LedgerEntryLine",
            target,
            "UPDATE",
            "Ledger entry lines are immutable",
            changed[0],
        )


def _check_line_delete(mapper, connection, target):
    _block("LedgerEntryLine", target, "DELETE", "Ledger entry lines are never deleted")


# CategoryBalance


def _check_balance_immutability(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "CategoryBalance",
            target,
            "UPDATE",
            "Closing balances are immutable",
            changed[0],
        )


def _check_balance_delete(mapper, connection, target):
    _block("CategoryBalance", target, "DELETE", "Closing balances are never deleted")


# LedgerSheet


def _check_sheet_immutability(mapper, connection, target):
    """A CLOSED sheet is frozen; the OPEN -> CLOSED flip is the last change."""
    if _previous_value(target, "status") != SheetStatus.CLOSED:
        return
    changed = _changed_columns(target)
    if changed:
        _block(
            "LedgerSheet",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a closed sheet",
            changed[0],
        )


def _check_sheet_delete(mapper, connection, target):
    _block("LedgerSheet", target, "DELETE", "Ledger sheets are never deleted")


# AuditEvent


def _check_audit_event_immutability(mapper, connection, target):
    _block(
        "AuditEvent",
        target,
        "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


def _listener_table():
    from contralor_kernel.models.audit_event import AuditEvent
    from contralor_kernel.models.balance import CategoryBalance
    from contralor_kernel.models.event import LivestockEvent
    from contralor_kernel.models.ledger import LedgerEntry, LedgerEntryLine, LedgerSheet

    return (
        (LivestockEvent, "before_update", _check_event_immutability),
        (LivestockEvent, "before_delete", _check_event_delete),
        (LedgerEntry, "before_update", _check_entry_immutability),
        (LedgerEntry, "before_delete", _check_entry_delete),
        (LedgerEntryLine, "before_update", _check_line_immutability),
        (LedgerEntryLine, "before_delete", _check_line_delete),
        (CategoryBalance, "before_update", _check_balance_immutability),
        (CategoryBalance, "before_delete", _check_balance_delete),
        (LedgerSheet, "before_update", _check_sheet_immutability),
        (LedgerSheet, "before_delete", _check_sheet_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once during application initialization, after the models are
    importable.  Calling it again is a no-op.
    """
    for target, event_name, listener in _listener_table():
        if not event.contains(target, event_name, listener):
            event.listen(target, event_name, listener)
