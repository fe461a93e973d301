"""ORM models for the contralor kernel."""

from contralor_kernel.models.audit_event import AuditAction, AuditEvent
from contralor_kernel.models.balance import CategoryBalance
from contralor_kernel.models.compliance import ComplianceViolation
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.models.guide import Guide
from contralor_kernel.models.ledger import LedgerEntry, LedgerEntryLine, LedgerSheet
from contralor_kernel.models.reference import Animal, Category, Herd
from contralor_kernel.models.sequence import SequenceCounter

__all__ = [
    "Animal",
    "AuditAction",
    "AuditEvent",
    "Category",
    "CategoryBalance",
    "ComplianceViolation",
    "Guide",
    "Herd",
    "LedgerEntry",
    "LedgerEntryLine",
    "LedgerSheet",
    "LivestockEvent",
    "SequenceCounter",
]
