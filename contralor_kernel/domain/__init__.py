"""
Pure domain layer.

Data transfer objects and rule functions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time
- I/O

All domain objects are immutable and deterministic.
"""

from contralor_kernel.domain.balances import compute_category_balances, opening_balances
from contralor_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from contralor_kernel.domain.dtos import (
    ApprovalOutcome,
    ApprovalResult,
    CategoryBalanceInfo,
    CorrectionRequest,
    EntryDraft,
    EntryInfo,
    EventSnapshot,
    EventSubmission,
    GuideCheck,
    GuideInfo,
    GuideUse,
    IssueKind,
    LineSpec,
    Notice,
    SheetInfo,
    SubjectInfo,
    ValidationContext,
    ValidationIssue,
    ValidationResult,
    ViolationInfo,
)
from contralor_kernel.domain.event_types import (
    Direction,
    EventScope,
    EventStatus,
    EventType,
    GuideStatus,
    SheetStatus,
)
from contralor_kernel.domain.event_validator import validate_event
from contralor_kernel.domain.guide_rules import check_guide
from contralor_kernel.domain.ledger_synthesis import build_entry_draft, synthesize_lines
from contralor_kernel.domain.rules import RegulatoryRules

__all__ = [
    "ApprovalOutcome",
    "ApprovalResult",
    "CategoryBalanceInfo",
    "Clock",
    "CorrectionRequest",
    "DeterministicClock",
    "Direction",
    "EntryDraft",
    "EntryInfo",
    "EventScope",
    "EventSnapshot",
    "EventStatus",
    "EventSubmission",
    "EventType",
    "GuideCheck",
    "GuideInfo",
    "GuideStatus",
    "GuideUse",
    "IssueKind",
    "LineSpec",
    "Notice",
    "RegulatoryRules",
    "SheetInfo",
    "SheetStatus",
    "SubjectInfo",
    "SystemClock",
    "ValidationContext",
    "ValidationIssue",
    "ValidationResult",
    "ViolationInfo",
    "build_entry_draft",
    "check_guide",
    "compute_category_balances",
    "opening_balances",
    "synthesize_lines",
    "validate_event",
]
