"""Services for the contralor kernel (write side)."""

from contralor_kernel.services.approval_service import ApprovalService
from contralor_kernel.services.auditor_service import AuditorService, AuditTrace
from contralor_kernel.services.balance_service import BalanceService
from contralor_kernel.services.compliance_service import ComplianceService
from contralor_kernel.services.correction_service import CorrectionService
from contralor_kernel.services.event_intake import EventIntakeService
from contralor_kernel.services.guide_registry import GuideRegistry
from contralor_kernel.services.ledger_synthesizer import LedgerSynthesizer
from contralor_kernel.services.orchestrator import ContralorOrchestrator
from contralor_kernel.services.sequence_service import SequenceService
from contralor_kernel.services.sheet_service import SheetService
from contralor_kernel.services.subject_effects import SubjectEffects

__all__ = [
    "ApprovalService",
    "AuditTrace",
    "AuditorService",
    "BalanceService",
    "ComplianceService",
    "ContralorOrchestrator",
    "CorrectionService",
    "EventIntakeService",
    "GuideRegistry",
    "LedgerSynthesizer",
    "SequenceService",
    "SheetService",
    "SubjectEffects",
]
