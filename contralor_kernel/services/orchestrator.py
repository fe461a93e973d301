"""
ContralorOrchestrator -- wires the register services around one session.

The orchestrator ties together:
- Intake: PENDING event storage
- Approval: the state machine, validator context, synthesis and effects
- Sheets and balances: period lifecycle and closing
- Corrections: voids and amendment chains
- Compliance: deadline breach detection
- Auditor: the hash-chained audit trail

Every collaborator shares the session, the rules and the clock.  The
orchestrator never commits; callers wrap calls in ``session_scope()``.
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock, SystemClock
from contralor_kernel.domain.dtos import (
    ApprovalResult,
    CategoryBalanceInfo,
    CorrectionRequest,
    EntryInfo,
    EventSubmission,
    GuideCheck,
    SheetInfo,
    ValidationResult,
    ViolationInfo,
)
from contralor_kernel.domain.event_types import EventType
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.logging_config import get_logger
from contralor_kernel.services.approval_service import ApprovalService
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.balance_service import BalanceService
from contralor_kernel.services.compliance_service import ComplianceService
from contralor_kernel.services.correction_service import CorrectionService
from contralor_kernel.services.event_intake import EventIntakeService
from contralor_kernel.services.guide_registry import GuideRegistry
from contralor_kernel.services.ledger_synthesizer import LedgerSynthesizer
from contralor_kernel.services.sheet_service import SheetService
from contralor_kernel.services.subject_effects import SubjectEffects

logger = get_logger("services.orchestrator")


class ContralorOrchestrator:
    """
    Facade over the register services.

    Contract:
        Thin delegation; each method documents itself on the service that
        implements it.
    """

    def __init__(
        self,
        session: Session,
        rules: RegulatoryRules,
        clock: Clock | None = None,
    ):
        self.session = session
        self.rules = rules
        self.clock = clock or SystemClock()

        self.auditor = AuditorService(session, self.clock)
        self.guides = GuideRegistry(session, rules, self.auditor, self.clock)
        self.balances = BalanceService(session, self.clock)
        self.sheets = SheetService(session, rules, self.auditor, self.balances, self.clock)
        self.synthesizer = LedgerSynthesizer(
            session, rules, self.auditor, self.guides, self.clock
        )
        self.subjects = SubjectEffects(session, self.auditor, self.clock)
        self.intake = EventIntakeService(session, self.auditor, self.clock)
        self.approvals = ApprovalService(
            session,
            rules,
            self.auditor,
            self.guides,
            self.sheets,
            self.synthesizer,
            self.subjects,
            self.clock,
        )
        self.corrections = CorrectionService(
            session, self.auditor, self.sheets, self.synthesizer, self.clock
        )
        self.compliance = ComplianceService(session, rules, self.auditor, self.clock)

        logger.debug("orchestrator_initialized")

    # Events

    def submit_event(self, submission: EventSubmission, actor_id: UUID) -> UUID:
        return self.intake.submit(submission, actor_id).id

    def validate_event(self, event_id: UUID) -> ValidationResult:
        return self.approvals.validate(event_id)

    def approve(self, event_id: UUID, actor_id: UUID) -> ApprovalResult:
        return self.approvals.approve(event_id, actor_id)

    def reject(
        self, event_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> ApprovalResult:
        return self.approvals.reject(event_id, actor_id, reason)

    # Guides

    def validate_guide(
        self,
        series: str,
        number: str,
        event_type: EventType | str,
        species: str | None,
        premise_id: UUID,
    ) -> GuideCheck:
        return self.guides.validate_guide(series, number, event_type, species, premise_id)

    # Sheets

    def open_sheet(
        self,
        premise_id: UUID,
        firm_id: UUID,
        species: str,
        period_start: date,
        period_end: date,
        registration_number: str,
        actor_id: UUID,
    ) -> SheetInfo:
        return self.sheets.open_sheet(
            premise_id,
            firm_id,
            species,
            period_start,
            period_end,
            registration_number,
            actor_id,
        )

    def compute_balances(self, sheet_id: UUID) -> dict[UUID, CategoryBalanceInfo]:
        return self.balances.compute_balances(sheet_id)

    def close_sheet(self, sheet_id: UUID, actor_id: UUID) -> tuple[CategoryBalanceInfo, ...]:
        return self.sheets.close_sheet(sheet_id, actor_id)

    # Corrections

    def void_entry(self, entry_id: UUID, reason: str, actor_id: UUID) -> EntryInfo:
        return self.corrections.void_entry(entry_id, reason, actor_id)

    def create_correction(
        self,
        original_entry_id: UUID,
        request: CorrectionRequest | None,
        reason: str,
        actor_id: UUID,
    ) -> EntryInfo:
        return self.corrections.create_correction(
            original_entry_id, request, reason, actor_id
        )

    def get_amendment_chain(self, entry_id: UUID) -> tuple[EntryInfo, ...]:
        return self.corrections.get_amendment_chain(entry_id)

    # Compliance

    def detect_deadline_breaches(
        self, premise_id: UUID, actor_id: UUID
    ) -> tuple[ViolationInfo, ...]:
        return self.compliance.detect_deadline_breaches(premise_id, actor_id)

    def list_open_violations(self, premise_id: UUID) -> tuple[ViolationInfo, ...]:
        return self.compliance.list_open_violations(premise_id)

    def resolve_violation(
        self, violation_id: UUID, actor_id: UUID, event_id: UUID | None = None
    ) -> ViolationInfo:
        return self.compliance.resolve_violation(violation_id, actor_id, event_id)
