"""
ApprovalService -- the event approval state machine.

Responsibility:
    Moves a PENDING event to APPROVED or REJECTED.  Approval gathers the
    validation context from persistence, runs the pure EventValidator and,
    when the event passes, performs the whole approval unit: status change,
    ledger synthesis, subject effects and mirror linkage.

Architecture position:
    Kernel > Services -- imperative shell around ``domain.event_validator``.

Invariants enforced:
    - PENDING -> APPROVED | REJECTED only; terminal states never change
      (EventAlreadyDecidedError, backed by ORM listeners).
    - A blocked approval leaves the event PENDING and writes nothing, and
      reports every violated rule, not just the first.
    - status change -> entry -> subject effects -> mirror link run inside
      one savepoint; an APPROVED reportable event always has its entry.
    - The event row and the OPEN sheet row are locked
      (``SELECT ... FOR UPDATE``) for the whole unit, serializing
      concurrent approvals and closing of the same sheet.

Failure modes:
    - EventNotFoundError, EventAlreadyDecidedError.
    - Consistency faults from synthesis abort the savepoint.

Audit relevance:
    EVENT_APPROVED (or EVENT_RECORDED_ONLY for non-reportable types) and
    EVENT_REJECTED audit events, with decided_by_id / decided_at stamped
    on the event.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import (
    ApprovalOutcome,
    ApprovalResult,
    EventSnapshot,
    Notice,
    ValidationContext,
    ValidationResult,
)
from contralor_kernel.domain.event_types import (
    EventScope,
    EventStatus,
    EventType,
    is_reportable,
)
from contralor_kernel.domain.event_validator import validate_event
from contralor_kernel.domain.guide_rules import mirror_type_for
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.exceptions import EventAlreadyDecidedError, EventNotFoundError
from contralor_kernel.logging_config import LogContext, get_logger
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.models.ledger import LedgerSheet
from contralor_kernel.models.reference import Category
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService
from contralor_kernel.services.guide_registry import GuideRegistry
from contralor_kernel.services.ledger_synthesizer import LedgerSynthesizer
from contralor_kernel.services.sheet_service import SheetService
from contralor_kernel.services.subject_effects import SubjectEffects

logger = get_logger("services.approval")


def to_snapshot(event: LivestockEvent) -> EventSnapshot:
    """Read-only snapshot of an ORM event for the pure core."""
    return EventSnapshot(
        id=event.id,
        firm_id=event.firm_id,
        premise_id=event.premise_id,
        event_type=EventType(event.event_type),
        scope=EventScope(event.scope),
        event_date=event.event_date,
        status=EventStatus(event.status),
        species=event.species,
        animal_id=event.animal_id,
        herd_id=event.herd_id,
        qty_heads=event.qty_heads,
        qty_kg=event.qty_kg,
        category_id=event.category_id,
        category_from_id=event.category_from_id,
        category_to_id=event.category_to_id,
        guide_series=event.guide_series,
        guide_number=event.guide_number,
        origin_registration=event.origin_registration,
        destination_registration=event.destination_registration,
        withdraw_days=event.withdraw_days,
    )


class ApprovalService(BaseService):
    """
    Approval state machine for livestock events.

    Contract:
        ``approve`` returns an ApprovalResult: APPROVED with notices (and
        the entry id for reportable types) or BLOCKED with every issue.
        Single fatal conflicts (deciding a decided event) raise.

    Guarantees:
        - ``validate`` is a side-effect-free preview of ``approve``.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT validate at intake time.
    """

    def __init__(
        self,
        session: Session,
        rules: RegulatoryRules,
        auditor: AuditorService,
        guides: GuideRegistry,
        sheets: SheetService,
        synthesizer: LedgerSynthesizer,
        subjects: SubjectEffects,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rules
        self._auditor = auditor
        self._guides = guides
        self._sheets = sheets
        self._synthesizer = synthesizer
        self._subjects = subjects

    def _load_event(self, event_id: UUID, lock: bool = False) -> LivestockEvent:
        return self._load(LivestockEvent, event_id, EventNotFoundError, lock=lock)

    def _ensure_pending(self, event: LivestockEvent, operation: str) -> None:
        if event.status != EventStatus.PENDING:
            status = EventStatus(event.status).value
            logger.warning(
                "event_already_decided",
                extra={
                    "event_id": str(event.id),
                    "status": status,
                    "operation": operation,
                },
            )
            raise EventAlreadyDecidedError(str(event.id), status)

    def _known_category_ids(self, snapshot: EventSnapshot, subject) -> frozenset[UUID]:
        candidates = {
            snapshot.category_id,
            snapshot.category_from_id,
            snapshot.category_to_id,
            subject.category_id if subject is not None else None,
        }
        candidates.discard(None)
        if not candidates:
            return frozenset()
        return frozenset(
            self.session.execute(
                select(Category.id).where(Category.id.in_(candidates))
            ).scalars()
        )

    def build_context(
        self, snapshot: EventSnapshot, sheet: LedgerSheet | None
    ) -> ValidationContext:
        """Everything the validator needs, read from persistence."""
        subject = self._subjects.get_subject(snapshot)

        guide_check = None
        if snapshot.has_guide:
            guide_check = self._guides.validate_guide(
                snapshot.guide_series,
                snapshot.guide_number,
                snapshot.event_type,
                snapshot.species,
                snapshot.premise_id,
                sheet_registration=sheet.registration_number if sheet else None,
                event_id=snapshot.id,
            )

        closed_sheet = None
        if is_reportable(snapshot.event_type):
            closed = self._sheets.find_closed_sheet_covering(
                snapshot.premise_id, snapshot.species, snapshot.event_date
            )
            closed_sheet = self._sheets.to_info(closed) if closed is not None else None

        return ValidationContext(
            today=self._clock.today(),
            open_sheet=self._sheets.to_info(sheet) if sheet is not None else None,
            guide_check=guide_check,
            subject=subject,
            known_category_ids=self._known_category_ids(snapshot, subject),
            closed_sheet=closed_sheet,
        )

    def validate(self, event_id: UUID) -> ValidationResult:
        """Dry run of the approval rules; writes nothing."""
        event = self._load_event(event_id)
        snapshot = to_snapshot(event)
        sheet = None
        sheet_type = self._rules.sheet_type_for(snapshot.species)
        if sheet_type is not None:
            sheet = self._sheets.find_open_sheet(snapshot.premise_id, sheet_type)
        context = self.build_context(snapshot, sheet)
        return validate_event(snapshot, context, self._rules)

    def approve(self, event_id: UUID, actor_id: UUID) -> ApprovalResult:
        """
        Approve a PENDING event.

        Returns BLOCKED (event untouched) when any rule fails.

        Raises:
            EventNotFoundError: Unknown event.
            EventAlreadyDecidedError: The event is APPROVED or REJECTED.
        """
        with LogContext.bind(event_id=event_id, actor_id=actor_id):
            event = self._load_event(event_id, lock=True)
            self._ensure_pending(event, "approve")
            snapshot = to_snapshot(event)

            sheet = None
            if is_reportable(snapshot.event_type):
                sheet = self._sheets.lock_open_sheet(snapshot.premise_id, snapshot.species)

            context = self.build_context(snapshot, sheet)
            validation = validate_event(snapshot, context, self._rules)
            if not validation.is_valid:
                logger.warning(
                    "approval_blocked",
                    extra={
                        "event_type": snapshot.event_type.value,
                        "error_codes": list(validation.error_codes),
                    },
                )
                return ApprovalResult(
                    outcome=ApprovalOutcome.BLOCKED,
                    event_id=event_id,
                    errors=validation.errors,
                    notices=validation.notices,
                )

            notices = list(validation.notices)
            with self.session.begin_nested():
                event.status = EventStatus.APPROVED.value
                event.decided_by_id = actor_id
                event.decided_at = self._clock.now()
                event.updated_by_id = actor_id
                self.session.flush()

                entry = None
                if is_reportable(snapshot.event_type):
                    entry = self._synthesizer.synthesize(
                        snapshot, context.subject, sheet, context.guide_check, actor_id
                    )

                self._subjects.apply(snapshot, actor_id)

                mirror_event_id, mirror_notice = self._match_mirror(event, actor_id)
                if mirror_notice is not None:
                    notices.append(mirror_notice)

                self._auditor.record_event_approved(
                    event.id,
                    snapshot.event_type.value,
                    actor_id,
                    entry.id if entry is not None else None,
                    tuple(n.code for n in notices),
                )

            logger.info(
                "event_approved",
                extra={
                    "event_type": snapshot.event_type.value,
                    "entry_id": str(entry.id) if entry is not None else None,
                    "notice_codes": [n.code for n in notices],
                },
            )
            return ApprovalResult(
                outcome=ApprovalOutcome.APPROVED,
                event_id=event_id,
                notices=tuple(notices),
                entry_id=entry.id if entry is not None else None,
                mirror_event_id=mirror_event_id,
            )

    def _match_mirror(
        self, event: LivestockEvent, actor_id: UUID
    ) -> tuple[UUID | None, Notice | None]:
        if mirror_type_for(event.event_type) is None or not event.has_guide:
            return None, None

        guide_key = f"{event.guide_series}-{event.guide_number}"
        mirror = self._guides.find_mirror(event)
        if mirror is None:
            return None, Notice(
                code="MIRROR_PENDING",
                message=(
                    f"No approved {mirror_type_for(event.event_type).value} "
                    f"for guide {guide_key} yet"
                ),
                details={"guide": guide_key},
            )

        self._guides.link_mirror(event, mirror, actor_id)
        return mirror.id, Notice(
            code="MIRROR_LINKED",
            message=f"Linked to {EventType(mirror.event_type).value} event {mirror.id}",
            details={"guide": guide_key, "mirror_event_id": str(mirror.id)},
        )

    def reject(
        self, event_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> ApprovalResult:
        """
        Reject a PENDING event.

        Raises:
            EventNotFoundError: Unknown event.
            EventAlreadyDecidedError: The event is APPROVED or REJECTED.
        """
        with LogContext.bind(event_id=event_id, actor_id=actor_id):
            event = self._load_event(event_id, lock=True)
            self._ensure_pending(event, "reject")

            with self.session.begin_nested():
                event.status = EventStatus.REJECTED.value
                event.decided_by_id = actor_id
                event.decided_at = self._clock.now()
                event.rejection_reason = reason
                event.updated_by_id = actor_id
                self.session.flush()

                self._auditor.record_event_rejected(
                    event.id, EventType(event.event_type).value, actor_id, reason
                )

            logger.info(
                "event_rejected",
                extra={
                    "event_type": EventType(event.event_type).value,
                    "reason": reason,
                },
            )
            return ApprovalResult(outcome=ApprovalOutcome.REJECTED, event_id=event_id)
