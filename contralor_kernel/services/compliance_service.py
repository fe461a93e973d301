"""
ComplianceService -- detection and resolution of filing-deadline breaches.

Responsibility:
    Scans a premise's PENDING deadline-bound events (deaths, consumption,
    losses, slaughter) and records a DEADLINE_EXCEEDED violation for every
    event older than the legal filing deadline.  Lists and resolves
    violations for the alert banners upstream.

Architecture position:
    Kernel > Services -- imperative shell.  Invoked on demand by the
    caller; there is no background scheduler.

Invariants enforced:
    - Detection is idempotent: at most one DEADLINE_EXCEEDED violation per
      event.
    - days_exceeded = elapsed days - filing deadline days.
    - A violation is resolved once (ViolationAlreadyResolvedError).

Audit relevance:
    VIOLATION_DETECTED and VIOLATION_RESOLVED audit events.
"""

from datetime import timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import ViolationInfo
from contralor_kernel.domain.event_types import EventStatus
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.exceptions import (
    ViolationAlreadyResolvedError,
    ViolationNotFoundError,
)
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.compliance import ComplianceViolation
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.base import BaseService

logger = get_logger("services.compliance")

DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
DEADLINE_RULE_CODE = "DICOSE_30_DAYS_DEADLINE"
SEVERITY_CRITICAL = "CRITICAL"


class ComplianceService(BaseService):
    """Records and resolves compliance violations."""

    def __init__(
        self,
        session: Session,
        rules: RegulatoryRules,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rules
        self._auditor = auditor

    @staticmethod
    def to_info(violation: ComplianceViolation) -> ViolationInfo:
        return ViolationInfo(
            id=violation.id,
            premise_id=violation.premise_id,
            violation_type=violation.violation_type,
            severity=violation.severity,
            rule_code=violation.rule_code,
            days_exceeded=violation.days_exceeded,
            detected_at=violation.detected_at,
            event_id=violation.event_id,
            animal_id=violation.animal_id,
            resolved_at=violation.resolved_at,
        )

    def detect_deadline_breaches(
        self, premise_id: UUID, actor_id: UUID
    ) -> tuple[ViolationInfo, ...]:
        """Record violations for overdue PENDING events; returns the new ones."""
        today = self._clock.today()
        cutoff = today - timedelta(days=self._rules.filing_deadline_days)

        overdue = self.session.execute(
            select(LivestockEvent)
            .where(LivestockEvent.premise_id == premise_id)
            .where(LivestockEvent.status == EventStatus.PENDING.value)
            .where(
                LivestockEvent.event_type.in_(
                    [t.value for t in self._rules.deadline_event_types]
                )
            )
            .where(LivestockEvent.event_date < cutoff)
            .order_by(LivestockEvent.event_date)
        ).scalars().all()
        if not overdue:
            return ()

        already_flagged = set(
            self.session.execute(
                select(ComplianceViolation.event_id)
                .where(ComplianceViolation.violation_type == DEADLINE_EXCEEDED)
                .where(ComplianceViolation.event_id.in_([e.id for e in overdue]))
            ).scalars()
        )

        detected = []
        for event in overdue:
            if event.id in already_flagged:
                continue
            elapsed = (today - event.event_date).days
            violation = ComplianceViolation(
                premise_id=premise_id,
                violation_type=DEADLINE_EXCEEDED,
                severity=SEVERITY_CRITICAL,
                rule_code=DEADLINE_RULE_CODE,
                animal_id=event.animal_id,
                event_id=event.id,
                days_exceeded=elapsed - self._rules.filing_deadline_days,
                detected_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self.session.add(violation)
            self.session.flush()
            self._auditor.record_violation_detected(
                violation.id,
                DEADLINE_EXCEEDED,
                event.id,
                violation.days_exceeded,
                actor_id,
            )
            detected.append(self.to_info(violation))

        if detected:
            logger.warning(
                "deadline_breaches_detected",
                extra={"premise_id": str(premise_id), "violation_count": len(detected)},
            )
        return tuple(detected)

    def list_open_violations(self, premise_id: UUID) -> tuple[ViolationInfo, ...]:
        rows = self.session.execute(
            select(ComplianceViolation)
            .where(ComplianceViolation.premise_id == premise_id)
            .where(ComplianceViolation.resolved_at.is_(None))
            .order_by(ComplianceViolation.days_exceeded.desc())
        ).scalars().all()
        return tuple(self.to_info(v) for v in rows)

    def resolve_violation(
        self,
        violation_id: UUID,
        actor_id: UUID,
        event_id: UUID | None = None,
    ) -> ViolationInfo:
        """
        Mark a violation resolved, optionally naming the regularizing event.

        Raises:
            ViolationNotFoundError: Unknown violation.
            ViolationAlreadyResolvedError: Already resolved.
        """
        violation = self._load(
            ComplianceViolation, violation_id, ViolationNotFoundError, lock=True
        )
        if violation.is_resolved:
            raise ViolationAlreadyResolvedError(str(violation_id))

        violation.resolved_at = self._clock.now()
        violation.resolved_by_id = actor_id
        violation.resolution_event_id = event_id
        violation.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record_violation_resolved(violation.id, event_id, actor_id)
        logger.info(
            "violation_resolved",
            extra={
                "violation_id": str(violation_id),
                "resolution_event_id": str(event_id) if event_id else None,
            },
        )
        return self.to_info(violation)
