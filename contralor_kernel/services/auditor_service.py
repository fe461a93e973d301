"""
AuditorService -- the register's hash-chained audit trail.

Every state change that matters to an inspector is appended here:
intake, approval and rejection, register entries, voids and corrections,
sheet opening and closing, guide registration, mirror links, subject
updates and compliance findings.  Each record commits to its predecessor:

    hash = H(entity_type | entity_id | action | H(payload) | prev_hash)

so rewriting any stored payload, or dropping a record, breaks every hash
after it.  Records are numbered by the ``audit_event`` sequence and are
protected from UPDATE and DELETE by the ORM listeners.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.exceptions import AuditChainBrokenError
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.audit_event import AuditAction, AuditEvent
from contralor_kernel.services.base import BaseService
from contralor_kernel.services.sequence_service import SequenceService
from contralor_kernel.utils.hashing import (
    canonical_payload,
    hash_audit_event,
    hash_payload,
)

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """The audit history of one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


def _chain_hash(record: AuditEvent, payload_hash: str) -> str:
    return hash_audit_event(
        entity_type=record.entity_type,
        entity_id=str(record.entity_id),
        action=AuditAction(record.action).value,
        payload_hash=payload_hash,
        prev_hash=record.prev_hash,
    )


class AuditorService(BaseService):
    """
    Appends and verifies audit records.  Flushes, never commits.

    Payloads are stored in canonical JSON form (UUIDs, dates and enums as
    strings), so the stored payload re-hashes to ``payload_hash``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)

    def _tip(self) -> str | None:
        """Hash of the latest record, None for an empty trail."""
        return self.session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        # Allocate the number first: the counter lock serializes appenders,
        # so the tip read below cannot race another writer.
        seq = self._sequences.next_value(SequenceService.AUDIT_EVENT)
        stored = canonical_payload(payload)
        record = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=stored,
            payload_hash=hash_payload(stored),
            prev_hash=self._tip(),
        )
        record.hash = _chain_hash(record, record.payload_hash)
        self.session.add(record)
        self.session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return record

    # Event lifecycle

    def record_event_submitted(
        self, event_id: UUID, event_type: str, premise_id: UUID, actor_id: UUID
    ) -> AuditEvent:
        return self._append(
            "LivestockEvent",
            event_id,
            AuditAction.EVENT_SUBMITTED,
            actor_id,
            {"event_type": event_type, "premise_id": premise_id},
        )

    def record_event_approved(
        self,
        event_id: UUID,
        event_type: str,
        actor_id: UUID,
        entry_id: UUID | None,
        notice_codes: tuple[str, ...] = (),
    ) -> AuditEvent:
        """Approval of a reportable event (``entry_id`` set) or a plain one."""
        action = (
            AuditAction.EVENT_APPROVED
            if entry_id is not None
            else AuditAction.EVENT_RECORDED_ONLY
        )
        return self._append(
            "LivestockEvent",
            event_id,
            action,
            actor_id,
            {
                "event_type": event_type,
                "entry_id": entry_id,
                "notices": list(notice_codes),
            },
        )

    def record_event_rejected(
        self, event_id: UUID, event_type: str, actor_id: UUID, reason: str | None
    ) -> AuditEvent:
        return self._append(
            "LivestockEvent",
            event_id,
            AuditAction.EVENT_REJECTED,
            actor_id,
            {"event_type": event_type, "reason": reason},
        )

    # Register

    def record_entry_created(
        self,
        entry_id: UUID,
        sheet_id: UUID,
        source_event_id: UUID,
        seq: int,
        lines: list[dict[str, Any]],
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "LedgerEntry",
            entry_id,
            AuditAction.ENTRY_CREATED,
            actor_id,
            {
                "sheet_id": sheet_id,
                "source_event_id": source_event_id,
                "seq": seq,
                "lines": lines,
            },
        )

    def record_entry_voided(
        self, entry_id: UUID, reason: str, actor_id: UUID
    ) -> AuditEvent:
        return self._append(
            "LedgerEntry",
            entry_id,
            AuditAction.ENTRY_VOIDED,
            actor_id,
            {"reason": reason},
        )

    def record_entry_corrected(
        self,
        original_entry_id: UUID,
        correction_entry_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "LedgerEntry",
            original_entry_id,
            AuditAction.ENTRY_CORRECTED,
            actor_id,
            {"correction_entry_id": correction_entry_id, "reason": reason},
        )

    # Sheet lifecycle

    def record_sheet_opened(
        self,
        sheet_id: UUID,
        premise_id: UUID,
        sheet_type: str,
        period_start: date,
        period_end: date,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "LedgerSheet",
            sheet_id,
            AuditAction.SHEET_OPENED,
            actor_id,
            {
                "premise_id": premise_id,
                "sheet_type": sheet_type,
                "period_start": period_start,
                "period_end": period_end,
            },
        )

    def record_sheet_closed(
        self,
        sheet_id: UUID,
        balances: list[dict[str, Any]],
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "LedgerSheet",
            sheet_id,
            AuditAction.SHEET_CLOSED,
            actor_id,
            {"balances": balances},
        )

    # Guides

    def record_guide_registered(
        self, guide_id: UUID, series: str, number: str, actor_id: UUID
    ) -> AuditEvent:
        return self._append(
            "Guide",
            guide_id,
            AuditAction.GUIDE_REGISTERED,
            actor_id,
            {"series": series, "number": number},
        )

    def record_mirror_linked(
        self, event_id: UUID, mirror_event_id: UUID, actor_id: UUID
    ) -> AuditEvent:
        return self._append(
            "LivestockEvent",
            event_id,
            AuditAction.MIRROR_LINKED,
            actor_id,
            {"mirror_event_id": mirror_event_id},
        )

    # Subject effects

    def record_subject_updated(
        self,
        animal_id: UUID,
        source_event_id: UUID,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "Animal",
            animal_id,
            AuditAction.SUBJECT_UPDATED,
            actor_id,
            {"source_event_id": source_event_id, "changes": changes},
        )

    # Compliance

    def record_violation_detected(
        self,
        violation_id: UUID,
        violation_type: str,
        event_id: UUID | None,
        days_exceeded: int,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "ComplianceViolation",
            violation_id,
            AuditAction.VIOLATION_DETECTED,
            actor_id,
            {
                "violation_type": violation_type,
                "event_id": event_id,
                "days_exceeded": days_exceeded,
            },
        )

    def record_violation_resolved(
        self, violation_id: UUID, resolution_event_id: UUID | None, actor_id: UUID
    ) -> AuditEvent:
        return self._append(
            "ComplianceViolation",
            violation_id,
            AuditAction.VIOLATION_RESOLVED,
            actor_id,
            {"resolution_event_id": resolution_event_id},
        )

    # Verification

    def validate_chain(self) -> bool:
        """
        Walk the whole trail in sequence order, recomputing every hash.

        Raises:
            AuditChainBrokenError: at the first record whose link or hash
                does not match.
        """
        expected_prev: str | None = None
        count = 0
        records = self.session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars()
        for record in records:
            if record.prev_hash != expected_prev:
                self._broken(record, "link", expected_prev or "None", record.prev_hash or "None")
            recomputed = _chain_hash(record, hash_payload(record.payload or {}))
            if recomputed != record.hash:
                self._broken(record, "hash", recomputed, record.hash)
            expected_prev = record.hash
            count += 1

        logger.info("audit_chain_valid", extra={"event_count": count})
        return True

    @staticmethod
    def _broken(record: AuditEvent, check: str, expected: str, actual: str) -> None:
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": str(record.id), "seq": record.seq, "check": check},
        )
        raise AuditChainBrokenError(str(record.id), expected, actual)

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        records = self.session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars()
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=r.seq,
                    action=AuditAction(r.action),
                    occurred_at=r.occurred_at,
                    actor_id=r.actor_id,
                    payload=r.payload or {},
                    hash=r.hash,
                )
                for r in records
            ),
        )
