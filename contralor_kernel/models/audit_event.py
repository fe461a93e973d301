"""
Module: contralor_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listener).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Minimum coverage (each action type generates at least one AuditEvent):
    - EVENT_APPROVED, EVENT_REJECTED, EVENT_RECORDED_ONLY
    - ENTRY_CREATED, ENTRY_VOIDED, ENTRY_CORRECTED
    - SHEET_OPENED, SHEET_CLOSED
    - GUIDE_REGISTERED, MIRROR_LINKED
    - VIOLATION_DETECTED, VIOLATION_RESOLVED
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from contralor_kernel.db.base import Base, SequenceNumber, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Event lifecycle
    EVENT_SUBMITTED = "event_submitted"
    EVENT_APPROVED = "event_approved"
    EVENT_REJECTED = "event_rejected"
    # Approved without a register footprint (non-reportable types)
    EVENT_RECORDED_ONLY = "event_recorded_only"

    # Register
    ENTRY_CREATED = "entry_created"
    ENTRY_VOIDED = "entry_voided"
    ENTRY_CORRECTED = "entry_corrected"

    # Sheet lifecycle
    SHEET_OPENED = "sheet_opened"
    SHEET_CLOSED = "sheet_closed"

    # Guides
    GUIDE_REGISTERED = "guide_registered"
    MIRROR_LINKED = "mirror_linked"

    # Subject effects
    SUBJECT_UPDATED = "subject_updated"

    # Compliance
    VIOLATION_DETECTED = "violation_detected"
    VIOLATION_RESOLVED = "violation_resolved"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - Does NOT enforce hash correctness at INSERT time; that is the
          responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[SequenceNumber] = mapped_column(unique=True)

    # e.g. "LivestockEvent", "LedgerEntry", "LedgerSheet"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
