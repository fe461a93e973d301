"""
Module: contralor_kernel.models.compliance
Responsibility: ORM persistence for detected compliance violations (alert
    banners upstream).
Architecture position: Kernel > Models.

Invariants enforced:
    - One open DEADLINE_EXCEEDED violation per event (detector is idempotent).
    - A violation is mutated only to mark it resolved, once.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from contralor_kernel.db.base import TrackedBase, UUIDString


class ComplianceViolation(TrackedBase):
    """A detected breach of a legal deadline or rule."""

    __tablename__ = "compliance_violations"

    __table_args__ = (
        Index("idx_violation_premise_open", "premise_id", "resolved_at"),
        Index("idx_violation_event", "event_id"),
    )

    premise_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # e.g. DEADLINE_EXCEEDED
    violation_type: Mapped[str] = mapped_column(String(40), nullable=False)

    # CRITICAL, WARNING
    severity: Mapped[str] = mapped_column(String(10), nullable=False)

    # Rule identifier, e.g. DICOSE_30_DAYS_DEADLINE
    rule_code: Mapped[str] = mapped_column(String(50), nullable=False)

    animal_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("events.id"),
        nullable=True,
    )

    days_exceeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Event that regularized the breach, when there is one
    resolution_event_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None
