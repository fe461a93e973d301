"""
Module: contralor_kernel.models.event
Responsibility: ORM persistence for livestock events -- proposed changes to
    livestock state awaiting approval.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure event catalogue in domain/event_types.py.

Invariants enforced:
    - Events are never deleted.
    - Once APPROVED or REJECTED an event is immutable, except for the
      one-time mirror link (ORM listener in db/immutability.py).
    - Heads are non-negative integers (CHECK constraint).

Failure modes:
    - ImmutabilityViolationError on UPDATE of a decided event.

Audit relevance:
    Every ledger entry points back to the event that produced it; the
    decided_by_id / decided_at pair records who approved or rejected it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from contralor_kernel.db.base import TrackedBase, UUIDString
from contralor_kernel.domain.event_types import (
    EventScope,
    EventStatus,
    EventType,
)


class LivestockEvent(TrackedBase):
    """
    A submitted livestock event.

    Contract:
        Created PENDING by intake; mutated only by the approval state
        machine (status, decision stamp, rejection reason) and by mirror
        linkage (``mirror_event_id`` set once).

    Guarantees:
        - ``firm_id`` and ``premise_id`` are always explicit.
        - Guide series and number are stored upper-cased and trimmed.
    """

    __tablename__ = "events"

    __table_args__ = (
        Index("idx_event_premise_status", "premise_id", "status"),
        Index("idx_event_guide", "guide_series", "guide_number"),
        CheckConstraint("qty_heads IS NULL OR qty_heads >= 0", name="ck_event_heads"),
    )

    firm_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    premise_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    event_type: Mapped[EventType] = mapped_column(String(30), nullable=False)

    scope: Mapped[EventScope] = mapped_column(String(10), nullable=False)

    species: Mapped[str | None] = mapped_column(String(20), nullable=True)

    animal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("animals.id"),
        nullable=True,
    )

    herd_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("herds.id"),
        nullable=True,
    )

    qty_heads: Mapped[int | None] = mapped_column(Integer, nullable=True)

    qty_kg: Mapped[Decimal | None] = mapped_column(Numeric(18, 3), nullable=True)

    category_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    category_from_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    category_to_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    guide_series: Mapped[str | None] = mapped_column(String(10), nullable=True)

    guide_number: Mapped[str | None] = mapped_column(String(30), nullable=True)

    origin_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    destination_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Sanitary withdrawal period in days (HEALTH_TREATMENT)
    withdraw_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    event_date: Mapped[date] = mapped_column(Date, nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[EventStatus] = mapped_column(
        String(10),
        nullable=False,
        default=EventStatus.PENDING.value,
    )

    decided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Complementary SALE/PURCHASE on the counterpart premise
    mirror_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("events.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<LivestockEvent {self.event_type} {self.status} {self.id}>"

    @property
    def is_pending(self) -> bool:
        return self.status == EventStatus.PENDING

    @property
    def has_guide(self) -> bool:
        return bool(self.guide_series) and bool(self.guide_number)
