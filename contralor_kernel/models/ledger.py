"""
Module: contralor_kernel.models.ledger
Responsibility: ORM persistence for the Contralor Interno register: ledger
    sheets, ledger entries and ledger entry lines.
Architecture position: Kernel > Models.

Invariants enforced:
    - Sheets are keyed by (premise, sheet type, period start).
    - At most one OPEN sheet per (premise, sheet type) (partial unique index).
    - A CLOSED sheet is immutable (ORM listener).
    - An entry is immutable except for the one-way void transition; lines
      are never updated or deleted (ORM listeners).
    - An entry is corrected at most once (UNIQUE on corrected_entry_id).
    - seq numbers entries within their sheet (1, 2, ...), allocated by
      SequenceService from a per-sheet counter.
    - Line head counts are strictly positive (CHECK constraint).

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of protected rows.
    - IntegrityError on a second correction of the same entry.

Audit relevance:
    These rows are the regulatory record.  Corrections never rewrite an
    entry; they void it and append a new entry pointing back to it.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contralor_kernel.db.base import HeadCount, SequenceNumber, TrackedBase, UUIDString
from contralor_kernel.domain.event_types import Direction, SheetStatus

if TYPE_CHECKING:
    from contralor_kernel.models.guide import Guide


class LedgerSheet(TrackedBase):
    """
    Period container for one species group on one premise.

    Contract:
        At most one OPEN sheet per (premise, sheet type); checked by
        SheetService when opening and backed by the partial unique index
        ``uq_sheet_one_open``.  CLOSED is terminal.
    """

    __tablename__ = "ledger_sheets"

    __table_args__ = (
        UniqueConstraint(
            "premise_id", "sheet_type", "period_start", name="uq_sheet_premise_type_start"
        ),
        Index("idx_sheet_premise_type_status", "premise_id", "sheet_type", "status"),
        Index(
            "uq_sheet_one_open",
            "premise_id",
            "sheet_type",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
        CheckConstraint("period_end >= period_start", name="ck_sheet_period"),
    )

    premise_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    firm_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # DICOSE sheet type: A bovine, B ovine
    sheet_type: Mapped[str] = mapped_column(String(1), nullable=False)

    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # DICOSE registration number of the premise
    registration_number: Mapped[str] = mapped_column(String(30), nullable=False)

    status: Mapped[SheetStatus] = mapped_column(
        String(10),
        nullable=False,
        default=SheetStatus.OPEN.value,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerSheet {self.sheet_type} {self.period_start}..{self.period_end} "
            f"{self.status}>"
        )

    @property
    def is_open(self) -> bool:
        return self.status == SheetStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == SheetStatus.CLOSED


class LedgerEntry(TrackedBase):
    """
    One approved event's footprint on a sheet.

    Contract:
        Quantities live on the lines.  The only permitted mutation is
        voiding (is_voided, void_reason, voided_at, voided_by_id), once.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("sheet_id", "seq", name="uq_ledger_entry_sheet_seq"),
        UniqueConstraint("corrected_entry_id", name="uq_ledger_entry_corrected"),
        Index("idx_entry_sheet", "sheet_id"),
        Index("idx_entry_source_event", "source_event_id"),
    )

    sheet_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_sheets.id"),
        nullable=False,
    )

    source_event_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("events.id"),
        nullable=False,
    )

    seq: Mapped[SequenceNumber]

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Event type that produced the entry
    operation_label: Mapped[str] = mapped_column(String(30), nullable=False)

    registration_code: Mapped[str | None] = mapped_column(String(1), nullable=True)

    guide_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("guides.id"),
        nullable=True,
    )

    origin_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    destination_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    is_voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    corrected_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=True,
    )

    correction_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    sheet: Mapped[LedgerSheet] = relationship(LedgerSheet)

    guide: Mapped["Guide | None"] = relationship("Guide")

    lines: Mapped[list["LedgerEntryLine"]] = relationship(
        "LedgerEntryLine",
        back_populates="entry",
        order_by="LedgerEntryLine.line_seq",
    )

    corrected_entry: Mapped["LedgerEntry | None"] = relationship(
        "LedgerEntry",
        remote_side="LedgerEntry.id",
    )

    def __repr__(self) -> str:
        flag = " VOID" if self.is_voided else ""
        return f"<LedgerEntry #{self.seq} {self.operation_label}{flag}>"

    @property
    def is_correction(self) -> bool:
        return self.corrected_entry_id is not None


class LedgerEntryLine(TrackedBase):
    """One category/direction/head-count movement within an entry."""

    __tablename__ = "ledger_entry_lines"

    __table_args__ = (
        UniqueConstraint("entry_id", "line_seq", name="uq_entry_line_seq"),
        CheckConstraint("qty_heads > 0", name="ck_line_heads_positive"),
        Index("idx_line_category", "category_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id"),
        nullable=False,
    )

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    category_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=False,
    )

    direction: Mapped[Direction] = mapped_column(String(3), nullable=False)

    qty_heads: Mapped[HeadCount]

    entry: Mapped[LedgerEntry] = relationship(LedgerEntry, back_populates="lines")

    def __repr__(self) -> str:
        return f"<LedgerEntryLine {self.direction} {self.qty_heads} cat={self.category_id}>"
