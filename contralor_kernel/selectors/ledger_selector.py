"""
Module: contralor_kernel.selectors.ledger_selector
Responsibility: Read-only register queries: sheets of a premise, entries of a
    sheet (optionally with voided ones), PENDING events awaiting approval
    and the persisted closing balances of a sheet.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants enforced:
    - Voided entries are excluded unless explicitly requested; they are
      never dropped from storage.
    - Closing balances are read as persisted at close time, never
      recomputed here (live balances come from BalanceService).

Audit relevance:
    This is the read path used for display and for the regulatory export
    upstream.
"""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from contralor_kernel.models.balance import CategoryBalance
from contralor_kernel.models.event import LivestockEvent
from contralor_kernel.models.ledger import LedgerEntry, LedgerSheet
from contralor_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class SheetRow:
    """A ledger sheet as listed for a premise."""

    id: UUID
    sheet_type: str
    period_start: date
    period_end: date
    registration_number: str
    status: str
    closed_at: datetime | None


@dataclass(frozen=True)
class LineRow:
    category_id: UUID
    direction: str
    qty_heads: int


@dataclass(frozen=True)
class EntryRow:
    """A ledger entry with its lines, in register order."""

    id: UUID
    seq: int
    entry_date: date
    operation_label: str
    registration_code: str | None
    origin_registration: str | None
    destination_registration: str | None
    is_voided: bool
    void_reason: str | None
    corrected_entry_id: UUID | None
    lines: tuple[LineRow, ...]


@dataclass(frozen=True)
class PendingEventRow:
    id: UUID
    event_type: str
    scope: str
    event_date: date
    species: str | None
    qty_heads: int | None
    guide_series: str | None
    guide_number: str | None


@dataclass(frozen=True)
class BalanceRow:
    """A persisted closing balance."""

    category_id: UUID
    initial_heads: int
    total_in_heads: int
    total_out_heads: int
    final_heads: int


class LedgerSelector(BaseSelector):
    """Read-only queries over the register."""

    def list_sheets(self, premise_id: UUID, sheet_type: str | None = None) -> list[SheetRow]:
        stmt = select(LedgerSheet).where(LedgerSheet.premise_id == premise_id)
        if sheet_type is not None:
            stmt = stmt.where(LedgerSheet.sheet_type == sheet_type)
        sheets = self.session.execute(
            stmt.order_by(LedgerSheet.sheet_type, LedgerSheet.period_start)
        ).scalars().all()
        return [
            SheetRow(
                id=s.id,
                sheet_type=s.sheet_type,
                period_start=s.period_start,
                period_end=s.period_end,
                registration_number=s.registration_number,
                status=str(getattr(s.status, "value", s.status)),
                closed_at=s.closed_at,
            )
            for s in sheets
        ]

    def list_entries(self, sheet_id: UUID, include_voided: bool = False) -> list[EntryRow]:
        """Entries of a sheet ordered by seq."""
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.sheet_id == sheet_id)
            .options(selectinload(LedgerEntry.lines))
            .order_by(LedgerEntry.seq)
        )
        if not include_voided:
            stmt = stmt.where(LedgerEntry.is_voided.is_(False))

        entries = self.session.execute(stmt).scalars().all()
        return [
            EntryRow(
                id=e.id,
                seq=e.seq,
                entry_date=e.entry_date,
                operation_label=e.operation_label,
                registration_code=e.registration_code,
                origin_registration=e.origin_registration,
                destination_registration=e.destination_registration,
                is_voided=e.is_voided,
                void_reason=e.void_reason,
                corrected_entry_id=e.corrected_entry_id,
                lines=tuple(
                    LineRow(
                        category_id=line.category_id,
                        direction=str(getattr(line.direction, "value", line.direction)),
                        qty_heads=line.qty_heads,
                    )
                    for line in e.lines
                ),
            )
            for e in entries
        ]

    def list_pending_events(self, premise_id: UUID) -> list[PendingEventRow]:
        events = self.session.execute(
            select(LivestockEvent)
            .where(LivestockEvent.premise_id == premise_id)
            .where(LivestockEvent.status == "PENDING")
            .order_by(LivestockEvent.event_date, LivestockEvent.created_at)
        ).scalars().all()
        return [
            PendingEventRow(
                id=ev.id,
                event_type=str(getattr(ev.event_type, "value", ev.event_type)),
                scope=str(getattr(ev.scope, "value", ev.scope)),
                event_date=ev.event_date,
                species=ev.species,
                qty_heads=ev.qty_heads,
                guide_series=ev.guide_series,
                guide_number=ev.guide_number,
            )
            for ev in events
        ]

    def get_closing_balances(self, sheet_id: UUID) -> list[BalanceRow]:
        """Balances persisted when the sheet closed; empty for an OPEN sheet."""
        rows = self.session.execute(
            select(CategoryBalance).where(CategoryBalance.sheet_id == sheet_id)
        ).scalars().all()
        return sorted(
            (
                BalanceRow(
                    category_id=b.category_id,
                    initial_heads=b.initial_heads,
                    total_in_heads=b.total_in_heads,
                    total_out_heads=b.total_out_heads,
                    final_heads=b.final_heads,
                )
                for b in rows
            ),
            key=lambda b: str(b.category_id),
        )
