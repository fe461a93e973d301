"""
BalanceService -- on-demand per-category head-count balances of a sheet.

Responsibility:
    Loads the non-voided lines of a sheet and the closing balances of the
    prior sheet, and hands them to ``domain.balances`` for reconciliation.

Architecture position:
    Kernel > Services -- read-only shell around the pure balance functions.
    Used by SheetService when closing and by callers for live balances.

Invariants enforced:
    - final = initial + IN - OUT per category, over non-voided lines only.
    - ``initial`` comes from the CLOSED sheet of the same premise and sheet
      type with the greatest ``period_end`` strictly before this sheet's
      ``period_start``; zero when there is none.

Failure modes:
    - SheetNotFoundError for an unknown sheet id.
"""

from uuid import UUID

from sqlalchemy import select

from contralor_kernel.domain.balances import compute_category_balances, opening_balances
from contralor_kernel.domain.dtos import CategoryBalanceInfo, LineSpec
from contralor_kernel.domain.event_types import Direction, SheetStatus
from contralor_kernel.exceptions import SheetNotFoundError
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.balance import CategoryBalance
from contralor_kernel.models.ledger import LedgerEntry, LedgerEntryLine, LedgerSheet
from contralor_kernel.services.base import BaseService

logger = get_logger("services.balance")


class BalanceService(BaseService):
    """
    Computes sheet balances without writing anything.

    Non-goals:
        - Does NOT persist balances; closing does that (SheetService).
    """

    def compute_balances(self, sheet_id: UUID) -> dict[UUID, CategoryBalanceInfo]:
        sheet = self._load(LedgerSheet, sheet_id, SheetNotFoundError)

        initial = opening_balances(self.prior_closing_balances(sheet))
        balances = compute_category_balances(initial, self.active_lines(sheet_id))

        logger.debug(
            "balances_computed",
            extra={
                "sheet_id": str(sheet_id),
                "category_count": len(balances),
            },
        )
        return balances

    def active_lines(self, sheet_id: UUID) -> list[LineSpec]:
        """Lines of every non-voided entry of the sheet."""
        rows = self.session.execute(
            select(
                LedgerEntryLine.category_id,
                LedgerEntryLine.direction,
                LedgerEntryLine.qty_heads,
            )
            .join(LedgerEntry, LedgerEntryLine.entry_id == LedgerEntry.id)
            .where(LedgerEntry.sheet_id == sheet_id)
            .where(LedgerEntry.is_voided.is_(False))
        ).all()
        return [
            LineSpec(row.category_id, Direction(row.direction), row.qty_heads)
            for row in rows
        ]

    def find_prior_sheet(self, sheet: LedgerSheet) -> LedgerSheet | None:
        return self.session.execute(
            select(LedgerSheet)
            .where(LedgerSheet.premise_id == sheet.premise_id)
            .where(LedgerSheet.sheet_type == sheet.sheet_type)
            .where(LedgerSheet.status == SheetStatus.CLOSED.value)
            .where(LedgerSheet.period_end < sheet.period_start)
            .where(LedgerSheet.id != sheet.id)
            .order_by(LedgerSheet.period_end.desc())
            .limit(1)
        ).scalar_one_or_none()

    def prior_closing_balances(self, sheet: LedgerSheet) -> list[CategoryBalanceInfo]:
        prior = self.find_prior_sheet(sheet)
        if prior is None:
            return []
        return self.persisted_balances(prior.id)

    def persisted_balances(self, sheet_id: UUID) -> list[CategoryBalanceInfo]:
        """Closing balances stored for a CLOSED sheet."""
        rows = self.session.execute(
            select(CategoryBalance).where(CategoryBalance.sheet_id == sheet_id)
        ).scalars().all()
        return sorted(
            (
                CategoryBalanceInfo(
                    category_id=row.category_id,
                    initial_heads=row.initial_heads,
                    total_in_heads=row.total_in_heads,
                    total_out_heads=row.total_out_heads,
                )
                for row in rows
            ),
            key=lambda b: str(b.category_id),
        )
