"""
SheetService -- ledger sheet lifecycle (open, close) and sheet lookups.

Responsibility:
    Opens the period sheet of a species group on a premise, finds and locks
    the OPEN sheet an approval writes into, and closes a sheet by freezing
    its per-category balances.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ApprovalService (open-sheet lookup and lock), by
    CorrectionService (closed-sheet guard) and by callers driving the
    period lifecycle.

Invariants enforced:
    - At most one OPEN sheet per (premise, sheet type); periods of the same
      (premise, sheet type) never overlap.  A concurrent open that loses
      the race on the partial unique index surfaces as SheetAlreadyOpenError.
    - Closing is one-way.  A second close raises SheetAlreadyClosedError.
    - Compute -> persist balances -> flip to CLOSED runs in one savepoint:
      a CLOSED sheet always has its balances and an OPEN sheet never does.
    - Closing and approvals serialize on the sheet row
      (``SELECT ... FOR UPDATE``), so an entry is either in the closing
      snapshot or its approval sees the sheet closed.

Failure modes:
    - SheetAlreadyOpenError, SheetPeriodOverlapError on open.
    - SheetNotFoundError, SheetAlreadyClosedError on close.
    - UnknownCategoryBalanceError if a balance names a category missing
      from the catalog (aborts the close).

Audit relevance:
    SHEET_OPENED and SHEET_CLOSED audit events; the close payload carries
    the persisted balances.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contralor_kernel.domain.clock import Clock
from contralor_kernel.domain.dtos import CategoryBalanceInfo, SheetInfo
from contralor_kernel.domain.event_types import SheetStatus
from contralor_kernel.domain.rules import RegulatoryRules
from contralor_kernel.exceptions import (
    SheetAlreadyClosedError,
    SheetAlreadyOpenError,
    SheetNotFoundError,
    SheetPeriodOverlapError,
    UnknownCategoryBalanceError,
)
from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.balance import CategoryBalance
from contralor_kernel.models.ledger import LedgerSheet
from contralor_kernel.models.reference import Category
from contralor_kernel.services.auditor_service import AuditorService
from contralor_kernel.services.balance_service import BalanceService
from contralor_kernel.services.base import BaseService

logger = get_logger("services.sheet")


class SheetService(BaseService):
    """
    Service for the ledger sheet lifecycle.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        frozen DTOs.  ``lock_open_sheet`` returns the ORM row so the caller
        can write entries against it under the lock.

    Guarantees:
        - ``close_sheet`` either persists every balance and closes the
          sheet, or changes nothing.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT reopen sheets; CLOSED is terminal.
    """

    def __init__(
        self,
        session: Session,
        rules: RegulatoryRules,
        auditor: AuditorService,
        balances: BalanceService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rules
        self._auditor = auditor
        self._balances = balances

    @staticmethod
    def to_info(sheet: LedgerSheet) -> SheetInfo:
        return SheetInfo(
            id=sheet.id,
            premise_id=sheet.premise_id,
            firm_id=sheet.firm_id,
            sheet_type=sheet.sheet_type,
            period_start=sheet.period_start,
            period_end=sheet.period_end,
            registration_number=sheet.registration_number,
            status=SheetStatus(sheet.status),
        )

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
        """
        Open the sheet of ``species``' sheet type for a period.

        Raises:
            ValueError: Unsupported species or inverted period.
            SheetAlreadyOpenError: The (premise, sheet type) has an OPEN sheet.
            SheetPeriodOverlapError: The period overlaps an existing sheet.
        """
        sheet_type = self._rules.sheet_type_for(species)
        if sheet_type is None:
            raise ValueError(f"No ledger sheet type for species {species}")
        if period_start > period_end:
            raise ValueError(
                f"period_start ({period_start}) cannot be after period_end ({period_end})"
            )

        existing_open = self.find_open_sheet(premise_id, sheet_type)
        if existing_open is not None:
            raise SheetAlreadyOpenError(
                str(premise_id), sheet_type, str(existing_open.id)
            )

        overlapping = self.session.execute(
            select(LedgerSheet)
            .where(LedgerSheet.premise_id == premise_id)
            .where(LedgerSheet.sheet_type == sheet_type)
            .where(LedgerSheet.period_start <= period_end)
            .where(LedgerSheet.period_end >= period_start)
            .limit(1)
        ).scalar_one_or_none()
        if overlapping is not None:
            raise SheetPeriodOverlapError(
                str(premise_id), sheet_type, str(overlapping.id)
            )

        savepoint = self.session.begin_nested()
        try:
            sheet = LedgerSheet(
                premise_id=premise_id,
                firm_id=firm_id,
                sheet_type=sheet_type,
                period_start=period_start,
                period_end=period_end,
                registration_number=registration_number,
                status=SheetStatus.OPEN.value,
                created_by_id=actor_id,
            )
            self.session.add(sheet)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            # A concurrent open committed first
            winner = self.find_open_sheet(premise_id, sheet_type)
            if winner is None:
                raise
            logger.warning(
                "sheet_open_race_lost",
                extra={"premise_id": str(premise_id), "sheet_type": sheet_type},
            )
            raise SheetAlreadyOpenError(
                str(premise_id), sheet_type, str(winner.id)
            ) from None

        self._auditor.record_sheet_opened(
            sheet.id, premise_id, sheet_type, period_start, period_end, actor_id
        )
        logger.info(
            "sheet_opened",
            extra={
                "sheet_id": str(sheet.id),
                "premise_id": str(premise_id),
                "sheet_type": sheet_type,
                "period_start": str(period_start),
                "period_end": str(period_end),
            },
        )
        return self.to_info(sheet)

    def get_sheet(self, sheet_id: UUID) -> SheetInfo:
        return self.to_info(self._load(LedgerSheet, sheet_id, SheetNotFoundError))

    def find_open_sheet(
        self, premise_id: UUID, sheet_type: str, lock: bool = False
    ) -> LedgerSheet | None:
        """The OPEN sheet of (premise, sheet type); row-locked when ``lock``."""
        stmt = (
            select(LedgerSheet)
            .where(LedgerSheet.premise_id == premise_id)
            .where(LedgerSheet.sheet_type == sheet_type)
            .where(LedgerSheet.status == SheetStatus.OPEN.value)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def lock_open_sheet(self, premise_id: UUID, species: str | None) -> LedgerSheet | None:
        sheet_type = self._rules.sheet_type_for(species)
        if sheet_type is None:
            return None
        return self.find_open_sheet(premise_id, sheet_type, lock=True)

    def find_closed_sheet_covering(
        self, premise_id: UUID, species: str | None, day: date
    ) -> LedgerSheet | None:
        sheet_type = self._rules.sheet_type_for(species)
        if sheet_type is None:
            return None
        return self.session.execute(
            select(LedgerSheet)
            .where(LedgerSheet.premise_id == premise_id)
            .where(LedgerSheet.sheet_type == sheet_type)
            .where(LedgerSheet.status == SheetStatus.CLOSED.value)
            .where(LedgerSheet.period_start <= day)
            .where(LedgerSheet.period_end >= day)
            .limit(1)
        ).scalar_one_or_none()

    def lock_sheet(self, sheet_id: UUID) -> LedgerSheet:
        return self._load(LedgerSheet, sheet_id, SheetNotFoundError, lock=True)

    def close_sheet(self, sheet_id: UUID, actor_id: UUID) -> tuple[CategoryBalanceInfo, ...]:
        """
        Close a sheet, persisting one CategoryBalance per category.

        Categories carried from the prior sheet are persisted even without
        activity in this period.

        Raises:
            SheetNotFoundError: Unknown sheet.
            SheetAlreadyClosedError: The sheet is already CLOSED.
            UnknownCategoryBalanceError: A balance names a missing category.
        """
        sheet = self.lock_sheet(sheet_id)
        if sheet.is_closed:
            logger.warning(
                "sheet_close_rejected",
                extra={"sheet_id": str(sheet_id), "reason": "already_closed"},
            )
            raise SheetAlreadyClosedError(str(sheet_id))

        with self.session.begin_nested():
            balances = self._balances.compute_balances(sheet_id)
            self._check_categories_exist(sheet_id, balances.keys())

            for info in balances.values():
                self.session.add(
                    CategoryBalance(
                        sheet_id=sheet_id,
                        category_id=info.category_id,
                        initial_heads=info.initial_heads,
                        total_in_heads=info.total_in_heads,
                        total_out_heads=info.total_out_heads,
                        final_heads=info.final_heads,
                        created_by_id=actor_id,
                    )
                )

            sheet.status = SheetStatus.CLOSED.value
            sheet.closed_at = self._clock.now()
            sheet.closed_by_id = actor_id
            sheet.updated_by_id = actor_id
            self.session.flush()

            self._auditor.record_sheet_closed(
                sheet_id,
                [
                    {
                        "category_id": b.category_id,
                        "initial_heads": b.initial_heads,
                        "total_in_heads": b.total_in_heads,
                        "total_out_heads": b.total_out_heads,
                        "final_heads": b.final_heads,
                    }
                    for b in balances.values()
                ],
                actor_id,
            )

        logger.info(
            "sheet_closed",
            extra={
                "sheet_id": str(sheet_id),
                "premise_id": str(sheet.premise_id),
                "sheet_type": sheet.sheet_type,
                "category_count": len(balances),
                "total_heads": sum(b.final_heads for b in balances.values()),
            },
        )
        return tuple(balances.values())

    def _check_categories_exist(self, sheet_id: UUID, category_ids) -> None:
        wanted = set(category_ids)
        if not wanted:
            return
        found = set(
            self.session.execute(
                select(Category.id).where(Category.id.in_(wanted))
            ).scalars()
        )
        missing = wanted - found
        if missing:
            logger.critical(
                "balance_category_missing",
                extra={
                    "sheet_id": str(sheet_id),
                    "category_ids": sorted(str(c) for c in missing),
                },
            )
            raise UnknownCategoryBalanceError(
                str(sheet_id), sorted(str(c) for c in missing)
            )
