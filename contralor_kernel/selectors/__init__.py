"""Selectors for the contralor kernel (read side)."""

from contralor_kernel.selectors.ledger_selector import (
    BalanceRow,
    EntryRow,
    LedgerSelector,
    LineRow,
    PendingEventRow,
    SheetRow,
)

__all__ = [
    "BalanceRow",
    "EntryRow",
    "LedgerSelector",
    "LineRow",
    "PendingEventRow",
    "SheetRow",
]
