"""
Module: contralor_kernel.models.balance
Responsibility: ORM persistence for per-category closing balances of a sheet.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (sheet, category) (UNIQUE constraint).
    - final_heads = initial_heads + total_in_heads - total_out_heads
      (CHECK constraint).
    - Rows are written once, at closing, and never updated or deleted
      (ORM listener).

Audit relevance:
    Closing balances are what the regulator receives and what the next
    period starts from.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contralor_kernel.db.base import HeadCount, TrackedBase, UUIDString


class CategoryBalance(TrackedBase):
    """Closing-time head-count snapshot for one category on one sheet."""

    __tablename__ = "category_balances"

    __table_args__ = (
        UniqueConstraint("sheet_id", "category_id", name="uq_balance_sheet_category"),
        CheckConstraint(
            "final_heads = initial_heads + total_in_heads - total_out_heads",
            name="ck_balance_reconciles",
        ),
    )

    sheet_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_sheets.id"),
        nullable=False,
    )

    category_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=False,
    )

    initial_heads: Mapped[HeadCount] = mapped_column(default=0)

    total_in_heads: Mapped[HeadCount] = mapped_column(default=0)

    total_out_heads: Mapped[HeadCount] = mapped_column(default=0)

    final_heads: Mapped[HeadCount] = mapped_column(default=0)

    def __repr__(self) -> str:
        return (
            f"<CategoryBalance cat={self.category_id} "
            f"{self.initial_heads}+{self.total_in_heads}-{self.total_out_heads}"
            f"={self.final_heads}>"
        )
