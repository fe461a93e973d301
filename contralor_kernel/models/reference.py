"""
Module: contralor_kernel.models.reference
Responsibility: ORM persistence for the reference data the engine reads:
    livestock categories, animals and herds.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Category codes are unique per species.
    - The engine writes to Animal only through the post-approval subject
      effects (current category, withdrawal date, retirement).

Audit relevance:
    Categories are the reconciliation dimension of every ledger line and
    closing balance.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contralor_kernel.db.base import TrackedBase, UUIDString


class Category(TrackedBase):
    """A livestock classification (age/sex cohort) used to tag head counts."""

    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("species", "code", name="uq_category_species_code"),
    )

    code: Mapped[str] = mapped_column(String(30), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    species: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.species}:{self.code}>"


class Animal(TrackedBase):
    """
    An individually identified animal.

    Contract:
        ``withdraw_until`` is the last day of a sanitary withdrawal period;
        sales and slaughter are blocked while it lies after today.
    """

    __tablename__ = "animals"

    __table_args__ = (
        Index("idx_animal_premise", "premise_id"),
    )

    premise_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    species: Mapped[str] = mapped_column(String(20), nullable=False)

    visual_tag: Mapped[str | None] = mapped_column(String(50), nullable=True)

    current_category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=True,
    )

    withdraw_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    # ACTIVE or INACTIVE
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")

    current_category: Mapped[Category | None] = relationship(Category)

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"


class Herd(TrackedBase):
    """A managed group of animals counted by heads rather than by tag."""

    __tablename__ = "herds"

    __table_args__ = (
        Index("idx_herd_premise", "premise_id"),
    )

    premise_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    species: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Default category for herd-scope events that name none
    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=True,
    )
