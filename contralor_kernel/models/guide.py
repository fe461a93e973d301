"""
Module: contralor_kernel.models.guide
Responsibility: ORM persistence for movement guides issued by the authority.
Architecture position: Kernel > Models.

Invariants enforced:
    - (series, number) is unique (UNIQUE constraint); auto-registration
      relies on it to resolve concurrent first references.
    - The engine never changes a guide after registering it; status changes
      come from the issuing authority.

Audit relevance:
    Ledger entries reference the guide that authorized each external
    movement; ``auto_registered`` marks guides first seen on an approval.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contralor_kernel.db.base import TrackedBase
from contralor_kernel.domain.event_types import GuideStatus


class Guide(TrackedBase):
    """An official livestock movement guide keyed by series and number."""

    __tablename__ = "guides"

    __table_args__ = (
        UniqueConstraint("series", "number", name="uq_guide_series_number"),
    )

    series: Mapped[str] = mapped_column(String(10), nullable=False)

    number: Mapped[str] = mapped_column(String(30), nullable=False)

    species: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status: Mapped[GuideStatus] = mapped_column(
        String(10),
        nullable=False,
        default=GuideStatus.VALID.value,
    )

    origin_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    destination_registration: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # DICOSE registration code (A-E) printed on the guide
    registration_code: Mapped[str | None] = mapped_column(String(1), nullable=True)

    auto_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Guide {self.series}-{self.number} {self.status}>"

    @property
    def key(self) -> str:
        return f"{self.series}-{self.number}"
