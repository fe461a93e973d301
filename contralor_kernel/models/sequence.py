"""
Module: contralor_kernel.models.sequence
Responsibility: Counter rows backing SequenceService.
Architecture position: Kernel > Models.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from contralor_kernel.db.base import Base, SequenceNumber


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level locking
    keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)

    current_value: Mapped[SequenceNumber] = mapped_column(default=0)
