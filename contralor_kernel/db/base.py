"""
Module: contralor_kernel.db.base
Responsibility: Declarative bases and shared column types for the register
    tables.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as String(36) so the same
      schema runs on PostgreSQL and SQLite.
    - Head counts are non-null integers (``HeadCount``); live weight is
      Numeric(18, 3) kilograms.  Floats never reach the register.
    - Timestamps are timezone-aware.

Audit relevance:
    TrackedBase.created_at, updated_at, created_by_id and updated_by_id are
    audit metadata and may change even on otherwise immutable rows (see
    db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID column stored as its 36-character string form.

    Accepts UUID objects or UUID strings on bind (strings are normalized
    through ``UUID()`` so a malformed id fails before reaching the database)
    and always loads UUID objects.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, PyUUID):
            value = PyUUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


# Heads of livestock on a line or a balance row.
HeadCount = Annotated[int, mapped_column(Integer, nullable=False)]

# Monotonic register and audit sequence numbers.
SequenceNumber = Annotated[int, mapped_column(BigInteger, nullable=False)]


class Base(DeclarativeBase):
    """Declarative base: uuid4 primary key and the register's type map."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(18, 3),
        datetime: DateTime(timezone=True),
        date: Date(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base recording who created and last touched a row, and when.

    created_by_id is mandatory: events, sheets and entries always name the
    actor that produced them.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
