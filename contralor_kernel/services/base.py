"""
BaseService -- shared plumbing for the register services.

Services work inside the caller's transaction: they ``flush()`` and never
commit or roll back.  Multi-step units (approve, close, void/correct) run
in ``session.begin_nested()`` savepoints so a failure leaves nothing
behind even when the caller keeps its transaction open.
"""

from abc import ABC
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from contralor_kernel.db.base import Base
from contralor_kernel.domain.clock import Clock, SystemClock
from contralor_kernel.exceptions import NotFoundError

RowT = TypeVar("RowT", bound=Base)


class BaseService(ABC):
    """Holds the session and clock.  Read models belong in ``selectors/``."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _load(
        self,
        model: type[RowT],
        row_id: UUID,
        not_found: type[NotFoundError],
        lock: bool = False,
    ) -> RowT:
        """
        Fetch a row by id or raise ``not_found(str(row_id))``.

        With ``lock`` the row is read ``FOR UPDATE`` and refreshed from the
        database, so the caller sees the state another transaction may have
        committed while it waited for the lock.
        """
        if lock:
            row = self.session.execute(
                select(model)
                .where(model.id == row_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        else:
            row = self.session.get(model, row_id)
        if row is None:
            raise not_found(str(row_id))
        return row
