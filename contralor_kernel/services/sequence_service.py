"""
SequenceService -- gapless numbering from locked counter rows.

Register entries are numbered 1, 2, 3 ... within their sheet, the way
the paper Contralor Interno is folioed; the audit trail has one global
counter.  Each counter is a row in ``sequence_counters`` that is locked
with ``SELECT ... FOR UPDATE`` while it is incremented, so two approvals
landing on the same sheet can never draw the same number.  Aggregate
max-plus-one is never used.

A number is only consumed when the caller's transaction commits; a rolled
back approval leaves no gap.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contralor_kernel.logging_config import get_logger
from contralor_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates the next number of a named counter.  Flushes, never commits."""

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def sheet_entries(sheet_id: UUID) -> str:
        """Counter name for the entries of one ledger sheet."""
        return f"ledger_entry:{sheet_id}"

    def _locked(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert a fresh counter at 0; None if a concurrent caller won the race."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        counter = self._locked(name) or self._create(name) or self._locked(name)
        if counter is None:
            raise RuntimeError(f"Sequence counter {name!r} could not be created")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int:
        """Last number handed out, 0 if the counter was never used."""
        value = self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return value or 0
