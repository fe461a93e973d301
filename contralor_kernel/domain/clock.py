"""
Clock -- injectable time for the register engine.

Filing deadlines are counted in calendar days at the premise, so the
engine never calls ``datetime.now()`` or ``date.today()`` directly:
services receive a Clock and ask it for ``today()``, which is the date in
Uruguay rather than the server's local date.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone, tzinfo

# Uruguay has kept UTC-3 all year since daylight saving was abolished in 2015.
REGISTER_TZ = timezone(timedelta(hours=-3), "UYT")


class Clock(ABC):
    """
    Source of the current instant.

    ``now()`` is timezone-aware; ``today()`` is the calendar date in the
    register timezone and is what deadline arithmetic uses.
    """

    tz: tzinfo = REGISTER_TZ

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().astimezone(self.tz).date()


class SystemClock(Clock):
    """Wall-clock time, stamped in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Fixed clock for tests.  Time only moves through ``advance_days``.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    @classmethod
    def on(cls, day: date) -> "DeterministicClock":
        """Clock at noon register time on ``day``."""
        return cls(datetime.combine(day, time(12, 0), tzinfo=REGISTER_TZ))

    def now(self) -> datetime:
        return self._now

    def advance_days(self, days: int) -> None:
        self._now += timedelta(days=days)
