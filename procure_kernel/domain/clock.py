"""
Injectable clock.

Services take a ``Clock`` in their constructor and ask it for ``now()`` or
``today()``; nothing outside ``SystemClock`` reads the system time.  Payment
dates, journal entry dates and activity timestamps all default from here.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Fixed clock for tests.

    Stays at ``fixed_time`` until moved with ``advance``.
    """

    def __init__(self, fixed_time: datetime):
        self._current = fixed_time

    def now(self) -> datetime:
        return self._current

    def advance(self, days: int = 0, seconds: int = 0) -> None:
        self._current += timedelta(days=days, seconds=seconds)
