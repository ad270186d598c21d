"""Injectable wall clock.

Due dates and streak days are anchored to local midnight, so everything that
needs "today" asks a Clock rather than calling datetime.now() directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta


class Clock(ABC):
    """Source of the current local time."""

    @abstractmethod
    def now(self) -> datetime: ...

    def start_of_today(self) -> datetime:
        """Local midnight of the current day."""
        return self.now().replace(hour=0, minute=0, second=0, microsecond=0)

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Clock backed by the machine's local time."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock frozen at a given instant. Used by tests and simulations."""

    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs: float) -> None:
        """Move the clock forward by a timedelta built from ``kwargs``."""
        self._at = self._at + timedelta(**kwargs)


def ymd(day: date | datetime) -> str:
    """Format a day as ``yyyy-mm-dd``."""
    if isinstance(day, datetime):
        day = day.date()
    return day.isoformat()


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)
