"""Daily practice streak derived from the session log."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta

from .clock import Clock, SystemClock, ymd

WINDOW_DAYS = 14


@dataclass(frozen=True)
class StreakDay:
    date: str
    hit: bool


@dataclass(frozen=True)
class StreakSummary:
    """Current streak length plus a recent-history calendar (oldest day first)."""

    current: int = 0
    recent_window: list[StreakDay] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.current} day{'' if self.current == 1 else 's'}"


def compute_streak(
    session_dates: Iterable[str],
    clock: Clock | None = None,
    window_days: int = WINDOW_DAYS,
) -> StreakSummary:
    """
    Compute the streak ending today.

    The count walks backwards from today and stops at the first day missing
    from the log, so a missing today means a streak of 0 even if yesterday
    was practiced.
    """
    logged = set(session_dates)
    today = (clock or SystemClock()).today()

    window = []
    for offset in range(window_days - 1, -1, -1):
        day = ymd(today - timedelta(days=offset))
        window.append(StreakDay(date=day, hit=day in logged))

    current = 0
    while ymd(today - timedelta(days=current)) in logged:
        current += 1

    return StreakSummary(current=current, recent_window=window)
