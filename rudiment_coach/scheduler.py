"""
Today's Plan Scheduler.

Implements:
- Due-first selection of up to three drills per day
- Backfill with not-yet-due rudiments so the plan is never empty
- Bottleneck detection (rudiments rated below 3.0)

Ordering of candidates:
1. Due date ascending (never practiced sorts first)
2. Rating ascending (weaker rudiments first)
3. Tier ascending (easier rudiments first)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime

from loguru import logger

from .catalog import Rudiment, RudimentCatalog
from .clock import Clock, SystemClock
from .state_store import DEFAULT_RATING, RudimentProgress
from .streak import StreakSummary, compute_streak

PLAN_SIZE = 3
DEFAULT_SETS = 3
DEFAULT_DURATION_SEC = 60
BOTTLENECK_THRESHOLD = 3.0


@dataclass(frozen=True)
class PlanItem:
    """One drill in today's plan."""

    rudiment_id: str
    bpm: int
    sets: int = DEFAULT_SETS
    duration_sec: int = DEFAULT_DURATION_SEC

    def with_params(
        self,
        bpm: int | None = None,
        sets: int | None = None,
        duration_sec: int | None = None,
    ) -> PlanItem:
        """Return a copy with adjusted drill parameters."""
        return replace(
            self,
            bpm=self.bpm if bpm is None else bpm,
            sets=self.sets if sets is None else sets,
            duration_sec=self.duration_sec if duration_sec is None else duration_sec,
        )


def _sort_key(rudiment: Rudiment, entry: RudimentProgress | None, default_rating: float) -> tuple:
    due = entry.next_due_at if entry is not None else None
    rating = entry.rating if entry is not None else default_rating
    # (0, min) sorts "always due" ahead of every real date
    due_key = (0, datetime.min) if due is None else (1, due)
    return (due_key, rating, rudiment.tier)


def compute_today_plan(
    progress: Mapping[str, RudimentProgress],
    fallback_bpm: int = 80,
    catalog: RudimentCatalog | None = None,
    clock: Clock | None = None,
    plan_size: int = PLAN_SIZE,
    sets: int = DEFAULT_SETS,
    duration_sec: int = DEFAULT_DURATION_SEC,
    default_rating: float = DEFAULT_RATING,
) -> list[PlanItem]:
    """
    Select today's drills.

    Due rudiments are taken first in priority order. If fewer than
    ``plan_size`` are due, the rest of the sorted catalog fills the plan.
    Each rudiment appears at most once.

    Args:
        progress: Snapshot of the Progress Store
        fallback_bpm: Tempo for every plan item
        catalog: Rudiments to choose from (built-in catalog if None)
        clock: Source of "today" (system clock if None)
        default_rating: Rating assumed for rudiments never practiced

    Returns:
        At most ``plan_size`` PlanItems
    """
    catalog = catalog if catalog is not None else RudimentCatalog()
    midnight = (clock or SystemClock()).start_of_today()

    ranked = sorted(catalog, key=lambda r: _sort_key(r, progress.get(r.id), default_rating))

    def is_due(rudiment: Rudiment) -> bool:
        entry = progress.get(rudiment.id)
        return entry is None or entry.next_due_at is None or entry.next_due_at <= midnight

    chosen = [r for r in ranked if is_due(r)][:plan_size]
    due_count = len(chosen)

    if len(chosen) < plan_size:
        chosen_ids = {r.id for r in chosen}
        for rudiment in ranked:
            if len(chosen) >= plan_size:
                break
            if rudiment.id not in chosen_ids:
                chosen_ids.add(rudiment.id)
                chosen.append(rudiment)

    logger.debug(f"Plan built: {due_count} due + {len(chosen) - due_count} backfill")

    return [
        PlanItem(rudiment_id=r.id, bpm=fallback_bpm, sets=sets, duration_sec=duration_sec)
        for r in chosen
    ]


def find_bottlenecks(
    progress: Mapping[str, RudimentProgress],
    catalog: RudimentCatalog | None = None,
    threshold: float = BOTTLENECK_THRESHOLD,
    limit: int = 3,
) -> list[Rudiment]:
    """Rudiments rated below ``threshold``, in stored order, skipping ids not in the catalog."""
    catalog = catalog if catalog is not None else RudimentCatalog()
    found: list[Rudiment] = []
    for rudiment_id, entry in progress.items():
        if len(found) >= limit:
            break
        if entry.rating >= threshold:
            continue
        rudiment = catalog.get(rudiment_id)
        if rudiment is not None:
            found.append(rudiment)
    return found


@dataclass
class TodayOverview:
    """Everything the home screen shows."""

    plan: list[PlanItem] = field(default_factory=list)
    bottlenecks: list[Rudiment] = field(default_factory=list)
    streak: StreakSummary = field(default_factory=StreakSummary)

    @property
    def estimated_minutes(self) -> int:
        """Playing time of the whole plan, rounded up."""
        seconds = sum(item.sets * item.duration_sec for item in self.plan)
        return -(-seconds // 60)


def build_today_overview(
    progress: Mapping[str, RudimentProgress],
    session_dates: Iterable[str],
    fallback_bpm: int = 80,
    catalog: RudimentCatalog | None = None,
    clock: Clock | None = None,
    bottleneck_threshold: float = BOTTLENECK_THRESHOLD,
    window_days: int = 14,
    plan_size: int = PLAN_SIZE,
    default_rating: float = DEFAULT_RATING,
) -> TodayOverview:
    """Assemble plan, bottlenecks and streak from raw stored data."""
    clock = clock or SystemClock()
    catalog = catalog if catalog is not None else RudimentCatalog()
    return TodayOverview(
        plan=compute_today_plan(
            progress,
            fallback_bpm,
            catalog=catalog,
            clock=clock,
            plan_size=plan_size,
            default_rating=default_rating,
        ),
        bottlenecks=find_bottlenecks(progress, catalog, threshold=bottleneck_threshold),
        streak=compute_streak(session_dates, clock=clock, window_days=window_days),
    )
