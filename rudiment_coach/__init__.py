"""
Rudiment Coach: drum rudiment practice scheduler.

Components:
- RudimentCatalog: static rudiments and scoring rubric
- StateStore: SQLite persistence for progress and the session log
- compute_today_plan: due-first selection of today's drills
- compute_streak: consecutive-day practice streak
- Scoring: rep score, rolling rating and next due date
- DrillSession: timed drill state machine with metronome beats
"""

from .catalog import RUDIMENT_RUBRIC, RUDIMENTS, Rudiment, RudimentCatalog, RubricCriterion
from .clock import Clock, FixedClock, SystemClock
from .drill import AsyncioTickSource, BeatEvent, DrillSession, DrillState, ManualTickSource
from .errors import (
    CatalogError,
    InvalidInput,
    InvalidTransition,
    MediaUnavailable,
    RudimentCoachError,
    StorageUnavailable,
    UnknownRudiment,
)
from .scheduler import PlanItem, TodayOverview, build_today_overview, compute_today_plan, find_bottlenecks
from .scoring import (
    OutcomeRecord,
    ScoreSheet,
    record_outcome,
    schedule_next_due,
    suggest_next_drill,
    update_rating,
    weighted_avg,
)
from .state_store import RudimentProgress, StateStore
from .streak import StreakDay, StreakSummary, compute_streak

__version__ = "1.0.0"

__all__ = [
    # Catalog
    "Rudiment",
    "RudimentCatalog",
    "RubricCriterion",
    "RUDIMENTS",
    "RUDIMENT_RUBRIC",
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    # Persistence
    "StateStore",
    "RudimentProgress",
    # Scheduling
    "PlanItem",
    "TodayOverview",
    "compute_today_plan",
    "find_bottlenecks",
    "build_today_overview",
    # Streak
    "StreakDay",
    "StreakSummary",
    "compute_streak",
    # Scoring
    "ScoreSheet",
    "OutcomeRecord",
    "weighted_avg",
    "schedule_next_due",
    "update_rating",
    "record_outcome",
    "suggest_next_drill",
    # Drill
    "DrillSession",
    "DrillState",
    "BeatEvent",
    "ManualTickSource",
    "AsyncioTickSource",
    # Errors
    "RudimentCoachError",
    "StorageUnavailable",
    "MediaUnavailable",
    "InvalidInput",
    "InvalidTransition",
    "UnknownRudiment",
    "CatalogError",
]
