"""
Scoring Engine: rep scores, rolling ratings and due dates.

Implements:
- Weighted rubric average for a completed drill (the rep score)
- Exponential moving average of rep scores per rudiment (the rating)
- Next due date from the rep score, anchored at local midnight
- The single persistence transaction that records a drill outcome

Due-date buckets:
<= 2  - due tomorrow
== 3  - due in 2 days
other - due in 4 days
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from .catalog import RUDIMENT_RUBRIC, RubricCriterion
from .clock import Clock, SystemClock, add_days, ymd
from .errors import InvalidInput
from .state_store import (
    DEFAULT_RATING,
    PROGRESS_KEY,
    SESSIONS_KEY,
    RudimentProgress,
    StateStore,
    encode_progress,
    encode_sessions,
)

EMA_ALPHA = 0.3
MIN_SCORE = 1
MAX_SCORE = 5


# =============================================================================
# Pure Scoring Functions
# =============================================================================


def weighted_avg(scores: Mapping[str, float], rubric: Sequence[RubricCriterion] = RUDIMENT_RUBRIC) -> float:
    """
    Weighted mean of per-criterion scores, rounded to 2 decimals.

    Criteria without a score count as 0. A rubric whose weights sum to zero
    divides by 1 instead.
    """
    total = 0.0
    weight_sum = 0.0
    for criterion in rubric:
        total += scores.get(criterion.id, 0) * criterion.weight
        weight_sum += criterion.weight
    return round(total / (weight_sum or 1), 2)


def schedule_next_due(rep_score: float, clock: Clock | None = None) -> datetime:
    """
    Next due date for a rep score, relative to the start of today.

    Anchoring at midnight keeps the scheduler's due comparison stable across
    several reads in one day.
    """
    midnight = (clock or SystemClock()).start_of_today()
    if rep_score <= 2:
        return add_days(midnight, 1)
    if rep_score == 3:
        return add_days(midnight, 2)
    return add_days(midnight, 4)


def update_rating(
    prior: float | None,
    rep_score: float,
    alpha: float = EMA_ALPHA,
    default_rating: float = DEFAULT_RATING,
) -> float:
    """
    Fold a rep score into the rolling rating.

    new = alpha * rep_score + (1 - alpha) * prior, rounded to 2 decimals.
    A missing prior is treated as ``default_rating`` (2.5 unless configured).
    """
    if prior is None:
        prior = default_rating
    return round(alpha * rep_score + (1 - alpha) * prior, 2)


# =============================================================================
# Score Sheet
# =============================================================================


@dataclass
class ScoreSheet:
    """
    Self-assessment after a drill.

    Only ``scores`` feeds the rep score; ``stars`` and ``reflection`` are
    kept for display.
    """

    rubric: Sequence[RubricCriterion] = RUDIMENT_RUBRIC
    scores: dict[str, int] = field(default_factory=dict)
    stars: int = 3
    reflection: str = ""

    def __post_init__(self) -> None:
        for criterion in self.rubric:
            self.scores.setdefault(criterion.id, 3)

    def rate(self, criterion_id: str, score: int) -> None:
        """Set one criterion's score (1-5)."""
        if criterion_id not in {c.id for c in self.rubric}:
            raise InvalidInput(f"Unknown rubric criterion: {criterion_id}")
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise InvalidInput(f"Score must be between {MIN_SCORE} and {MAX_SCORE}, got {score}")
        self.scores[criterion_id] = score

    @property
    def rep_score(self) -> float:
        return weighted_avg(self.scores, self.rubric)


# =============================================================================
# Drill Suggestion
# =============================================================================


@dataclass(frozen=True)
class DrillSuggestion:
    """Parameters and advice for the next attempt at a rudiment."""

    bpm: int
    sets: int
    duration_sec: int
    advice: str

    def describe(self) -> str:
        return f"{self.sets}x{self.duration_sec}s @ {self.bpm} bpm. {self.advice}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def suggest_next_drill(bpm: int, rep_score: float, min_bpm: int = 40) -> DrillSuggestion:
    """Slow down after a weak drill, hold after an average one, push after a strong one."""
    if rep_score <= 2:
        return DrillSuggestion(
            bpm=max(min_bpm, _round_half_up(bpm * 0.85)),
            sets=3,
            duration_sec=60,
            advice="Focus on lowest-scoring criterion.",
        )
    if rep_score == 3:
        return DrillSuggestion(bpm=bpm, sets=3, duration_sec=60, advice="Refine consistency.")
    return DrillSuggestion(
        bpm=_round_half_up(bpm * 1.07),
        sets=3,
        duration_sec=60,
        advice="Add accent on every 4th note.",
    )


# =============================================================================
# Outcome Recording
# =============================================================================


@dataclass(frozen=True)
class OutcomeRecord:
    """What a recorded drill changed."""

    rudiment_id: str
    rep_score: float
    previous_rating: float
    progress: RudimentProgress
    session_day: str
    new_session_day: bool

    @property
    def rating_delta(self) -> float:
        return round(self.progress.rating - self.previous_rating, 2)


def record_outcome(
    store: StateStore,
    rudiment_id: str,
    rep_score: float,
    clock: Clock | None = None,
    alpha: float = EMA_ALPHA,
    default_rating: float = DEFAULT_RATING,
) -> OutcomeRecord:
    """
    Persist the result of a completed drill.

    Updates the rudiment's rating, last-practiced time and due date, and adds
    today to the session log, in one transaction.

    Raises:
        StorageUnavailable: if the write fails; neither document changes
    """
    clock = clock or SystemClock()

    progress = store.progress.load()
    sessions = store.sessions.load()

    previous = progress.get(rudiment_id)
    previous_rating = previous.rating if previous is not None else default_rating

    updated = RudimentProgress(
        rating=update_rating(previous_rating, rep_score, alpha),
        last_practiced_at=clock.now(),
        next_due_at=schedule_next_due(rep_score, clock),
    )
    progress[rudiment_id] = updated

    day = ymd(clock.today())
    documents = {PROGRESS_KEY: encode_progress(progress)}
    new_day = day not in sessions
    if new_day:
        documents[SESSIONS_KEY] = encode_sessions([*sessions, day])

    store.write_many(documents)

    logger.debug(
        f"Recorded {rudiment_id}: rep={rep_score}, "
        f"rating {previous_rating} -> {updated.rating}, next_due={updated.next_due_at:%Y-%m-%d}"
    )

    return OutcomeRecord(
        rudiment_id=rudiment_id,
        rep_score=rep_score,
        previous_rating=previous_rating,
        progress=updated,
        session_day=day,
        new_session_day=new_day,
    )
