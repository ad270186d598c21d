"""
Drill Session Driver.

A timed state machine for one drill: countdown per set, set progression and
a metronome beat at the drill's tempo.

States:
- IDLE: paused, expired, or waiting for the next set
- RUNNING: second and beat timers active
- COMPLETE: all sets done and finished by the user (terminal)

Timers come from a TickSource so the same driver runs on an asyncio event
loop in the CLI and on a manually advanced clock in tests. The second timer
and the beat timer are always started and cancelled together.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger

from .errors import InvalidInput, InvalidTransition
from .scheduler import PlanItem

MIN_BPM = 40
MAX_BPM = 240
BPM_STEP = 5
MIN_BEAT_INTERVAL = 0.1  # seconds
BEATS_PER_BAR = 4


# =============================================================================
# Tick Sources
# =============================================================================


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TickSource(Protocol):
    """Factory for repeating timers."""

    def call_every(self, interval: float, callback: Callable[[], None]) -> TimerHandle: ...


class _ManualTimer:
    def __init__(self, interval: float, callback: Callable[[], None], first_fire: float, seq: int):
        self.interval = interval
        self.callback = callback
        self.next_fire = first_fire
        self.seq = seq
        self.active = True

    def cancel(self) -> None:
        self.active = False


class ManualTickSource:
    """
    Deterministic tick source driven by advance().

    Timers due at the same instant fire in creation order.
    """

    _EPSILON = 1e-9

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[_ManualTimer] = []
        self._seq = 0

    def call_every(self, interval: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(interval, callback, self.now + interval, self._seq)
        self._seq += 1
        self._timers.append(timer)
        return timer

    @property
    def active_timers(self) -> int:
        return sum(1 for t in self._timers if t.active)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing every timer that comes due on the way."""
        target = self.now + seconds
        while True:
            self._timers = [t for t in self._timers if t.active]
            pending = [t for t in self._timers if t.next_fire <= target + self._EPSILON]
            if not pending:
                break
            timer = min(pending, key=lambda t: (t.next_fire, t.seq))
            self.now = timer.next_fire
            timer.next_fire += timer.interval
            timer.callback()
        self.now = target


class _AsyncioTimer:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._start = loop.time()
        self._count = 0
        self._cancelled = False
        self._handle = self._schedule_next()

    def _schedule_next(self) -> asyncio.TimerHandle:
        # Deadlines are computed from the start time so beats do not drift.
        self._count += 1
        return self._loop.call_at(self._start + self._count * self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._handle = self._schedule_next()
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()


class AsyncioTickSource:
    """Tick source backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_every(self, interval: float, callback: Callable[[], None]) -> _AsyncioTimer:
        loop = self._loop or asyncio.get_running_loop()
        return _AsyncioTimer(loop, interval, callback)


# =============================================================================
# Drill Session
# =============================================================================


class DrillState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"


@dataclass(frozen=True)
class BeatEvent:
    """One metronome beat, for the UI to sound or flash."""

    phase: int
    set_index: int
    seconds_left: int
    bpm: int

    @property
    def is_downbeat(self) -> bool:
        return self.phase == 1


BeatListener = Callable[[BeatEvent], None]
TickListener = Callable[["DrillSession"], None]


def clamp_bpm(bpm: int, min_bpm: int = MIN_BPM, max_bpm: int = MAX_BPM) -> int:
    return max(min_bpm, min(max_bpm, bpm))


class DrillSession:
    """
    Countdown, set progression and metronome for one plan item.

    Usage:
        session = DrillSession(item, ManualTickSource())
        session.add_beat_listener(cue)
        session.start()
    """

    def __init__(
        self,
        item: PlanItem,
        ticks: TickSource,
        min_bpm: int = MIN_BPM,
        max_bpm: int = MAX_BPM,
        bpm_step: int = BPM_STEP,
    ):
        if item.sets < 1:
            raise InvalidInput(f"A drill needs at least one set, got {item.sets}")
        if item.duration_sec < 1:
            raise InvalidInput(f"Set duration must be positive, got {item.duration_sec}")
        if not 1 <= min_bpm <= max_bpm:
            raise InvalidInput(f"Tempo bounds must satisfy 1 <= min_bpm <= max_bpm, got {min_bpm}..{max_bpm}")

        self.rudiment_id = item.rudiment_id
        self.min_bpm = min_bpm
        self.max_bpm = max_bpm
        self.bpm_step = bpm_step
        self.bpm = clamp_bpm(item.bpm, min_bpm, max_bpm)
        self.sets = item.sets
        self.duration_sec = item.duration_sec

        self.state = DrillState.IDLE
        self.set_index = 1
        self.seconds_left = item.duration_sec
        self.beat_phase = 1

        self._ticks = ticks
        self._second_timer: TimerHandle | None = None
        self._beat_timer: TimerHandle | None = None
        self._beat_listeners: list[BeatListener] = []
        self._tick_listeners: list[TickListener] = []

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_beat_listener(self, listener: BeatListener) -> None:
        self._beat_listeners.append(listener)

    def add_tick_listener(self, listener: TickListener) -> None:
        """Called after every second tick and every state change."""
        self._tick_listeners.append(listener)

    def _notify(self, listeners: list, payload: object) -> None:
        # Audio or display failures must not stop the countdown.
        for listener in listeners:
            try:
                listener(payload)
            except Exception as exc:
                logger.warning(f"Drill listener {listener!r} failed: {exc}")

    # -------------------------------------------------------------------------
    # Derived State
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.state is DrillState.RUNNING

    @property
    def complete(self) -> bool:
        return self.state is DrillState.COMPLETE

    @property
    def beat_interval(self) -> float:
        """Seconds between beats at the current tempo."""
        return max(MIN_BEAT_INTERVAL, 60.0 / max(self.bpm, 1))

    @property
    def item(self) -> PlanItem:
        """The plan item with any tempo, set or duration changes applied."""
        return PlanItem(
            rudiment_id=self.rudiment_id,
            bpm=self.bpm,
            sets=self.sets,
            duration_sec=self.duration_sec,
        )

    @property
    def available_action(self) -> str | None:
        """The follow-up action offered while idle: next_set, finish or reset_time."""
        if self.state is not DrillState.IDLE:
            return None
        if self.seconds_left == 0:
            return "next_set" if self.set_index < self.sets else "finish"
        return "reset_time"

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _require(self, action: str, allowed: bool) -> None:
        if not allowed:
            raise InvalidTransition(action, self.state.value)

    def start(self) -> None:
        """Start or resume the countdown and metronome."""
        self._require("start", self.state is DrillState.IDLE and self.seconds_left > 0)
        self.state = DrillState.RUNNING
        self._second_timer = self._ticks.call_every(1.0, self._on_second)
        self._beat_timer = self._ticks.call_every(self.beat_interval, self._on_beat)
        logger.debug(f"Drill {self.rudiment_id} set {self.set_index}/{self.sets} running at {self.bpm} bpm")
        self._notify(self._tick_listeners, self)

    def pause(self) -> None:
        """Stop both timers, keeping the remaining time."""
        self._require("pause", self.running)
        self._stop()

    def toggle(self) -> None:
        if self.running:
            self.pause()
        else:
            self.start()

    def next_set(self) -> None:
        """Move to the next set with a full countdown."""
        self._require("advance to the next set", self.available_action == "next_set")
        self.set_index += 1
        self.seconds_left = self.duration_sec
        self.beat_phase = 1
        self._notify(self._tick_listeners, self)

    def reset_time(self) -> None:
        """Restore the full countdown for the current set."""
        self._require("reset time", self.available_action == "reset_time")
        self.seconds_left = self.duration_sec
        self._notify(self._tick_listeners, self)

    def finish(self) -> PlanItem:
        """
        Complete the drill after the last set has expired.

        Returns:
            The drill's final parameters, for scoring
        """
        self._require("finish", self.available_action == "finish")
        self.state = DrillState.COMPLETE
        logger.debug(f"Drill {self.rudiment_id} complete")
        self._notify(self._tick_listeners, self)
        return self.item

    def close(self) -> None:
        """Cancel any live timers (e.g. when the drill screen is torn down)."""
        self._cancel_timers()
        if self.running:
            self.state = DrillState.IDLE

    # -------------------------------------------------------------------------
    # Parameters (only while not running)
    # -------------------------------------------------------------------------

    def set_bpm(self, bpm: int) -> int:
        """Set the tempo, clamped to the allowed range. Returns the applied tempo."""
        self._require("change tempo", not self.running)
        self.bpm = clamp_bpm(bpm, self.min_bpm, self.max_bpm)
        return self.bpm

    def adjust_bpm(self, steps: int) -> int:
        """Nudge the tempo by ``steps`` increments of ``bpm_step``."""
        return self.set_bpm(self.bpm + steps * self.bpm_step)

    def set_duration(self, duration_sec: int) -> None:
        """Change the per-set duration; the current countdown restarts at the new length."""
        self._require("change duration", not self.running)
        if duration_sec < 1:
            raise InvalidInput(f"Set duration must be positive, got {duration_sec}")
        self.duration_sec = duration_sec
        self.seconds_left = duration_sec

    def set_sets(self, sets: int) -> None:
        self._require("change sets", not self.running)
        if sets < max(1, self.set_index):
            raise InvalidInput(f"Sets must be at least {max(1, self.set_index)}, got {sets}")
        self.sets = sets

    # -------------------------------------------------------------------------
    # Timer Callbacks
    # -------------------------------------------------------------------------

    def _on_second(self) -> None:
        if not self.running:
            return
        self.seconds_left = max(0, self.seconds_left - 1)
        if self.seconds_left == 0:
            self._stop()
            return
        self._notify(self._tick_listeners, self)

    def _on_beat(self) -> None:
        if not self.running:
            return
        self.beat_phase = self.beat_phase % BEATS_PER_BAR + 1
        event = BeatEvent(
            phase=self.beat_phase,
            set_index=self.set_index,
            seconds_left=self.seconds_left,
            bpm=self.bpm,
        )
        self._notify(self._beat_listeners, event)

    def _cancel_timers(self) -> None:
        for timer in (self._second_timer, self._beat_timer):
            if timer is not None:
                timer.cancel()
        self._second_timer = None
        self._beat_timer = None

    def _stop(self) -> None:
        self._cancel_timers()
        self.state = DrillState.IDLE
        self._notify(self._tick_listeners, self)
