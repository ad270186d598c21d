"""
Unit tests for the Drill Session Driver.

Tests:
- Countdown and auto-stop on expiry
- Beat cadence and phase cycling
- Pause/resume, next set, reset time and finish transitions
- Tempo clamping and parameter locks while running
- Timer cleanup (no orphaned timers)
"""

import asyncio

import pytest

from rudiment_coach.drill import (
    AsyncioTickSource,
    BeatEvent,
    DrillSession,
    DrillState,
    ManualTickSource,
)
from rudiment_coach.errors import InvalidInput, InvalidTransition
from rudiment_coach.scheduler import PlanItem


@pytest.fixture
def ticks():
    return ManualTickSource()


def make_session(ticks, bpm=120, sets=3, duration_sec=60, **kwargs):
    return DrillSession(PlanItem("single-paradiddle", bpm=bpm, sets=sets, duration_sec=duration_sec), ticks, **kwargs)


class BeatRecorder:
    def __init__(self):
        self.events: list[BeatEvent] = []

    def __call__(self, event: BeatEvent) -> None:
        self.events.append(event)


class TestCountdown:
    def test_full_set_expires_to_idle(self, ticks):
        session = make_session(ticks, duration_sec=60)
        beats = BeatRecorder()
        session.add_beat_listener(beats)

        session.start()
        ticks.advance(60)

        assert session.state is DrillState.IDLE
        assert session.running is False
        assert session.seconds_left == 0
        assert ticks.active_timers == 0

        fired = len(beats.events)
        ticks.advance(10)
        assert len(beats.events) == fired

    def test_does_not_auto_advance_set(self, ticks):
        session = make_session(ticks, duration_sec=5)
        session.start()
        ticks.advance(5)
        assert session.set_index == 1
        assert session.available_action == "next_set"

    def test_countdown_per_second(self, ticks):
        session = make_session(ticks, duration_sec=60)
        session.start()
        ticks.advance(10.5)
        assert session.seconds_left == 50
        assert session.running


class TestBeats:
    def test_beat_count_matches_tempo(self, ticks):
        session = make_session(ticks, bpm=120)
        beats = BeatRecorder()
        session.add_beat_listener(beats)
        session.start()
        ticks.advance(10)
        assert len(beats.events) == 20

    def test_phase_cycles_one_to_four(self, ticks):
        session = make_session(ticks, bpm=60)
        beats = BeatRecorder()
        session.add_beat_listener(beats)
        session.start()
        ticks.advance(6)
        assert [e.phase for e in beats.events] == [2, 3, 4, 1, 2, 3]
        assert beats.events[2].is_downbeat is False
        assert beats.events[3].is_downbeat is True

    def test_beat_event_carries_state(self, ticks):
        session = make_session(ticks, bpm=60)
        beats = BeatRecorder()
        session.add_beat_listener(beats)
        session.start()
        ticks.advance(3)
        last = beats.events[-1]
        assert last.bpm == 60
        assert last.set_index == 1
        assert last.seconds_left == 57

    def test_failing_listener_does_not_stop_counting(self, ticks, log_messages):
        session = make_session(ticks, duration_sec=5)

        def broken(event):
            raise RuntimeError("no audio device")

        session.add_beat_listener(broken)
        session.start()
        ticks.advance(5)
        assert session.seconds_left == 0
        assert any("no audio device" in m for m in log_messages)


class TestTempo:
    @pytest.mark.parametrize("requested,applied", [(10, 40), (500, 240), (96, 96)])
    def test_tempo_clamped(self, ticks, requested, applied):
        assert make_session(ticks, bpm=requested).bpm == applied

    def test_beat_interval(self, ticks):
        assert make_session(ticks, bpm=120).beat_interval == pytest.approx(0.5)
        assert make_session(ticks, bpm=240).beat_interval == pytest.approx(0.25)

    def test_beat_interval_floor(self, ticks):
        session = make_session(ticks, bpm=900, max_bpm=1000)
        assert session.beat_interval == pytest.approx(0.1)

    @pytest.mark.parametrize("min_bpm,max_bpm", [(0, 240), (-5, 240), (120, 100)])
    def test_invalid_tempo_bounds_rejected(self, ticks, min_bpm, max_bpm):
        with pytest.raises(InvalidInput):
            make_session(ticks, bpm=0, min_bpm=min_bpm, max_bpm=max_bpm)

    def test_zero_tempo_clamps_to_lowest_bound(self, ticks):
        session = make_session(ticks, bpm=0, duration_sec=3)
        beats = BeatRecorder()
        session.add_beat_listener(beats)

        session.start()
        ticks.advance(3)

        assert session.bpm == 40
        assert session.beat_interval == pytest.approx(1.5)
        assert len(beats.events) == 1

    def test_adjust_bpm_steps_and_clamps(self, ticks):
        session = make_session(ticks, bpm=80)
        assert session.adjust_bpm(1) == 85
        assert session.adjust_bpm(-2) == 75
        session.set_bpm(42)
        assert session.adjust_bpm(-1) == 40

    def test_tempo_change_applies_on_next_start(self, ticks):
        session = make_session(ticks, bpm=60)
        beats = BeatRecorder()
        session.add_beat_listener(beats)
        session.set_bpm(120)
        session.start()
        ticks.advance(2)
        assert len(beats.events) == 4


class TestTransitions:
    def test_pause_preserves_time_and_stops_timers(self, ticks):
        session = make_session(ticks)
        session.start()
        ticks.advance(10)
        session.pause()

        assert session.seconds_left == 50
        assert ticks.active_timers == 0
        ticks.advance(5)
        assert session.seconds_left == 50

        session.toggle()
        ticks.advance(5)
        assert session.seconds_left == 45

    def test_reset_time_while_paused(self, ticks):
        session = make_session(ticks, duration_sec=30)
        session.start()
        ticks.advance(12)
        session.pause()
        assert session.available_action == "reset_time"
        session.reset_time()
        assert session.seconds_left == 30
        assert session.set_index == 1

    def test_full_drill_to_complete(self, ticks):
        session = make_session(ticks, bpm=100, sets=2, duration_sec=5)

        session.start()
        ticks.advance(5)
        assert session.available_action == "next_set"
        session.next_set()
        assert (session.set_index, session.seconds_left) == (2, 5)

        session.start()
        ticks.advance(5)
        assert session.available_action == "finish"

        item = session.finish()
        assert session.state is DrillState.COMPLETE
        assert session.available_action is None
        assert item == PlanItem("single-paradiddle", bpm=100, sets=2, duration_sec=5)

    def test_actions_rejected_in_wrong_state(self, ticks):
        session = make_session(ticks, sets=1, duration_sec=5)
        with pytest.raises(InvalidTransition):
            session.finish()
        with pytest.raises(InvalidTransition):
            session.pause()

        session.start()
        with pytest.raises(InvalidTransition):
            session.start()
        with pytest.raises(InvalidTransition):
            session.reset_time()
        with pytest.raises(InvalidTransition):
            session.set_bpm(100)
        with pytest.raises(InvalidTransition):
            session.set_duration(30)

        ticks.advance(5)
        with pytest.raises(InvalidTransition):
            session.start()
        with pytest.raises(InvalidTransition):
            session.next_set()

        session.finish()
        with pytest.raises(InvalidTransition):
            session.start()

    def test_close_cancels_timers(self, ticks):
        session = make_session(ticks)
        session.start()
        ticks.advance(3)
        session.close()
        assert ticks.active_timers == 0
        assert session.state is DrillState.IDLE
        assert session.seconds_left == 57


class TestParameters:
    def test_set_duration_restarts_countdown(self, ticks):
        session = make_session(ticks)
        session.set_duration(45)
        assert session.seconds_left == 45
        assert session.item.duration_sec == 45

    def test_invalid_parameters(self, ticks):
        session = make_session(ticks, sets=3)
        with pytest.raises(InvalidInput):
            session.set_duration(0)
        with pytest.raises(InvalidInput):
            session.set_sets(0)
        with pytest.raises(InvalidInput):
            DrillSession(PlanItem("flam", bpm=80, sets=0), ticks)

    def test_fewer_sets_than_completed_rejected(self, ticks):
        session = make_session(ticks, sets=3, duration_sec=1)
        session.start()
        ticks.advance(1)
        session.next_set()
        with pytest.raises(InvalidInput):
            session.set_sets(1)
        session.set_sets(2)
        assert session.sets == 2

    def test_tick_listener_sees_each_second(self, ticks):
        seen: list[int] = []
        session = make_session(ticks, duration_sec=3)
        session.add_tick_listener(lambda s: seen.append(s.seconds_left))
        session.start()
        ticks.advance(3)
        # start, 2, 1, then the stop notification at 0
        assert seen == [3, 2, 1, 0]


class TestAsyncioTickSource:
    @pytest.mark.asyncio
    async def test_runs_on_event_loop_and_stops(self):
        session = DrillSession(PlanItem("flam", bpm=240, sets=1, duration_sec=1), AsyncioTickSource())
        beats = BeatRecorder()
        session.add_beat_listener(beats)

        session.start()
        while session.running:
            await asyncio.sleep(0.02)

        assert session.seconds_left == 0
        assert 3 <= len(beats.events) <= 4

        fired = len(beats.events)
        await asyncio.sleep(0.4)
        assert len(beats.events) == fired
        assert session.available_action == "finish"

    @pytest.mark.asyncio
    async def test_cancel_stops_timer(self):
        calls: list[int] = []
        timer = AsyncioTickSource().call_every(0.05, lambda: calls.append(1))
        await asyncio.sleep(0.12)
        timer.cancel()
        fired = len(calls)
        await asyncio.sleep(0.12)
        assert fired >= 1
        assert len(calls) == fired
