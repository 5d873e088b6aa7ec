"""Tests for the RoastSession state machine and its logs."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import patch

import pytest

from roast_scope.domain.enums import EventLabel, RoastStatus
from roast_scope.domain.sample import DataPoint, RoastEvent
from roast_scope.domain.session import RoastSession, format_clock


# ── Helpers ──────────────────────────────────────────────────────────────────

class _Clock:
    """Stand-in for the wall clock; tests move it by hand."""

    def __init__(self, now: float = 1_760_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> Iterator[_Clock]:
    fake = _Clock()
    with patch("roast_scope.domain.session.epoch_now", new=fake):
        yield fake


def _preheating(**kwargs) -> RoastSession:
    session = RoastSession(**kwargs)
    session.device_connected()
    return session


def _roasting(clock: _Clock, bt: float = 20.0, **kwargs) -> RoastSession:
    session = _preheating(**kwargs)
    assert session.start_roast(bt)
    return session


def _labels(session: RoastSession) -> list[str]:
    return [e.label for e in session.events]


# ── Device lifecycle ─────────────────────────────────────────────────────────


class TestDeviceLifecycle:
    def test_new_session_is_idle_and_empty(self) -> None:
        session = RoastSession()
        assert session.status == RoastStatus.IDLE
        assert session.is_cleared
        assert session.enabled_labels() == []

    def test_connect_moves_idle_to_preheating(self) -> None:
        session = RoastSession()
        assert session.device_connected() is True
        assert session.status == RoastStatus.PREHEATING
        assert session.device_connected() is False

    def test_device_lost_mid_roast_keeps_data(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(1)
        session.record_sample(25.0, 200.0)
        session.device_lost()
        assert session.status == RoastStatus.IDLE
        assert session.sample_count == 1
        assert _labels(session) == ["start"]
        assert session.record_sample(26.0, 200.0) is None

    def test_device_lost_cancels_pending_drop(self, clock: _Clock) -> None:
        session = _roasting(clock)
        session.stop_roast(100.0)
        session.device_lost()
        assert session.drop_deadline is None
        assert session.undo_drop() is False


# ── Roast lifecycle ──────────────────────────────────────────────────────────


class TestStartRoast:
    def test_start_from_idle_is_refused(self, clock: _Clock) -> None:
        session = RoastSession()
        assert session.start_roast(20.0) is False
        assert session.status == RoastStatus.IDLE
        assert session.is_cleared

    def test_start_records_start_event(self, clock: _Clock) -> None:
        session = _roasting(clock, bt=21.5)
        assert session.status == RoastStatus.ROASTING
        assert session.start_time == clock.now
        assert session.events == [RoastEvent(time=0.0, label="start", temp=21.5)]

    def test_restart_clears_previous_logs(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(5)
        session.record_sample(30.0, 210.0)
        session.toggle_event("charge", 30.0)

        clock.advance(5)
        assert session.start_roast(35.0) is True
        assert session.sample_count == 0
        assert _labels(session) == ["start"]
        assert session.start_time == clock.now

    def test_start_from_finished_is_refused(self, clock: _Clock) -> None:
        session = _roasting(clock)
        session.stop_roast(100.0)
        assert session.start_roast(100.0) is False
        assert session.status == RoastStatus.FINISHED


class TestRecordSample:
    def test_outside_roasting_is_ignored(self, clock: _Clock) -> None:
        session = _preheating()
        assert session.record_sample(100.0, 200.0) is None
        assert session.sample_count == 0

    def test_times_are_elapsed_seconds(self, clock: _Clock) -> None:
        session = _roasting(clock)
        for _ in range(3):
            clock.advance(1)
            session.record_sample(100.0, 200.0)
        assert [p.time for p in session.samples] == [1.0, 2.0, 3.0]

    def test_backwards_clock_skips_sample(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(5)
        session.record_sample(100.0, 200.0)
        clock.advance(-3)
        assert session.record_sample(101.0, 200.0) is None
        assert session.sample_count == 1

    def test_current_ror_tracks_latest_point(self, clock: _Clock) -> None:
        session = _roasting(clock)
        for t in range(1, 21):
            clock.advance(1)
            point = session.record_sample(100.0 + 0.5 * t, 200.0)
        assert point is not None
        assert session.current_ror == point.ror == 30.0


class TestToggleEvent:
    def test_idle_toggle_is_noop(self, clock: _Clock) -> None:
        session = RoastSession()
        assert session.toggle_event("charge", 100.0) is False
        assert session.events == []

    def test_toggle_twice_removes(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(30)
        assert session.toggle_event(EventLabel.CHARGE, 180.0) is True
        assert session.events[-1] == RoastEvent(time=30.0, label="charge", temp=180.0)
        assert session.toggle_event("charge", 181.0) is True
        assert not session.has_event("charge")

    def test_reserved_labels_refused(self, clock: _Clock) -> None:
        session = _roasting(clock)
        assert session.toggle_event("start", 100.0) is False
        assert session.toggle_event("drop", 100.0) is False
        assert session.toggle_event("  ", 100.0) is False
        assert _labels(session) == ["start"]

    def test_label_spellings_name_one_milestone(self, clock: _Clock) -> None:
        session = _roasting(clock)
        assert session.toggle_event("Charge", 180.0) is True
        assert _labels(session) == ["start", "charge"]
        assert session.has_event("CHARGE")
        assert "fc-start" in session.enabled_labels()
        assert session.toggle_event("charge", 181.0) is True
        assert _labels(session) == ["start"]

    def test_export_tags_are_accepted(self, clock: _Clock) -> None:
        session = _roasting(clock)
        assert session.toggle_event("FCs", 200.0) is True
        assert session.has_event("fc-start")
        assert session.toggle_event("Drop", 200.0) is False
        assert session.toggle_event("START", 200.0) is False
        assert _labels(session) == ["start", "fc-start"]

    def test_out_of_order_marks_are_accepted(self, clock: _Clock) -> None:
        session = _roasting(clock)
        assert session.toggle_event("fc-end", 200.0) is True
        assert session.has_event("fc-end")

    def test_enabled_labels_follow_prerequisites(self, clock: _Clock) -> None:
        session = _roasting(clock)
        assert session.enabled_labels() == ["charge", "turning-point"]
        session.toggle_event("charge", 200.0)
        assert "dry-end" in session.enabled_labels()
        assert "fc-start" in session.enabled_labels()
        assert "fc-end" not in session.enabled_labels()
        session.toggle_event("fc-start", 200.0)
        assert {"fc-end", "sc-start"} <= set(session.enabled_labels())


class TestDropAndUndo:
    def test_stop_appends_one_drop(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(600)
        event = session.stop_roast(210.0)
        assert event == RoastEvent(time=600.0, label="drop", temp=210.0)
        assert session.status == RoastStatus.FINISHED
        assert session.stop_roast(211.0) is None
        assert _labels(session).count("drop") == 1

    def test_stop_outside_roasting_is_refused(self, clock: _Clock) -> None:
        session = _preheating()
        assert session.stop_roast(100.0) is None
        assert session.status == RoastStatus.PREHEATING

    def test_undo_within_grace_resumes(self, clock: _Clock) -> None:
        session = _roasting(clock)
        started = session.start_time
        clock.advance(300)
        session.stop_roast(200.0)
        clock.advance(4)
        assert session.drop_undo_pending
        assert session.undo_drop() is True
        assert session.status == RoastStatus.ROASTING
        assert session.start_time == started
        assert not session.has_event("drop")
        assert session.elapsed() == 304.0

    def test_undo_after_grace_fails(self, clock: _Clock) -> None:
        session = _roasting(clock, drop_grace_seconds=5.0)
        session.stop_roast(200.0)
        clock.advance(5.5)
        assert session.drop_undo_pending is False
        assert session.undo_drop() is False
        assert session.status == RoastStatus.FINISHED

    def test_finalize_makes_drop_permanent(self, clock: _Clock) -> None:
        session = _roasting(clock)
        session.stop_roast(200.0)
        assert session.finalize_drop() is True
        assert session.undo_drop() is False
        assert session.finalize_drop() is False

    def test_undo_removes_latest_drop_only(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(10)
        session.stop_roast(150.0)
        session.undo_drop()
        clock.advance(10)
        session.stop_roast(160.0)
        session.undo_drop()
        assert _labels(session) == ["start"]


class TestResetAndLoad:
    def test_reset_with_device_returns_to_preheating(self, clock: _Clock) -> None:
        session = _roasting(clock)
        session.stop_roast(200.0)
        assert session.reset() is True
        assert session.status == RoastStatus.PREHEATING
        assert session.is_cleared

    def test_reset_without_device_returns_to_idle(self, clock: _Clock) -> None:
        session = _roasting(clock)
        session.device_lost()
        assert session.reset() is False  # already idle
        session.device_connected()
        session.device_lost()
        session.load_profile([DataPoint(time=0, bt=100)], [])
        assert session.reset() is True
        assert session.status == RoastStatus.IDLE

    def test_load_profile_refused_while_roasting(self, clock: _Clock) -> None:
        session = _roasting(clock)
        assert session.load_profile([DataPoint(time=0, bt=100)], []) is False
        assert session.status == RoastStatus.ROASTING

    def test_load_profile_finishes_session(self, clock: _Clock) -> None:
        session = _preheating()
        points = [DataPoint(time=float(t), bt=100.0, ror=4.2) for t in range(5)]
        events = [RoastEvent(time=2.0, label="charge", temp=100.0)]
        assert session.load_profile(points, events) is True
        assert session.status == RoastStatus.FINISHED
        assert session.sample_count == 5
        assert session.current_ror == 4.2
        assert session.start_time is None
        assert session.drop_undo_pending is False


class TestSummary:
    def test_summary_fields(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(75)
        summary = session.summary()
        assert summary["status"] == "roasting"
        assert summary["duration"] == "01:15"
        assert summary["event_count"] == 1
        assert summary["enabled_labels"] == ["charge", "turning-point"]

    def test_snapshot_uses_wire_names(self, clock: _Clock) -> None:
        session = _roasting(clock)
        clock.advance(1)
        session.record_sample(100.0, 200.0)
        snapshot = session.snapshot()
        assert set(snapshot["samples"][0]) == {"time", "bt", "et", "ror", "etRor"}
        assert snapshot["events"][0]["label"] == "start"

    @pytest.mark.parametrize(
        "seconds, text",
        [(0, "00:00"), (59.9, "00:59"), (61, "01:01"), (3725, "62:05"), (-4, "00:00")],
    )
    def test_format_clock(self, seconds: float, text: str) -> None:
        assert format_clock(seconds) == text


# ── End to end ───────────────────────────────────────────────────────────────


class TestLinearRoastScenario:
    """Connect, start at 20°, climb linearly to 160° over 70 ticks, drop."""

    def _run(self, clock: _Clock) -> RoastSession:
        session = _roasting(clock, bt=20.0)
        for tick in range(1, 71):
            clock.advance(1)
            session.record_sample(20.0 + 2.0 * tick, 220.0)
        return session

    def test_ror_at_65s_is_clamped(self, clock: _Clock) -> None:
        session = self._run(clock)
        by_time = {p.time: p.ror for p in session.samples}
        # 2°/s is 120°/min, above the upper clamp
        assert by_time[65.0] == 100.0

    def test_drop_at_70s(self, clock: _Clock) -> None:
        session = self._run(clock)
        event = session.stop_roast(session.samples[-1].bt)
        assert event == RoastEvent(time=70.0, label="drop", temp=160.0)
        assert session.sample_count == 70
