from datetime import datetime, timedelta, timezone

import pytest

from engcoach.services.timers import CountdownTimer, Stopwatch, TimerPanel, as_utc, utcnow


def test_countdown_counts_down_and_expires(clock):
    timer = CountdownTimer(clock)
    timer.start(60, exercise_instance_id=7)

    assert timer.is_active
    assert timer.remaining_seconds == 60
    clock.advance(20.5)
    assert timer.remaining_seconds == 40
    clock.advance(40)
    assert not timer.is_active
    assert timer.remaining_seconds == 0
    assert timer.exercise_instance_id is None


def test_countdown_rejects_non_positive():
    with pytest.raises(ValueError):
        CountdownTimer().start(0)


def test_countdown_pause_and_resume(clock):
    timer = CountdownTimer(clock)
    timer.start(30)
    clock.advance(10)
    timer.pause()
    clock.advance(100)

    assert timer.is_active
    assert timer.is_paused
    assert timer.remaining_seconds == 20

    timer.resume()
    clock.advance(5)
    assert timer.remaining_seconds == 15


def test_countdown_restart_replaces_running_count(clock):
    timer = CountdownTimer(clock)
    timer.start(30, exercise_instance_id=1)
    clock.advance(10)
    timer.start(90, exercise_instance_id=2)

    snapshot = timer.snapshot()
    assert snapshot["remaining_seconds"] == 90
    assert snapshot["total_seconds"] == 90
    assert snapshot["exercise_instance_id"] == 2


def test_stop_is_idempotent(clock):
    timer = CountdownTimer(clock)
    timer.stop()
    timer.skip()
    assert timer.snapshot() == {
        "is_active": False,
        "is_paused": False,
        "remaining_seconds": 0,
        "total_seconds": 0,
        "exercise_instance_id": None,
    }


def test_stopwatch(clock):
    watch = Stopwatch(clock)
    assert watch.elapsed_seconds == 0

    watch.start()
    clock.advance(65)
    assert watch.elapsed_seconds == 65

    watch.pause()
    clock.advance(30)
    assert watch.elapsed_seconds == 65

    watch.resume()
    clock.advance(5)
    assert watch.elapsed_seconds == 70

    watch.stop()
    assert not watch.is_running
    assert watch.elapsed_seconds == 0


def test_stopwatch_offset(clock):
    watch = Stopwatch(clock)
    watch.start(offset_seconds=600)
    clock.advance(1)
    assert watch.elapsed_seconds == 601


def test_panel_rest_and_countdown_are_exclusive(clock):
    panel = TimerPanel(clock)

    panel.start_rest(90, 3)
    panel.start_countdown(45)
    assert not panel.rest.is_active
    assert panel.countdown.remaining_seconds == 45

    panel.start_rest(60, 4)
    assert not panel.countdown.is_active
    assert panel.rest.exercise_instance_id == 4


def test_panel_stop_all(clock):
    panel = TimerPanel(clock)
    panel.stopwatch.start()
    panel.start_rest(90)
    panel.stop_all()
    assert not panel.rest.is_active
    assert not panel.stopwatch.is_running


def test_wall_clock_is_timezone_aware():
    assert utcnow().tzinfo is not None


def test_as_utc_attaches_utc_to_naive_values():
    naive = datetime(2025, 3, 3, 9, 0, 0)
    assert as_utc(naive) == datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc)

    offset = datetime(2025, 3, 3, 11, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(offset).hour == 9
