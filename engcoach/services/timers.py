"""Advisory timers for a live workout.

Timers keep an end time rather than counting ticks, so reading them after a
pause in polling (a backgrounded app, a slow client) still gives the right
remaining time. Nothing here is persisted.
"""

import math
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive timestamp read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CountdownTimer:
    """Single-shot countdown. Starting it again replaces the running count."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._end: datetime | None = None
        self._paused_remaining: float | None = None
        self.total_seconds = 0
        self.exercise_instance_id: int | None = None

    def start(self, seconds: int, exercise_instance_id: int | None = None) -> None:
        if seconds <= 0:
            raise ValueError("Countdown length must be positive")
        self._end = self._clock() + timedelta(seconds=seconds)
        self._paused_remaining = None
        self.total_seconds = seconds
        self.exercise_instance_id = exercise_instance_id

    def stop(self) -> None:
        self._end = None
        self._paused_remaining = None
        self.total_seconds = 0
        self.exercise_instance_id = None

    def skip(self) -> None:
        self.stop()

    def pause(self) -> None:
        if not self.is_active or self.is_paused:
            return
        self._paused_remaining = (self._end - self._clock()).total_seconds()
        self._end = None

    def resume(self) -> None:
        if not self.is_paused:
            return
        self._end = self._clock() + timedelta(seconds=self._paused_remaining)
        self._paused_remaining = None

    @property
    def is_paused(self) -> bool:
        return self._paused_remaining is not None

    @property
    def is_active(self) -> bool:
        if self.is_paused:
            return True
        if self._end is None:
            return False
        if self._clock() >= self._end:
            self.stop()
            return False
        return True

    @property
    def remaining_seconds(self) -> int:
        if not self.is_active:
            return 0
        if self.is_paused:
            return math.ceil(self._paused_remaining)
        return max(0, math.ceil((self._end - self._clock()).total_seconds()))

    def snapshot(self) -> dict:
        active = self.is_active
        return {
            "is_active": active,
            "is_paused": self.is_paused,
            "remaining_seconds": self.remaining_seconds,
            "total_seconds": self.total_seconds if active else 0,
            "exercise_instance_id": self.exercise_instance_id if active else None,
        }


class Stopwatch:
    """Elapsed-time clock for the whole workout, pausable."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._started_at: datetime | None = None
        self._paused_elapsed: float | None = None

    def start(self, offset_seconds: float = 0) -> None:
        self._started_at = self._clock() - timedelta(seconds=max(0, offset_seconds))
        self._paused_elapsed = None

    def pause(self) -> None:
        if not self.is_running or self.is_paused:
            return
        self._paused_elapsed = (self._clock() - self._started_at).total_seconds()

    def resume(self) -> None:
        if not self.is_paused:
            return
        self._started_at = self._clock() - timedelta(seconds=self._paused_elapsed)
        self._paused_elapsed = None

    def stop(self) -> None:
        self._started_at = None
        self._paused_elapsed = None

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    @property
    def is_paused(self) -> bool:
        return self._paused_elapsed is not None

    @property
    def elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 0
        if self._paused_elapsed is not None:
            return int(self._paused_elapsed)
        return int((self._clock() - self._started_at).total_seconds())


class TimerPanel:
    """The rest and countdown slots of one workout screen.

    Each slot holds at most one timer. The two slots are mutually exclusive:
    starting either one cancels the other, so the latest start always wins.
    """

    def __init__(self, clock: Clock = utcnow):
        self.rest = CountdownTimer(clock)
        self.countdown = CountdownTimer(clock)
        self.stopwatch = Stopwatch(clock)

    def start_rest(self, seconds: int, exercise_instance_id: int | None = None) -> None:
        self.countdown.stop()
        self.rest.start(seconds, exercise_instance_id)

    def start_countdown(self, seconds: int) -> None:
        self.rest.stop()
        self.countdown.start(seconds)

    def stop_all(self) -> None:
        self.rest.stop()
        self.countdown.stop()
        self.stopwatch.stop()
