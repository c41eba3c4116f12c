"""Live workout-session controller.

One ``WorkoutSessionManager`` drives one athlete through one workout. It owns
the in-memory state (set inputs, which sets are done, timers) and writes every
completion to the database before touching memory, so a failed write never
leaves the two disagreeing.

States::

    NO_SESSION --start--> STARTED --complete--> COMPLETED
        ^                    |
        +------cancel--------+

    load finds an open session -> PENDING_RECOVERY
        resume -> STARTED, discard -> NO_SESSION, finish -> COMPLETED
"""

import copy
import logging
import re
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from engcoach.database import SessionFactory
from engcoach.errors import NotFoundError, SessionError, SetInFlightError, ValidationError
from engcoach.models import ExerciseFeedback, ExerciseGroupType, ExerciseInstance, ExerciseSetTemplate
from engcoach.services.feedback import Recommendation, generate_recommendations, validate_levels
from engcoach.services.grouping import ExerciseGroup, group_exercises
from engcoach.services.session_store import SessionStore
from engcoach.services.timers import Clock, TimerPanel, as_utc, utcnow

log = logging.getLogger(__name__)

BODYWEIGHT_MARKER = "BW"

_LEADING_INT = re.compile(r"^\s*(\d+)")


class SessionState(str, Enum):
    no_session = "no_session"
    pending_recovery = "pending_recovery"
    started = "started"
    completed = "completed"


@dataclass
class SetInput:
    weight: str = ""
    reps: str = ""


@dataclass
class CompletedSetData:
    exercise_instance_id: int
    set_order: int
    weight: str
    reps: int
    is_completed: bool = True


@dataclass(frozen=True)
class PreviousSet:
    set_order: int
    weight: float | None
    reps: int


@dataclass(frozen=True)
class PendingSession:
    id: int
    start_time: datetime
    completed_sets_count: int


@dataclass(frozen=True)
class PlannedExercise:
    """Detached copy of an exercise instance, safe to hold across requests."""

    id: int
    exercise_name: str
    exercise_db_id: int | None
    reps: str | None
    rest_period_seconds: int | None
    tempo: str | None
    notes: str | None
    order_in_workout: int | None
    group_id: str | None
    group_type: ExerciseGroupType | None
    group_order: int | None
    is_bodyweight: bool
    each_side: bool
    set_count: int
    default_inputs: tuple[SetInput, ...] = field(default=(), compare=False)

    @classmethod
    def from_instance(
        cls, instance: ExerciseInstance, templates: list[ExerciseSetTemplate]
    ) -> "PlannedExercise":
        set_count = len(templates) if templates else _parse_int(instance.sets) or 0
        inputs = []
        for index in range(set_count):
            template = templates[index] if index < len(templates) else None
            if instance.is_bodyweight:
                weight = BODYWEIGHT_MARKER
            else:
                weight = (template.weight if template else None) or ""
            reps = (template.reps if template else None) or instance.reps or ""
            inputs.append(SetInput(weight=weight, reps=reps))
        return cls(
            id=instance.id,
            exercise_name=instance.exercise_name,
            exercise_db_id=instance.exercise_db_id,
            reps=instance.reps,
            rest_period_seconds=instance.rest_period_seconds,
            tempo=instance.tempo,
            notes=instance.notes,
            order_in_workout=instance.order_in_workout,
            group_id=instance.group_id,
            group_type=instance.group_type,
            group_order=instance.group_order,
            is_bodyweight=instance.is_bodyweight,
            each_side=instance.each_side,
            set_count=set_count,
            default_inputs=tuple(inputs),
        )


def _parse_int(text: str | None) -> int | None:
    """Leading integer of a prescription string ("10", "8-12", "12 each")."""
    if text is None:
        return None
    match = _LEADING_INT.match(str(text))
    return int(match.group(1)) if match else None


def _parse_weight(text: str) -> float | None:
    try:
        value = float(text.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def _format_weight(weight: float | None) -> str:
    if weight is None:
        return BODYWEIGHT_MARKER
    return str(int(weight)) if float(weight).is_integer() else str(weight)


class WorkoutSessionManager:
    def __init__(
        self,
        athlete_id: int,
        session_factory: SessionFactory,
        *,
        clock: Clock = utcnow,
        default_rest_seconds: int | None = None,
    ):
        self.athlete_id = athlete_id
        self._session_factory = session_factory
        self._clock = clock
        self.default_rest_seconds = default_rest_seconds
        self.timers = TimerPanel(clock)

        self.state = SessionState.no_session
        self.workout_id: int | None = None
        self.workout_name: str | None = None
        self.exercises: list[PlannedExercise] = []
        self.set_inputs: dict[int, list[SetInput]] = {}
        self.completed_sets: dict[int, dict[int, CompletedSetData]] = {}
        self.previous_sets: dict[int, list[PreviousSet]] = {}
        self.session_id: int | None = None
        self.session_start: datetime | None = None
        self.pending: PendingSession | None = None
        self.custom_rest_seconds: int | None = None

        self._lock = threading.RLock()
        self._in_flight: set[tuple[int, int]] = set()
        self._in_flight_lock = threading.Lock()

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    @contextmanager
    def locked(self) -> Iterator["WorkoutSessionManager"]:
        """Hold the controller still while a caller reads several fields at once."""
        with self._lock:
            yield self

    @contextmanager
    def _store(self) -> Iterator[SessionStore]:
        with self._session_factory() as db:
            yield SessionStore(db)

    @contextmanager
    def _claim(self, exercise_instance_id: int, set_index: int) -> Iterator[None]:
        key = (exercise_instance_id, set_index)
        with self._in_flight_lock:
            if key in self._in_flight:
                raise SetInFlightError(
                    f"Set {set_index + 1} of exercise {exercise_instance_id} is already being saved"
                )
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(key)

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            expected = " or ".join(s.value for s in states)
            raise SessionError(f"Operation requires state {expected}, but session is {self.state.value}")

    def _exercise(self, exercise_instance_id: int) -> PlannedExercise:
        for exercise in self.exercises:
            if exercise.id == exercise_instance_id:
                return exercise
        raise SessionError(f"Exercise instance {exercise_instance_id} is not part of this workout")

    def _input(self, exercise_instance_id: int, set_index: int) -> SetInput:
        inputs = self.set_inputs.get(exercise_instance_id)
        if inputs is None:
            raise SessionError(f"Exercise instance {exercise_instance_id} is not part of this workout")
        if not 0 <= set_index < len(inputs):
            raise SessionError(
                f"Exercise instance {exercise_instance_id} has {len(inputs)} sets; no set index {set_index}"
            )
        return inputs[set_index]

    def _reset_inputs(self) -> None:
        self.set_inputs = {
            exercise.id: [copy.copy(i) for i in exercise.default_inputs] for exercise in self.exercises
        }

    def _elapsed_since(self, start: datetime) -> int:
        return max(0, int((self._clock() - as_utc(start)).total_seconds()))

    def _effective_rest(self, exercise: PlannedExercise, rest_seconds: int | None) -> int | None:
        if self.custom_rest_seconds is not None:
            return self.custom_rest_seconds
        if rest_seconds is not None:
            return rest_seconds
        if exercise.rest_period_seconds is not None:
            return exercise.rest_period_seconds
        return self.default_rest_seconds

    # -----------------------------------------------------------------------
    # Loading and recovery
    # -----------------------------------------------------------------------

    def load_workout(self, workout_id: int) -> PendingSession | None:
        """Load the prescription and look for a session left open earlier.

        Returns the pending session, if any; the caller must resolve it with
        resume, discard or finish before starting a new one.
        """
        with self._lock:
            self._require(SessionState.no_session, SessionState.pending_recovery, SessionState.completed)
            with self._store() as store:
                workout = store.get_workout(workout_id)
                if workout is None:
                    raise NotFoundError(f"Workout {workout_id} not found")
                instances = store.list_instances(workout_id)
                templates = store.list_set_templates([i.id for i in instances])
                exercises = [PlannedExercise.from_instance(i, templates.get(i.id, [])) for i in instances]
                previous = store.last_completed_sets(workout_id, self.athlete_id)
                open_session = store.get_open_session(workout_id, self.athlete_id)
                pending = None
                if open_session is not None:
                    pending = PendingSession(
                        id=open_session.id,
                        start_time=as_utc(open_session.start_time),
                        completed_sets_count=len(store.list_completed_sets(open_session.id)),
                    )
                workout_name = workout.name

            self.timers.stop_all()
            self.workout_id = workout_id
            self.workout_name = workout_name
            self.exercises = exercises
            self._reset_inputs()
            self.completed_sets = {}
            self.previous_sets = {
                instance_id: [PreviousSet(s.set_order, s.weight, s.reps) for s in rows]
                for instance_id, rows in previous.items()
            }
            self.session_id = None
            self.session_start = None
            self.pending = pending
            self.state = SessionState.pending_recovery if pending else SessionState.no_session

            if pending:
                log.info(
                    "Athlete %s has an open session %s for workout %s with %d completed sets",
                    self.athlete_id,
                    pending.id,
                    workout_id,
                    pending.completed_sets_count,
                )
            return pending

    def resume_pending_session(self) -> None:
        """Continue the open session with exactly the sets stored for it."""
        with self._lock:
            self._require(SessionState.pending_recovery)
            pending = self.pending
            with self._store() as store:
                rows = store.list_completed_sets(pending.id)

            self._reset_inputs()
            completed: dict[int, dict[int, CompletedSetData]] = {}
            for row in rows:
                weight = _format_weight(row.weight)
                completed.setdefault(row.exercise_instance_id, {})[row.set_order] = CompletedSetData(
                    exercise_instance_id=row.exercise_instance_id,
                    set_order=row.set_order,
                    weight=weight,
                    reps=row.reps,
                )
                inputs = self.set_inputs.get(row.exercise_instance_id, [])
                if 0 < row.set_order <= len(inputs):
                    inputs[row.set_order - 1] = SetInput(weight=weight, reps=str(row.reps))

            self.completed_sets = completed
            self.session_id = pending.id
            self.session_start = pending.start_time
            self.pending = None
            self.state = SessionState.started
            self.timers.stopwatch.start(offset_seconds=self._elapsed_since(pending.start_time))
            log.info("Resumed session %s with %d completed sets", pending.id, len(rows))

    def discard_pending_session(self) -> None:
        with self._lock:
            self._require(SessionState.pending_recovery)
            pending = self.pending
            with self._store() as store:
                store.delete_session_cascade(pending.id)
            self.pending = None
            self.state = SessionState.no_session
            log.info("Discarded pending session %s", pending.id)

    def finish_pending_session(self) -> int:
        """Close the open session now; its duration runs from the original start."""
        with self._lock:
            self._require(SessionState.pending_recovery)
            pending = self.pending
            duration = self._elapsed_since(pending.start_time)
            with self._store() as store:
                store.complete_session(pending.id, self._clock(), duration)
            self.session_id = pending.id
            self.session_start = pending.start_time
            self.pending = None
            self.state = SessionState.completed
            log.info("Finished pending session %s after %ds", pending.id, duration)
            return duration

    # -----------------------------------------------------------------------
    # Session lifecycle
    # -----------------------------------------------------------------------

    def start_session(self) -> int:
        with self._lock:
            self._require(SessionState.no_session)
            if self.workout_id is None:
                raise SessionError("Load a workout before starting a session")
            with self._store() as store:
                leftover = store.get_open_session(self.workout_id, self.athlete_id)
                if leftover is not None:
                    self.pending = PendingSession(
                        id=leftover.id,
                        start_time=as_utc(leftover.start_time),
                        completed_sets_count=len(store.list_completed_sets(leftover.id)),
                    )
                    self.state = SessionState.pending_recovery
                    raise SessionError(
                        f"Workout session {leftover.id} is still open; resume, discard or finish it first"
                    )
                workout_session = store.create_session(self.workout_id, self.athlete_id, self._clock())
                session_id = workout_session.id
                start_time = as_utc(workout_session.start_time)

            self.session_id = session_id
            self.session_start = start_time
            self.completed_sets = {}
            self.state = SessionState.started
            self.timers.stopwatch.start()
            log.info("Athlete %s started session %s for workout %s", self.athlete_id, session_id, self.workout_id)
            return session_id

    def cancel_session(self) -> None:
        """Delete the session and every set recorded in it. Irreversible."""
        with self._lock:
            self._require(SessionState.started)
            session_id = self.session_id
            with self._store() as store:
                store.delete_session_cascade(session_id)
            self.timers.stop_all()
            self.session_id = None
            self.session_start = None
            self.completed_sets = {}
            self._reset_inputs()
            self.state = SessionState.no_session
            log.info("Cancelled session %s", session_id)

    def complete_session(self, elapsed_seconds: int | None = None) -> int:
        with self._lock:
            self._require(SessionState.started)
            if elapsed_seconds is None:
                elapsed_seconds = self.timers.stopwatch.elapsed_seconds
            with self._store() as store:
                store.complete_session(self.session_id, self._clock(), elapsed_seconds)
            self.timers.stop_all()
            self.state = SessionState.completed
            log.info("Completed session %s in %ds", self.session_id, elapsed_seconds)
            return elapsed_seconds

    def teardown(self) -> None:
        """Stop every timer and drop in-memory state when the screen goes away."""
        with self._lock:
            self.timers.stop_all()
            self.state = SessionState.no_session
            self.workout_id = None
            self.workout_name = None
            self.exercises = []
            self.set_inputs = {}
            self.completed_sets = {}
            self.previous_sets = {}
            self.session_id = None
            self.session_start = None
            self.pending = None
            self.custom_rest_seconds = None

    # -----------------------------------------------------------------------
    # Sets
    # -----------------------------------------------------------------------

    def update_set_input(
        self,
        exercise_instance_id: int,
        set_index: int,
        *,
        weight: str | None = None,
        reps: str | None = None,
    ) -> SetInput:
        with self._lock:
            current = self._input(exercise_instance_id, set_index)
            if weight is not None:
                current.weight = weight
            if reps is not None:
                current.reps = reps
            return current

    def is_set_completed(self, exercise_instance_id: int, set_index: int) -> bool:
        with self._lock:
            entry = self.completed_sets.get(exercise_instance_id, {}).get(set_index + 1)
        return entry is not None and entry.is_completed

    def toggle_set_completion(
        self, exercise_instance_id: int, set_index: int, rest_seconds: int | None = None
    ) -> bool:
        """Flip a set between done and not done. Returns whether it is now done."""
        with self._claim(exercise_instance_id, set_index), self._lock:
            self._require(SessionState.started)
            if self.is_set_completed(exercise_instance_id, set_index):
                self._uncomplete(exercise_instance_id, set_index)
                return False
            return self._complete(exercise_instance_id, set_index, rest_seconds)

    def complete_set(self, exercise_instance_id: int, set_index: int, rest_seconds: int | None = None) -> bool:
        """Record the set as done, overwriting any earlier record for it."""
        with self._claim(exercise_instance_id, set_index), self._lock:
            self._require(SessionState.started)
            return self._complete(exercise_instance_id, set_index, rest_seconds)

    def uncomplete_set(self, exercise_instance_id: int, set_index: int) -> None:
        with self._claim(exercise_instance_id, set_index), self._lock:
            self._require(SessionState.started)
            self._uncomplete(exercise_instance_id, set_index)

    def _complete(self, exercise_instance_id: int, set_index: int, rest_seconds: int | None) -> bool:
        exercise = self._exercise(exercise_instance_id)
        current = self._input(exercise_instance_id, set_index)

        reps = _parse_int(current.reps)
        if not reps:
            log.debug("Set %d of %s has no reps yet; not completing", set_index + 1, exercise_instance_id)
            return False

        if exercise.is_bodyweight or current.weight.strip().upper() == BODYWEIGHT_MARKER:
            weight = None
        else:
            weight = _parse_weight(current.weight)
            if weight is None:
                log.debug("Set %d of %s has no weight yet; not completing", set_index + 1, exercise_instance_id)
                return False

        set_order = set_index + 1
        with self._store() as store:
            store.upsert_completed_set(self.session_id, exercise_instance_id, set_order, weight, reps)

        self.completed_sets.setdefault(exercise_instance_id, {})[set_order] = CompletedSetData(
            exercise_instance_id=exercise_instance_id,
            set_order=set_order,
            weight=_format_weight(weight),
            reps=reps,
        )

        rest = self._effective_rest(exercise, rest_seconds)
        if rest and rest > 0:
            self.timers.start_rest(rest, exercise_instance_id)
        return True

    def _uncomplete(self, exercise_instance_id: int, set_index: int) -> None:
        self._input(exercise_instance_id, set_index)
        set_order = set_index + 1
        with self._store() as store:
            store.delete_completed_set(self.session_id, exercise_instance_id, set_order)
        self.completed_sets.get(exercise_instance_id, {}).pop(set_order, None)
        self.timers.rest.stop()

    @property
    def completed_sets_count(self) -> int:
        with self._lock:
            return sum(
                1 for sets in self.completed_sets.values() for entry in sets.values() if entry.is_completed
            )

    @property
    def total_sets_count(self) -> int:
        return sum(exercise.set_count for exercise in self.exercises)

    def groups(self) -> list[ExerciseGroup]:
        return group_exercises(self.exercises)

    # -----------------------------------------------------------------------
    # Timers
    # -----------------------------------------------------------------------

    def set_custom_rest(self, seconds: int | None) -> None:
        if seconds is not None and seconds < 0:
            raise ValidationError("Rest time cannot be negative")
        with self._lock:
            self.custom_rest_seconds = seconds

    def skip_rest(self) -> None:
        with self._lock:
            self.timers.rest.skip()

    def start_countdown(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValidationError("Countdown must be at least one second")
        with self._lock:
            self._require(SessionState.started)
            self.timers.start_countdown(seconds)

    def pause_countdown(self) -> None:
        with self._lock:
            self.timers.countdown.pause()

    def resume_countdown(self) -> None:
        with self._lock:
            self.timers.countdown.resume()

    def skip_countdown(self) -> None:
        with self._lock:
            self.timers.countdown.skip()

    def pause_workout_clock(self) -> None:
        with self._lock:
            self.timers.stopwatch.pause()

    def resume_workout_clock(self) -> None:
        with self._lock:
            self.timers.stopwatch.resume()

    # -----------------------------------------------------------------------
    # Feedback
    # -----------------------------------------------------------------------

    def save_feedback(
        self,
        exercise_instance_id: int,
        *,
        pain_level: int | None = None,
        pump_level: int | None = None,
        workload_level: int | None = None,
        notes: str | None = None,
    ) -> ExerciseFeedback:
        with self._lock:
            self._require(SessionState.started, SessionState.completed)
            self._exercise(exercise_instance_id)
            validate_levels(pain_level=pain_level, pump_level=pump_level, workload_level=workload_level)
            with self._store() as store:
                return store.upsert_feedback(
                    self.session_id,
                    exercise_instance_id,
                    pain_level=pain_level,
                    pump_level=pump_level,
                    workload_level=workload_level,
                    notes=notes,
                    now=self._clock(),
                )

    def previous_feedback(
        self, exercise_instance_id: int
    ) -> tuple[ExerciseFeedback | None, list[Recommendation]]:
        self._exercise(exercise_instance_id)
        with self._store() as store:
            feedback = store.previous_feedback(exercise_instance_id, self.athlete_id)
        if feedback is None:
            return None, []
        return feedback, generate_recommendations(feedback)
