from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlmodel import Session, SQLModel

from engcoach.config import get_settings
from engcoach.database import SessionFactory, get_session, get_session_factory
from engcoach.errors import NotFoundError
from engcoach.models import ExerciseGroupType, Profile, Workout
from engcoach.services.feedback import RecommendationAction
from engcoach.services.session_registry import SessionRegistry, get_registry
from engcoach.services.workout_session import PlannedExercise, SessionState, WorkoutSessionManager

router = APIRouter()

SessionDep = Annotated[Session, Depends(get_session)]
RegistryDep = Annotated[SessionRegistry, Depends(get_registry)]
SessionFactoryDep = Annotated[SessionFactory, Depends(get_session_factory)]


def get_manager(athlete_id: int, workout_id: int, registry: RegistryDep) -> WorkoutSessionManager:
    manager = registry.get(athlete_id, workout_id)
    if manager is None:
        raise NotFoundError(
            f"No live session for athlete {athlete_id} and workout {workout_id}; load the workout first"
        )
    return manager


def get_or_create_manager(
    athlete_id: int,
    workout_id: int,
    db: SessionDep,
    registry: RegistryDep,
    session_factory: SessionFactoryDep,
) -> WorkoutSessionManager:
    if db.get(Profile, athlete_id) is None:
        raise NotFoundError(f"Athlete {athlete_id} not found")
    if db.get(Workout, workout_id) is None:
        raise NotFoundError(f"Workout {workout_id} not found")
    return registry.get_or_create(
        athlete_id,
        workout_id,
        lambda: WorkoutSessionManager(
            athlete_id,
            session_factory,
            default_rest_seconds=get_settings().DEFAULT_REST_SECONDS,
        ),
    )


ManagerDep = Annotated[WorkoutSessionManager, Depends(get_manager)]
LoadManagerDep = Annotated[WorkoutSessionManager, Depends(get_or_create_manager)]


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class SetRead(SQLModel):
    set_index: int
    weight: str
    reps: str
    is_completed: bool


class PreviousSetRead(SQLModel):
    set_order: int
    weight: float | None
    reps: int


class ExerciseRead(SQLModel):
    id: int
    exercise_name: str
    exercise_db_id: int | None
    tempo: str | None
    notes: str | None
    rest_period_seconds: int | None
    is_bodyweight: bool
    each_side: bool
    sets: list[SetRead]
    previous_sets: list[PreviousSetRead]


class GroupRead(SQLModel):
    group_id: str | None
    group_type: ExerciseGroupType | None
    exercises: list[ExerciseRead]


class TimerRead(SQLModel):
    is_active: bool
    is_paused: bool
    remaining_seconds: int
    total_seconds: int
    exercise_instance_id: int | None


class PendingRead(SQLModel):
    id: int
    start_time: datetime
    completed_sets_count: int


class SessionView(SQLModel):
    state: SessionState
    workout_id: int | None
    workout_name: str | None
    session_id: int | None
    session_start: datetime | None
    pending: PendingRead | None
    completed_sets_count: int
    total_sets_count: int
    custom_rest_seconds: int | None
    elapsed_seconds: int
    workout_clock_paused: bool
    rest: TimerRead
    countdown: TimerRead
    groups: list[GroupRead]


class ToggleRead(SQLModel):
    is_completed: bool
    completed_sets_count: int
    rest: TimerRead


class DurationRead(SQLModel):
    duration_seconds: int


class FeedbackRead(SQLModel):
    id: int
    workout_session_id: int
    exercise_instance_id: int
    pain_level: int | None
    pump_level: int | None
    workload_level: int | None
    notes: str | None


class RecommendationRead(SQLModel):
    type: str
    message: str
    action: RecommendationAction


class PreviousFeedbackRead(SQLModel):
    feedback: FeedbackRead | None
    recommendations: list[RecommendationRead]


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SetInputBody(SQLModel):
    weight: str | None = None
    reps: str | None = None


class ToggleBody(SQLModel):
    rest_seconds: int | None = None


class CompleteBody(SQLModel):
    elapsed_seconds: int | None = None


class RestOverrideBody(SQLModel):
    seconds: int | None = None


class CountdownBody(SQLModel):
    seconds: int


class FeedbackBody(SQLModel):
    pain_level: int | None = None
    pump_level: int | None = None
    workload_level: int | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _exercise_read(manager: WorkoutSessionManager, exercise: PlannedExercise) -> ExerciseRead:
    inputs = manager.set_inputs.get(exercise.id, [])
    return ExerciseRead(
        id=exercise.id,
        exercise_name=exercise.exercise_name,
        exercise_db_id=exercise.exercise_db_id,
        tempo=exercise.tempo,
        notes=exercise.notes,
        rest_period_seconds=exercise.rest_period_seconds,
        is_bodyweight=exercise.is_bodyweight,
        each_side=exercise.each_side,
        sets=[
            SetRead(
                set_index=index,
                weight=current.weight,
                reps=current.reps,
                is_completed=manager.is_set_completed(exercise.id, index),
            )
            for index, current in enumerate(inputs)
        ],
        previous_sets=[
            PreviousSetRead(set_order=s.set_order, weight=s.weight, reps=s.reps)
            for s in manager.previous_sets.get(exercise.id, [])
        ],
    )


def _view(manager: WorkoutSessionManager) -> SessionView:
    with manager.locked():
        timers = manager.timers
        pending = manager.pending
        return SessionView(
            state=manager.state,
            workout_id=manager.workout_id,
            workout_name=manager.workout_name,
            session_id=manager.session_id,
            session_start=manager.session_start,
            pending=PendingRead(
                id=pending.id,
                start_time=pending.start_time,
                completed_sets_count=pending.completed_sets_count,
            )
            if pending
            else None,
            completed_sets_count=manager.completed_sets_count,
            total_sets_count=manager.total_sets_count,
            custom_rest_seconds=manager.custom_rest_seconds,
            elapsed_seconds=timers.stopwatch.elapsed_seconds,
            workout_clock_paused=timers.stopwatch.is_paused,
            rest=TimerRead(**timers.rest.snapshot()),
            countdown=TimerRead(**timers.countdown.snapshot()),
            groups=[
                GroupRead(
                    group_id=group.group_id,
                    group_type=group.group_type,
                    exercises=[_exercise_read(manager, e) for e in group.exercises],
                )
                for group in manager.groups()
            ],
        )


def _countdown(manager: WorkoutSessionManager) -> TimerRead:
    with manager.locked():
        return TimerRead(**manager.timers.countdown.snapshot())


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("", response_model=SessionView)
def get_session_view(manager: ManagerDep):
    return _view(manager)


@router.delete("", status_code=204)
def release_session(athlete_id: int, workout_id: int, registry: RegistryDep):
    registry.release(athlete_id, workout_id)


@router.post("/load", response_model=SessionView)
def load_workout(workout_id: int, manager: LoadManagerDep):
    manager.load_workout(workout_id)
    return _view(manager)


@router.post("/start", response_model=SessionView, status_code=201)
def start_session(manager: ManagerDep):
    manager.start_session()
    return _view(manager)


@router.put("/sets/{instance_id}/{set_index}", response_model=SetRead)
def update_set_input(instance_id: int, set_index: int, body: SetInputBody, manager: ManagerDep):
    with manager.locked():
        current = manager.update_set_input(instance_id, set_index, weight=body.weight, reps=body.reps)
        return SetRead(
            set_index=set_index,
            weight=current.weight,
            reps=current.reps,
            is_completed=manager.is_set_completed(instance_id, set_index),
        )


@router.post("/sets/{instance_id}/{set_index}/toggle", response_model=ToggleRead)
def toggle_set(instance_id: int, set_index: int, manager: ManagerDep, body: ToggleBody | None = None):
    is_completed = manager.toggle_set_completion(
        instance_id, set_index, rest_seconds=body.rest_seconds if body else None
    )
    with manager.locked():
        return ToggleRead(
            is_completed=is_completed,
            completed_sets_count=manager.completed_sets_count,
            rest=TimerRead(**manager.timers.rest.snapshot()),
        )


@router.post("/cancel", status_code=204)
def cancel_session(manager: ManagerDep):
    manager.cancel_session()


@router.post("/complete", response_model=DurationRead)
def complete_session(manager: ManagerDep, body: CompleteBody | None = None):
    duration = manager.complete_session(body.elapsed_seconds if body else None)
    return DurationRead(duration_seconds=duration)


@router.post("/pending/resume", response_model=SessionView)
def resume_pending(manager: ManagerDep):
    manager.resume_pending_session()
    return _view(manager)


@router.post("/pending/discard", response_model=SessionView)
def discard_pending(manager: ManagerDep):
    manager.discard_pending_session()
    return _view(manager)


@router.post("/pending/finish", response_model=DurationRead)
def finish_pending(manager: ManagerDep):
    return DurationRead(duration_seconds=manager.finish_pending_session())


@router.put("/rest-override", response_model=SessionView)
def set_rest_override(body: RestOverrideBody, manager: ManagerDep):
    manager.set_custom_rest(body.seconds)
    return _view(manager)


@router.post("/rest/skip", status_code=204)
def skip_rest(manager: ManagerDep):
    manager.skip_rest()


@router.post("/countdown", response_model=TimerRead)
def start_countdown(body: CountdownBody, manager: ManagerDep):
    manager.start_countdown(body.seconds)
    return _countdown(manager)


@router.post("/countdown/pause", response_model=TimerRead)
def pause_countdown(manager: ManagerDep):
    manager.pause_countdown()
    return _countdown(manager)


@router.post("/countdown/resume", response_model=TimerRead)
def resume_countdown(manager: ManagerDep):
    manager.resume_countdown()
    return _countdown(manager)


@router.post("/countdown/skip", status_code=204)
def skip_countdown(manager: ManagerDep):
    manager.skip_countdown()


@router.post("/clock/pause", response_model=SessionView)
def pause_workout_clock(manager: ManagerDep):
    manager.pause_workout_clock()
    return _view(manager)


@router.post("/clock/resume", response_model=SessionView)
def resume_workout_clock(manager: ManagerDep):
    manager.resume_workout_clock()
    return _view(manager)


@router.put("/feedback/{instance_id}", response_model=FeedbackRead)
def save_feedback(instance_id: int, body: FeedbackBody, manager: ManagerDep):
    feedback = manager.save_feedback(
        instance_id,
        pain_level=body.pain_level,
        pump_level=body.pump_level,
        workload_level=body.workload_level,
        notes=body.notes,
    )
    return FeedbackRead.model_validate(feedback, from_attributes=True)


@router.get("/feedback/{instance_id}/previous", response_model=PreviousFeedbackRead)
def previous_feedback(instance_id: int, manager: ManagerDep):
    feedback, recommendations = manager.previous_feedback(instance_id)
    return PreviousFeedbackRead(
        feedback=FeedbackRead.model_validate(feedback, from_attributes=True) if feedback else None,
        recommendations=[
            RecommendationRead(type=r.type, message=r.message, action=r.action) for r in recommendations
        ],
    )
