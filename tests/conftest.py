from contextlib import nullcontext
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from engcoach.database import get_session, get_session_factory
from engcoach.main import app
from engcoach.models import (
    ExerciseGroupType,
    ExerciseInstance,
    ExerciseSetTemplate,
    Profile,
    Sex,
    Workout,
)
from engcoach.services.session_registry import get_registry
from engcoach.services.workout_session import WorkoutSessionManager


class FakeClock:
    """Manually advanced clock for timers and session durations."""

    def __init__(self, start: datetime = datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(name="session")
def session_fixture():
    # StaticPool ensures the in-memory DB is shared across all connections,
    # including those spawned by TestClient's anyio thread pool.
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: (lambda: nullcontext(session))
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_registry().clear()


@pytest.fixture(name="clock")
def clock_fixture():
    return FakeClock()


@pytest.fixture(name="plan")
def plan_fixture(session: Session):
    """An athlete and a workout: bench press, then a row / pull-up superset."""
    athlete = Profile(name="Sam", sex=Sex.male, age=30, height_cm=180.0)
    workout = Workout(name="Upper A")
    session.add_all([athlete, workout])
    session.commit()
    session.refresh(athlete)
    session.refresh(workout)

    bench = ExerciseInstance(
        workout_id=workout.id,
        exercise_name="Bench Press",
        sets="4",
        reps="8",
        rest_period_seconds=120,
        order_in_workout=1,
    )
    row = ExerciseInstance(
        workout_id=workout.id,
        exercise_name="Barbell Row",
        sets="3",
        reps="10",
        rest_period_seconds=60,
        order_in_workout=2,
        group_id="A",
        group_type=ExerciseGroupType.superset,
        group_order=1,
    )
    pullup = ExerciseInstance(
        workout_id=workout.id,
        exercise_name="Pull-up",
        sets="3",
        reps="8",
        order_in_workout=3,
        group_id="A",
        group_type=ExerciseGroupType.superset,
        group_order=2,
        is_bodyweight=True,
    )
    session.add_all([bench, row, pullup])
    session.commit()
    for instance in (bench, row, pullup):
        session.refresh(instance)

    for set_order, weight in enumerate(["60", "70", "75", "75"], start=1):
        session.add(
            ExerciseSetTemplate(
                exercise_instance_id=bench.id,
                set_order=set_order,
                reps="8",
                weight=weight,
            )
        )
    session.commit()

    return SimpleNamespace(
        athlete_id=athlete.id,
        workout_id=workout.id,
        bench_id=bench.id,
        row_id=row.id,
        pullup_id=pullup.id,
    )


@pytest.fixture(name="new_manager")
def new_manager_fixture(session: Session, plan, clock: FakeClock):
    def make() -> WorkoutSessionManager:
        return WorkoutSessionManager(
            plan.athlete_id,
            lambda: nullcontext(session),
            clock=clock,
            default_rest_seconds=90,
        )

    return make


@pytest.fixture(name="manager")
def manager_fixture(new_manager, plan) -> WorkoutSessionManager:
    manager = new_manager()
    manager.load_workout(plan.workout_id)
    return manager
