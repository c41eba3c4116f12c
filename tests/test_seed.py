from contextlib import nullcontext

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from engcoach.models import Exercise, ExerciseInstance, Measurement, Profile, Role, Workout
from engcoach.seed import EXERCISES, MEASUREMENTS, UPPER_BODY, seed
from engcoach.services.workout_session import WorkoutSessionManager


def _engine():
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def test_seed_creates_a_usable_workout(capsys):
    engine = _engine()
    seed(engine)

    with Session(engine) as session:
        coach = session.exec(select(Profile).where(Profile.role == Role.coach)).one()
        athlete = session.exec(select(Profile).where(Profile.role == Role.athlete)).one()
        assert athlete.coach_id == coach.id

        assert len(session.exec(select(Exercise)).all()) == len(EXERCISES)
        assert len(session.exec(select(ExerciseInstance)).all()) == len(UPPER_BODY)

        measurements = session.exec(select(Measurement).order_by(Measurement.measurement_date)).all()
        assert len(measurements) == len(MEASUREMENTS)
        assert measurements[-1].weight_change_kg == -1.5

        workout = session.exec(select(Workout)).one()
        manager = WorkoutSessionManager(athlete.id, lambda: nullcontext(session))
        manager.load_workout(workout.id)
        assert [len(g.exercises) for g in manager.groups()] == [1, 2, 1, 1]
        assert manager.total_sets_count == 4 + 3 + 3 + 3 + 3

    assert "Seed complete!" in capsys.readouterr().out


def test_seed_is_repeatable():
    engine = _engine()
    seed(engine)
    seed(engine)

    with Session(engine) as session:
        assert len(session.exec(select(Profile)).all()) == 2
        assert len(session.exec(select(Workout)).all()) == 1
