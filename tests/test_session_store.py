from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session, select

from engcoach.errors import PersistenceError
from engcoach.models import CompletedSet, ExerciseFeedback, WorkoutSession
from engcoach.services.session_store import SessionStore
from engcoach.services.timers import as_utc

START = datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(name="store")
def store_fixture(session: Session) -> SessionStore:
    return SessionStore(session)


def test_list_instances_ordered(store, plan):
    instances = store.list_instances(plan.workout_id)
    assert [i.id for i in instances] == [plan.bench_id, plan.row_id, plan.pullup_id]


def test_list_set_templates(store, plan):
    templates = store.list_set_templates([plan.bench_id, plan.row_id])
    assert list(templates) == [plan.bench_id]
    assert [t.set_order for t in templates[plan.bench_id]] == [1, 2, 3, 4]
    assert store.list_set_templates([]) == {}


def test_open_session_ignores_finished(store, plan):
    finished = store.create_session(plan.workout_id, plan.athlete_id, START)
    store.complete_session(finished.id, START + timedelta(hours=1), 3600)
    assert store.get_open_session(plan.workout_id, plan.athlete_id) is None

    older = store.create_session(plan.workout_id, plan.athlete_id, START + timedelta(days=1))
    newer = store.create_session(plan.workout_id, plan.athlete_id, START + timedelta(days=2))
    assert store.get_open_session(plan.workout_id, plan.athlete_id).id == newer.id
    assert older.id != newer.id


def test_open_session_is_per_athlete(store, plan):
    store.create_session(plan.workout_id, plan.athlete_id, START)
    assert store.get_open_session(plan.workout_id, plan.athlete_id + 100) is None


def test_upsert_completed_set_is_idempotent(store, session, plan):
    workout_session = store.create_session(plan.workout_id, plan.athlete_id, START)
    store.upsert_completed_set(workout_session.id, plan.bench_id, 1, 60.0, 8)
    store.upsert_completed_set(workout_session.id, plan.bench_id, 1, 65.0, 6)

    (row,) = session.exec(select(CompletedSet)).all()
    assert (row.weight, row.reps) == (65.0, 6)


def test_delete_completed_set(store, plan):
    workout_session = store.create_session(plan.workout_id, plan.athlete_id, START)
    store.upsert_completed_set(workout_session.id, plan.bench_id, 1, 60.0, 8)
    store.upsert_completed_set(workout_session.id, plan.bench_id, 2, 60.0, 8)

    store.delete_completed_set(workout_session.id, plan.bench_id, 1)

    assert [r.set_order for r in store.list_completed_sets(workout_session.id)] == [2]


def test_delete_session_cascade(store, session, plan):
    workout_session = store.create_session(plan.workout_id, plan.athlete_id, START)
    keep = store.create_session(plan.workout_id, plan.athlete_id + 1, START)
    for set_order in (1, 2, 3):
        store.upsert_completed_set(workout_session.id, plan.row_id, set_order, 50.0, 10)
    store.upsert_completed_set(keep.id, plan.row_id, 1, 50.0, 10)
    store.upsert_feedback(
        workout_session.id, plan.row_id, pain_level=1, pump_level=3, workload_level=3, notes=None, now=START
    )

    store.delete_session_cascade(workout_session.id)

    assert session.get(WorkoutSession, workout_session.id) is None
    assert store.list_completed_sets(workout_session.id) == []
    assert store.list_feedback(workout_session.id) == []
    assert len(store.list_completed_sets(keep.id)) == 1


def test_last_completed_sets_uses_latest_finished(store, plan):
    first = store.create_session(plan.workout_id, plan.athlete_id, START)
    store.upsert_completed_set(first.id, plan.row_id, 1, 40.0, 10)
    store.complete_session(first.id, START + timedelta(hours=1), 3600)

    second = store.create_session(plan.workout_id, plan.athlete_id, START + timedelta(days=3))
    store.upsert_completed_set(second.id, plan.row_id, 1, 45.0, 10)
    store.complete_session(second.id, START + timedelta(days=3, hours=1), 3600)

    # Still open, so not a "previous" session
    third = store.create_session(plan.workout_id, plan.athlete_id, START + timedelta(days=6))
    store.upsert_completed_set(third.id, plan.row_id, 1, 99.0, 10)

    previous = store.last_completed_sets(plan.workout_id, plan.athlete_id)
    assert [s.weight for s in previous[plan.row_id]] == [45.0]


def test_upsert_feedback_updates_in_place(store, session, plan):
    workout_session = store.create_session(plan.workout_id, plan.athlete_id, START)
    store.upsert_feedback(
        workout_session.id, plan.row_id, pain_level=2, pump_level=3, workload_level=3, notes="ok", now=START
    )
    later = START + timedelta(minutes=5)
    updated = store.upsert_feedback(
        workout_session.id, plan.row_id, pain_level=3, pump_level=3, workload_level=4, notes=None, now=later
    )

    assert len(session.exec(select(ExerciseFeedback)).all()) == 1
    assert updated.pain_level == 3
    assert as_utc(updated.created_at) == START
    assert as_utc(updated.updated_at) == later


def test_write_failure_raises_persistence_error(store, plan):
    workout_session = store.create_session(plan.workout_id, plan.athlete_id, START)
    with pytest.raises(PersistenceError):
        store.upsert_completed_set(workout_session.id, plan.bench_id, 1, 60.0, None)

    # The session is usable again after the rollback
    store.upsert_completed_set(workout_session.id, plan.bench_id, 1, 60.0, 8)
    assert len(store.list_completed_sets(workout_session.id)) == 1


def test_complete_missing_session(store):
    with pytest.raises(PersistenceError):
        store.complete_session(12345, START, 10)
