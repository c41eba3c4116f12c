import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from engcoach.errors import PersistenceError
from engcoach.models import (
    CompletedSet,
    ExerciseFeedback,
    ExerciseInstance,
    ExerciseSetTemplate,
    Workout,
    WorkoutSession,
)

log = logging.getLogger(__name__)


class SessionStore:
    """Durable records behind a live workout session.

    Each write is committed on its own so a crash never loses an acknowledged
    set. Any database failure is rolled back, logged and re-raised as
    ``PersistenceError``.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str, *, commit: bool = False) -> Iterator[None]:
        try:
            yield
            if commit:
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.error("Failed to %s: %s", action, exc)
            raise PersistenceError(f"Failed to {action}") from exc

    # READS

    def get_workout(self, workout_id: int) -> Workout | None:
        with self._guard("load workout"):
            return self.db.get(Workout, workout_id)

    def list_instances(self, workout_id: int) -> list[ExerciseInstance]:
        with self._guard("load exercise instances"):
            return list(
                self.db.exec(
                    select(ExerciseInstance)
                    .where(ExerciseInstance.workout_id == workout_id)
                    .order_by(ExerciseInstance.order_in_workout, ExerciseInstance.id)
                ).all()
            )

    def list_set_templates(self, instance_ids: list[int]) -> dict[int, list[ExerciseSetTemplate]]:
        if not instance_ids:
            return {}
        with self._guard("load set templates"):
            rows = self.db.exec(
                select(ExerciseSetTemplate)
                .where(ExerciseSetTemplate.exercise_instance_id.in_(instance_ids))
                .order_by(ExerciseSetTemplate.set_order)
            ).all()
        templates: dict[int, list[ExerciseSetTemplate]] = {}
        for row in rows:
            templates.setdefault(row.exercise_instance_id, []).append(row)
        return templates

    def get_session(self, session_id: int) -> WorkoutSession | None:
        with self._guard("load workout session"):
            return self.db.get(WorkoutSession, session_id)

    def get_open_session(self, workout_id: int, athlete_id: int) -> WorkoutSession | None:
        """Return the most recently started session that was never finished."""
        with self._guard("look up open session"):
            return self.db.exec(
                select(WorkoutSession)
                .where(
                    WorkoutSession.workout_id == workout_id,
                    WorkoutSession.athlete_id == athlete_id,
                    WorkoutSession.end_time.is_(None),
                )
                .order_by(WorkoutSession.start_time.desc(), WorkoutSession.id.desc())
                .limit(1)
            ).first()

    def list_completed_sets(self, session_id: int) -> list[CompletedSet]:
        with self._guard("load completed sets"):
            return list(
                self.db.exec(
                    select(CompletedSet)
                    .where(
                        CompletedSet.workout_session_id == session_id,
                        CompletedSet.is_completed == True,  # noqa: E712
                    )
                    .order_by(CompletedSet.exercise_instance_id, CompletedSet.set_order)
                ).all()
            )

    def last_completed_sets(self, workout_id: int, athlete_id: int) -> dict[int, list[CompletedSet]]:
        """Sets from the athlete's most recent finished session of this workout."""
        with self._guard("load previous session"):
            last = self.db.exec(
                select(WorkoutSession)
                .where(
                    WorkoutSession.workout_id == workout_id,
                    WorkoutSession.athlete_id == athlete_id,
                    WorkoutSession.end_time.is_not(None),
                )
                .order_by(WorkoutSession.end_time.desc())
                .limit(1)
            ).first()
        if last is None:
            return {}
        by_instance: dict[int, list[CompletedSet]] = {}
        for row in self.list_completed_sets(last.id):
            by_instance.setdefault(row.exercise_instance_id, []).append(row)
        return by_instance

    def list_feedback(self, session_id: int) -> list[ExerciseFeedback]:
        with self._guard("load exercise feedback"):
            return list(
                self.db.exec(
                    select(ExerciseFeedback).where(ExerciseFeedback.workout_session_id == session_id)
                ).all()
            )

    def previous_feedback(self, exercise_instance_id: int, athlete_id: int) -> ExerciseFeedback | None:
        """Most recent feedback for the instance from one of the athlete's finished sessions."""
        with self._guard("load previous feedback"):
            return self.db.exec(
                select(ExerciseFeedback)
                .join(WorkoutSession, WorkoutSession.id == ExerciseFeedback.workout_session_id)
                .where(
                    ExerciseFeedback.exercise_instance_id == exercise_instance_id,
                    WorkoutSession.athlete_id == athlete_id,
                    WorkoutSession.end_time.is_not(None),
                )
                .order_by(ExerciseFeedback.created_at.desc())
                .limit(1)
            ).first()

    # WRITES

    def create_session(self, workout_id: int, athlete_id: int, start_time: datetime) -> WorkoutSession:
        workout_session = WorkoutSession(
            workout_id=workout_id,
            athlete_id=athlete_id,
            start_time=start_time,
        )
        with self._guard("start workout session", commit=True):
            self.db.add(workout_session)
        self.db.refresh(workout_session)
        return workout_session

    def complete_session(self, session_id: int, end_time: datetime, duration_seconds: int) -> WorkoutSession:
        with self._guard("complete workout session", commit=True):
            workout_session = self.db.get(WorkoutSession, session_id)
            if workout_session is None:
                raise PersistenceError(f"Workout session {session_id} no longer exists")
            workout_session.end_time = end_time
            workout_session.duration_seconds = max(0, int(duration_seconds))
            self.db.add(workout_session)
        self.db.refresh(workout_session)
        return workout_session

    def delete_session_cascade(self, session_id: int) -> None:
        """Delete the session's sets and feedback, then the session row.

        Two separate commits: an interruption between them leaves an empty
        open session, which recovery treats as abandoned.
        """
        with self._guard("delete completed sets", commit=True):
            sets = self.db.exec(
                select(CompletedSet).where(CompletedSet.workout_session_id == session_id)
            ).all()
            for s in sets:
                self.db.delete(s)
            feedback = self.db.exec(
                select(ExerciseFeedback).where(ExerciseFeedback.workout_session_id == session_id)
            ).all()
            for f in feedback:
                self.db.delete(f)

        with self._guard("delete workout session", commit=True):
            workout_session = self.db.get(WorkoutSession, session_id)
            if workout_session is not None:
                self.db.delete(workout_session)

    def upsert_completed_set(
        self,
        session_id: int,
        exercise_instance_id: int,
        set_order: int,
        weight: float | None,
        reps: int,
    ) -> CompletedSet:
        with self._guard("save completed set", commit=True):
            row = self.db.exec(
                select(CompletedSet).where(
                    CompletedSet.workout_session_id == session_id,
                    CompletedSet.exercise_instance_id == exercise_instance_id,
                    CompletedSet.set_order == set_order,
                )
            ).first()
            if row is None:
                row = CompletedSet(
                    workout_session_id=session_id,
                    exercise_instance_id=exercise_instance_id,
                    set_order=set_order,
                    weight=weight,
                    reps=reps,
                )
            else:
                row.weight = weight
                row.reps = reps
                row.is_completed = True
            self.db.add(row)
        self.db.refresh(row)
        return row

    def delete_completed_set(self, session_id: int, exercise_instance_id: int, set_order: int) -> None:
        with self._guard("remove completed set", commit=True):
            rows = self.db.exec(
                select(CompletedSet).where(
                    CompletedSet.workout_session_id == session_id,
                    CompletedSet.exercise_instance_id == exercise_instance_id,
                    CompletedSet.set_order == set_order,
                )
            ).all()
            for row in rows:
                self.db.delete(row)

    def upsert_feedback(
        self,
        session_id: int,
        exercise_instance_id: int,
        *,
        pain_level: int | None,
        pump_level: int | None,
        workload_level: int | None,
        notes: str | None,
        now: datetime,
    ) -> ExerciseFeedback:
        with self._guard("save exercise feedback", commit=True):
            row = self.db.exec(
                select(ExerciseFeedback).where(
                    ExerciseFeedback.workout_session_id == session_id,
                    ExerciseFeedback.exercise_instance_id == exercise_instance_id,
                )
            ).first()
            if row is None:
                row = ExerciseFeedback(
                    workout_session_id=session_id,
                    exercise_instance_id=exercise_instance_id,
                    created_at=now,
                    updated_at=now,
                )
            row.pain_level = pain_level
            row.pump_level = pump_level
            row.workload_level = workload_level
            row.notes = notes
            row.updated_at = now
            self.db.add(row)
        self.db.refresh(row)
        return row
