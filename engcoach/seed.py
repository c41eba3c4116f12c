"""
Seed the database with a coach, an athlete and one programmed workout.
Run with: python -m engcoach.seed

WARNING: Drops all existing data before inserting.
"""

from datetime import date, timedelta

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, select

from engcoach.models import (
    CalculationMethod,
    CompletedSet,
    Exercise,
    ExerciseFeedback,
    ExerciseGroupType,
    ExerciseInstance,
    ExerciseSetTemplate,
    Measurement,
    Profile,
    Program,
    Role,
    Sex,
    Workout,
    WorkoutSession,
)
from engcoach.services import measurements

# ---------------------------------------------------------------------------
# Exercise catalogue
# ---------------------------------------------------------------------------

EXERCISES: list[dict] = [
    {
        "name": "Barbell Bench Press",
        "category": "Chest",
        "primary_muscle": "Pectorals",
        "secondary_muscle": "Triceps",
        "equipment": ["Barbell", "Bench"],
        "instructions": ["Lower the bar to mid-chest.", "Press back to lockout."],
        "tips": ["Keep shoulder blades retracted."],
    },
    {
        "name": "Bent-Over Row",
        "category": "Back",
        "primary_muscle": "Latissimus dorsi",
        "secondary_muscle": "Biceps",
        "equipment": ["Barbell"],
        "instructions": ["Hinge at the hips.", "Row the bar to the lower ribs."],
        "tips": ["Keep the spine neutral."],
    },
    {
        "name": "Pull-up",
        "category": "Back",
        "primary_muscle": "Latissimus dorsi",
        "secondary_muscle": "Biceps",
        "equipment": ["Pull-up bar"],
        "instructions": ["Hang at full extension.", "Pull until the chin clears the bar."],
        "tips": [],
    },
    {
        "name": "Back Squat",
        "category": "Legs",
        "primary_muscle": "Quadriceps",
        "secondary_muscle": "Glutes",
        "equipment": ["Barbell", "Squat rack"],
        "instructions": ["Brace, descend below parallel.", "Drive up through mid-foot."],
        "tips": ["Knees track over toes."],
    },
    {
        "name": "Walking Lunge",
        "category": "Legs",
        "primary_muscle": "Quadriceps",
        "secondary_muscle": "Glutes",
        "equipment": ["Dumbbell"],
        "instructions": ["Step forward into a lunge.", "Alternate legs each step."],
        "tips": [],
    },
    {
        "name": "Plank",
        "category": "Core",
        "primary_muscle": "Abdominals",
        "secondary_muscle": None,
        "equipment": [],
        "instructions": ["Hold a straight line from head to heels."],
        "tips": ["Squeeze the glutes."],
    },
]

# (exercise name, sets, reps, rest, group id, group order, bodyweight, each side)
UPPER_BODY: list[tuple[str, str, str, int, str | None, int | None, bool, bool]] = [
    ("Barbell Bench Press", "4", "8", 120, None, None, False, False),
    ("Bent-Over Row", "3", "10", 60, "A", 1, False, False),
    ("Pull-up", "3", "8", 60, "A", 2, True, False),
    ("Walking Lunge", "3", "12", 90, None, None, False, True),
    ("Plank", "3", "1", 45, None, None, True, False),
]

# Fixed per-set weights for the first exercise (kg)
BENCH_TEMPLATE = ["60", "70", "75", "75"]

# (days ago, weight kg, chest, abdominal, thigh)
MEASUREMENTS = [
    (28, 84.0, 14.0, 22.0, 16.0),
    (14, 82.5, 12.0, 20.0, 15.0),
    (0, 81.0, 11.0, 18.0, 14.0),
]


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def seed(engine: Engine | None = None) -> None:
    if engine is None:
        from engcoach.database import engine

    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        # ------------------------------------------------------------------
        # Wipe existing data (order matters for FK constraints)
        # ------------------------------------------------------------------
        for model in [
            ExerciseFeedback,
            CompletedSet,
            WorkoutSession,
            ExerciseSetTemplate,
            ExerciseInstance,
            Workout,
            Program,
            Measurement,
            Exercise,
            Profile,
        ]:
            for row in session.exec(select(model)).all():
                session.delete(row)
        session.commit()
        print("Cleared existing data.")

        # ------------------------------------------------------------------
        # People
        # ------------------------------------------------------------------
        coach = Profile(name="Coach Carter", role=Role.coach)
        session.add(coach)
        session.commit()
        session.refresh(coach)

        athlete = Profile(
            name="Alex Athlete",
            role=Role.athlete,
            sex=Sex.male,
            age=30,
            height_cm=180.0,
            coach_id=coach.id,
        )
        session.add(athlete)
        session.commit()
        session.refresh(athlete)
        print("Created coach and athlete.")

        # ------------------------------------------------------------------
        # Exercise catalogue
        # ------------------------------------------------------------------
        catalogue: dict[str, Exercise] = {}
        for data in EXERCISES:
            exercise = Exercise(**data)
            session.add(exercise)
            catalogue[exercise.name] = exercise
        session.commit()
        for exercise in catalogue.values():
            session.refresh(exercise)
        print(f"Created {len(catalogue)} exercises.")

        # ------------------------------------------------------------------
        # Program and workout
        # ------------------------------------------------------------------
        program = Program(name="Hypertrophy Block", description="Four-week upper/lower split")
        session.add(program)
        session.commit()
        session.refresh(program)

        workout = Workout(
            program_id=program.id,
            name="Upper Body A",
            day_of_week=1,
            order_in_program=1,
        )
        session.add(workout)
        session.commit()
        session.refresh(workout)

        for order, (name, sets, reps, rest, group_id, group_order, bodyweight, each_side) in enumerate(
            UPPER_BODY, start=1
        ):
            instance = ExerciseInstance(
                workout_id=workout.id,
                exercise_db_id=catalogue[name].id,
                exercise_name=name,
                sets=sets,
                reps=reps,
                rest_period_seconds=rest,
                order_in_workout=order,
                group_id=group_id,
                group_type=ExerciseGroupType.superset if group_id else None,
                group_order=group_order,
                is_bodyweight=bodyweight,
                each_side=each_side,
            )
            session.add(instance)
            session.commit()
            session.refresh(instance)

            if name == "Barbell Bench Press":
                for set_order, weight in enumerate(BENCH_TEMPLATE, start=1):
                    session.add(
                        ExerciseSetTemplate(
                            exercise_instance_id=instance.id,
                            set_order=set_order,
                            reps=reps,
                            weight=weight,
                        )
                    )
                session.commit()
        print(f"Created workout '{workout.name}' with {len(UPPER_BODY)} exercises.")

        # ------------------------------------------------------------------
        # Measurements (Jackson-Pollock 3-site)
        # ------------------------------------------------------------------
        for days_ago, weight, chest, abdominal, thigh in MEASUREMENTS:
            measurements.save_measurement(
                session,
                athlete,
                date.today() - timedelta(days=days_ago),
                weight,
                {"chest": chest, "abdominal": abdominal, "thigh": thigh},
                method=CalculationMethod.jackson_pollock_3,
                created_by=coach.id,
            )
        print(f"Created {len(MEASUREMENTS)} measurements.")
        print("Seed complete!")


if __name__ == "__main__":
    seed()
