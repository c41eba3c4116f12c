from datetime import date, datetime
from enum import Enum

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class Sex(str, Enum):
    male = "male"
    female = "female"


class Role(str, Enum):
    athlete = "athlete"
    coach = "coach"


class CalculationMethod(str, Enum):
    jackson_pollock_3 = "jackson_pollock_3"
    jackson_pollock_4 = "jackson_pollock_4"
    jackson_pollock_7 = "jackson_pollock_7"
    durnin_womersley = "durnin_womersley"
    parrillo = "parrillo"
    navy_tape = "navy_tape"


class ExerciseGroupType(str, Enum):
    none = "none"
    superset = "superset"
    bi_set = "bi_set"
    tri_set = "tri_set"
    giant_set = "giant_set"


class Profile(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    role: Role = Role.athlete
    sex: Sex | None = None
    age: int | None = None
    height_cm: float | None = None
    coach_id: int | None = Field(default=None, foreign_key="profile.id")


# ---------------------------------------------------------------------------
# Prescription (authored by coaches, read-only during a session)
# ---------------------------------------------------------------------------


class Program(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    description: str | None = None


class Workout(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    program_id: int | None = Field(default=None, foreign_key="program.id")
    name: str
    description: str | None = None
    day_of_week: int | None = None
    order_in_program: int | None = None


class ExerciseInstance(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    workout_id: int = Field(foreign_key="workout.id", index=True)
    exercise_db_id: int | None = Field(default=None, foreign_key="exercise.id")
    exercise_name: str
    sets: str | None = None
    reps: str | None = None
    rest_period_seconds: int | None = None
    tempo: str | None = None
    notes: str | None = None
    order_in_workout: int | None = None
    group_id: str | None = Field(default=None, index=True)
    group_type: ExerciseGroupType | None = None
    group_order: int | None = None
    is_bodyweight: bool = False
    each_side: bool = False


class ExerciseSetTemplate(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    exercise_instance_id: int = Field(foreign_key="exerciseinstance.id", index=True)
    set_order: int
    set_type: str = "WORKING"
    reps: str | None = None
    weight: str | None = None
    rest_seconds: int | None = None
    duration: str | None = None


class Exercise(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str | None = None
    category: str | None = None
    sex: str | None = None
    primary_muscle: str | None = None
    secondary_muscle: str | None = None
    equipment: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    instructions: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    tips: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    gif_url: str | None = None
    youtube_link: str | None = None


# ---------------------------------------------------------------------------
# Session records (written by the athlete while training)
# ---------------------------------------------------------------------------


class WorkoutSession(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    workout_id: int = Field(foreign_key="workout.id", index=True)
    athlete_id: int = Field(foreign_key="profile.id", index=True)
    start_time: datetime
    end_time: datetime | None = None
    duration_seconds: int | None = None


class CompletedSet(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("workout_session_id", "exercise_instance_id", "set_order"),
    )

    id: int | None = Field(default=None, primary_key=True)
    workout_session_id: int = Field(foreign_key="workoutsession.id", index=True)
    exercise_instance_id: int = Field(foreign_key="exerciseinstance.id", index=True)
    set_order: int
    weight: float | None = None  # None means bodyweight
    reps: int
    is_completed: bool = True


class ExerciseFeedback(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("workout_session_id", "exercise_instance_id"),)

    id: int | None = Field(default=None, primary_key=True)
    workout_session_id: int = Field(foreign_key="workoutsession.id", index=True)
    exercise_instance_id: int = Field(foreign_key="exerciseinstance.id")
    pain_level: int | None = None
    pump_level: int | None = None
    workload_level: int | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Body measurements
# ---------------------------------------------------------------------------


class Measurement(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "measurement_date"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="profile.id", index=True)
    measurement_date: date = Field(index=True)
    weight_kg: float | None = None
    weight_change_kg: float | None = None

    # Circumferences (cm)
    waist_cm: float | None = None
    neck_cm: float | None = None
    hips_cm: float | None = None

    # Skinfolds (mm)
    chest_mm: float | None = None
    abdominal_mm: float | None = None
    thigh_mm: float | None = None
    tricep_mm: float | None = None
    subscapular_mm: float | None = None
    suprailiac_mm: float | None = None
    midaxillary_mm: float | None = None
    bicep_mm: float | None = None
    lower_back_mm: float | None = None
    calf_mm: float | None = None

    body_fat_percentage: float | None = None
    body_fat_override: float | None = None
    lean_body_mass_kg: float | None = None
    fat_mass_kg: float | None = None
    basal_metabolic_rate: float | None = None

    calculation_method: CalculationMethod | None = None
    notes: str | None = None
    created_by: int | None = Field(default=None, foreign_key="profile.id")
    created_at: datetime | None = None
