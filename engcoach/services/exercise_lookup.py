"""Read-only access to the exercise catalogue.

Lookups are best effort: a database failure is logged and reported as "no
result" so a broken catalogue never blocks a workout.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from engcoach.models import Exercise

log = logging.getLogger(__name__)

UNKNOWN_EXERCISE = "Unknown Exercise"


@dataclass
class ExerciseDetails:
    id: int
    name: str
    description: str | None
    category: str | None
    sex: str | None
    primary_muscle: str | None
    secondary_muscle: str | None
    equipment: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    tips: list[str] = field(default_factory=list)
    gif_url: str | None = None
    youtube_link: str | None = None


@dataclass
class ExercisePage:
    items: list[ExerciseDetails]
    total: int
    page: int
    per_page: int
    next_page: int | None = None
    previous_page: int | None = None


def _as_list(value) -> list[str]:
    """Catalogue rows store list columns loosely: None, a string or a list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    return [str(item) for item in value if item is not None and str(item).strip()]


def format_exercise(exercise: Exercise) -> ExerciseDetails:
    return ExerciseDetails(
        id=exercise.id,
        name=exercise.name or UNKNOWN_EXERCISE,
        description=exercise.description,
        category=exercise.category,
        sex=exercise.sex,
        primary_muscle=exercise.primary_muscle,
        secondary_muscle=exercise.secondary_muscle,
        equipment=_as_list(exercise.equipment),
        instructions=_as_list(exercise.instructions),
        tips=_as_list(exercise.tips),
        gif_url=exercise.gif_url,
        youtube_link=exercise.youtube_link,
    )


def get_exercise(session: Session, exercise_id: int) -> ExerciseDetails | None:
    try:
        exercise = session.get(Exercise, exercise_id)
    except SQLAlchemyError as exc:
        log.warning("Exercise lookup failed for id=%s: %s", exercise_id, exc)
        return None
    return format_exercise(exercise) if exercise else None


def search_exercises(
    session: Session,
    query: str | None = None,
    *,
    page: int = 1,
    per_page: int = 20,
    category: str | None = None,
    sex: str | None = None,
    equipment: str | None = None,
) -> ExercisePage:
    page = max(1, page)
    per_page = max(1, per_page)
    start = (page - 1) * per_page

    filters = []
    if query:
        filters.append(func.lower(Exercise.name).contains(query.strip().lower()))
    if category:
        filters.append(func.lower(Exercise.category) == category.lower())
    if sex:
        filters.append(Exercise.sex == sex)
    statement = select(Exercise).where(*filters).order_by(Exercise.name, Exercise.id)

    try:
        if equipment:
            # JSON columns cannot be filtered portably, so equipment is matched in Python
            wanted = equipment.lower()
            matches = [
                format_exercise(row)
                for row in session.exec(statement).all()
                if any(wanted == item.lower() for item in _as_list(row.equipment))
            ]
            total = len(matches)
            items = matches[start : start + per_page]
        else:
            total = session.exec(select(func.count()).select_from(Exercise).where(*filters)).one()
            rows = session.exec(statement.offset(start).limit(per_page)).all()
            items = [format_exercise(row) for row in rows]
    except SQLAlchemyError as exc:
        log.warning("Exercise search failed for q=%r: %s", query, exc)
        return ExercisePage(items=[], total=0, page=page, per_page=per_page)

    return ExercisePage(
        items=items,
        total=total,
        page=page,
        per_page=per_page,
        next_page=page + 1 if start + per_page < total else None,
        previous_page=page - 1 if page > 1 else None,
    )
