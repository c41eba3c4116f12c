from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, SQLModel

from engcoach.config import get_settings
from engcoach.database import get_session
from engcoach.services import exercise_lookup

router = APIRouter()

SessionDep = Annotated[Session, Depends(get_session)]


class ExerciseRead(SQLModel):
    id: int
    name: str
    description: str | None
    category: str | None
    sex: str | None
    primary_muscle: str | None
    secondary_muscle: str | None
    equipment: list[str]
    instructions: list[str]
    tips: list[str]
    gif_url: str | None
    youtube_link: str | None


class ExercisePageRead(SQLModel):
    items: list[ExerciseRead]
    total: int
    page: int
    per_page: int
    next_page: int | None
    previous_page: int | None


@router.get("/", response_model=ExercisePageRead)
def search_exercises(
    session: SessionDep,
    q: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int | None, Query(ge=1, le=100)] = None,
    category: str | None = None,
    sex: str | None = None,
    equipment: str | None = None,
):
    result = exercise_lookup.search_exercises(
        session,
        q,
        page=page,
        per_page=per_page or get_settings().EXERCISE_PAGE_SIZE,
        category=category,
        sex=sex,
        equipment=equipment,
    )
    return ExercisePageRead(
        items=[ExerciseRead(**vars(item)) for item in result.items],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        next_page=result.next_page,
        previous_page=result.previous_page,
    )


@router.get("/{id}", response_model=ExerciseRead)
def get_exercise(id: int, session: SessionDep):
    exercise = exercise_lookup.get_exercise(session, id)
    if exercise is None:
        raise HTTPException(status_code=404, detail="Exercise not found")
    return ExerciseRead(**vars(exercise))
