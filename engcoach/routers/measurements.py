from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, SQLModel

from engcoach.database import get_session
from engcoach.models import CalculationMethod, Measurement, Profile, Sex
from engcoach.services import measurements as ms

router = APIRouter()

SessionDep = Annotated[Session, Depends(get_session)]


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class Readings(SQLModel):
    # Skinfolds (mm)
    chest: float | None = None
    abdominal: float | None = None
    thigh: float | None = None
    tricep: float | None = None
    subscapular: float | None = None
    suprailiac: float | None = None
    midaxillary: float | None = None
    bicep: float | None = None
    lower_back: float | None = None
    calf: float | None = None
    # Circumferences (cm)
    waist: float | None = None
    neck: float | None = None
    hips: float | None = None


class CalculateBody(Readings):
    sex: Sex
    age: float | None = None
    height_cm: float | None = None
    weight_kg: float | None = None
    calculation_method: CalculationMethod | None = None
    body_fat_override: float | None = None


class MeasurementBody(Readings):
    measurement_date: date
    weight_kg: float
    calculation_method: CalculationMethod | None = None
    body_fat_override: float | None = None
    notes: str | None = None
    created_by: int | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class CalculationRead(SQLModel):
    calculated_body_fat_percentage: float | None
    body_fat_percentage: float
    lean_mass_kg: float
    fat_mass_kg: float
    basal_metabolic_rate: int | None


class MeasurementRead(SQLModel):
    id: int
    user_id: int
    measurement_date: str  # ISO format
    weight_kg: float | None
    weight_change_kg: float | None
    body_fat_percentage: float | None
    body_fat_override: float | None
    lean_body_mass_kg: float | None
    fat_mass_kg: float | None
    basal_metabolic_rate: float | None
    calculation_method: CalculationMethod | None
    readings: Readings
    notes: str | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _readings(body: Readings) -> dict[str, float | None]:
    return {name: getattr(body, name) for name in ms.SKINFOLD_SITES + ms.CIRCUMFERENCES}


def _measurement_read(measurement: Measurement) -> MeasurementRead:
    readings = Readings(
        **{
            name: getattr(measurement, f"{name}_cm" if name in ms.CIRCUMFERENCES else f"{name}_mm")
            for name in ms.SKINFOLD_SITES + ms.CIRCUMFERENCES
        }
    )
    return MeasurementRead(
        id=measurement.id,
        user_id=measurement.user_id,
        measurement_date=measurement.measurement_date.isoformat(),
        weight_kg=measurement.weight_kg,
        weight_change_kg=measurement.weight_change_kg,
        body_fat_percentage=measurement.body_fat_percentage,
        body_fat_override=measurement.body_fat_override,
        lean_body_mass_kg=measurement.lean_body_mass_kg,
        fat_mass_kg=measurement.fat_mass_kg,
        basal_metabolic_rate=measurement.basal_metabolic_rate,
        calculation_method=measurement.calculation_method,
        readings=readings,
        notes=measurement.notes,
    )


def _get_athlete(athlete_id: int, session: Session) -> Profile:
    athlete = session.get(Profile, athlete_id)
    if athlete is None:
        raise HTTPException(status_code=404, detail="Athlete not found")
    return athlete


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/body-composition/calculate", response_model=CalculationRead)
def calculate(body: CalculateBody):
    result = ms.calculate_measurement(
        body.calculation_method,
        body.sex,
        body.age,
        body.height_cm,
        body.weight_kg,
        _readings(body),
        body.body_fat_override,
    )
    return CalculationRead(
        calculated_body_fat_percentage=result.calculated_body_fat_percentage,
        body_fat_percentage=result.body_fat_percentage,
        lean_mass_kg=result.lean_mass_kg,
        fat_mass_kg=result.fat_mass_kg,
        basal_metabolic_rate=result.basal_metabolic_rate,
    )


@router.get("/athletes/{athlete_id}/measurements", response_model=list[MeasurementRead])
def list_measurements(athlete_id: int, session: SessionDep):
    _get_athlete(athlete_id, session)
    return [_measurement_read(m) for m in ms.list_measurements(session, athlete_id)]


@router.get("/athletes/{athlete_id}/measurements/latest", response_model=MeasurementRead)
def latest_measurement(athlete_id: int, session: SessionDep):
    _get_athlete(athlete_id, session)
    measurement = ms.latest_measurement(session, athlete_id)
    if measurement is None:
        raise HTTPException(status_code=404, detail="No measurements recorded")
    return _measurement_read(measurement)


@router.post("/athletes/{athlete_id}/measurements", response_model=MeasurementRead, status_code=201)
def save_measurement(athlete_id: int, body: MeasurementBody, session: SessionDep):
    athlete = _get_athlete(athlete_id, session)
    measurement = ms.save_measurement(
        session,
        athlete,
        body.measurement_date,
        body.weight_kg,
        _readings(body),
        body.calculation_method,
        body_fat_override=body.body_fat_override,
        notes=body.notes,
        created_by=body.created_by,
    )
    return _measurement_read(measurement)


@router.delete("/measurements/{id}", status_code=204)
def delete_measurement(id: int, session: SessionDep):
    measurement = session.get(Measurement, id)
    if measurement is None:
        raise HTTPException(status_code=404, detail="Measurement not found")
    ms.delete_measurement(session, measurement)
