import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from engcoach.errors import PersistenceError, ValidationError
from engcoach.models import CalculationMethod, Measurement, Profile, Sex
from engcoach.services import body_composition as bc

log = logging.getLogger(__name__)

SKINFOLD_SITES = (
    "chest",
    "abdominal",
    "thigh",
    "tricep",
    "subscapular",
    "suprailiac",
    "midaxillary",
    "bicep",
    "lower_back",
    "calf",
)
CIRCUMFERENCES = ("waist", "neck", "hips")


@dataclass
class MeasurementResult:
    calculated_body_fat_percentage: float | None
    body_fat_percentage: float  # override if present, else calculated
    lean_mass_kg: float
    fat_mass_kg: float
    basal_metabolic_rate: int | None


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _pick(readings: Mapping[str, float | None], names: tuple[str, ...]) -> dict[str, float | None]:
    return {name: readings.get(name) for name in names}


def _column_for(reading: str) -> str:
    return f"{reading}_cm" if reading in CIRCUMFERENCES else f"{reading}_mm"


def _formula_body_fat(
    method: CalculationMethod,
    sex: Sex,
    age: float | None,
    height_cm: float | None,
    readings: Mapping[str, float | None],
) -> float:
    if method is CalculationMethod.jackson_pollock_3:
        return bc.jackson_pollock_3(
            sex, age, **_pick(readings, ("chest", "abdominal", "thigh", "tricep", "suprailiac"))
        )
    if method is CalculationMethod.jackson_pollock_4:
        return bc.jackson_pollock_4(sex, age, **_pick(readings, bc.JACKSON_POLLOCK_4_SITES))
    if method is CalculationMethod.jackson_pollock_7:
        return bc.jackson_pollock_7(sex, age, **_pick(readings, bc.JACKSON_POLLOCK_7_SITES))
    if method is CalculationMethod.durnin_womersley:
        return bc.durnin_womersley(sex, age, **_pick(readings, bc.DURNIN_WOMERSLEY_SITES))
    if method is CalculationMethod.parrillo:
        return bc.parrillo(sex, **_pick(readings, bc.PARRILLO_SITES))
    if method is CalculationMethod.navy_tape:
        return bc.navy_tape(
            sex, height_cm, readings.get("neck"), readings.get("waist"), readings.get("hips")
        )
    raise ValidationError(f"Unknown calculation method {method!r}")


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        log.error("Failed to %s: %s", action, exc)
        raise PersistenceError(f"Failed to {action}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def calculate_measurement(
    method: CalculationMethod | None,
    sex: Sex | str,
    age: float | None,
    height_cm: float | None,
    weight_kg: float | None,
    readings: Mapping[str, float | None],
    body_fat_override: float | None = None,
) -> MeasurementResult:
    """Run the selected formula and derive lean/fat mass and BMR.

    A manual override always wins: lean and fat mass are derived from it, not
    from the formula output. Without an override a method is mandatory.
    """
    if weight_kg is None or weight_kg <= 0:
        raise ValidationError("Weight is required for calculation", missing=["weight"])
    if method is None and body_fat_override is None:
        raise ValidationError("Choose a calculation method or enter a manual body-fat override")

    sex = bc.coerce_sex(sex)
    calculated = None
    if method is not None:
        calculated = _formula_body_fat(CalculationMethod(method), sex, age, height_cm, readings)

    effective = body_fat_override if body_fat_override is not None else calculated
    composition = bc.body_composition(weight_kg, effective)

    basal = None
    if height_cm is not None and age is not None:
        basal = bc.bmr(sex, weight_kg, height_cm, age)

    return MeasurementResult(
        calculated_body_fat_percentage=calculated,
        body_fat_percentage=effective,
        lean_mass_kg=composition.lean_mass_kg,
        fat_mass_kg=composition.fat_mass_kg,
        basal_metabolic_rate=basal,
    )


def save_measurement(
    session: Session,
    athlete: Profile,
    measurement_date: date,
    weight_kg: float,
    readings: Mapping[str, float | None],
    method: CalculationMethod | None,
    body_fat_override: float | None = None,
    notes: str | None = None,
    created_by: int | None = None,
) -> Measurement:
    """Compute and upsert the athlete's measurement for ``measurement_date``."""
    if athlete.sex is None:
        raise ValidationError("The athlete's sex is required for body-composition formulas", missing=["sex"])

    result = calculate_measurement(
        method,
        athlete.sex,
        athlete.age,
        athlete.height_cm,
        weight_kg,
        readings,
        body_fat_override,
    )

    measurement = session.exec(
        select(Measurement).where(
            Measurement.user_id == athlete.id,
            Measurement.measurement_date == measurement_date,
        )
    ).first()
    if measurement is None:
        measurement = Measurement(
            user_id=athlete.id,
            measurement_date=measurement_date,
            created_at=datetime.now(timezone.utc),
        )

    previous = session.exec(
        select(Measurement)
        .where(Measurement.user_id == athlete.id, Measurement.measurement_date < measurement_date)
        .order_by(Measurement.measurement_date.desc())
        .limit(1)
    ).first()

    measurement.weight_kg = weight_kg
    measurement.weight_change_kg = (
        round(weight_kg - previous.weight_kg, 2)
        if previous is not None and previous.weight_kg is not None
        else None
    )
    for name in SKINFOLD_SITES + CIRCUMFERENCES:
        setattr(measurement, _column_for(name), readings.get(name))

    measurement.body_fat_percentage = result.body_fat_percentage
    measurement.body_fat_override = body_fat_override
    measurement.lean_body_mass_kg = result.lean_mass_kg
    measurement.fat_mass_kg = result.fat_mass_kg
    measurement.basal_metabolic_rate = result.basal_metabolic_rate
    measurement.calculation_method = method
    measurement.notes = notes
    measurement.created_by = created_by

    session.add(measurement)
    _commit(session, "save measurement")
    session.refresh(measurement)
    log.info(
        "Saved measurement for athlete=%s date=%s method=%s",
        athlete.id,
        measurement_date.isoformat(),
        method.value if method else "override",
    )
    return measurement


def list_measurements(session: Session, athlete_id: int) -> list[Measurement]:
    return list(
        session.exec(
            select(Measurement)
            .where(Measurement.user_id == athlete_id)
            .order_by(Measurement.measurement_date.desc())
        ).all()
    )


def latest_measurement(session: Session, athlete_id: int) -> Measurement | None:
    return session.exec(
        select(Measurement)
        .where(Measurement.user_id == athlete_id)
        .order_by(Measurement.measurement_date.desc())
        .limit(1)
    ).first()


def delete_measurement(session: Session, measurement: Measurement) -> None:
    session.delete(measurement)
    _commit(session, "delete measurement")
