"""Body-composition formulas: skinfold and tape methods, lean/fat split, BMR.

Every function is pure. Inputs are validated up front and a missing or
non-positive reading raises ``ValidationError`` naming the sites the method
needs; nothing is ever substituted with zero.
"""

import math
from dataclasses import dataclass

from engcoach.errors import ValidationError
from engcoach.models import CalculationMethod, Sex

# Flat offset added to the Parrillo result for female subjects. Two variants
# of the formula circulate (with and without +10); this one uses none.
PARRILLO_FEMALE_OFFSET = 0.0
PARRILLO_MULTIPLIER = 0.27

JACKSON_POLLOCK_3_SITES: dict[Sex, tuple[str, ...]] = {
    Sex.male: ("chest", "abdominal", "thigh"),
    Sex.female: ("tricep", "suprailiac", "thigh"),
}
JACKSON_POLLOCK_4_SITES = ("abdominal", "suprailiac", "tricep", "thigh")
JACKSON_POLLOCK_7_SITES = (
    "chest",
    "midaxillary",
    "tricep",
    "subscapular",
    "abdominal",
    "suprailiac",
    "thigh",
)
DURNIN_WOMERSLEY_SITES = ("bicep", "tricep", "subscapular", "suprailiac")
PARRILLO_SITES = (
    "chest",
    "abdominal",
    "thigh",
    "bicep",
    "tricep",
    "subscapular",
    "suprailiac",
    "lower_back",
    "calf",
)

# (exclusive upper age bound, c, m); None closes the last bracket.
DURNIN_WOMERSLEY_TABLE: dict[Sex, tuple[tuple[int | None, float, float], ...]] = {
    Sex.male: (
        (17, 1.1533, 0.0643),
        (20, 1.1620, 0.0630),
        (30, 1.1631, 0.0632),
        (40, 1.1422, 0.0544),
        (50, 1.1620, 0.0700),
        (None, 1.1715, 0.0779),
    ),
    Sex.female: (
        (17, 1.1369, 0.0598),
        (20, 1.1549, 0.0678),
        (30, 1.1599, 0.0717),
        (40, 1.1423, 0.0632),
        (50, 1.1333, 0.0612),
        (None, 1.1339, 0.0645),
    ),
}

# (constant, linear, quadratic, age) density coefficients
_JP_QUADRATIC_COEFFICIENTS: dict[Sex, tuple[float, float, float, float]] = {
    Sex.male: (1.10938, 0.0008267, 0.0000016, 0.0002574),
    Sex.female: (1.0994921, 0.0009929, 0.0000023, 0.0001392),
}
_JP7_COEFFICIENTS: dict[Sex, tuple[float, float, float, float]] = {
    Sex.male: (1.112, 0.00043499, 0.00000055, 0.00028826),
    Sex.female: (1.097, 0.00046971, 0.00000056, 0.00012828),
}

_METHOD_LABELS = {
    CalculationMethod.jackson_pollock_3: "Jackson-Pollock 3-site",
    CalculationMethod.jackson_pollock_4: "Jackson-Pollock 4-site",
    CalculationMethod.jackson_pollock_7: "Jackson-Pollock 7-site",
    CalculationMethod.durnin_womersley: "Durnin-Womersley",
    CalculationMethod.parrillo: "Parrillo",
    CalculationMethod.navy_tape: "Navy tape",
}


@dataclass(frozen=True)
class BodyComposition:
    lean_mass_kg: float
    fat_mass_kg: float


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _round1(value: float) -> float:
    return round(value, 1)


def coerce_sex(sex: Sex | str) -> Sex:
    try:
        return Sex(sex)
    except ValueError:
        raise ValidationError(f"Unknown sex {sex!r}; expected 'male' or 'female'") from None


def _require_sites(method: CalculationMethod, readings: dict[str, float | None]) -> float:
    """Return the sum of ``readings`` or raise listing every missing site."""
    missing = [name for name, value in readings.items() if value is None or value <= 0]
    if missing:
        names = ", ".join(readings)
        raise ValidationError(
            f"{_METHOD_LABELS[method]} requires these {len(readings)} sites (mm): {names}; "
            f"missing: {', '.join(missing)}",
            method=method.value,
            missing=missing,
        )
    return sum(readings.values())


def _require_age(method: CalculationMethod, age: float | None) -> float:
    if age is None or age < 0:
        raise ValidationError(
            f"{_METHOD_LABELS[method]} requires the subject's age",
            method=method.value,
            missing=["age"],
        )
    return age


def _quadratic_density(coefficients: tuple[float, float, float, float], total: float, age: float) -> float:
    constant, linear, quadratic, age_term = coefficients
    return constant - linear * total + quadratic * total * total - age_term * age


def _siri(density: float) -> float:
    if density <= 0:
        raise ValidationError(f"Body density must be positive, got {density}")
    return 495 / density - 450


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def siri_body_fat_from_density(density: float) -> float:
    """Convert body density (g/cm^3) to body-fat percent with the Siri equation."""
    return _round1(_siri(density))


def jackson_pollock_3(
    sex: Sex | str,
    age: float | None,
    *,
    chest: float | None = None,
    abdominal: float | None = None,
    thigh: float | None = None,
    tricep: float | None = None,
    suprailiac: float | None = None,
) -> float:
    """Chest/abdominal/thigh for men, tricep/suprailiac/thigh for women."""
    sex = coerce_sex(sex)
    method = CalculationMethod.jackson_pollock_3
    provided = {
        "chest": chest,
        "abdominal": abdominal,
        "thigh": thigh,
        "tricep": tricep,
        "suprailiac": suprailiac,
    }
    # A zero placeholder for the other sex's site is rejected, never summed or ignored
    zeroed = [name for name, value in provided.items() if value is not None and value <= 0]
    if zeroed:
        raise ValidationError(
            f"{_METHOD_LABELS[method]} skinfolds must be positive; got zero or less for: {', '.join(zeroed)}",
            method=method.value,
            missing=zeroed,
        )
    total = _require_sites(method, {name: provided[name] for name in JACKSON_POLLOCK_3_SITES[sex]})
    age = _require_age(method, age)
    density = _quadratic_density(_JP_QUADRATIC_COEFFICIENTS[sex], total, age)
    return siri_body_fat_from_density(density)


def jackson_pollock_4(
    sex: Sex | str,
    age: float | None,
    abdominal: float | None,
    suprailiac: float | None,
    tricep: float | None,
    thigh: float | None,
) -> float:
    sex = coerce_sex(sex)
    method = CalculationMethod.jackson_pollock_4
    total = _require_sites(
        method,
        {"abdominal": abdominal, "suprailiac": suprailiac, "tricep": tricep, "thigh": thigh},
    )
    age = _require_age(method, age)
    density = _quadratic_density(_JP_QUADRATIC_COEFFICIENTS[sex], total, age)
    return siri_body_fat_from_density(density)


def jackson_pollock_7(
    sex: Sex | str,
    age: float | None,
    *,
    chest: float | None = None,
    midaxillary: float | None = None,
    tricep: float | None = None,
    subscapular: float | None = None,
    abdominal: float | None = None,
    suprailiac: float | None = None,
    thigh: float | None = None,
) -> float:
    sex = coerce_sex(sex)
    method = CalculationMethod.jackson_pollock_7
    total = _require_sites(
        method,
        {
            "chest": chest,
            "midaxillary": midaxillary,
            "tricep": tricep,
            "subscapular": subscapular,
            "abdominal": abdominal,
            "suprailiac": suprailiac,
            "thigh": thigh,
        },
    )
    age = _require_age(method, age)
    density = _quadratic_density(_JP7_COEFFICIENTS[sex], total, age)
    return siri_body_fat_from_density(density)


def durnin_womersley_constants(sex: Sex | str, age: float) -> tuple[float, float]:
    """Return the (c, m) pair for the subject's sex and age bracket."""
    sex = coerce_sex(sex)
    for upper_bound, c, m in DURNIN_WOMERSLEY_TABLE[sex]:
        if upper_bound is None or age < upper_bound:
            return c, m
    raise AssertionError("Durnin-Womersley table has no open-ended bracket")


def durnin_womersley(
    sex: Sex | str,
    age: float | None,
    bicep: float | None,
    tricep: float | None,
    subscapular: float | None,
    suprailiac: float | None,
) -> float:
    sex = coerce_sex(sex)
    method = CalculationMethod.durnin_womersley
    total = _require_sites(
        method,
        {"bicep": bicep, "tricep": tricep, "subscapular": subscapular, "suprailiac": suprailiac},
    )
    age = _require_age(method, age)
    c, m = durnin_womersley_constants(sex, age)
    return siri_body_fat_from_density(c - m * math.log10(total))


def parrillo(
    sex: Sex | str,
    *,
    chest: float | None = None,
    abdominal: float | None = None,
    thigh: float | None = None,
    bicep: float | None = None,
    tricep: float | None = None,
    subscapular: float | None = None,
    suprailiac: float | None = None,
    lower_back: float | None = None,
    calf: float | None = None,
    female_offset: float = PARRILLO_FEMALE_OFFSET,
) -> float:
    sex = coerce_sex(sex)
    total = _require_sites(
        CalculationMethod.parrillo,
        {
            "chest": chest,
            "abdominal": abdominal,
            "thigh": thigh,
            "bicep": bicep,
            "tricep": tricep,
            "subscapular": subscapular,
            "suprailiac": suprailiac,
            "lower_back": lower_back,
            "calf": calf,
        },
    )
    body_fat = total * PARRILLO_MULTIPLIER
    if sex is Sex.female:
        body_fat += female_offset
    return _round1(body_fat)


def navy_tape(
    sex: Sex | str,
    height_cm: float | None,
    neck_cm: float | None,
    waist_cm: float | None,
    hip_cm: float | None = None,
) -> float:
    """U.S. Navy circumference method. Women additionally need the hip reading."""
    sex = coerce_sex(sex)
    method = CalculationMethod.navy_tape
    readings = {"height": height_cm, "neck": neck_cm, "waist": waist_cm}
    if sex is Sex.female:
        readings["hip"] = hip_cm
    missing = [name for name, value in readings.items() if value is None or value <= 0]
    if missing:
        raise ValidationError(
            f"Navy tape for a {sex.value} subject requires: {', '.join(readings)} (cm); "
            f"missing: {', '.join(missing)}",
            method=method.value,
            missing=missing,
        )

    if waist_cm <= neck_cm:
        raise ValidationError(
            "Waist must be larger than neck for the Navy tape method",
            method=method.value,
        )

    if sex is Sex.male:
        girth = waist_cm - neck_cm
        constant, girth_term, height_term = 1.0324, 0.19077, 0.15456
    else:
        girth = waist_cm + hip_cm - neck_cm
        constant, girth_term, height_term = 1.29579, 0.35004, 0.22100

    denominator = constant - girth_term * math.log10(girth) + height_term * math.log10(height_cm)
    return siri_body_fat_from_density(denominator)


def body_composition(weight_kg: float, body_fat_percent: float) -> BodyComposition:
    """Split body weight into lean and fat mass."""
    if weight_kg is None or weight_kg <= 0:
        raise ValidationError("Weight (kg) is required for body composition", missing=["weight"])
    if not 0 <= body_fat_percent <= 100:
        raise ValidationError(f"Body-fat percent must be within 0-100, got {body_fat_percent}")
    fat_mass = weight_kg * body_fat_percent / 100
    return BodyComposition(
        lean_mass_kg=_round1(weight_kg - fat_mass),
        fat_mass_kg=_round1(fat_mass),
    )


def bmr(sex: Sex | str, weight_kg: float | None, height_cm: float | None, age: float | None) -> int:
    """Mifflin-St Jeor basal metabolic rate in kcal/day."""
    sex = coerce_sex(sex)
    readings = {"weight": weight_kg, "height": height_cm, "age": age}
    missing = [name for name, value in readings.items() if value is None or value < 0]
    if missing:
        raise ValidationError(f"BMR requires weight, height and age; missing: {', '.join(missing)}", missing=missing)
    offset = 5 if sex is Sex.male else -161
    value = 10 * weight_kg + 6.25 * height_cm - 5 * age + offset
    return math.floor(value + 0.5)
