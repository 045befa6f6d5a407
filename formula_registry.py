"""
Body Composition Formula Registry

Named body surface area (BSA) and lean body mass (LBM) formulas behind a
single lookup. Every formula is a pure function of weight (kg), height (cm)
and, for some LBM formulas, sex, age and ethnicity.

Formula ids that are not registered fall back to the default formula
(DuBois for BSA, Boer for LBM). The fallback is applied in exactly one place,
``resolve_bsa_formula_id`` / ``resolve_lbm_formula_id``, so callers that need
to know whether a fallback happened can use the ``lookup_*`` functions, which
return None for unknown ids.

Key Citations:
- Du Bois & Du Bois (1916), Mosteller (1987), Haycock et al. (1978),
  Gehan & George (1970), Boyd (1935), Dreyer (1915), Livingston & Lee (2001)
- Boer (1984), Hume & Weyers (1971), Yu et al. (2013), Lee et al. (2017),
  Kuch (2001), Janmahasatian et al. (2005)
"""

import logging
import math
from typing import Callable, Dict, Optional

from shared_models import (
    DEFAULT_AGE,
    DEFAULT_BSA_FORMULA,
    DEFAULT_ETHNICITY,
    DEFAULT_LBM_FORMULA,
    Sex,
    parse_sex,
)

logger = logging.getLogger(__name__)

ETHNICITIES = ("white", "black", "hispanic", "mexican", "asian", "other")

# Case-insensitive aliases; anything else normalizes to "other"
ETHNICITY_ALIASES = {
    "white": "white",
    "caucasian": "white",
    "black": "black",
    "african": "black",
    "african american": "black",
    "hispanic": "hispanic",
    "latino": "hispanic",
    "latina": "hispanic",
    "mexican": "mexican",
    "asian": "asian",
    "east asian": "asian",
    "south asian": "asian",
    "other": "other",
}

# Lee et al. (2017) race coefficients, white is the reference group
LEE_RACE_COEFFICIENTS = {
    Sex.MALE: {
        "white": 0.0,
        "black": 1.821,
        "hispanic": 0.32,
        "mexican": -0.441,
        "asian": -0.784,
        "other": -0.784,
    },
    Sex.FEMALE: {
        "white": 0.0,
        "black": 1.128,
        "hispanic": -0.047,
        "mexican": -0.448,
        "asian": -0.384,
        "other": -0.384,
    },
}


def normalize_ethnicity(ethnicity: Optional[str]) -> str:
    """Map a free-form ethnicity string onto one of ETHNICITIES."""
    if not ethnicity:
        return DEFAULT_ETHNICITY
    return ETHNICITY_ALIASES.get(ethnicity.strip().lower(), "other")


def _check_positive(weight: float, height: float):
    if weight <= 0 or height <= 0:
        raise ValueError(
            f"weight and height must be positive (got weight={weight}, height={height})"
        )


# ---------------------------------------------------------------------------
# BSA FORMULAS (weight kg, height cm -> m²)
# ---------------------------------------------------------------------------


def bsa_dubois(weight, height):
    """Du Bois & Du Bois: 0.007184 × H^0.725 × W^0.425"""
    return 0.007184 * height**0.725 * weight**0.425


def bsa_mosteller(weight, height):
    """Mosteller: sqrt(H × W / 3600)"""
    return math.sqrt(height * weight / 3600)


def bsa_haycock(weight, height):
    """Haycock: 0.024265 × H^0.3964 × W^0.5378"""
    return 0.024265 * height**0.3964 * weight**0.5378


def bsa_gehan_george(weight, height):
    """Gehan & George: 0.0235 × H^0.42246 × W^0.51456"""
    return 0.0235 * height**0.42246 * weight**0.51456


def bsa_boyd(weight, height):
    """Boyd: 0.0003207 × H^0.3 × Wg^(0.7285 - 0.0188 log10 Wg), weight in grams"""
    weight_g = weight * 1000
    exponent = 0.7285 - 0.0188 * math.log10(weight_g)
    return 0.0003207 * height**0.3 * weight_g**exponent


def bsa_dreyer(weight, height):
    """Dreyer: 0.1 × W^(2/3) (weight only)"""
    return 0.1 * weight ** (2 / 3)


def bsa_livingston_lee(weight, height):
    """Livingston & Lee: 0.1173 × W^0.6466 (weight only)"""
    return 0.1173 * weight**0.6466


# ---------------------------------------------------------------------------
# LBM FORMULAS (weight kg, height cm, sex, age, ethnicity -> kg)
# ---------------------------------------------------------------------------


def lbm_boer(weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY):
    if sex is Sex.MALE:
        return 0.407 * weight + 0.267 * height - 19.2
    return 0.252 * weight + 0.473 * height - 48.3


def lbm_hume_weyers(weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY):
    if sex is Sex.MALE:
        return 0.3281 * weight + 0.33929 * height - 29.5336
    return 0.29569 * weight + 0.41813 * height - 43.2933


def lbm_yu(weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY):
    """Yu et al. (2013), adjusted for BMI and age."""
    bmi = weight / (height / 100) ** 2
    sex_coefficient = 9.940015 if sex is Sex.MALE else 0.0
    return 22.932326 + 0.684668 * weight - 1.137156 * bmi - 0.009213 * age + sex_coefficient


def lbm_lee(weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY):
    """Lee et al. (2017), with ethnicity adjustment."""
    race_coefficient = LEE_RACE_COEFFICIENTS[sex][normalize_ethnicity(ethnicity)]
    if sex is Sex.MALE:
        return -14.729 - 0.071 * age + 0.210 * height + 0.468 * weight + race_coefficient
    return -14.292 - 0.046 * age + 0.201 * height + 0.347 * weight + race_coefficient


def lbm_kuch(weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY):
    """Kuch (2001). Estimates fat-free mass rather than LBM."""
    height_m = height / 100
    if sex is Sex.MALE:
        return 5.1 * height_m**1.14 * weight**0.41
    return 5.34 * height_m**1.47 * weight**0.33


def lbm_janmahasatian(weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY):
    """Janmahasatian et al. (2005). Estimates fat-free mass."""
    bmi = weight / (height / 100) ** 2
    if sex is Sex.MALE:
        return 9270 * weight / (6680 + 216 * bmi)
    return 9270 * weight / (8780 + 244 * bmi)


BSA_FORMULAS: Dict[str, Callable] = {
    "dubois": bsa_dubois,
    "mosteller": bsa_mosteller,
    "haycock": bsa_haycock,
    "gehan": bsa_gehan_george,
    "boyd": bsa_boyd,
    "dreyer": bsa_dreyer,
    "livingston": bsa_livingston_lee,
}

LBM_FORMULAS: Dict[str, Callable] = {
    "boer": lbm_boer,
    "hume": lbm_hume_weyers,
    "yu": lbm_yu,
    "lee": lbm_lee,
    "kuch": lbm_kuch,
    "janmahasatian": lbm_janmahasatian,
}

BSA_FORMULA_INFO = {
    "boyd": {"name": "Boyd", "year": 1935, "parameters": ["weight", "height"], "notes": "Complex logarithmic formula"},
    "dreyer": {"name": "Dreyer", "year": 1915, "parameters": ["weight"], "notes": "Weight-only formula"},
    "dubois": {"name": "Du Bois & Du Bois", "year": 1916, "parameters": ["weight", "height"], "notes": "Most cited formula"},
    "gehan": {"name": "Gehan & George", "year": 1970, "parameters": ["weight", "height"], "notes": "Cancer research focus"},
    "haycock": {"name": "Haycock et al.", "year": 1978, "parameters": ["weight", "height"], "notes": "Good for pediatrics"},
    "livingston": {"name": "Livingston & Lee", "year": 2001, "parameters": ["weight"], "notes": "Modern weight-based"},
    "mosteller": {"name": "Mosteller", "year": 1987, "parameters": ["weight", "height"], "notes": "Default MESA formula"},
}

LBM_FORMULA_INFO = {
    "boer": {"name": "Boer", "year": 1984, "parameters": ["weight", "height", "sex"], "notes": "Most commonly used"},
    "hume": {"name": "Hume & Weyers", "year": 1971, "parameters": ["weight", "height", "sex"], "notes": "Classic formula"},
    "janmahasatian": {"name": "Janmahasatian et al.", "year": 2005, "parameters": ["weight", "height", "sex"], "notes": "BMI-adjusted FFM"},
    "kuch": {"name": "Kuch", "year": 2001, "parameters": ["weight", "height", "sex"], "notes": "Calculates FFM, not LBM"},
    "lee": {"name": "Lee et al.", "year": 2017, "parameters": ["weight", "height", "sex", "age", "ethnicity"], "notes": "Most comprehensive"},
    "yu": {"name": "Yu et al.", "year": 2013, "parameters": ["weight", "height", "sex", "age"], "notes": "Includes age and BMI"},
}


# ---------------------------------------------------------------------------
# LOOKUP AND FALLBACK
# ---------------------------------------------------------------------------


def lookup_bsa_formula(formula_id) -> Optional[Callable]:
    """Registered BSA formula for ``formula_id``, or None if unknown."""
    if not isinstance(formula_id, str):
        return None
    return BSA_FORMULAS.get(formula_id.lower())


def lookup_lbm_formula(formula_id) -> Optional[Callable]:
    """Registered LBM formula for ``formula_id``, or None if unknown."""
    if not isinstance(formula_id, str):
        return None
    return LBM_FORMULAS.get(formula_id.lower())


def resolve_bsa_formula_id(formula_id) -> str:
    """Registered id for ``formula_id``; unknown ids resolve to the default."""
    if lookup_bsa_formula(formula_id) is None:
        logger.debug(
            f"Unknown BSA formula {formula_id!r}, using {DEFAULT_BSA_FORMULA}"
        )
        return DEFAULT_BSA_FORMULA
    return formula_id.lower()


def resolve_lbm_formula_id(formula_id) -> str:
    """Registered id for ``formula_id``; unknown ids resolve to the default."""
    if lookup_lbm_formula(formula_id) is None:
        logger.debug(
            f"Unknown LBM formula {formula_id!r}, using {DEFAULT_LBM_FORMULA}"
        )
        return DEFAULT_LBM_FORMULA
    return formula_id.lower()


def compute_bsa(formula_id, weight, height):
    """
    Calculate body surface area with a named formula.

    Args:
        formula_id (str): Registered BSA formula id. Unknown ids silently fall
            back to DuBois.
        weight (float): Weight in kg (> 0).
        height (float): Height in cm (> 0).

    Returns:
        float: BSA in m².

    Raises:
        ValueError: If weight or height is not strictly positive.
    """
    _check_positive(weight, height)
    return BSA_FORMULAS[resolve_bsa_formula_id(formula_id)](weight, height)


def compute_lbm(
    formula_id, weight, height, sex, age=DEFAULT_AGE, ethnicity=DEFAULT_ETHNICITY
):
    """
    Calculate lean body mass with a named formula.

    Args:
        formula_id (str): Registered LBM formula id. Unknown ids silently fall
            back to Boer.
        weight (float): Weight in kg (> 0).
        height (float): Height in cm (> 0).
        sex (Sex or str): 'male' or 'female'.
        age (float): Age in years, used by Yu and Lee (default 50).
        ethnicity (str): Used by Lee; normalized through ETHNICITY_ALIASES.

    Returns:
        float: LBM in kg.

    Raises:
        ValueError: If weight or height is not strictly positive, or sex is
            not recognized.
    """
    _check_positive(weight, height)
    sex = parse_sex(sex)
    if age is None:
        age = DEFAULT_AGE
    calculator = LBM_FORMULAS[resolve_lbm_formula_id(formula_id)]
    return calculator(weight, height, sex, age, normalize_ethnicity(ethnicity))
