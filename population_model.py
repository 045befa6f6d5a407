"""
Reference and Swept Populations

Canonical reference individuals used for back-calculation, deterministic
sweeps over height and BMI, and a seeded sampler of realistic populations.

BSA and LBM are never stored as literals: every PopulationCharacteristics is
built from (height, BMI, sex) with the caller's FormulaSelection, so changing
the selected formula always yields freshly derived values.
"""

import logging
import math
from types import MappingProxyType
from typing import List, Optional

import numpy as np

from formula_registry import compute_bsa, compute_lbm
from shared_models import FormulaSelection, PopulationCharacteristics, Sex, parse_sex

logger = logging.getLogger(__name__)

# Typical adults at the upper limit of normal BMI
CANONICAL_ANTHROPOMETRICS = MappingProxyType(
    {
        Sex.MALE: MappingProxyType({"height": 178.0, "bmi": 25.0}),
        Sex.FEMALE: MappingProxyType({"height": 164.0, "bmi": 25.0}),
    }
)

# Physiological spectrum covered by sweeps, from short adults to very tall ones
POPULATION_GENERATION_RANGES = MappingProxyType(
    {
        "height": MappingProxyType({"min": 120.0, "max": 220.0, "step": 2.0}),  # cm
        "bmi": MappingProxyType({"min": 16.0, "max": 45.0, "step": 1.0}),  # kg/m²
        "age": MappingProxyType({"min": 18.0, "max": 80.0, "step": 5.0}),  # years
    }
)

# Normal-distribution parameters for sample_realistic
REALISTIC_POPULATION_PARAMS = MappingProxyType(
    {
        Sex.MALE: MappingProxyType(
            {"height_mean": 178.0, "height_sd": 7.0, "bmi_mean": 26.0, "bmi_sd": 4.0}
        ),
        Sex.FEMALE: MappingProxyType(
            {"height_mean": 164.0, "height_sd": 6.0, "bmi_mean": 25.0, "bmi_sd": 4.0}
        ),
    }
)

HEIGHT_CLAMP = (120.0, 220.0)
BMI_CLAMP = (16.0, 45.0)

BMI_CATEGORIES = (
    ("underweight", 16.0, 18.5, "Underweight"),
    ("normal", 18.5, 25.0, "Normal"),
    ("overweight", 25.0, 30.0, "Overweight"),
    ("obese_1", 30.0, 35.0, "Obese Class I"),
    ("obese_2", 35.0, 40.0, "Obese Class II"),
    ("obese_3", 40.0, 45.0, "Obese Class III"),
)


def weight_from_bmi(height, bmi):
    """Weight (kg) of an individual of ``height`` cm at ``bmi`` kg/m²."""
    height_m = height / 100
    return bmi * height_m * height_m


def bmi_category(bmi):
    """BMI category key (underweight ... obese_3)."""
    for key, _, upper, _ in BMI_CATEGORIES[:-1]:
        if bmi < upper:
            return key
    return BMI_CATEGORIES[-1][0]


def range_values(range_spec) -> List[float]:
    """
    Inclusive, evenly spaced values for a {"min", "max", "step"} range.

    Values are computed as min + i * step rather than by accumulation so long
    sweeps do not drift.
    """
    start = float(range_spec["min"])
    stop = float(range_spec["max"])
    step = float(range_spec.get("step") or 1.0)
    if step <= 0:
        raise ValueError("range step must be positive")
    if stop < start:
        return []
    count = int(math.floor((stop - start) / step + 1e-9)) + 1
    return [round(start + i * step, 10) for i in range(count)]


def build_population(
    height, bmi, sex, selection: Optional[FormulaSelection] = None
) -> PopulationCharacteristics:
    """
    Derive the full anthropometrics of one individual.

    Args:
        height (float): Height in cm.
        bmi (float): BMI in kg/m².
        sex (Sex or str): 'male' or 'female'.
        selection (FormulaSelection): BSA/LBM formulas, age and ethnicity.

    Returns:
        PopulationCharacteristics with weight, BSA and LBM derived.
    """
    selection = selection or FormulaSelection()
    sex = parse_sex(sex)
    weight = weight_from_bmi(height, bmi)
    bsa = compute_bsa(selection.bsa_formula, weight, height)
    lbm = compute_lbm(
        selection.lbm_formula,
        weight,
        height,
        sex,
        selection.age,
        selection.ethnicity,
    )
    return PopulationCharacteristics(
        height=float(height), weight=float(weight), bmi=float(bmi), bsa=float(bsa), lbm=float(lbm)
    )


def get_canonical_reference(
    sex, selection: Optional[FormulaSelection] = None
) -> PopulationCharacteristics:
    """Canonical reference individual (178 cm male / 164 cm female, BMI 25)."""
    sex = parse_sex(sex)
    anthropometrics = CANONICAL_ANTHROPOMETRICS[sex]
    return build_population(
        anthropometrics["height"], anthropometrics["bmi"], sex, selection
    )


def get_canonical_references(selection: Optional[FormulaSelection] = None):
    """Both canonical reference individuals, keyed by Sex."""
    return {sex: get_canonical_reference(sex, selection) for sex in Sex}


def sweep_by_height(
    sex, fixed_bmi=25.0, height_range=None, selection: Optional[FormulaSelection] = None
) -> List[PopulationCharacteristics]:
    """Individuals across a height range at a fixed BMI, ordered by height."""
    height_range = height_range or POPULATION_GENERATION_RANGES["height"]
    return [
        build_population(height, fixed_bmi, sex, selection)
        for height in range_values(height_range)
    ]


def sweep_by_bmi(
    sex, fixed_height=170.0, bmi_range=None, selection: Optional[FormulaSelection] = None
) -> List[PopulationCharacteristics]:
    """Individuals across a BMI range at a fixed height, ordered by BMI."""
    bmi_range = bmi_range or POPULATION_GENERATION_RANGES["bmi"]
    return [
        build_population(fixed_height, bmi, sex, selection)
        for bmi in range_values(bmi_range)
    ]


def sweep_grid(
    sex, height_range=None, bmi_range=None, selection: Optional[FormulaSelection] = None
) -> List[PopulationCharacteristics]:
    """Every (height, BMI) combination, height-major."""
    height_range = height_range or POPULATION_GENERATION_RANGES["height"]
    bmi_range = bmi_range or POPULATION_GENERATION_RANGES["bmi"]
    bmis = range_values(bmi_range)
    return [
        build_population(height, bmi, sex, selection)
        for height in range_values(height_range)
        for bmi in bmis
    ]


def sample_realistic(
    sex,
    n=1000,
    seed=None,
    selection: Optional[FormulaSelection] = None,
    height_mean=None,
    height_sd=None,
    bmi_mean=None,
    bmi_sd=None,
) -> List[PopulationCharacteristics]:
    """
    Draw ``n`` individuals from independent normal distributions of height and BMI.

    Heights are clamped to [120, 220] cm and BMIs to [16, 45] kg/m². This is the
    only stochastic operation in the pipeline; pass ``seed`` for reproducible
    samples. Without a seed the output is not deterministic.

    Args:
        sex (Sex or str): 'male' or 'female'.
        n (int): Sample size.
        seed (int): Seed for numpy's RandomState.
        selection (FormulaSelection): Formulas used to derive BSA and LBM.
        height_mean, height_sd, bmi_mean, bmi_sd (float): Override the
            REALISTIC_POPULATION_PARAMS defaults for ``sex``.

    Returns:
        list of PopulationCharacteristics
    """
    sex = parse_sex(sex)
    if n < 0:
        raise ValueError("sample size must be non-negative")

    params = REALISTIC_POPULATION_PARAMS[sex]
    h_mean = params["height_mean"] if height_mean is None else height_mean
    h_sd = params["height_sd"] if height_sd is None else height_sd
    b_mean = params["bmi_mean"] if bmi_mean is None else bmi_mean
    b_sd = params["bmi_sd"] if bmi_sd is None else bmi_sd

    rng = np.random.RandomState(seed)
    z = rng.standard_normal(size=(n, 2))
    heights = np.clip(h_mean + z[:, 0] * h_sd, *HEIGHT_CLAMP)
    bmis = np.clip(b_mean + z[:, 1] * b_sd, *BMI_CLAMP)

    logger.debug(f"Sampled {n} {sex.value} individuals (seed={seed})")
    return [
        build_population(float(height), float(bmi), sex, selection)
        for height, bmi in zip(heights, bmis)
    ]
