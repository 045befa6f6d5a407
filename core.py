"""
Core Cardiac Scaling Analysis Logic

This module contains the back-calculation engine and the universal coefficient
derivation. It is the computational engine behind the CLI and the curve
generator.

Sections:
- Back-calculation of absolute values from published indexed statistics
- Per-sex and universal coefficient generation
- Validation of derived coefficients
- Batch derivation, summaries and tabular views

Method:
1. Build the canonical male and female reference individuals with the
   selected BSA and LBM formulas.
2. Recover each sex's absolute measurement from every published indexed
   statistic (upper reference limit × the matching body-size variable) and
   average the estimates.
3. Divide by LBM^exponent to get per-sex LBM coefficients; their mean is the
   universal coefficient. Sex-specific BSA coefficients are kept for
   comparison.
4. Check the coefficients against plausible ranges and require the male and
   female LBM coefficients to be similar.
"""

import functools
import logging
from typing import Dict, List, Optional

import pandas as pd

from formula_registry import resolve_bsa_formula_id, resolve_lbm_formula_id
from measurement_data import MEASUREMENTS, get_measurement
from population_model import get_canonical_reference
from scaling_laws import MIN_SEX_SIMILARITY, exponents_for, validation_bounds_for
from shared_models import (
    DEFAULT_AGE,
    DEFAULT_BSA_FORMULA,
    DEFAULT_ETHNICITY,
    DEFAULT_LBM_FORMULA,
    BackCalculation,
    CoefficientResult,
    CoefficientValidation,
    DimensionalType,
    FormulaSelection,
    IndexType,
    MeasurementDefinition,
    PopulationCharacteristics,
    Sex,
    UnknownUnitError,
    parse_sex,
)

logger = logging.getLogger(__name__)

# Body-size value each index type was divided by (height in meters)
INDEX_DENOMINATORS = {
    IndexType.BSA: lambda population: population.bsa,
    IndexType.BMI: lambda population: population.bmi,
    IndexType.HEIGHT: lambda population: population.height_m,
    IndexType.HEIGHT_1_6: lambda population: population.height_m**1.6,
    IndexType.HEIGHT_2_7: lambda population: population.height_m**2.7,
    IndexType.HEIGHT_SQUARED: lambda population: population.height_m**2,
}


# ---------------------------------------------------------------------------
# BACK-CALCULATION ENGINE
# ---------------------------------------------------------------------------


def index_denominator(index_type: IndexType, population: PopulationCharacteristics) -> float:
    """Value of the body-size index ``index_type`` for ``population``."""
    return INDEX_DENOMINATORS[IndexType(index_type)](population)


def back_calculate_absolute(
    measurement: MeasurementDefinition, sex, population: PopulationCharacteristics
) -> BackCalculation:
    """
    Recovers an absolute measurement value from published indexed statistics.

    Every indexed statistic published for ``sex`` yields one estimate: its upper
    reference limit (mean + 1.65 SD) multiplied by the population's value of
    the same index. The absolute value is the arithmetic mean of all
    estimates.

    Args:
        measurement (MeasurementDefinition): Measurement with indexed statistics.
        sex (Sex or str): Which sex's statistics to use.
        population (PopulationCharacteristics): Reference individual.

    Returns:
        BackCalculation: Absolute value plus per-index estimates. When no
        statistics are published for ``sex`` the absolute value is 0 and the
        result is degenerate; this is reported by validation, not raised.
    """
    statistics = measurement.statistics_for(sex)
    estimates = {}
    indexed_values = {}

    for index_type in IndexType:
        statistic = statistics.get(index_type)
        if statistic is None:
            continue
        indexed_value = statistic.upper_limit
        indexed_values[index_type] = indexed_value
        estimates[index_type] = indexed_value * index_denominator(index_type, population)

    absolute = sum(estimates.values()) / len(estimates) if estimates else 0.0
    return BackCalculation(
        absolute=absolute, estimates=estimates, indexed_values=indexed_values
    )


# ---------------------------------------------------------------------------
# COEFFICIENT GENERATION
# ---------------------------------------------------------------------------


def lbm_coefficient(absolute_value, lbm, exponent):
    """Coefficient k in absolute = k × LBM^exponent (0 for degenerate inputs)."""
    if lbm <= 0 or absolute_value <= 0:
        return 0.0
    return absolute_value / lbm**exponent


def bsa_coefficient(absolute_value, bsa, exponent):
    """Coefficient k in absolute = k × BSA^exponent (0 for degenerate inputs)."""
    if bsa <= 0 or absolute_value <= 0:
        return 0.0
    return absolute_value / bsa**exponent


def sex_similarity(male_coefficient, female_coefficient):
    """
    Similarity of male and female coefficients in [0, 1].

    1 means identical coefficients; 0 is returned whenever either coefficient
    is not positive.
    """
    if male_coefficient <= 0 or female_coefficient <= 0:
        return 0.0
    return 1 - abs(male_coefficient - female_coefficient) / max(
        male_coefficient, female_coefficient
    )


def _check_range(label, value, bounds, warnings):
    if bounds is None:
        return True
    low, high = bounds
    if value < low or value > high:
        warnings.append(
            f"{label} {value:.3f} outside expected range {low}-{high}"
        )
        return False
    return True


def validate_coefficients(
    dimensional_type: DimensionalType,
    universal_lbm: float,
    bsa_coefficients: Dict[Sex, float],
    similarity: float,
    back_calculation: Optional[Dict[Sex, BackCalculation]] = None,
) -> CoefficientValidation:
    """
    Validate derived coefficients for biological plausibility.

    Every failed check adds a warning and marks the result invalid; nothing is
    raised, so one implausible measurement never blocks a batch.
    """
    dimensional_type = DimensionalType(dimensional_type)
    bounds = validation_bounds_for(dimensional_type)
    warnings = []
    is_valid = True

    for sex, calculation in (back_calculation or {}).items():
        if calculation.is_degenerate:
            warnings.append(
                f"No indexed statistics available for {sex.value}; back-calculated value is 0"
            )
            is_valid = False

    if not _check_range(
        f"LBM coefficient (outside {dimensional_type.value} bounds)",
        universal_lbm,
        bounds["lbm"],
        warnings,
    ):
        is_valid = False

    for sex in Sex:
        if not _check_range(
            f"{sex.value.capitalize()} BSA coefficient",
            bsa_coefficients[sex],
            bounds["bsa"],
            warnings,
        ):
            is_valid = False

    if similarity < MIN_SEX_SIMILARITY:
        warnings.append(
            f"Low sex similarity ({similarity * 100:.1f}%) suggests potential issues "
            "with universal LBM scaling hypothesis"
        )
        is_valid = False

    return CoefficientValidation(
        is_valid=is_valid, warnings=tuple(warnings), sex_similarity=similarity
    )


def derive_coefficients(
    measurement,
    bsa_formula=DEFAULT_BSA_FORMULA,
    lbm_formula=DEFAULT_LBM_FORMULA,
    measurements=None,
    age=DEFAULT_AGE,
    ethnicity=DEFAULT_ETHNICITY,
) -> Optional[CoefficientResult]:
    """
    Generates the universal LBM coefficient and sex-specific BSA coefficients.

    Args:
        measurement (str or MeasurementDefinition): Measurement id or record.
        bsa_formula (str): BSA formula id (unknown ids fall back to DuBois).
        lbm_formula (str): LBM formula id (unknown ids fall back to Boer).
        measurements (sequence): Catalog to resolve ids against; defaults to
            the published reference table.
        age (float): Age passed to age-dependent LBM formulas; None means
            DEFAULT_AGE.
        ethnicity (str): Ethnicity passed to the Lee LBM formula.

    Returns:
        CoefficientResult, or None when the measurement id does not exist.

    Raises:
        UnknownUnitError: If the measurement's unit has no dimensional type.
    """
    if not isinstance(measurement, MeasurementDefinition):
        measurement_id = measurement
        measurement = get_measurement(measurement_id, measurements)
        if measurement is None:
            logger.warning(f"Measurement {measurement_id!r} not found")
            return None

    dimensional_type = measurement.dimensional_type
    exponents = exponents_for(dimensional_type)
    selection = FormulaSelection(
        bsa_formula=resolve_bsa_formula_id(bsa_formula),
        lbm_formula=resolve_lbm_formula_id(lbm_formula),
        age=age,
        ethnicity=ethnicity,
    )

    populations = {sex: get_canonical_reference(sex, selection) for sex in Sex}
    back_calculation = {
        sex: back_calculate_absolute(measurement, sex, populations[sex]) for sex in Sex
    }

    lbm_coefficients = {
        sex: lbm_coefficient(back_calculation[sex].absolute, populations[sex].lbm, exponents.lbm)
        for sex in Sex
    }
    bsa_coefficients = {
        sex: bsa_coefficient(back_calculation[sex].absolute, populations[sex].bsa, exponents.bsa)
        for sex in Sex
    }

    # Averaging tests whether LBM scaling is sex-independent
    universal_lbm = (lbm_coefficients[Sex.MALE] + lbm_coefficients[Sex.FEMALE]) / 2
    similarity = sex_similarity(lbm_coefficients[Sex.MALE], lbm_coefficients[Sex.FEMALE])

    validation = validate_coefficients(
        dimensional_type, universal_lbm, bsa_coefficients, similarity, back_calculation
    )

    logger.info(
        f"{measurement.id}: universal LBM coefficient {universal_lbm:.4f} "
        f"(similarity {similarity:.3f}, valid={validation.is_valid})"
    )

    return CoefficientResult(
        measurement_id=measurement.id,
        measurement_name=measurement.name,
        dimensional_type=dimensional_type,
        exponents=exponents,
        universal_lbm=universal_lbm,
        lbm_coefficients=lbm_coefficients,
        bsa_coefficients=bsa_coefficients,
        back_calculation=back_calculation,
        populations=populations,
        validation=validation,
        bsa_formula=selection.bsa_formula,
        lbm_formula=selection.lbm_formula,
        age=selection.age,
        ethnicity=selection.ethnicity,
    )


@functools.lru_cache(maxsize=256)
def derive_coefficients_cached(
    measurement_id, bsa_formula=DEFAULT_BSA_FORMULA, lbm_formula=DEFAULT_LBM_FORMULA
):
    """
    Memoized derive_coefficients for the published reference table.

    Keyed by (measurement_id, bsa_formula, lbm_formula); results are immutable
    so sharing them between callers is safe.
    """
    return derive_coefficients(measurement_id, bsa_formula, lbm_formula)


def derive_all_coefficients(
    bsa_formula=DEFAULT_BSA_FORMULA,
    lbm_formula=DEFAULT_LBM_FORMULA,
    measurements=None,
    age=DEFAULT_AGE,
    ethnicity=DEFAULT_ETHNICITY,
) -> List[CoefficientResult]:
    """
    Derive coefficients for every measurement in the catalog.

    A record whose unit cannot be classified is logged and skipped; the rest
    of the batch is still derived.
    """
    results = []
    for measurement in MEASUREMENTS if measurements is None else measurements:
        try:
            results.append(
                derive_coefficients(
                    measurement, bsa_formula, lbm_formula, age=age, ethnicity=ethnicity
                )
            )
        except UnknownUnitError as e:
            logger.warning(f"Skipping {measurement.id}: {e}")
    return results


def predict_measurement(result: CoefficientResult, sex, lbm, bsa=None):
    """
    Predict a measurement with the universal LBM coefficient.

    The prediction is universal_lbm × LBM^exponent for either sex. ``bsa`` is
    accepted for symmetry with predict_measurement_bsa; the BSA coefficients
    are reported alongside but never blended in. ``sex`` is only validated,
    since the universal coefficient is the same for both sexes.
    """
    parse_sex(sex)
    return result.universal_lbm * lbm**result.exponents.lbm


def predict_measurement_bsa(result: CoefficientResult, sex, bsa):
    """Predict a measurement with the sex-specific BSA coefficient."""
    sex = parse_sex(sex)
    return result.bsa_coefficients[sex] * bsa**result.exponents.bsa


# ---------------------------------------------------------------------------
# SUMMARIES
# ---------------------------------------------------------------------------


def summarize_coefficients(results: List[CoefficientResult]):
    """
    Summary statistics for a batch of coefficient results.

    Returns:
        dict: total count, count per dimensional type, mean universal LBM
        coefficient and mean sex similarity per type, number of valid results
        and total number of warnings.
    """
    by_type = {}
    averages = {}
    for dimensional_type in DimensionalType:
        of_type = [r for r in results if r.dimensional_type is dimensional_type]
        by_type[dimensional_type.value] = len(of_type)
        if of_type:
            averages[dimensional_type.value] = {
                "lbm": sum(r.universal_lbm for r in of_type) / len(of_type),
                "sex_similarity": sum(r.validation.sex_similarity for r in of_type)
                / len(of_type),
            }
        else:
            averages[dimensional_type.value] = {"lbm": 0.0, "sex_similarity": 0.0}

    return {
        "total": len(results),
        "by_type": by_type,
        "averages": averages,
        "validation": {
            "valid": sum(1 for r in results if r.validation.is_valid),
            "warnings": sum(len(r.validation.warnings) for r in results),
        },
    }


def coefficients_to_dataframe(results: List[CoefficientResult]) -> pd.DataFrame:
    """One row per measurement with coefficients, absolutes and validation."""
    rows = []
    for result in results:
        rows.append(
            {
                "measurement_id": result.measurement_id,
                "measurement": result.measurement_name,
                "type": result.dimensional_type.value,
                "lbm_exponent": result.exponents.lbm,
                "universal_lbm": result.universal_lbm,
                "male_lbm": result.lbm_coefficients[Sex.MALE],
                "female_lbm": result.lbm_coefficients[Sex.FEMALE],
                "male_bsa": result.bsa_coefficients[Sex.MALE],
                "female_bsa": result.bsa_coefficients[Sex.FEMALE],
                "male_absolute": result.back_calculation[Sex.MALE].absolute,
                "female_absolute": result.back_calculation[Sex.FEMALE].absolute,
                "sex_similarity": result.validation.sex_similarity,
                "is_valid": result.validation.is_valid,
                "warnings": len(result.validation.warnings),
            }
        )
    columns = [
        "measurement_id",
        "measurement",
        "type",
        "lbm_exponent",
        "universal_lbm",
        "male_lbm",
        "female_lbm",
        "male_bsa",
        "female_bsa",
        "male_absolute",
        "female_absolute",
        "sex_similarity",
        "is_valid",
        "warnings",
    ]
    return pd.DataFrame(rows, columns=columns)
