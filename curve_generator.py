"""
Comparison Curve Generator

Builds the biological (universal LBM coefficient) and ratiometric (published
indexed upper limit × body-size index) curves shown side by side for a
measurement.

The biological curve only exists where the swept population can actually
reach: each sex is swept over height at a fixed BMI, and the resulting
(index, prediction) samples are aligned onto the requested axis grid by linear
interpolation. Axis values outside the sampled range, or farther than the
alignment tolerance from every sample, are None rather than extrapolated.
Ratiometric lines are exact straight lines through the origin and are
defined everywhere on the axis.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import interp1d

from core import derive_coefficients, predict_measurement
from measurement_data import get_measurement
from population_model import CANONICAL_ANTHROPOMETRICS, range_values, sweep_by_height
from shared_models import (
    CoefficientResult,
    ComparisonPoint,
    FormulaSelection,
    IndexType,
    MeasurementDefinition,
    PopulationCharacteristics,
    ReferencePoint,
    ScalingVariable,
    Sex,
    parse_sex,
)

logger = logging.getLogger(__name__)

DEFAULT_CURVE_BMI = 24.0

# Requested axis grid per independent variable (BSA m², height m)
DEFAULT_AXIS_RANGES = {
    ScalingVariable.BSA: {"min": 0.0, "max": 3.5, "step": 0.05},
    ScalingVariable.HEIGHT: {"min": 0.0, "max": 2.4, "step": 0.02},
}

# Maximum distance from the requested axis value to the nearest sample
ALIGNMENT_TOLERANCES = {
    ScalingVariable.BSA: 0.1,
    ScalingVariable.HEIGHT: 0.05,
}

# Index whose upper limit is the ratiometric slope on each axis
RATIOMETRIC_INDEX = {
    ScalingVariable.BSA: IndexType.BSA,
    ScalingVariable.HEIGHT: IndexType.HEIGHT,
}


def _check_axis(axis) -> ScalingVariable:
    axis = ScalingVariable(axis)
    if axis not in RATIOMETRIC_INDEX:
        raise ValueError(
            f"Unsupported comparison axis: {axis.value}. Use 'bsa' or 'height'."
        )
    return axis


def axis_value(population: PopulationCharacteristics, axis) -> float:
    """Position of ``population`` on the independent axis."""
    if ScalingVariable(axis) is ScalingVariable.HEIGHT:
        return population.height_m
    return population.bsa


def axis_grid(axis_range=None, axis=ScalingVariable.BSA) -> np.ndarray:
    """Requested axis values, inclusive of both ends."""
    axis = _check_axis(axis)
    return np.array(range_values(axis_range or DEFAULT_AXIS_RANGES[axis]))


# ---------------------------------------------------------------------------
# BIOLOGICAL CURVE
# ---------------------------------------------------------------------------


def generate_biological_curve(
    result: CoefficientResult,
    sex,
    fixed_bmi=DEFAULT_CURVE_BMI,
    height_range=None,
    selection: Optional[FormulaSelection] = None,
    axis=ScalingVariable.BSA,
) -> List[Tuple[float, float]]:
    """
    Samples the universal-coefficient prediction over a height sweep.

    Args:
        result (CoefficientResult): Derived coefficients for the measurement.
        sex (Sex or str): Which sex to sweep.
        fixed_bmi (float): BMI held constant across the sweep.
        height_range (dict): {"min", "max", "step"} in cm; defaults to the
            population generation range (120-220 cm).
        selection (FormulaSelection): Formulas for BSA and LBM; defaults to
            the formulas the coefficients were derived with.
        axis (ScalingVariable): Independent variable, BSA or height.

    Returns:
        list of (axis value, predicted measurement) tuples sorted by axis value.
    """
    axis = _check_axis(axis)
    sex = parse_sex(sex)
    selection = selection or result.selection

    samples = [
        (axis_value(population, axis), predict_measurement(result, sex, population.lbm, population.bsa))
        for population in sweep_by_height(sex, fixed_bmi, height_range, selection)
        if population.lbm > 0
    ]
    samples.sort(key=lambda sample: sample[0])
    return samples


def interpolate_biological(
    samples: Sequence[Tuple[float, float]], axis_values, tolerance=0.1
) -> List[Optional[float]]:
    """
    Align biological samples onto requested axis values.

    Values are linearly interpolated between the two neighbouring samples.
    An axis value outside [min, max] of the samples, or whose nearest sample
    is more than ``tolerance`` away, gives None.
    """
    axis_values = np.asarray(axis_values, dtype=float)
    if len(samples) == 0:
        return [None] * len(axis_values)

    xs = np.array([sample[0] for sample in samples], dtype=float)
    ys = np.array([sample[1] for sample in samples], dtype=float)

    if len(xs) == 1:
        # A single sample spans no range; only an exact hit is inside it
        return [float(ys[0]) if value == xs[0] else None for value in axis_values]

    interpolator = interp1d(xs, ys, kind="linear", bounds_error=False, fill_value=np.nan)
    interpolated = interpolator(axis_values)

    aligned = []
    for value, y in zip(axis_values, interpolated):
        if value < xs.min() or value > xs.max() or np.isnan(y):
            aligned.append(None)
        elif np.min(np.abs(xs - value)) > tolerance:
            aligned.append(None)
        else:
            aligned.append(float(y))
    return aligned


# ---------------------------------------------------------------------------
# RATIOMETRIC LINES
# ---------------------------------------------------------------------------


def ratiometric_slope(measurement: MeasurementDefinition, sex, axis=ScalingVariable.BSA):
    """Upper reference limit of the index matching ``axis``, or None if unpublished."""
    axis = _check_axis(axis)
    statistic = measurement.statistics_for(sex).get(RATIOMETRIC_INDEX[axis])
    if statistic is None:
        return None
    return statistic.upper_limit


def ratiometric_comparison(measurement: MeasurementDefinition, axis=ScalingVariable.BSA):
    """
    Male and female ratiometric slopes and their relative difference (%).

    A large difference means plain ratio indexing needs sex-specific limits.
    """
    male = ratiometric_slope(measurement, Sex.MALE, axis)
    female = ratiometric_slope(measurement, Sex.FEMALE, axis)
    if male is None or female is None or max(male, female) <= 0:
        relative_difference = None
    else:
        relative_difference = abs(male - female) / max(male, female) * 100
    return {"male": male, "female": female, "relative_difference": relative_difference}


# ---------------------------------------------------------------------------
# COMPARISON CURVE
# ---------------------------------------------------------------------------


def generate_comparison_curve(
    measurement,
    result: Optional[CoefficientResult] = None,
    axis_range=None,
    fixed_bmi=DEFAULT_CURVE_BMI,
    selection: Optional[FormulaSelection] = None,
    axis=ScalingVariable.BSA,
    height_range=None,
) -> Optional[List[ComparisonPoint]]:
    """
    Generates the biological vs ratiometric comparison curve.

    Args:
        measurement (str or MeasurementDefinition): Measurement id or record.
        result (CoefficientResult): Coefficients to use; derived from
            ``selection`` when omitted.
        axis_range (dict): {"min", "max", "step"} of the independent axis.
        fixed_bmi (float): BMI of the height sweep behind the biological curve.
        selection (FormulaSelection): BSA/LBM formulas for the sweep.
        axis (ScalingVariable): BSA (m²) or height (m).
        height_range (dict): Heights (cm) swept for the biological curve.

    Returns:
        list of ComparisonPoint ordered by independent variable, or None when
        the measurement id does not exist.
    """
    axis = _check_axis(axis)
    if not isinstance(measurement, MeasurementDefinition):
        measurement_id = measurement
        measurement = get_measurement(measurement_id)
        if measurement is None:
            logger.warning(f"Measurement {measurement_id!r} not found")
            return None

    if result is None:
        selection = selection or FormulaSelection()
        result = derive_coefficients(
            measurement,
            selection.bsa_formula,
            selection.lbm_formula,
            age=selection.age,
            ethnicity=selection.ethnicity,
        )
    selection = selection or result.selection

    grid = axis_grid(axis_range, axis)
    tolerance = ALIGNMENT_TOLERANCES[axis]
    biological = {
        sex: interpolate_biological(
            generate_biological_curve(result, sex, fixed_bmi, height_range, selection, axis),
            grid,
            tolerance,
        )
        for sex in Sex
    }
    slopes = {sex: ratiometric_slope(measurement, sex, axis) for sex in Sex}

    def ratiometric(sex, x):
        return None if slopes[sex] is None else slopes[sex] * x

    curve = []
    for i, x in enumerate(grid):
        x = float(x)
        curve.append(
            ComparisonPoint(
                independent_var=x,
                ratiometric_male=ratiometric(Sex.MALE, x),
                ratiometric_female=ratiometric(Sex.FEMALE, x),
                biological_male=biological[Sex.MALE][i],
                biological_female=biological[Sex.FEMALE][i],
            )
        )
    return curve


def generate_reference_points(
    result: CoefficientResult, axis=ScalingVariable.BSA
) -> List[ReferencePoint]:
    """Predicted measurement of each canonical reference individual."""
    axis = _check_axis(axis)
    points = []
    for sex in Sex:
        population = result.populations[sex]
        anthropometrics = CANONICAL_ANTHROPOMETRICS[sex]
        points.append(
            ReferencePoint(
                sex=sex,
                independent_var=axis_value(population, axis),
                measurement=predict_measurement(result, sex, population.lbm, population.bsa),
                label=(
                    f"{sex.value.capitalize()} reference "
                    f"({anthropometrics['height']:.0f} cm, BMI {anthropometrics['bmi']:.0f})"
                ),
            )
        )
    return points
