"""
Multi-Configuration Scaling Analysis

Evaluates one measurement under several scaling configurations side by side:
ratiometric BSA indexing, allometric LBM, BSA and height scaling, the
empirical height^1.6 / height^2.7 indices, and the theoretical geometric
height exponent (2.0 for areas, 3.0 for masses and volumes).

For each configuration the analysis:
1. Back-calculates per-sex absolute values from the configuration's source
   index (upper reference limit × matching body-size value of the canonical
   reference individual).
2. Derives per-sex coefficients, plus a universal coefficient for LBM only.
3. Sweeps a population over height at fixed BMI and predicts the measurement.
4. Scores the sweep (Pearson r, r², mean absolute error, coefficient of
   variation) and correlates the configurations with each other.
"""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from core import index_denominator, sex_similarity
from population_model import bmi_category, get_canonical_references, sweep_by_height
from scaling_laws import classify, exponents_for, theoretical_exponents_for
from shared_models import (
    ConfigurationCoefficients,
    CorrelationMatrix,
    DimensionalType,
    FormulaSelection,
    IndexType,
    MeasurementDefinition,
    PopulationCharacteristics,
    ScalingAnalysisResult,
    ScalingApproach,
    ScalingConfiguration,
    ScalingError,
    ScalingInsights,
    ScalingVariable,
    Sex,
    ValidationMetrics,
)

logger = logging.getLogger(__name__)

# Population swept for every configuration (1 cm steps at BMI 24)
ANALYSIS_HEIGHT_RANGE = {"min": 120.0, "max": 220.0, "step": 1.0}
ANALYSIS_BMI = 24.0

# |r| thresholds for correlation strength labels, strongest first
CORRELATION_STRENGTHS = (
    (0.9, "very_strong"),
    (0.7, "strong"),
    (0.5, "moderate"),
    (0.0, "weak"),
)
SIGNIFICANT_CORRELATION = 0.3

RECOMMENDED_APPROACH = {
    DimensionalType.LINEAR: "allometric_lbm",
    DimensionalType.AREA: "ratiometric_bsa",
    DimensionalType.MASS: "allometric_lbm",
    DimensionalType.VOLUME: "allometric_lbm",
}


# ---------------------------------------------------------------------------
# CONFIGURATIONS
# ---------------------------------------------------------------------------


def quick_configurations(dimensional_type) -> List[ScalingConfiguration]:
    """Ratiometric BSA against allometric LBM, the two headline approaches."""
    exponents = exponents_for(dimensional_type)
    return [
        ScalingConfiguration(
            id="ratiometric_bsa",
            name="Ratiometric BSA",
            approach=ScalingApproach.RATIOMETRIC,
            variable=ScalingVariable.BSA,
            exponent=1.0,
            description="Current clinical standard - linear BSA indexing",
            source_index=IndexType.BSA,
        ),
        ScalingConfiguration(
            id="allometric_lbm",
            name=f"Allometric LBM^{exponents.lbm}",
            approach=ScalingApproach.ALLOMETRIC,
            variable=ScalingVariable.LBM,
            exponent=exponents.lbm,
            description="Universal biological scaling based on lean body mass",
            source_index=IndexType.BSA,
        ),
    ]


def standard_configurations(dimensional_type) -> List[ScalingConfiguration]:
    """
    Every configuration that applies to a dimensional type.

    Allometric BSA is omitted for areas since its exponent (1.0) duplicates
    ratiometric BSA. Height^1.6 / height^2.7 only apply to areas, masses and
    volumes, which publish those indices.
    """
    dimensional_type = DimensionalType(dimensional_type)
    exponents = exponents_for(dimensional_type)
    configurations = quick_configurations(dimensional_type)

    if dimensional_type is not DimensionalType.AREA:
        configurations.append(
            ScalingConfiguration(
                id="allometric_bsa",
                name=f"Allometric BSA^{exponents.bsa}",
                approach=ScalingApproach.ALLOMETRIC,
                variable=ScalingVariable.BSA,
                exponent=exponents.bsa,
                description="Geometric scaling using body surface area",
                source_index=IndexType.BSA,
            )
        )

    configurations.append(
        ScalingConfiguration(
            id="allometric_height",
            name=f"Allometric Height^{exponents.height}",
            approach=ScalingApproach.ALLOMETRIC,
            variable=ScalingVariable.HEIGHT,
            exponent=exponents.height,
            description="Geometric height scaling",
            source_index=IndexType.HEIGHT,
        )
    )

    if dimensional_type is not DimensionalType.LINEAR:
        for exponent, source_index in ((1.6, IndexType.HEIGHT_1_6), (2.7, IndexType.HEIGHT_2_7)):
            configurations.append(
                ScalingConfiguration(
                    id=f"height_{str(exponent).replace('.', '')}",
                    name=f"Height^{exponent} (Empirical)",
                    approach=ScalingApproach.ALLOMETRIC,
                    variable=ScalingVariable.HEIGHT,
                    exponent=exponent,
                    description="Empirical height scaling from literature",
                    source_index=source_index,
                )
            )

        theoretical = theoretical_exponents_for(dimensional_type).height
        configurations.append(
            ScalingConfiguration(
                id="height_geometric",
                name=f"Height^{theoretical:.1f} (Theoretical)",
                approach=ScalingApproach.ALLOMETRIC,
                variable=ScalingVariable.HEIGHT,
                exponent=theoretical,
                description=f"Theoretical geometric scaling for {dimensional_type.value} measurements",
                source_index=IndexType.HEIGHT,
            )
        )

    return configurations


# ---------------------------------------------------------------------------
# COEFFICIENTS AND POPULATION SWEEPS
# ---------------------------------------------------------------------------


def scaling_value(population: PopulationCharacteristics, variable: ScalingVariable) -> float:
    """Body-size value a configuration scales by (height in meters)."""
    if variable is ScalingVariable.LBM:
        return population.lbm
    if variable is ScalingVariable.HEIGHT:
        return population.height_m
    return population.bsa


def configuration_coefficients(
    measurement: MeasurementDefinition,
    configuration: ScalingConfiguration,
    reference_populations: Dict[Sex, PopulationCharacteristics],
) -> ConfigurationCoefficients:
    """
    Per-sex coefficients of one configuration.

    Ratiometric coefficients are the indexed upper limits themselves.
    Allometric coefficients are absolute / scaling_value^exponent, and only
    the LBM variable gets a universal (mean) coefficient.

    Raises:
        ScalingError: If the configuration's source index is not published
            for both sexes.
    """
    indexed = {}
    for sex in Sex:
        statistic = measurement.statistics_for(sex).get(configuration.source_index)
        if statistic is None:
            raise ScalingError(
                f"{configuration.source_index.value} data not available for {measurement.name}"
            )
        indexed[sex] = statistic.upper_limit

    if configuration.approach is ScalingApproach.RATIOMETRIC:
        coefficients = indexed
        universal = None
    else:
        coefficients = {}
        for sex in Sex:
            population = reference_populations[sex]
            absolute = indexed[sex] * index_denominator(configuration.source_index, population)
            coefficients[sex] = absolute / scaling_value(population, configuration.variable) ** configuration.exponent
        universal = None
        if configuration.variable is ScalingVariable.LBM:
            universal = (coefficients[Sex.MALE] + coefficients[Sex.FEMALE]) / 2

    logger.debug(
        f"{configuration.id}: male {coefficients[Sex.MALE]:.4f}, female {coefficients[Sex.FEMALE]:.4f}"
    )

    similarity = sex_similarity(coefficients[Sex.MALE], coefficients[Sex.FEMALE])
    return ConfigurationCoefficients(
        male=coefficients[Sex.MALE],
        female=coefficients[Sex.FEMALE],
        universal=universal,
        similarity_absolute=abs(coefficients[Sex.MALE] - coefficients[Sex.FEMALE]),
        similarity_percentage=similarity * 100,
    )


def configuration_population(
    configuration: ScalingConfiguration,
    coefficients: ConfigurationCoefficients,
    selection: Optional[FormulaSelection] = None,
    height_range=None,
    fixed_bmi=ANALYSIS_BMI,
) -> Dict[Sex, list]:
    """
    Predicted measurement across a height sweep for both sexes.

    Returns:
        dict: Sex -> list of point dicts (height, weight, bmi, bsa, lbm,
        scaling_value, measurement_value, bmi_category).
    """
    height_range = height_range or ANALYSIS_HEIGHT_RANGE
    populations = {}
    for sex in Sex:
        coefficient = coefficients.for_sex(sex)
        if configuration.variable is ScalingVariable.LBM and coefficients.universal:
            coefficient = coefficients.universal

        points = []
        for population in sweep_by_height(sex, fixed_bmi, height_range, selection):
            value = scaling_value(population, configuration.variable)
            if configuration.approach is ScalingApproach.RATIOMETRIC:
                measurement_value = coefficient * value
            else:
                measurement_value = coefficient * value**configuration.exponent
            points.append(
                {
                    "height": population.height,
                    "weight": population.weight,
                    "bmi": population.bmi,
                    "bsa": population.bsa,
                    "lbm": population.lbm,
                    "scaling_value": value,
                    "measurement_value": measurement_value,
                    "bmi_category": bmi_category(population.bmi),
                }
            )
        populations[sex] = points
    return populations


# ---------------------------------------------------------------------------
# VALIDATION AND CORRELATION
# ---------------------------------------------------------------------------


def _pearson(x, y) -> float:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) != len(y) or len(x) < 2 or np.std(x) == 0 or np.std(y) == 0:
        return 0.0
    return float(np.corrcoef(x, y)[0, 1])


def validation_metrics(
    configuration: ScalingConfiguration,
    coefficients: ConfigurationCoefficients,
    population_data: Dict[Sex, list],
) -> ValidationMetrics:
    """
    Goodness of fit of a configuration over its population sweep.

    Predictions use the mean of the male and female coefficients (or the
    universal coefficient when there is one), so a large sex difference shows
    up as error.
    """
    points = population_data[Sex.MALE] + population_data[Sex.FEMALE]
    if not points:
        return ValidationMetrics(
            r_squared=0.0, correlation=0.0, mean_absolute_error=0.0, coefficient_of_variation=0.0
        )

    x = np.array([point["scaling_value"] for point in points])
    y = np.array([point["measurement_value"] for point in points])

    correlation = _pearson(x, y)
    mean_coefficient = (coefficients.male + coefficients.female) / 2
    if configuration.approach is ScalingApproach.RATIOMETRIC:
        predictions = mean_coefficient * x
    else:
        predictions = (coefficients.universal or mean_coefficient) * x**configuration.exponent

    mean = float(np.mean(y))
    return ValidationMetrics(
        r_squared=correlation * correlation,
        correlation=correlation,
        mean_absolute_error=float(np.mean(np.abs(y - predictions))),
        coefficient_of_variation=float(np.std(y)) / mean * 100 if mean > 0 else 0.0,
    )


def correlation_strength(correlation) -> str:
    magnitude = abs(correlation)
    for threshold, label in CORRELATION_STRENGTHS:
        if magnitude >= threshold:
            return label
    return "weak"


def correlation_matrix(
    configurations: List[ScalingConfiguration], population_data: Dict[str, Dict[Sex, list]]
) -> CorrelationMatrix:
    """Pairwise Pearson correlation of the configurations' predicted values."""
    ids = [configuration.id for configuration in configurations]
    values = {
        config_id: [
            point["measurement_value"]
            for point in population_data[config_id][Sex.MALE] + population_data[config_id][Sex.FEMALE]
        ]
        for config_id in ids
        if config_id in population_data
    }

    matrix = []
    for i, first in enumerate(ids):
        row = []
        for j, second in enumerate(ids):
            if first in values and second in values:
                row.append(1.0 if i == j else _pearson(values[first], values[second]))
            else:
                row.append(1.0 if i == j else 0.0)
        matrix.append(row)

    significant = []
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            correlation = matrix[i][j]
            if abs(correlation) >= SIGNIFICANT_CORRELATION:
                significant.append(
                    {
                        "config1": ids[i],
                        "config2": ids[j],
                        "correlation": correlation,
                        "strength": correlation_strength(correlation),
                    }
                )

    return CorrelationMatrix(
        configuration_ids=ids, matrix=matrix, significant_correlations=significant
    )


def generate_insights(
    measurement: MeasurementDefinition,
    configurations: List[ScalingConfiguration],
    coefficients: Dict[str, ConfigurationCoefficients],
    metrics: Dict[str, ValidationMetrics],
) -> ScalingInsights:
    """
    Best and worst configuration by r² × sex similarity, plus recommendations.

    Clinical relevance compares LBM and ratiometric sex similarity: a gap over
    20 points is 'high', under 5 points 'low', otherwise 'moderate'.
    """
    scores = {
        configuration.id: metrics[configuration.id].r_squared
        * coefficients[configuration.id].similarity_percentage
        / 100
        for configuration in configurations
        if configuration.id in metrics and configuration.id in coefficients
    }

    best = worst = configurations[0].id if configurations else ""
    best_score, worst_score = 0.0, 1.0
    for config_id, score in scores.items():
        if score > best_score:
            best, best_score = config_id, score
        if score < worst_score:
            worst, worst_score = config_id, score

    lbm = coefficients.get("allometric_lbm")
    ratiometric = coefficients.get("ratiometric_bsa")
    gap = abs(
        (lbm.similarity_percentage if lbm else 0.0)
        - (ratiometric.similarity_percentage if ratiometric else 0.0)
    )
    if gap > 20:
        clinical_relevance = "high"
    elif gap < 5:
        clinical_relevance = "low"
    else:
        clinical_relevance = "moderate"

    return ScalingInsights(
        best_configuration=best,
        worst_configuration=worst,
        recommended_approach=RECOMMENDED_APPROACH[measurement.dimensional_type],
        clinical_relevance=clinical_relevance,
    )


# ---------------------------------------------------------------------------
# ANALYSIS DRIVER
# ---------------------------------------------------------------------------


def run_scaling_analysis(
    measurement: MeasurementDefinition,
    selection: Optional[FormulaSelection] = None,
    configurations: Optional[List[ScalingConfiguration]] = None,
    height_range=None,
    fixed_bmi=ANALYSIS_BMI,
) -> ScalingAnalysisResult:
    """
    Runs the full multi-configuration analysis for one measurement.

    Args:
        measurement (MeasurementDefinition): Measurement to analyze.
        selection (FormulaSelection): BSA/LBM formulas, age and ethnicity.
        configurations (list): Configurations to evaluate; defaults to
            standard_configurations for the measurement's type. Any whose
            source index is not published are skipped.
        height_range (dict): Height sweep in cm.
        fixed_bmi (float): BMI of the sweep.

    Returns:
        ScalingAnalysisResult

    Raises:
        UnknownUnitError: If the measurement's unit has no dimensional type.
    """
    selection = selection or FormulaSelection()
    dimensional_type = measurement.dimensional_type
    if configurations is None:
        configurations = standard_configurations(dimensional_type)

    available = []
    for configuration in configurations:
        if measurement.has_index(configuration.source_index):
            available.append(configuration)
        else:
            logger.debug(
                f"Skipping {configuration.id}: no {configuration.source_index.value} data for {measurement.id}"
            )

    logger.info(
        f"Scaling analysis for {measurement.name} ({dimensional_type.value}), "
        f"{len(available)} configurations"
    )

    reference_populations = get_canonical_references(selection)
    coefficients = {
        configuration.id: configuration_coefficients(measurement, configuration, reference_populations)
        for configuration in available
    }
    population_data = {
        configuration.id: configuration_population(
            configuration, coefficients[configuration.id], selection, height_range, fixed_bmi
        )
        for configuration in available
    }
    metrics = {
        configuration.id: validation_metrics(
            configuration, coefficients[configuration.id], population_data[configuration.id]
        )
        for configuration in available
    }

    return ScalingAnalysisResult(
        measurement=measurement,
        selection=selection,
        reference_populations=reference_populations,
        configurations=available,
        coefficients=coefficients,
        population_data=population_data,
        validation_metrics=metrics,
        correlation_matrix=correlation_matrix(available, population_data),
        insights=generate_insights(measurement, available, coefficients, metrics),
    )


def analysis_to_dataframe(result: ScalingAnalysisResult) -> pd.DataFrame:
    """
    One row per configuration with coefficients and fit metrics.

    ``dimensional_fit`` reports whether the configuration's variable and
    exponent are dimensionally matched to the measurement (ratiometric) or
    bridge dimensions (allometric), independent of how it was computed.
    """
    dimensional_type = result.measurement.dimensional_type
    rows = []
    for configuration in result.configurations:
        coefficients = result.coefficients[configuration.id]
        metrics = result.validation_metrics[configuration.id]
        rows.append(
            {
                "configuration": configuration.id,
                "name": configuration.name,
                "approach": configuration.approach.value,
                "dimensional_fit": classify(
                    dimensional_type, configuration.variable, configuration.exponent
                ).value,
                "exponent": configuration.exponent,
                "male": coefficients.male,
                "female": coefficients.female,
                "universal": coefficients.universal,
                "similarity_pct": coefficients.similarity_percentage,
                "r_squared": metrics.r_squared,
                "mae": metrics.mean_absolute_error,
                "cv_pct": metrics.coefficient_of_variation,
            }
        )
    return pd.DataFrame(rows)
