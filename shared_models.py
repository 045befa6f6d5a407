"""
Shared Data Models for Cardiac Scaling

This module contains all shared dataclasses, enums and exceptions used
throughout the cardiac scaling pipeline, including the formula registry,
population model, back-calculation engine, coefficient derivation and the
curve generator.

Unified data models provide:
- Immutable records that are safe to share across the whole process
- Consistent data structures across modules
- A single place where a measurement's dimensional type is derived
- Single source of truth for core data types
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================


class ScalingError(Exception):
    """Base class for cardiac scaling errors"""

    pass


class UnknownUnitError(ScalingError):
    """Raised when an absolute unit cannot be mapped to a dimensional type"""

    pass


class ConfigurationError(ScalingError):
    """Raised when a run configuration fails validation"""

    pass


# ============================================================================
# ENUMS
# ============================================================================


class Sex(Enum):
    """Biological sex of a reference population"""

    MALE = "male"
    FEMALE = "female"


class DimensionalType(Enum):
    """Geometric dimensionality of a cardiac measurement"""

    LINEAR = "linear"
    AREA = "area"
    MASS = "mass"
    VOLUME = "volume"


class IndexType(Enum):
    """Body-size variable a published statistic was divided by"""

    BSA = "bsa"
    BMI = "bmi"
    HEIGHT = "height"
    HEIGHT_1_6 = "height16"
    HEIGHT_2_7 = "height27"
    HEIGHT_SQUARED = "height2"


class ScalingVariable(Enum):
    """Body-size variable used to scale a measurement"""

    LBM = "lbm"
    BSA = "bsa"
    HEIGHT = "height"


class ScalingApproach(Enum):
    """Ratiometric (exponent 1.0, matched dimensions) or allometric scaling"""

    RATIOMETRIC = "ratiometric"
    ALLOMETRIC = "allometric"


# ============================================================================
# CONSTANTS AND CONFIGURATIONS
# ============================================================================

DEFAULT_BSA_FORMULA = "dubois"
DEFAULT_LBM_FORMULA = "boer"
DEFAULT_AGE = 50
DEFAULT_ETHNICITY = "white"

# One-sided 95th percentile: published indexed values are consumed as
# upper reference limits (mean + 1.65 SD).
UPPER_LIMIT_Z = 1.65

# Absolute unit -> dimensional type. The unit is the only source of type.
UNIT_TYPE_MAP = {
    "cm": DimensionalType.LINEAR,
    "mm": DimensionalType.LINEAR,
    "m": DimensionalType.LINEAR,
    "cm²": DimensionalType.AREA,
    "cm2": DimensionalType.AREA,
    "mm²": DimensionalType.AREA,
    "g": DimensionalType.MASS,
    "kg": DimensionalType.MASS,
    "mL": DimensionalType.VOLUME,
    "ml": DimensionalType.VOLUME,
    "L": DimensionalType.VOLUME,
    "L/min": DimensionalType.VOLUME,
}

# Denominator unit of each index type, used to render indexed units
INDEX_UNITS = {
    IndexType.BSA: "m²",
    IndexType.BMI: "kg/m²",
    IndexType.HEIGHT: "m",
    IndexType.HEIGHT_1_6: "m^1.6",
    IndexType.HEIGHT_2_7: "m^2.7",
    IndexType.HEIGHT_SQUARED: "m²",
}


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def parse_sex(sex) -> Sex:
    """
    Converts a sex string (m, f, male, female - case insensitive) or Sex to Sex.

    Raises:
        ValueError: If the value is not recognized
    """
    if isinstance(sex, Sex):
        return sex
    sex_lower = str(sex).strip().lower()
    if sex_lower in ["m", "male"]:
        return Sex.MALE
    elif sex_lower in ["f", "female"]:
        return Sex.FEMALE
    else:
        raise ValueError(f"Unrecognized sex: {sex}. Use 'm', 'f', 'male', or 'female'.")


def derive_dimensional_type(absolute_unit: str) -> DimensionalType:
    """
    Derive a measurement's dimensional type from its absolute unit.

    Raises:
        UnknownUnitError: If the unit is not in UNIT_TYPE_MAP
    """
    try:
        return UNIT_TYPE_MAP[absolute_unit]
    except KeyError:
        supported = ", ".join(UNIT_TYPE_MAP)
        raise UnknownUnitError(
            f"Unknown absolute unit: {absolute_unit!r}. Supported units: {supported}"
        ) from None


def upper_reference_limit(mean: float, sd: float, z: float = UPPER_LIMIT_Z) -> float:
    """Upper normal limit of a published statistic (mean + z * SD)."""
    return mean + z * sd


def freeze_mapping(mapping) -> Mapping:
    """Read-only copy of a mapping, so records built from it cannot change later."""
    return MappingProxyType(dict(mapping))


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class IndexedStatistic:
    """Published mean and SD of a measurement divided by a body-size index"""

    mean: float
    sd: float

    @property
    def upper_limit(self) -> float:
        return upper_reference_limit(self.mean, self.sd)


@dataclass(frozen=True)
class MeasurementDefinition:
    """
    A cardiac measurement and its published sex-specific indexed statistics.

    Absent index types are simply missing from the per-sex mappings. The
    dimensional type is derived from ``absolute_unit`` on access, so a record
    with an unsupported unit can be constructed and stored but raises
    UnknownUnitError as soon as its type is needed.
    """

    id: str
    name: str
    absolute_unit: str
    male: Mapping[IndexType, IndexedStatistic] = field(default_factory=dict, hash=False)
    female: Mapping[IndexType, IndexedStatistic] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "male", freeze_mapping(self.male))
        object.__setattr__(self, "female", freeze_mapping(self.female))

    @property
    def dimensional_type(self) -> DimensionalType:
        return derive_dimensional_type(self.absolute_unit)

    def statistics_for(self, sex) -> Mapping[IndexType, IndexedStatistic]:
        """Indexed statistics available for one sex"""
        return self.male if parse_sex(sex) is Sex.MALE else self.female

    def indexed_unit(self, index_type: IndexType) -> str:
        """Unit of a value indexed by ``index_type``, e.g. 'cm/m²'"""
        return f"{self.absolute_unit}/{INDEX_UNITS[index_type]}"

    def has_index(self, index_type: IndexType) -> bool:
        """True when both sexes publish a statistic for ``index_type``"""
        return index_type in self.male and index_type in self.female


@dataclass(frozen=True)
class PopulationCharacteristics:
    """Anthropometrics of a (reference or swept) individual"""

    height: float  # cm
    weight: float  # kg
    bmi: float  # kg/m²
    bsa: float  # m², formula-dependent
    lbm: float  # kg, formula-dependent

    @property
    def height_m(self) -> float:
        return self.height / 100


@dataclass(frozen=True)
class ScalingExponents:
    """Exponents relating a measurement to LBM, BSA and height"""

    lbm: float
    bsa: float
    height: float

    def for_variable(self, variable: ScalingVariable) -> float:
        return getattr(self, variable.value)


@dataclass(frozen=True)
class FormulaSelection:
    """Explicit body-composition formula choice passed into every operation"""

    bsa_formula: str = DEFAULT_BSA_FORMULA
    lbm_formula: str = DEFAULT_LBM_FORMULA
    age: float = DEFAULT_AGE
    ethnicity: str = DEFAULT_ETHNICITY

    def __post_init__(self):
        """Fill in unset age/ethnicity and validate age"""
        if self.age is None:
            object.__setattr__(self, "age", DEFAULT_AGE)
        if self.ethnicity is None:
            object.__setattr__(self, "ethnicity", DEFAULT_ETHNICITY)
        if self.age <= 0 or self.age > 120:
            raise ValueError("age must be reasonable (0-120 years)")


@dataclass(frozen=True)
class BackCalculation:
    """Recovered absolute value and the per-index estimates behind it"""

    absolute: float
    estimates: Mapping[IndexType, float] = field(hash=False)  # index type -> absolute estimate
    indexed_values: Mapping[IndexType, float] = field(hash=False)  # index type -> upper limit

    def __post_init__(self):
        object.__setattr__(self, "estimates", freeze_mapping(self.estimates))
        object.__setattr__(self, "indexed_values", freeze_mapping(self.indexed_values))

    @property
    def is_degenerate(self) -> bool:
        return not self.estimates


@dataclass(frozen=True)
class CoefficientValidation:
    """Outcome of plausibility checks on derived coefficients"""

    is_valid: bool
    warnings: Tuple[str, ...]
    sex_similarity: float  # 0-1, 1 = identical male/female LBM coefficients


@dataclass(frozen=True)
class CoefficientResult:
    """Universal LBM and sex-specific BSA coefficients for one measurement"""

    measurement_id: str
    measurement_name: str
    dimensional_type: DimensionalType
    exponents: ScalingExponents
    universal_lbm: float
    lbm_coefficients: Mapping[Sex, float] = field(hash=False)
    bsa_coefficients: Mapping[Sex, float] = field(hash=False)
    back_calculation: Mapping[Sex, BackCalculation] = field(hash=False)
    populations: Mapping[Sex, PopulationCharacteristics] = field(hash=False)
    validation: CoefficientValidation
    bsa_formula: str = DEFAULT_BSA_FORMULA
    lbm_formula: str = DEFAULT_LBM_FORMULA
    age: float = DEFAULT_AGE
    ethnicity: str = DEFAULT_ETHNICITY

    def __post_init__(self):
        for name in ("lbm_coefficients", "bsa_coefficients", "back_calculation", "populations"):
            object.__setattr__(self, name, freeze_mapping(getattr(self, name)))

    @property
    def selection(self) -> FormulaSelection:
        """Formulas, age and ethnicity the coefficients were derived with"""
        return FormulaSelection(self.bsa_formula, self.lbm_formula, self.age, self.ethnicity)


@dataclass(frozen=True)
class ComparisonPoint:
    """One point of a biological vs ratiometric comparison curve"""

    independent_var: float
    # Straight lines through the origin; None only if the slope is unpublished
    ratiometric_male: Optional[float]
    ratiometric_female: Optional[float]
    # None outside the population's achievable range
    biological_male: Optional[float] = None
    biological_female: Optional[float] = None


@dataclass(frozen=True)
class ReferencePoint:
    """Where a canonical reference individual falls on the comparison chart"""

    sex: Sex
    independent_var: float
    measurement: float
    label: str


@dataclass
class ScalingConfiguration:
    """One way of scaling a measurement to a body-size variable"""

    id: str
    name: str
    approach: ScalingApproach
    variable: ScalingVariable
    exponent: float
    description: str
    source_index: IndexType = IndexType.BSA


@dataclass
class ConfigurationCoefficients:
    """Per-sex coefficients of one scaling configuration"""

    male: float
    female: float
    universal: Optional[float]
    similarity_absolute: float
    similarity_percentage: float

    def for_sex(self, sex: Sex) -> float:
        return self.male if sex is Sex.MALE else self.female


@dataclass
class ValidationMetrics:
    """Goodness-of-fit of a configuration across a population sweep"""

    r_squared: float
    correlation: float
    mean_absolute_error: float
    coefficient_of_variation: float


@dataclass
class CorrelationMatrix:
    """Pairwise correlation of configuration predictions"""

    configuration_ids: List[str]
    matrix: List[List[float]]
    significant_correlations: List[Dict[str, object]] = field(default_factory=list)


@dataclass
class ScalingInsights:
    """Summary judgement over all configurations of an analysis"""

    best_configuration: str
    worst_configuration: str
    recommended_approach: str
    clinical_relevance: str


@dataclass
class ScalingAnalysisResult:
    """Complete multi-configuration analysis of one measurement"""

    measurement: MeasurementDefinition
    selection: FormulaSelection
    reference_populations: Dict[Sex, PopulationCharacteristics]
    configurations: List[ScalingConfiguration]
    coefficients: Dict[str, ConfigurationCoefficients]
    population_data: Dict[str, Dict[Sex, list]]
    validation_metrics: Dict[str, ValidationMetrics]
    correlation_matrix: CorrelationMatrix
    insights: ScalingInsights
