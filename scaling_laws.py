"""
Scaling Law Table

Exponents relating a cardiac measurement to lean body mass, body surface area
and height, per dimensional type:

- Linear (1D): dimensions, diameters, wall thicknesses
- Area (2D): chamber areas, valve areas
- Mass (3D): tissue masses
- Volume (3D): chamber volumes, flow rates

The canonical table uses the empirical height exponent for mass and volume
(2.1). The geometric value (3.0) is kept separately in THEORETICAL_EXPONENTS
and is only used where a caller asks for it explicitly.
"""

from shared_models import DimensionalType, ScalingApproach, ScalingExponents, ScalingVariable

SCALING_EXPONENTS = {
    # LBM^(1/3) cube root of a 3D variable, BSA^0.5 square root of a 2D one
    DimensionalType.LINEAR: ScalingExponents(lbm=0.33, bsa=0.50, height=1.00),
    DimensionalType.AREA: ScalingExponents(lbm=0.67, bsa=1.00, height=2.00),
    # Height^2.1 is empirical (vs theoretical 3.0)
    DimensionalType.MASS: ScalingExponents(lbm=1.00, bsa=1.50, height=2.10),
    DimensionalType.VOLUME: ScalingExponents(lbm=1.00, bsa=1.50, height=2.10),
}

THEORETICAL_EXPONENTS = {
    DimensionalType.LINEAR: ScalingExponents(lbm=0.33, bsa=0.50, height=1.00),
    DimensionalType.AREA: ScalingExponents(lbm=0.67, bsa=1.00, height=2.00),
    DimensionalType.MASS: ScalingExponents(lbm=1.00, bsa=1.50, height=3.00),
    DimensionalType.VOLUME: ScalingExponents(lbm=1.00, bsa=1.50, height=3.00),
}

# Body-size variable sharing the measurement's dimensionality
MATCHED_VARIABLES = {
    DimensionalType.LINEAR: ScalingVariable.HEIGHT,
    DimensionalType.AREA: ScalingVariable.BSA,
    DimensionalType.MASS: ScalingVariable.LBM,
    DimensionalType.VOLUME: ScalingVariable.LBM,
}

# Plausible ranges for derived coefficients: (min, max) or None when unchecked
VALIDATION_BOUNDS = {
    DimensionalType.LINEAR: {"lbm": (0.5, 2.0), "bsa": (1.0, 5.0)},
    DimensionalType.AREA: {"lbm": (0.5, 5.0), "bsa": (5.0, 25.0)},
    DimensionalType.MASS: {"lbm": (0.2, 6.0), "bsa": None},
    DimensionalType.VOLUME: {"lbm": (0.02, 3.0), "bsa": None},
}

# LBM coefficients below this male/female similarity fail the universal
# scaling hypothesis
MIN_SEX_SIMILARITY = 0.7

SCALING_EXPLANATIONS = {
    DimensionalType.LINEAR: {
        "title": "Linear Measurements (1D)",
        "physics": "One-dimensional measurements follow linear geometric scaling. "
        "Since BSA ~ height², linear dimensions scale as BSA^0.5.",
        "examples": ["LV End-Diastolic Dimension", "Wall Thicknesses", "Vessel Diameters"],
    },
    DimensionalType.AREA: {
        "title": "Area Measurements (2D)",
        "physics": "Areas scale directly with BSA since BSA is itself a surface area.",
        "examples": ["Cardiac Chamber Areas", "Valve Areas", "Cross-Sectional Areas"],
    },
    DimensionalType.MASS: {
        "title": "Mass Measurements (3D)",
        "physics": "Tissue mass scales directly with lean body mass; BSA^1.5 follows "
        "from geometric 3D scaling.",
        "examples": ["LV Mass", "Cardiac Muscle Mass"],
    },
    DimensionalType.VOLUME: {
        "title": "Volume Measurements (3D)",
        "physics": "Chamber volumes and flow rates scale with body mass but may carry "
        "different coefficients than tissue masses.",
        "examples": ["LV Volumes", "LA Volumes", "Stroke Volume", "Cardiac Output"],
    },
}


def exponents_for(dimensional_type: DimensionalType) -> ScalingExponents:
    """Canonical (empirical) scaling exponents for a dimensional type."""
    return SCALING_EXPONENTS[DimensionalType(dimensional_type)]


def theoretical_exponents_for(dimensional_type: DimensionalType) -> ScalingExponents:
    """Purely geometric exponents (height^3.0 for mass and volume)."""
    return THEORETICAL_EXPONENTS[DimensionalType(dimensional_type)]


def matched_variable(dimensional_type: DimensionalType) -> ScalingVariable:
    return MATCHED_VARIABLES[DimensionalType(dimensional_type)]


def classify(dimensional_type, variable, exponent=None) -> ScalingApproach:
    """
    Classify scaling a measurement by a body-size variable.

    Scaling is ratiometric only when the exponent is exactly 1.0 and the
    variable shares the measurement's dimensionality (height for linear, BSA
    for area, LBM for mass and volume). Everything else is allometric.

    Args:
        dimensional_type (DimensionalType): Measurement type.
        variable (ScalingVariable or str): 'lbm', 'bsa' or 'height'.
        exponent (float): Exponent to classify; defaults to the canonical
            exponent for the type and variable.

    Returns:
        ScalingApproach
    """
    dimensional_type = DimensionalType(dimensional_type)
    variable = ScalingVariable(variable)
    if exponent is None:
        exponent = exponents_for(dimensional_type).for_variable(variable)

    if exponent == 1.0 and MATCHED_VARIABLES[dimensional_type] is variable:
        return ScalingApproach.RATIOMETRIC
    return ScalingApproach.ALLOMETRIC


def validation_bounds_for(dimensional_type: DimensionalType) -> dict:
    return VALIDATION_BOUNDS[DimensionalType(dimensional_type)]
