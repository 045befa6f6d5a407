"""
Published Reference Measurements

MESA normal reference values (Strom et al., Table 3) as an in-memory constant
table, plus the loader that turns raw records into MeasurementDefinition
objects.

Source: Strom JB, et al. Reference Values for Indexed Echocardiographic
Chamber Sizes in Older Adults: The Multi-Ethnic Study of Atherosclerosis.
J Am Heart Assoc. 2024;13:e034029.

Each raw record stores only its absolute unit and the per-sex indexed
statistics that were published. The dimensional type and indexed units are
derived, never stored.
"""

import logging
from typing import Dict, List, Optional, Sequence

from jsonschema import ValidationError, validate

from shared_models import (
    DimensionalType,
    IndexedStatistic,
    IndexType,
    MeasurementDefinition,
    UnknownUnitError,
)

logger = logging.getLogger(__name__)

_STATISTIC_SCHEMA = {
    "type": "object",
    "required": ["mean", "sd"],
    "properties": {
        "mean": {"type": "number", "exclusiveMinimum": 0},
        "sd": {"type": "number", "minimum": 0},
    },
    "additionalProperties": False,
}

_SEX_SCHEMA = {
    "type": "object",
    "properties": {index_type.value: _STATISTIC_SCHEMA for index_type in IndexType},
    "additionalProperties": False,
}

# JSON Schema for raw measurement records
MEASUREMENT_SCHEMA = {
    "type": "object",
    "required": ["id", "name", "absolute_unit", "male", "female"],
    "properties": {
        "id": {"type": "string", "pattern": "^[a-z0-9_]+$"},
        "name": {"type": "string", "minLength": 1},
        "absolute_unit": {"type": "string", "minLength": 1},
        "male": _SEX_SCHEMA,
        "female": _SEX_SCHEMA,
    },
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# RAW REFERENCE TABLE
# ---------------------------------------------------------------------------

MEASUREMENT_RECORDS = (
    # Linear measurements (cm)
    {
        "id": "lvdd",
        "name": "LV End-Diastolic Dimension",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 2.3, "sd": 0.3}, "height": {"mean": 2.57, "sd": 0.29}},
        "female": {"bsa": {"mean": 2.4, "sd": 0.3}, "height": {"mean": 2.57, "sd": 0.28}},
    },
    {
        "id": "lvsd",
        "name": "LV End-Systolic Dimension",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 1.6, "sd": 0.2}, "height": {"mean": 1.73, "sd": 0.23}},
        "female": {"bsa": {"mean": 1.6, "sd": 0.2}, "height": {"mean": 1.70, "sd": 0.21}},
    },
    {
        "id": "ivsd",
        "name": "Septal Wall Thickness",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 0.61, "sd": 0.11}, "height": {"mean": 0.68, "sd": 0.13}},
        "female": {"bsa": {"mean": 0.60, "sd": 0.13}, "height": {"mean": 0.64, "sd": 0.14}},
    },
    {
        "id": "lvpw",
        "name": "Posterior Wall Thickness",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 0.50, "sd": 0.07}, "height": {"mean": 0.55, "sd": 0.08}},
        "female": {"bsa": {"mean": 0.51, "sd": 0.07}, "height": {"mean": 0.54, "sd": 0.07}},
    },
    {
        "id": "lvot",
        "name": "LV Outflow Tract Diameter",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 1.16, "sd": 0.11}, "height": {"mean": 1.28, "sd": 0.10}},
        "female": {"bsa": {"mean": 1.16, "sd": 0.11}, "height": {"mean": 1.23, "sd": 0.09}},
    },
    {
        "id": "ivc_max",
        "name": "Maximum IVC Diameter",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 0.80, "sd": 0.16}, "height": {"mean": 0.89, "sd": 0.18}},
        "female": {"bsa": {"mean": 0.86, "sd": 0.18}, "height": {"mean": 0.91, "sd": 0.19}},
    },
    {
        "id": "ivc_min",
        "name": "Minimum IVC Diameter",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 0.28, "sd": 0.09}, "height": {"mean": 0.31, "sd": 0.11}},
        "female": {"bsa": {"mean": 0.29, "sd": 0.10}, "height": {"mean": 0.30, "sd": 0.11}},
    },
    {
        "id": "tapse",
        "name": "Tricuspid Annular Plane Systolic Excursion",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 1.16, "sd": 0.20}, "height": {"mean": 1.29, "sd": 0.19}},
        "female": {"bsa": {"mean": 1.26, "sd": 0.23}, "height": {"mean": 1.33, "sd": 0.20}},
    },
    # Area measurements (cm²)
    {
        "id": "raesa",
        "name": "Right Atrial End-Systolic Area",
        "absolute_unit": "cm²",
        "male": {
            "bsa": {"mean": 9.43, "sd": 1.89},
            "height": {"mean": 10.50, "sd": 2.10},
            "height16": {"mean": 7.59, "sd": 1.54},
            "height27": {"mean": 4.20, "sd": 0.95},
        },
        "female": {
            "bsa": {"mean": 8.55, "sd": 1.50},
            "height": {"mean": 9.09, "sd": 1.67},
            "height16": {"mean": 6.85, "sd": 1.28},
            "height27": {"mean": 4.09, "sd": 0.84},
        },
    },
    {
        "id": "rveda",
        "name": "RV End-Diastolic Area",
        "absolute_unit": "cm²",
        "male": {
            "bsa": {"mean": 10.65, "sd": 1.61},
            "height": {"mean": 11.89, "sd": 1.98},
            "height16": {"mean": 8.59, "sd": 1.44},
            "height27": {"mean": 4.75, "sd": 0.92},
        },
        "female": {
            "bsa": {"mean": 9.52, "sd": 1.35},
            "height": {"mean": 10.12, "sd": 1.58},
            "height16": {"mean": 7.63, "sd": 1.20},
            "height27": {"mean": 4.55, "sd": 0.80},
        },
    },
    {
        "id": "rvesa",
        "name": "RV End-Systolic Area",
        "absolute_unit": "cm²",
        "male": {
            "bsa": {"mean": 6.47, "sd": 1.05},
            "height": {"mean": 7.23, "sd": 1.28},
            "height16": {"mean": 5.22, "sd": 0.94},
            "height27": {"mean": 2.89, "sd": 0.60},
        },
        "female": {
            "bsa": {"mean": 5.58, "sd": 0.81},
            "height": {"mean": 5.94, "sd": 0.98},
            "height16": {"mean": 4.48, "sd": 0.74},
            "height27": {"mean": 2.67, "sd": 0.49},
        },
    },
    # Mass measurements (g)
    {
        "id": "lvm",
        "name": "LV Mass",
        "absolute_unit": "g",
        "male": {
            "bsa": {"mean": 84.8, "sd": 17.7},
            "height": {"mean": 95.12, "sd": 22.92},
            "height16": {"mean": 68.75, "sd": 17.0},
            "height27": {"mean": 38.03, "sd": 10.95},
        },
        "female": {
            "bsa": {"mean": 72.20, "sd": 15.3},
            "height": {"mean": 77.26, "sd": 19.28},
            "height16": {"mean": 58.20, "sd": 14.54},
            "height27": {"mean": 34.71, "sd": 9.04},
        },
    },
    # Volume measurements (mL, L/min)
    {
        "id": "lvedv",
        "name": "Biplane LV End-Diastolic Volume",
        "absolute_unit": "mL",
        "male": {
            "bsa": {"mean": 45.0, "sd": 7.9},
            "height": {"mean": 50.33, "sd": 9.83},
            "height16": {"mean": 36.34, "sd": 7.07},
            "height27": {"mean": 20.06, "sd": 4.39},
        },
        "female": {
            "bsa": {"mean": 38.9, "sd": 6.3},
            "height": {"mean": 41.38, "sd": 7.58},
            "height16": {"mean": 31.15, "sd": 5.58},
            "height27": {"mean": 18.55, "sd": 3.50},
        },
    },
    {
        "id": "lvesv",
        "name": "Biplane LV End-Systolic Volume",
        "absolute_unit": "mL",
        "male": {
            "bsa": {"mean": 17.0, "sd": 3.8},
            "height": {"mean": 19.27, "sd": 4.62},
            "height16": {"mean": 13.91, "sd": 3.30},
            "height27": {"mean": 7.67, "sd": 1.95},
        },
        "female": {
            "bsa": {"mean": 14.0, "sd": 2.9},
            "height": {"mean": 15.16, "sd": 3.53},
            "height16": {"mean": 11.40, "sd": 2.60},
            "height27": {"mean": 6.79, "sd": 1.58},
        },
    },
    {
        "id": "lasv",
        "name": "Biplane LA End-Systolic Volume",
        "absolute_unit": "mL",
        "male": {
            "bsa": {"mean": 26.5, "sd": 6.5},
            "height": {"mean": 29.57, "sd": 7.62},
            "height16": {"mean": 21.36, "sd": 5.48},
            "height27": {"mean": 11.79, "sd": 3.18},
        },
        "female": {
            "bsa": {"mean": 25.6, "sd": 5.7},
            "height": {"mean": 27.37, "sd": 6.77},
            "height16": {"mean": 21.61, "sd": 5.07},
            "height27": {"mean": 12.29, "sd": 3.12},
        },
    },
    {
        "id": "sv",
        "name": "Stroke Volume",
        "absolute_unit": "mL",
        "male": {
            "bsa": {"mean": 44.16, "sd": 9.08},
            "height": {"mean": 49.31, "sd": 10.63},
            "height16": {"mean": 35.65, "sd": 7.82},
            "height27": {"mean": 19.71, "sd": 4.89},
        },
        "female": {
            "bsa": {"mean": 41.44, "sd": 8.42},
            "height": {"mean": 44.12, "sd": 9.61},
            "height16": {"mean": 33.25, "sd": 7.29},
            "height27": {"mean": 19.84, "sd": 4.62},
        },
    },
    {
        "id": "co",
        "name": "Cardiac Output",
        "absolute_unit": "L/min",
        "male": {
            "bsa": {"mean": 2.72, "sd": 0.64},
            "height": {"mean": 3.04, "sd": 0.75},
            "height16": {"mean": 2.20, "sd": 0.55},
            "height27": {"mean": 1.22, "sd": 0.34},
        },
        "female": {
            "bsa": {"mean": 2.63, "sd": 0.63},
            "height": {"mean": 2.80, "sd": 0.70},
            "height16": {"mean": 2.11, "sd": 0.53},
            "height27": {"mean": 1.26, "sd": 0.34},
        },
    },
)

DATASET_SOURCE = "Strom JB, et al. MESA Study (J Am Heart Assoc. 2024)"


# ---------------------------------------------------------------------------
# LOADING
# ---------------------------------------------------------------------------


def validate_measurement_record(record):
    """
    Validate a raw measurement record against MEASUREMENT_SCHEMA.

    The unit is only checked to be a non-empty string; an unsupported unit is
    reported later, when the dimensional type is derived.

    Raises:
        ValidationError: If the record does not match the schema.
    """
    validate(record, MEASUREMENT_SCHEMA)


def _statistics_from_record(sex_data) -> Dict[IndexType, IndexedStatistic]:
    # Iterate in IndexType order so estimates are always combined the same way
    return {
        index_type: IndexedStatistic(
            mean=float(sex_data[index_type.value]["mean"]),
            sd=float(sex_data[index_type.value]["sd"]),
        )
        for index_type in IndexType
        if index_type.value in sex_data
    }


def measurement_from_record(record) -> MeasurementDefinition:
    """Build a MeasurementDefinition from a validated raw record."""
    validate_measurement_record(record)
    return MeasurementDefinition(
        id=record["id"],
        name=record["name"],
        absolute_unit=record["absolute_unit"],
        male=_statistics_from_record(record["male"]),
        female=_statistics_from_record(record["female"]),
    )


def load_measurements(records=MEASUREMENT_RECORDS) -> tuple:
    """
    Load raw records into MeasurementDefinitions, preserving order.

    Records that fail schema validation are skipped with a warning; the rest
    of the table still loads.
    """
    measurements = []
    for record in records:
        try:
            measurements.append(measurement_from_record(record))
        except ValidationError as e:
            logger.warning(f"Skipping invalid measurement record {record.get('id')!r}: {e.message}")
    return tuple(measurements)


MEASUREMENTS = load_measurements()


# ---------------------------------------------------------------------------
# LOOKUP
# ---------------------------------------------------------------------------


def get_measurement(
    measurement_id, measurements: Optional[Sequence[MeasurementDefinition]] = None
) -> Optional[MeasurementDefinition]:
    """Measurement with ``measurement_id``, or None when it does not exist."""
    for measurement in MEASUREMENTS if measurements is None else measurements:
        if measurement.id == measurement_id:
            return measurement
    return None


def get_measurements_by_type(
    dimensional_type, measurements=None
) -> List[MeasurementDefinition]:
    """Measurements of one dimensional type; records with unknown units are skipped."""
    dimensional_type = DimensionalType(dimensional_type)
    matches = []
    for measurement in MEASUREMENTS if measurements is None else measurements:
        try:
            if measurement.dimensional_type is dimensional_type:
                matches.append(measurement)
        except UnknownUnitError as e:
            logger.warning(f"Skipping {measurement.id}: {e}")
    return matches


def get_measurements_with_index(index_type, measurements=None) -> List[MeasurementDefinition]:
    """Measurements publishing ``index_type`` statistics for both sexes."""
    index_type = IndexType(index_type)
    return [
        measurement
        for measurement in (MEASUREMENTS if measurements is None else measurements)
        if measurement.has_index(index_type)
    ]


def get_dataset_summary(measurements=None):
    """Counts per dimensional type and per available index type."""
    measurements = MEASUREMENTS if measurements is None else measurements
    return {
        "total": len(measurements),
        "by_type": {
            dimensional_type.value: len(get_measurements_by_type(dimensional_type, measurements))
            for dimensional_type in DimensionalType
        },
        "with_indices": {
            index_type.value: len(get_measurements_with_index(index_type, measurements))
            for index_type in IndexType
        },
        "source": DATASET_SOURCE,
    }
