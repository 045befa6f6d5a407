"""Tests for the reference measurement table and its loader."""

import unittest

from jsonschema import ValidationError

from measurement_data import (
    MEASUREMENT_RECORDS,
    MEASUREMENTS,
    get_dataset_summary,
    get_measurement,
    get_measurements_by_type,
    get_measurements_with_index,
    load_measurements,
    measurement_from_record,
    validate_measurement_record,
)
from shared_models import DimensionalType, IndexedStatistic, IndexType, Sex, UnknownUnitError


def _record(**overrides):
    record = {
        "id": "test",
        "name": "Test Measurement",
        "absolute_unit": "cm",
        "male": {"bsa": {"mean": 1.0, "sd": 0.1}},
        "female": {"bsa": {"mean": 1.0, "sd": 0.1}},
    }
    record.update(overrides)
    return record


class TestReferenceTable(unittest.TestCase):
    def test_all_records_load(self):
        self.assertEqual(len(MEASUREMENTS), len(MEASUREMENT_RECORDS))
        self.assertEqual(len(MEASUREMENTS), 17)
        ids = [m.id for m in MEASUREMENTS]
        self.assertEqual(len(ids), len(set(ids)))

    def test_dimensional_types_derived_from_unit(self):
        self.assertIs(get_measurement("lvdd").dimensional_type, DimensionalType.LINEAR)
        self.assertIs(get_measurement("raesa").dimensional_type, DimensionalType.AREA)
        self.assertIs(get_measurement("lvm").dimensional_type, DimensionalType.MASS)
        self.assertIs(get_measurement("co").dimensional_type, DimensionalType.VOLUME)

    def test_counts_by_type(self):
        self.assertEqual(len(get_measurements_by_type(DimensionalType.LINEAR)), 8)
        self.assertEqual(len(get_measurements_by_type("area")), 3)
        self.assertEqual(len(get_measurements_by_type("mass")), 1)
        self.assertEqual(len(get_measurements_by_type("volume")), 5)

    def test_statistics(self):
        lvdd = get_measurement("lvdd")
        male = lvdd.statistics_for(Sex.MALE)
        self.assertEqual(set(male), {IndexType.BSA, IndexType.HEIGHT})
        self.assertEqual(male[IndexType.BSA].mean, 2.3)
        self.assertAlmostEqual(male[IndexType.BSA].upper_limit, 2.795)
        self.assertNotIn(IndexType.HEIGHT_2_7, lvdd.statistics_for("female"))

    def test_indexed_units(self):
        self.assertEqual(get_measurement("lvdd").indexed_unit(IndexType.BSA), "cm/m²")
        self.assertEqual(get_measurement("lvm").indexed_unit(IndexType.HEIGHT_2_7), "g/m^2.7")

    def test_measurements_with_index(self):
        self.assertEqual(len(get_measurements_with_index(IndexType.BSA)), 17)
        self.assertEqual(len(get_measurements_with_index("height27")), 9)
        self.assertEqual(get_measurements_with_index(IndexType.BMI), [])

    def test_records_are_read_only(self):
        lvdd = get_measurement("lvdd")
        with self.assertRaises(TypeError):
            lvdd.male[IndexType.BSA] = IndexedStatistic(100.0, 0.0)
        with self.assertRaises(TypeError):
            del lvdd.female[IndexType.BSA]
        self.assertEqual(get_measurement("lvdd").male[IndexType.BSA].mean, 2.3)
        self.assertEqual(hash(lvdd), hash(get_measurement("lvdd")))

    def test_missing_measurement_is_none(self):
        self.assertIsNone(get_measurement("nonexistent"))

    def test_dataset_summary(self):
        summary = get_dataset_summary()
        self.assertEqual(summary["total"], 17)
        self.assertEqual(summary["by_type"]["linear"], 8)
        self.assertEqual(summary["with_indices"]["height16"], 9)
        self.assertIn("MESA", summary["source"])


class TestRecordLoading(unittest.TestCase):
    def test_unknown_unit_stores_but_raises_on_type(self):
        measurement = measurement_from_record(_record(absolute_unit="furlongs"))
        self.assertEqual(measurement.absolute_unit, "furlongs")
        with self.assertRaises(UnknownUnitError):
            measurement.dimensional_type

    def test_unit_aliases(self):
        self.assertIs(
            measurement_from_record(_record(absolute_unit="cm2")).dimensional_type,
            DimensionalType.AREA,
        )
        self.assertIs(
            measurement_from_record(_record(absolute_unit="ml")).dimensional_type,
            DimensionalType.VOLUME,
        )

    def test_schema_rejects_bad_statistics(self):
        with self.assertRaises(ValidationError):
            validate_measurement_record(_record(male={"bsa": {"mean": -1.0, "sd": 0.1}}))
        with self.assertRaises(ValidationError):
            validate_measurement_record(_record(male={"weight": {"mean": 1.0, "sd": 0.1}}))

    def test_invalid_records_skipped(self):
        records = [_record(), _record(id="bad", female={"bsa": {"mean": 1.0}})]
        with self.assertLogs("measurement_data", level="WARNING"):
            measurements = load_measurements(records)
        self.assertEqual([m.id for m in measurements], ["test"])

    def test_type_lookup_skips_unknown_units(self):
        measurements = [
            measurement_from_record(_record()),
            measurement_from_record(_record(id="odd", absolute_unit="furlongs")),
        ]
        with self.assertLogs("measurement_data", level="WARNING"):
            linear = get_measurements_by_type("linear", measurements)
        self.assertEqual([m.id for m in linear], ["test"])

    def test_empty_sex_mapping_allowed(self):
        measurement = measurement_from_record(_record(male={}))
        self.assertEqual(dict(measurement.male), {})
        self.assertFalse(measurement.has_index(IndexType.BSA))


if __name__ == "__main__":
    unittest.main()
