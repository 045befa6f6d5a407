"""
Test suite for the back-calculation engine and universal coefficient derivation.

Expected values are computed by hand from the canonical reference individuals
(178 cm male / 164 cm female at BMI 25) with the DuBois and Boer formulas.
"""

import unittest

from core import (
    back_calculate_absolute,
    bsa_coefficient,
    coefficients_to_dataframe,
    derive_all_coefficients,
    derive_coefficients,
    derive_coefficients_cached,
    lbm_coefficient,
    predict_measurement,
    predict_measurement_bsa,
    sex_similarity,
    summarize_coefficients,
    validate_coefficients,
)
from measurement_data import get_measurement
from shared_models import (
    BackCalculation,
    DimensionalType,
    FormulaSelection,
    IndexedStatistic,
    IndexType,
    MeasurementDefinition,
    PopulationCharacteristics,
    Sex,
    UnknownUnitError,
)

REFERENCE_MALE = PopulationCharacteristics(
    height=178.0, weight=79.1, bmi=79.1 / 1.78**2, bsa=1.97, lbm=60.5
)


def make_measurement(male, female, unit="cm", measurement_id="synthetic"):
    return MeasurementDefinition(
        id=measurement_id, name="Synthetic", absolute_unit=unit, male=male, female=female
    )


class TestBackCalculation(unittest.TestCase):
    """Recovering absolute values from indexed statistics."""

    def test_multi_index_averaging(self):
        statistics = {
            IndexType.BSA: IndexedStatistic(mean=2.3, sd=0.3),
            IndexType.HEIGHT: IndexedStatistic(mean=2.57, sd=0.29),
        }
        measurement = make_measurement(statistics, statistics)
        result = back_calculate_absolute(measurement, "male", REFERENCE_MALE)

        self.assertAlmostEqual(result.estimates[IndexType.BSA], 2.795 * 1.97, places=6)
        self.assertAlmostEqual(result.estimates[IndexType.HEIGHT], 3.0485 * 1.78, places=6)
        self.assertAlmostEqual(result.absolute, 5.50, delta=0.05)
        self.assertAlmostEqual(
            result.absolute,
            (result.estimates[IndexType.BSA] + result.estimates[IndexType.HEIGHT]) / 2,
        )
        self.assertAlmostEqual(result.indexed_values[IndexType.BSA], 2.795)

    def test_height_power_and_bmi_indices(self):
        unit = IndexedStatistic(mean=1.0, sd=0.0)
        for index_type, expected in (
            (IndexType.HEIGHT_1_6, 1.78**1.6),
            (IndexType.HEIGHT_2_7, 1.78**2.7),
            (IndexType.HEIGHT_SQUARED, 1.78**2),
            (IndexType.BMI, REFERENCE_MALE.bmi),
        ):
            measurement = make_measurement({index_type: unit}, {})
            result = back_calculate_absolute(measurement, Sex.MALE, REFERENCE_MALE)
            self.assertAlmostEqual(result.absolute, expected, places=10, msg=index_type)

    def test_no_statistics_is_degenerate(self):
        measurement = make_measurement({}, {})
        result = back_calculate_absolute(measurement, "female", REFERENCE_MALE)
        self.assertEqual(result.absolute, 0.0)
        self.assertTrue(result.is_degenerate)
        self.assertEqual(result.estimates, {})


class TestCoefficientHelpers(unittest.TestCase):
    def test_lbm_and_bsa_coefficients(self):
        self.assertAlmostEqual(lbm_coefficient(60.0, 60.0, 1.0), 1.0)
        self.assertAlmostEqual(bsa_coefficient(8.0, 4.0, 1.5), 1.0)
        self.assertEqual(lbm_coefficient(0.0, 60.0, 1.0), 0.0)
        self.assertEqual(bsa_coefficient(5.0, 0.0, 0.5), 0.0)

    def test_sex_similarity(self):
        self.assertEqual(sex_similarity(1.4, 1.4), 1.0)
        self.assertAlmostEqual(sex_similarity(2.0, 1.0), 0.5)
        self.assertAlmostEqual(sex_similarity(1.0, 2.0), 0.5)
        self.assertEqual(sex_similarity(0.0, 1.0), 0.0)
        self.assertEqual(sex_similarity(1.0, -1.0), 0.0)

    def test_sex_similarity_range(self):
        for male, female in ((0.01, 100.0), (3.2, 3.1), (1e-6, 1e-6), (7.0, 0.5)):
            similarity = sex_similarity(male, female)
            self.assertGreaterEqual(similarity, 0.0)
            self.assertLessEqual(similarity, 1.0)
            self.assertEqual(similarity == 1.0, male == female)

    def test_validate_flags_every_violation(self):
        validation = validate_coefficients(
            DimensionalType.LINEAR,
            universal_lbm=3.0,
            bsa_coefficients={Sex.MALE: 3.0, Sex.FEMALE: 6.0},
            similarity=0.5,
        )
        self.assertFalse(validation.is_valid)
        self.assertEqual(len(validation.warnings), 3)
        self.assertEqual(validation.sex_similarity, 0.5)

    def test_validate_unchecked_bsa_bounds(self):
        validation = validate_coefficients(
            "mass",
            universal_lbm=4.0,
            bsa_coefficients={Sex.MALE: 1000.0, Sex.FEMALE: 0.0},
            similarity=0.95,
        )
        self.assertTrue(validation.is_valid)
        self.assertEqual(validation.warnings, ())

    def test_validate_degenerate_back_calculation(self):
        degenerate = BackCalculation(absolute=0.0, estimates={}, indexed_values={})
        validation = validate_coefficients(
            "linear",
            universal_lbm=1.0,
            bsa_coefficients={Sex.MALE: 2.0, Sex.FEMALE: 2.0},
            similarity=1.0,
            back_calculation={Sex.MALE: degenerate},
        )
        self.assertFalse(validation.is_valid)
        self.assertIn("No indexed statistics", validation.warnings[0])


class TestDeriveCoefficients(unittest.TestCase):
    """Universal coefficient derivation on the reference table."""

    def test_lvdd_reference_values(self):
        result = derive_coefficients("lvdd", "dubois", "boer")

        self.assertEqual(result.measurement_id, "lvdd")
        self.assertIs(result.dimensional_type, DimensionalType.LINEAR)
        self.assertEqual(result.exponents.lbm, 0.33)
        self.assertAlmostEqual(result.back_calculation[Sex.MALE].absolute, 5.47, delta=0.02)
        self.assertAlmostEqual(result.back_calculation[Sex.FEMALE].absolute, 4.995, delta=0.02)
        self.assertAlmostEqual(result.lbm_coefficients[Sex.MALE], 1.412, delta=0.01)
        self.assertAlmostEqual(result.lbm_coefficients[Sex.FEMALE], 1.410, delta=0.01)
        self.assertAlmostEqual(result.universal_lbm, 1.411, delta=0.01)
        self.assertAlmostEqual(result.bsa_coefficients[Sex.MALE], 3.89, delta=0.03)
        self.assertAlmostEqual(result.bsa_coefficients[Sex.FEMALE], 3.79, delta=0.03)
        self.assertGreater(result.validation.sex_similarity, 0.99)
        self.assertTrue(result.validation.is_valid)
        self.assertEqual(result.validation.warnings, ())

    def test_universal_is_mean_of_sexes(self):
        result = derive_coefficients("lvm")
        self.assertEqual(
            result.universal_lbm,
            (result.lbm_coefficients[Sex.MALE] + result.lbm_coefficients[Sex.FEMALE]) / 2,
        )
        self.assertEqual(
            result.universal_lbm,
            (result.lbm_coefficients[Sex.FEMALE] + result.lbm_coefficients[Sex.MALE]) / 2,
        )

    def test_deterministic(self):
        self.assertEqual(derive_coefficients("lvdd", "dubois", "boer"), derive_coefficients("lvdd", "dubois", "boer"))

    def test_unknown_formulas_fall_back(self):
        fallback = derive_coefficients("lvdd", "nonexistent", "also_nonexistent")
        self.assertEqual(fallback, derive_coefficients("lvdd", "dubois", "boer"))
        self.assertEqual(fallback.bsa_formula, "dubois")

    def test_formula_choice_changes_coefficients(self):
        dubois = derive_coefficients("lvm", "dubois", "boer")
        mosteller = derive_coefficients("lvm", "mosteller", "hume")
        self.assertNotEqual(dubois.universal_lbm, mosteller.universal_lbm)
        self.assertEqual(mosteller.lbm_formula, "hume")

    def test_missing_measurement_returns_none(self):
        with self.assertLogs("core", level="WARNING"):
            self.assertIsNone(derive_coefficients("nonexistent"))

    def test_unknown_unit_raises(self):
        statistics = {IndexType.BSA: IndexedStatistic(1.0, 0.1)}
        measurement = make_measurement(statistics, statistics, unit="furlongs")
        with self.assertRaises(UnknownUnitError):
            derive_coefficients(measurement)

    def test_degenerate_measurement_is_flagged(self):
        measurement = make_measurement({}, {IndexType.BSA: IndexedStatistic(2.4, 0.3)})
        result = derive_coefficients(measurement)
        self.assertEqual(result.back_calculation[Sex.MALE].absolute, 0.0)
        self.assertEqual(result.lbm_coefficients[Sex.MALE], 0.0)
        self.assertEqual(result.validation.sex_similarity, 0.0)
        self.assertFalse(result.validation.is_valid)
        self.assertTrue(any("No indexed statistics" in w for w in result.validation.warnings))

    def test_low_similarity_is_invalid(self):
        measurement = make_measurement(
            {IndexType.BSA: IndexedStatistic(1.2, 0.0)},
            {IndexType.BSA: IndexedStatistic(0.5, 0.0)},
        )
        result = derive_coefficients(measurement)
        self.assertLess(result.validation.sex_similarity, 0.7)
        self.assertFalse(result.validation.is_valid)
        self.assertTrue(any("Low sex similarity" in w for w in result.validation.warnings))

    def test_out_of_range_coefficient_is_invalid(self):
        statistics = {IndexType.BSA: IndexedStatistic(20.0, 0.0)}
        result = derive_coefficients(make_measurement(statistics, statistics))
        self.assertFalse(result.validation.is_valid)
        self.assertTrue(any("outside expected range" in w for w in result.validation.warnings))

    def test_age_and_ethnicity_reach_lbm_formula(self):
        white = derive_coefficients("lvm", lbm_formula="lee", ethnicity="white")
        asian = derive_coefficients("lvm", lbm_formula="lee", ethnicity="asian")
        self.assertNotEqual(white.populations[Sex.MALE].lbm, asian.populations[Sex.MALE].lbm)

    def test_cached_derivation(self):
        first = derive_coefficients_cached("lvdd", "dubois", "boer")
        self.assertIs(first, derive_coefficients_cached("lvdd", "dubois", "boer"))
        self.assertEqual(first, derive_coefficients("lvdd"))

    def test_cached_result_is_read_only(self):
        cached = derive_coefficients_cached("lvdd", "dubois", "boer")
        male = cached.lbm_coefficients[Sex.MALE]
        with self.assertRaises(TypeError):
            cached.lbm_coefficients[Sex.MALE] = 999.0
        with self.assertRaises(TypeError):
            cached.back_calculation[Sex.MALE].estimates[IndexType.BSA] = 0.0
        self.assertEqual(derive_coefficients_cached("lvdd", "dubois", "boer").lbm_coefficients[Sex.MALE], male)
        self.assertEqual(hash(cached), hash(derive_coefficients("lvdd")))

    def test_input_mappings_are_copied(self):
        statistics = {IndexType.BSA: IndexedStatistic(2.4, 0.3)}
        measurement = make_measurement(statistics, statistics)
        before = derive_coefficients(measurement)
        statistics[IndexType.BSA] = IndexedStatistic(100.0, 0.0)
        self.assertEqual(derive_coefficients(measurement), before)

    def test_age_none_uses_default(self):
        result = derive_coefficients("lvm", lbm_formula="lee", age=None, ethnicity=None)
        self.assertEqual(result, derive_coefficients("lvm", lbm_formula="lee"))
        self.assertEqual(result.age, 50)
        self.assertEqual(result.ethnicity, "white")

    def test_selection_recorded_on_result(self):
        result = derive_coefficients("lvm", "mosteller", "lee", age=30, ethnicity="asian")
        self.assertEqual(
            result.selection,
            FormulaSelection(bsa_formula="mosteller", lbm_formula="lee", age=30, ethnicity="asian"),
        )


class TestPrediction(unittest.TestCase):
    def setUp(self):
        self.result = derive_coefficients("lvdd")

    def test_prediction_uses_universal_lbm(self):
        self.assertAlmostEqual(
            predict_measurement(self.result, "male", 60.0, 2.0),
            self.result.universal_lbm * 60.0**0.33,
        )

    def test_prediction_sex_independent(self):
        self.assertEqual(
            predict_measurement(self.result, Sex.MALE, 50.0, 1.9),
            predict_measurement(self.result, Sex.FEMALE, 50.0, 1.7),
        )

    def test_bsa_prediction_recovers_reference_absolute(self):
        male = self.result.populations[Sex.MALE]
        self.assertAlmostEqual(
            predict_measurement_bsa(self.result, "male", male.bsa),
            self.result.back_calculation[Sex.MALE].absolute,
        )


class TestBatchDerivation(unittest.TestCase):
    def test_derive_all(self):
        results = derive_all_coefficients()
        self.assertEqual(len(results), 17)
        self.assertEqual([r.measurement_id for r in results][:2], ["lvdd", "lvsd"])

    def test_batch_skips_unknown_units(self):
        statistics = {IndexType.BSA: IndexedStatistic(1.0, 0.1)}
        measurements = [
            make_measurement(statistics, statistics, unit="furlongs", measurement_id="odd"),
            get_measurement("lvdd"),
        ]
        with self.assertLogs("core", level="WARNING"):
            results = derive_all_coefficients(measurements=measurements)
        self.assertEqual([r.measurement_id for r in results], ["lvdd"])

    def test_summary(self):
        summary = summarize_coefficients(derive_all_coefficients())
        self.assertEqual(summary["total"], 17)
        self.assertEqual(summary["by_type"], {"linear": 8, "area": 3, "mass": 1, "volume": 5})
        self.assertGreater(summary["averages"]["linear"]["lbm"], 0)
        self.assertLessEqual(summary["validation"]["valid"], 17)

    def test_summary_of_empty_batch(self):
        summary = summarize_coefficients([])
        self.assertEqual(summary["total"], 0)
        self.assertEqual(summary["averages"]["mass"]["lbm"], 0.0)

    def test_dataframe(self):
        df = coefficients_to_dataframe(derive_all_coefficients())
        self.assertEqual(len(df), 17)
        self.assertIn("universal_lbm", df.columns)
        self.assertEqual(df.iloc[0]["measurement_id"], "lvdd")


if __name__ == "__main__":
    unittest.main()
