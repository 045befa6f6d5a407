"""
Tests for the BSA and LBM formula registry.

Covers the reference values of the default formulas, the documented fallback
for unknown formula ids, input validation and ethnicity normalization.
"""

import unittest

from formula_registry import (
    BSA_FORMULA_INFO,
    BSA_FORMULAS,
    LBM_FORMULA_INFO,
    LBM_FORMULAS,
    compute_bsa,
    compute_lbm,
    lookup_bsa_formula,
    lookup_lbm_formula,
    normalize_ethnicity,
    resolve_bsa_formula_id,
    resolve_lbm_formula_id,
)
from shared_models import Sex


class TestBSAFormulas(unittest.TestCase):
    """Body surface area formulas and their registry lookup."""

    def test_dubois_reference_male(self):
        self.assertAlmostEqual(compute_bsa("dubois", 79.1, 178), 1.97, delta=0.01)

    def test_mosteller(self):
        self.assertAlmostEqual(compute_bsa("mosteller", 70, 170), 1.81812, places=4)

    def test_weight_only_formulas_ignore_height(self):
        for formula_id in ("dreyer", "livingston"):
            self.assertEqual(
                compute_bsa(formula_id, 70, 150), compute_bsa(formula_id, 70, 190)
            )

    def test_all_formulas_plausible_for_adult(self):
        """Every registered BSA formula gives an adult-sized BSA."""
        for formula_id in BSA_FORMULAS:
            bsa = compute_bsa(formula_id, 70, 170)
            self.assertGreater(bsa, 1.5, formula_id)
            self.assertLess(bsa, 2.2, formula_id)

    def test_unknown_formula_falls_back_to_dubois(self):
        self.assertEqual(compute_bsa("nonexistent", 70, 170), compute_bsa("dubois", 70, 170))

    def test_formula_id_case_insensitive(self):
        self.assertEqual(compute_bsa("MOSTELLER", 70, 170), compute_bsa("mosteller", 70, 170))

    def test_non_positive_inputs_rejected(self):
        with self.assertRaises(ValueError):
            compute_bsa("dubois", 0, 170)
        with self.assertRaises(ValueError):
            compute_bsa("dubois", 70, -1)

    def test_metadata_covers_every_formula(self):
        self.assertEqual(set(BSA_FORMULA_INFO), set(BSA_FORMULAS))
        self.assertEqual(len(BSA_FORMULAS), 7)


class TestLBMFormulas(unittest.TestCase):
    """Lean body mass formulas and their registry lookup."""

    def test_boer_reference_male(self):
        # 0.407 * 79.1 + 0.267 * 178 - 19.2
        self.assertAlmostEqual(compute_lbm("boer", 79.1, 178, "male"), 60.52, delta=0.01)

    def test_boer_female(self):
        self.assertAlmostEqual(
            compute_lbm("boer", 67.24, 164, "female"), 46.2165, places=3
        )

    def test_unknown_formula_falls_back_to_boer(self):
        self.assertEqual(
            compute_lbm("nonexistent", 70, 170, "female"),
            compute_lbm("boer", 70, 170, "female"),
        )

    def test_sex_parsing(self):
        self.assertEqual(
            compute_lbm("boer", 70, 170, "M"), compute_lbm("boer", 70, 170, Sex.MALE)
        )
        with self.assertRaises(ValueError):
            compute_lbm("boer", 70, 170, "x")

    def test_non_positive_inputs_rejected(self):
        with self.assertRaises(ValueError):
            compute_lbm("boer", -70, 170, "male")

    def test_age_defaults_to_50(self):
        self.assertEqual(
            compute_lbm("yu", 70, 170, "male", age=None),
            compute_lbm("yu", 70, 170, "male", age=50),
        )
        self.assertNotEqual(
            compute_lbm("yu", 70, 170, "male", age=30),
            compute_lbm("yu", 70, 170, "male", age=70),
        )

    def test_lee_ethnicity_adjustment(self):
        white = compute_lbm("lee", 70, 170, "male", ethnicity="white")
        black = compute_lbm("lee", 70, 170, "male", ethnicity="Black")
        self.assertAlmostEqual(black - white, 1.821, places=6)

    def test_all_formulas_plausible_for_adult(self):
        for formula_id in LBM_FORMULAS:
            for sex in Sex:
                lbm = compute_lbm(formula_id, 70, 170, sex)
                self.assertGreater(lbm, 30, f"{formula_id} {sex}")
                self.assertLess(lbm, 70, f"{formula_id} {sex}")

    def test_metadata_covers_every_formula(self):
        self.assertEqual(set(LBM_FORMULA_INFO), set(LBM_FORMULAS))
        self.assertEqual(len(LBM_FORMULAS), 6)


class TestLookupAndNormalization(unittest.TestCase):
    def test_lookup_reports_unknown_ids(self):
        self.assertIsNone(lookup_bsa_formula("nonexistent"))
        self.assertIsNone(lookup_lbm_formula(None))
        self.assertIsNotNone(lookup_bsa_formula("Haycock"))

    def test_resolve_applies_default(self):
        self.assertEqual(resolve_bsa_formula_id("nonexistent"), "dubois")
        self.assertEqual(resolve_lbm_formula_id(42), "boer")
        self.assertEqual(resolve_lbm_formula_id("Janmahasatian"), "janmahasatian")

    def test_normalize_ethnicity(self):
        self.assertEqual(normalize_ethnicity("Caucasian"), "white")
        self.assertEqual(normalize_ethnicity(" Latino "), "hispanic")
        self.assertEqual(normalize_ethnicity("martian"), "other")
        self.assertEqual(normalize_ethnicity(None), "white")
        self.assertEqual(normalize_ethnicity(""), "white")


if __name__ == "__main__":
    unittest.main()
