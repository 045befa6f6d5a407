"""
================================================================================
README: Comparison Curve Pre-calculation Script
================================================================================

PURPOSE:
This script derives the universal coefficients for every reference
measurement and pre-calculates the biological vs ratiometric comparison
curves. It saves this data into JSON files so a front-end only has to render
the curves, not calculate them.

HOW TO USE:
1.  Run the script from your terminal: `python precalculate_curves.py`
    Optional arguments select the output directory, the BSA/LBM formulas and
    the independent axis (bsa or height).
2.  The script writes one JSON file per measurement, e.g.
    - `curves/lvdd_bsa_curves.json`
    - `curves/lvm_bsa_curves.json`
3.  Each file holds {x, y} point series for the male/female biological and
    ratiometric curves. y is null where the biological curve does not exist
    (outside the swept population's range).

"""
import argparse
import json
import os

from core import derive_coefficients
from curve_generator import (
    generate_comparison_curve,
    generate_reference_points,
    ratiometric_comparison,
)
from measurement_data import MEASUREMENTS
from shared_models import FormulaSelection, ScalingVariable, UnknownUnitError

SERIES = ("biological_male", "biological_female", "ratiometric_male", "ratiometric_female")


def curve_to_json(measurement, result, curve, reference_points, axis=ScalingVariable.BSA):
    """Serializable representation of one comparison curve."""
    axis = ScalingVariable(axis)
    return {
        "measurement": {
            "id": measurement.id,
            "name": measurement.name,
            "unit": measurement.absolute_unit,
            "type": result.dimensional_type.value,
        },
        "formulas": {"bsa": result.bsa_formula, "lbm": result.lbm_formula},
        "axis": axis.value,
        "coefficients": {
            "universal_lbm": result.universal_lbm,
            "lbm_exponent": result.exponents.lbm,
            "bsa": {sex.value: value for sex, value in result.bsa_coefficients.items()},
            "sex_similarity": result.validation.sex_similarity,
            "is_valid": result.validation.is_valid,
            "warnings": list(result.validation.warnings),
        },
        "ratiometric": ratiometric_comparison(measurement, axis),
        "series": {
            name: [{"x": point.independent_var, "y": getattr(point, name)} for point in curve]
            for name in SERIES
        },
        "reference_points": [
            {
                "sex": point.sex.value,
                "x": point.independent_var,
                "y": point.measurement,
                "label": point.label,
            }
            for point in reference_points
        ],
    }


def write_curve_json(measurement, output_dir, selection=None, axis=ScalingVariable.BSA):
    """
    Derive, generate and write the comparison curve of one measurement.

    Returns:
        str: Path of the written file.

    Raises:
        UnknownUnitError: If the measurement's unit has no dimensional type.
    """
    axis = ScalingVariable(axis)
    selection = selection or FormulaSelection()
    result = derive_coefficients(
        measurement,
        selection.bsa_formula,
        selection.lbm_formula,
        age=selection.age,
        ethnicity=selection.ethnicity,
    )
    curve = generate_comparison_curve(measurement, result, selection=selection, axis=axis)
    data = curve_to_json(measurement, result, curve, generate_reference_points(result, axis), axis)

    os.makedirs(output_dir, exist_ok=True)
    output_filename = os.path.join(output_dir, f"{measurement.id}_{axis.value}_curves.json")
    with open(output_filename, "w") as f:
        json.dump(data, f, indent=2)
    return output_filename


def precalculate_curves(output_dir="curves", selection=None, axis=ScalingVariable.BSA, measurements=None):
    """Main function to generate and save all comparison curve JSON files."""
    written = []
    print("Starting pre-calculation of comparison curves...")

    for measurement in MEASUREMENTS if measurements is None else measurements:
        try:
            output_filename = write_curve_json(measurement, output_dir, selection, axis)
        except UnknownUnitError as e:
            print(f"Skipping: {measurement.id} ({e})")
            continue
        print(f"    -> Successfully created '{output_filename}'")
        written.append(output_filename)

    print(f"\nPre-calculation complete. {len(written)} curve files written.")
    return written


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Pre-calculate comparison curve JSON files")
    parser.add_argument("--output-dir", default="curves", help="Directory for the JSON files")
    parser.add_argument("--bsa-formula", default="dubois", help="BSA formula id")
    parser.add_argument("--lbm-formula", default="boer", help="LBM formula id")
    parser.add_argument("--axis", choices=["bsa", "height"], default="bsa", help="Independent axis")
    args = parser.parse_args()

    precalculate_curves(
        args.output_dir,
        FormulaSelection(bsa_formula=args.bsa_formula, lbm_formula=args.lbm_formula),
        args.axis,
    )
