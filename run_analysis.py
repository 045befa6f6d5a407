#!/usr/bin/env python3
"""
Cardiac Scaling - Main CLI Script

This is the main entry point for cardiac scaling coefficient derivation. It
provides a command-line interface with helpful error messages and delegates
the computation to the core, curve generator and scaling analysis modules.
"""

import argparse
import json
import logging
import os

import pandas as pd
from jsonschema import ValidationError, validate

from core import coefficients_to_dataframe, derive_all_coefficients, summarize_coefficients
from formula_registry import BSA_FORMULA_INFO, LBM_FORMULA_INFO
from measurement_data import MEASUREMENTS, get_dataset_summary, get_measurement
from precalculate_curves import write_curve_json
from scaling_analysis import analysis_to_dataframe, run_scaling_analysis
from scaling_laws import SCALING_EXPLANATIONS
from shared_models import (
    DEFAULT_AGE,
    DEFAULT_BSA_FORMULA,
    DEFAULT_ETHNICITY,
    DEFAULT_LBM_FORMULA,
    ConfigurationError,
    FormulaSelection,
    UnknownUnitError,
)

# JSON Schema for run configuration files
RUN_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "bsa_formula": {"type": "string"},
        "lbm_formula": {"type": "string"},
        "age": {"type": "number", "exclusiveMinimum": 0, "maximum": 120},
        "ethnicity": {"type": "string"},
        "measurements": {
            "oneOf": [
                {"type": "string", "enum": ["all"]},
                {"type": "array", "items": {"type": "string"}, "minItems": 1},
            ]
        },
        "analysis": {"type": "boolean"},
        "curve": {
            "type": "object",
            "required": ["output_dir"],
            "properties": {
                "output_dir": {"type": "string", "minLength": 1},
                "axis": {"type": "string", "enum": ["bsa", "height"]},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

DEFAULT_RUN_CONFIG = {
    "bsa_formula": DEFAULT_BSA_FORMULA,
    "lbm_formula": DEFAULT_LBM_FORMULA,
    "age": DEFAULT_AGE,
    "ethnicity": DEFAULT_ETHNICITY,
    "measurements": "all",
    "analysis": False,
}


def load_run_config(config_path, quiet=False):
    """
    Loads and validates a JSON run configuration file.

    Args:
        config_path (str): Path to the JSON configuration file.
        quiet (bool): If True, suppress print statements

    Returns:
        dict: DEFAULT_RUN_CONFIG updated with the file's settings.

    Raises:
        ConfigurationError: If the file is missing, is not valid JSON or does
            not match RUN_CONFIG_SCHEMA.
    """
    if not quiet:
        print(f"Loading configuration from {config_path}...")

    if not os.path.exists(config_path):
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            config = json.load(f)
        validate(config, RUN_CONFIG_SCHEMA)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e.message}") from e

    merged = dict(DEFAULT_RUN_CONFIG)
    merged.update(config)
    return merged


def _selected_measurements(config):
    requested = config.get("measurements", "all")
    if requested == "all":
        return list(MEASUREMENTS)

    selected = []
    for measurement_id in requested:
        measurement = get_measurement(measurement_id)
        if measurement is None:
            raise ConfigurationError(
                f"Unknown measurement: {measurement_id}. "
                f"Available: {', '.join(m.id for m in MEASUREMENTS)}"
            )
        selected.append(measurement)
    return selected


def run_analysis(config, quiet=False):
    """
    Derives coefficients for the configured measurements and prints them.

    Args:
        config (dict): Run configuration (see RUN_CONFIG_SCHEMA).
        quiet (bool): If True, only errors are printed.

    Returns:
        int: Exit code (0 on success, 1 on error).
    """
    try:
        validate(config, RUN_CONFIG_SCHEMA)
        selection = FormulaSelection(
            bsa_formula=config.get("bsa_formula", DEFAULT_BSA_FORMULA),
            lbm_formula=config.get("lbm_formula", DEFAULT_LBM_FORMULA),
            age=config.get("age", DEFAULT_AGE),
            ethnicity=config.get("ethnicity", DEFAULT_ETHNICITY),
        )
        measurements = _selected_measurements(config)

        results = derive_all_coefficients(
            selection.bsa_formula,
            selection.lbm_formula,
            measurements,
            age=selection.age,
            ethnicity=selection.ethnicity,
        )

        if not quiet:
            print(
                f"\nUniversal coefficients ({selection.bsa_formula} BSA, "
                f"{selection.lbm_formula} LBM, age {selection.age}, {selection.ethnicity})"
            )
            print("=" * 80)
            with pd.option_context("display.width", 200, "display.max_columns", None):
                print(coefficients_to_dataframe(results).round(4).to_string(index=False))

            summary = summarize_coefficients(results)
            print(
                f"\n{summary['validation']['valid']}/{summary['total']} measurements valid, "
                f"{summary['validation']['warnings']} warnings"
            )
            for result in results:
                for warning in result.validation.warnings:
                    print(f"  - {result.measurement_id}: {warning}")

        if config.get("analysis"):
            for measurement in measurements:
                try:
                    analysis = run_scaling_analysis(measurement, selection)
                except UnknownUnitError as e:
                    print(f"Skipping analysis of {measurement.id}: {e}")
                    continue
                if not quiet:
                    explanation = SCALING_EXPLANATIONS[analysis.measurement.dimensional_type]
                    print(f"\nScaling analysis: {measurement.name}")
                    print("-" * 80)
                    print(f"{explanation['title']}: {explanation['physics']}")
                    print(analysis_to_dataframe(analysis).round(4).to_string(index=False))
                    insights = analysis.insights
                    print(
                        f"Best: {insights.best_configuration}, worst: {insights.worst_configuration}, "
                        f"recommended: {insights.recommended_approach}, "
                        f"clinical relevance: {insights.clinical_relevance}"
                    )

        curve = config.get("curve")
        if curve:
            for measurement in measurements:
                try:
                    output_filename = write_curve_json(
                        measurement, curve["output_dir"], selection, curve.get("axis", "bsa")
                    )
                except UnknownUnitError as e:
                    print(f"Skipping curve of {measurement.id}: {e}")
                    continue
                if not quiet:
                    print(f"Wrote {output_filename}")

        return 0

    except (ConfigurationError, ValidationError, ValueError) as e:
        message = e.message if isinstance(e, ValidationError) else e
        print(f"Error: {message}")
        return 1


def list_formulas():
    """Print the registered BSA and LBM formulas."""
    print("BSA formulas:")
    for formula_id, info in BSA_FORMULA_INFO.items():
        print(f"  {formula_id:<14} {info['name']} ({info['year']}) - {info['notes']}")
    print("\nLBM formulas:")
    for formula_id, info in LBM_FORMULA_INFO.items():
        print(f"  {formula_id:<14} {info['name']} ({info['year']}) - {info['notes']}")


def list_measurements():
    """Print the reference measurements and a dataset summary."""
    for measurement in MEASUREMENTS:
        print(f"  {measurement.id:<10} {measurement.name} ({measurement.absolute_unit})")
    summary = get_dataset_summary()
    print(f"\n{summary['total']} measurements from {summary['source']}")


def main():
    """Main CLI function with comprehensive argument parsing."""
    parser = argparse.ArgumentParser(
        description="Universal cardiac scaling coefficients from published reference values",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_analysis.py                               # All measurements, DuBois/Boer
  python run_analysis.py -m lvdd -m lvm                # Selected measurements
  python run_analysis.py --bsa-formula mosteller --lbm-formula lee --ethnicity asian
  python run_analysis.py -m lvm --analysis             # Multi-configuration analysis
  python run_analysis.py --curve-output curves         # Write comparison curve JSON
  python run_analysis.py --config run.json             # Settings from a JSON file

JSON config format (all keys optional):
  {
    "bsa_formula": "dubois",
    "lbm_formula": "boer",
    "age": 50,
    "ethnicity": "white",
    "measurements": ["lvdd", "lvm"],   // or "all"
    "analysis": true,
    "curve": {"output_dir": "curves", "axis": "bsa"}
  }

Command line options override the config file.
        """,
    )

    parser.add_argument("--config", "-c", help="Path to JSON run configuration file")
    parser.add_argument(
        "--measurement",
        "-m",
        action="append",
        dest="measurements",
        help="Measurement id (repeatable, default: all)",
    )
    parser.add_argument("--bsa-formula", help=f"BSA formula id (default: {DEFAULT_BSA_FORMULA})")
    parser.add_argument("--lbm-formula", help=f"LBM formula id (default: {DEFAULT_LBM_FORMULA})")
    parser.add_argument("--age", type=float, help=f"Age in years (default: {DEFAULT_AGE})")
    parser.add_argument("--ethnicity", help=f"Ethnicity for the Lee formula (default: {DEFAULT_ETHNICITY})")
    parser.add_argument("--analysis", "-a", action="store_true", help="Run the multi-configuration analysis")
    parser.add_argument("--curve-output", help="Directory to write comparison curve JSON files to")
    parser.add_argument("--axis", choices=["bsa", "height"], help="Independent axis for curves")
    parser.add_argument("--list-formulas", action="store_true", help="List available formulas")
    parser.add_argument("--list-measurements", action="store_true", help="List reference measurements")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print errors")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_formulas:
        list_formulas()
        return 0

    if args.list_measurements:
        list_measurements()
        return 0

    if args.config:
        try:
            config = load_run_config(args.config, quiet=args.quiet)
        except ConfigurationError as e:
            print(f"Error: {e}")
            print("\nRun with --help to see the expected JSON format.")
            return 1
    else:
        config = dict(DEFAULT_RUN_CONFIG)

    overrides = {
        "bsa_formula": args.bsa_formula,
        "lbm_formula": args.lbm_formula,
        "age": args.age,
        "ethnicity": args.ethnicity,
        "measurements": args.measurements,
    }
    config.update({key: value for key, value in overrides.items() if value is not None})
    if args.analysis:
        config["analysis"] = True
    if args.curve_output:
        config["curve"] = {"output_dir": args.curve_output, "axis": args.axis or "bsa"}
    elif args.axis and "curve" in config:
        config["curve"]["axis"] = args.axis

    try:
        exit_code = run_analysis(config, quiet=args.quiet)

        if exit_code == 0 and not args.quiet:
            print()
            print("Analysis completed successfully!")

        return exit_code

    except KeyboardInterrupt:
        print("\nAnalysis interrupted by user.")
        return 1


if __name__ == "__main__":
    exit(main())
