#!/usr/bin/env python3
"""
Microarray Nearest Shrunken Centroid Pipeline

Main entry point for training, cross-validating and applying a nearest
shrunken centroid classifier to gene-expression microarray data.
Input files and parameters come from configuration and can be
overridden on the command line.

Usage:
    python main.py                                  # Run with configs/datasets/example.yaml
    python main.py --config my_run.yaml            # Custom configuration
    python main.py --expression X.csv --metadata samples.csv
    python main.py --threshold 2.5                  # Fixed threshold, no selection rule
    python main.py --skip-plots --skip-exploration  # Tables and model only

Examples:
    # Leukemia-style two-class analysis with a held-out cohort
    python main.py --expression data/raw/train.csv --metadata data/metadata/train.csv \\
        --test-expression data/raw/test.csv --test-metadata data/metadata/test.csv

    # Ten-fold CV, minimum-error rule, equal priors, four workers
    python main.py --folds 10 --rule min_error --prior uniform --n-jobs 4
"""

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import List, Optional, Union

from microarray_nsc.exceptions import ShrunkenCentroidError
from microarray_nsc.models.evaluation import SELECTION_RULES
from microarray_nsc.pipeline import AnalysisPipeline
from microarray_nsc.utils.config import Config, load_config
from microarray_nsc.utils.logging_utils import setup_logger

logger = logging.getLogger("microarray_nsc.main")


def parse_prior(value: str) -> Union[str, List[float]]:
    """Parse --prior: 'class_frequency', 'uniform' or comma-separated weights."""
    if value in ("class_frequency", "uniform"):
        return value
    try:
        return [float(v) for v in value.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Prior must be 'class_frequency', 'uniform' or comma-separated weights, got {value!r}"
        ) from None


def build_parser() -> argparse.ArgumentParser:
    """Command-line interface definition."""
    parser = argparse.ArgumentParser(
        description="Nearest Shrunken Centroid Microarray Classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    inputs = parser.add_argument_group("inputs")
    inputs.add_argument("--config", help="Path to custom configuration file")
    inputs.add_argument(
        "--dataset",
        default="example",
        help="Dataset configuration under configs/datasets/ (default: example)"
    )
    inputs.add_argument("--expression", help="Training expression matrix (features x samples CSV)")
    inputs.add_argument("--metadata", help="Training sample metadata CSV")
    inputs.add_argument("--annotations", help="Feature annotation CSV")
    inputs.add_argument("--label-column", help="Metadata column holding class labels")
    inputs.add_argument("--sample-column", help="Metadata column holding sample IDs")
    inputs.add_argument("--test-expression", help="External test expression matrix")
    inputs.add_argument("--test-metadata", help="External test sample metadata")

    model = parser.add_argument_group("model")
    model.add_argument(
        "--top-variance",
        type=int,
        help="Keep the N most variable features before training (0 keeps all)"
    )
    model.add_argument(
        "--no-log-transform",
        action="store_true",
        help="Data is already on a log scale"
    )
    model.add_argument("--folds", type=int, help="Cross-validation folds")
    model.add_argument("--n-thresholds", type=int, help="Threshold grid size")
    model.add_argument(
        "--threshold",
        type=float,
        help="Use this threshold instead of selecting one from the CV curve"
    )
    model.add_argument("--rule", choices=SELECTION_RULES, help="Threshold selection rule")
    model.add_argument(
        "--prior",
        type=parse_prior,
        help="'class_frequency', 'uniform' or comma-separated class weights"
    )
    model.add_argument("--seed", type=int, help="Random seed for fold assignment")
    model.add_argument("--n-jobs", type=int, help="Parallel cross-validation workers")

    outputs = parser.add_argument_group("outputs")
    outputs.add_argument("--output-dir", help="Directory for tables, plots and the model")
    outputs.add_argument("--skip-plots", action="store_true", help="Skip figures")
    outputs.add_argument(
        "--skip-exploration",
        action="store_true",
        help="Skip distances, clustering and PCA"
    )
    outputs.add_argument("--log-file", help="Also write the log to this file")
    outputs.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )
    return parser


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Copy command-line values that were given onto the configuration."""
    files = config.dataset.setdefault("files", {})
    for key, value in (
        ("expression", args.expression),
        ("metadata", args.metadata),
        ("annotations", args.annotations),
        ("test_expression", args.test_expression),
        ("test_metadata", args.test_metadata),
    ):
        if value is not None:
            files[key] = str(Path(value).resolve())

    columns = config.dataset.setdefault("columns", {})
    if args.label_column is not None:
        columns["label"] = args.label_column
    if args.sample_column is not None:
        columns["sample_id"] = args.sample_column

    if args.top_variance is not None:
        config.preprocessing["top_variance"] = args.top_variance or None
    if args.no_log_transform:
        config.preprocessing["log_transform"] = False

    for key, value in (
        ("cv_folds", args.folds),
        ("n_thresholds", args.n_thresholds),
        ("threshold", args.threshold),
        ("selection_rule", args.rule),
        ("prior", args.prior),
        ("random_state", args.seed),
        ("n_jobs", args.n_jobs),
    ):
        if value is not None:
            config.model_params[key] = value

    if args.output_dir is not None:
        config.output_dir = Path(args.output_dir).resolve()
    return config


def run_step(name: str, func, *args, **kwargs):
    """
    Run one pipeline step, logging failures with their traceback.

    Returns:
        Tuple of (success flag, step result or None)
    """
    try:
        return True, func(*args, **kwargs)
    except ShrunkenCentroidError as e:
        logger.error(f"{name} failed: {type(e).__name__}: {e}")
        logger.debug(traceback.format_exc())
    except Exception as e:
        logger.error(f"{name} failed: {e}")
        logger.error(traceback.format_exc())
    return False, None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logger("microarray_nsc", log_file=args.log_file, verbose=args.verbose)

    logger.info("=" * 60)
    logger.info("Microarray Nearest Shrunken Centroid Pipeline")
    logger.info("=" * 60)

    try:
        config = apply_cli_overrides(
            load_config(config_file=args.config, dataset=args.dataset), args
        )
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration failed: {e}")
        return 1

    logger.info(f"Dataset: {config.dataset.get('name', args.dataset)}")
    logger.debug(f"Effective configuration: {config.to_dict()}")

    pipeline = AnalysisPipeline(config)

    # Core steps depend on each other, so the first failure ends the run
    logger.info("")
    logger.info("[Step 1] Loading and preprocessing")
    logger.info("-" * 40)
    ok, data = run_step("Data loading", pipeline.load_data)
    if not ok:
        return 1
    ok, data = run_step("Preprocessing", pipeline.preprocess, *data)
    if not ok:
        return 1
    train, test = data

    success = True
    exploration = None
    if not args.skip_exploration:
        logger.info("")
        logger.info("[Step 2] Exploration")
        logger.info("-" * 40)
        ok, exploration = run_step("Exploration", pipeline.explore, train)
        if not ok:
            success = False
            logger.warning("Exploration failed, continuing with classification...")

    logger.info("")
    logger.info("[Step 3] Cross-validation and threshold selection")
    logger.info("-" * 40)
    ok, cv_result = run_step("Cross-validation", pipeline.cross_validate, train)
    if not ok:
        return 1
    ok, threshold = run_step("Threshold selection", pipeline.choose_threshold, cv_result)
    if not ok:
        return 1

    logger.info("")
    logger.info("[Step 4] Final model and reports")
    logger.info("-" * 40)
    ok, estimator = run_step("Training", pipeline.train_final_model, train, threshold)
    if not ok:
        return 1
    ok, _ = run_step("Reporting", pipeline.report, estimator, train, cv_result)
    if not ok:
        return 1

    external = None
    if test is not None:
        logger.info("")
        logger.info("[Step 5] External prediction")
        logger.info("-" * 40)
        ok, external = run_step("External prediction", pipeline.predict_external, estimator, test)
        if not ok:
            success = False

    if not args.skip_plots:
        logger.info("")
        logger.info("[Step 6] Plots")
        logger.info("-" * 40)
        ok, _ = run_step(
            "Plotting", pipeline.plot_results,
            train, estimator, cv_result, exploration, external
        )
        if not ok:
            success = False
            logger.warning("Plotting failed.")

    # Summary
    logger.info("")
    logger.info("=" * 60)
    if success:
        logger.info("Pipeline completed successfully!")
    else:
        logger.warning("Pipeline completed with some errors.")
    logger.info("=" * 60)
    logger.info(f"Results saved to: {config.output_dir}")

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
