"""
Command-line interface.

Usage:
    freehand-calib calibrate \\
        --input-freehand-motion-1-sequence-file FreehandMotion1.h5 \\
        --input-freehand-motion-2-sequence-file FreehandMotion2.h5 \\
        --input-config-file-name CalibrationConfig.xml \\
        --input-baseline-file-name Baseline.Calibration.results.xml \\
        --output-dir out/

    freehand-calib compare baseline.xml current.xml

    freehand-calib generate-synthetic --output-dir data/synthetic

Exit code 0 only when every stage succeeded and the comparison found no
mismatch; 1 otherwise.
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from freehand_calib.context import PipelineContext
from freehand_calib.errors import CalibrationError
from freehand_calib.logging_utils import DEFAULT_VERBOSITY, VERBOSITY_LEVELS, setup_logger
from freehand_calib.pipeline import run_freehand_calibration
from freehand_calib.results.comparison import ResultComparator
from freehand_calib.simulation import generate_dataset

DEFAULT_TRANSLATION_THRESHOLD_MM = 2.0
DEFAULT_ROTATION_THRESHOLD_DEG = 3.0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--verbose",
        type=int,
        default=DEFAULT_VERBOSITY,
        choices=sorted(VERBOSITY_LEVELS),
        help="Verbosity: 1=error, 2=warning, 3=info, 4=debug, 5=trace",
    )


def _add_threshold_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--translation-error-threshold",
        type=float,
        default=DEFAULT_TRANSLATION_THRESHOLD_MM,
        help="Allowed difference of the transform origins (mm)",
    )
    parser.add_argument(
        "--rotation-error-threshold",
        type=float,
        default=DEFAULT_ROTATION_THRESHOLD_DEG,
        help="Allowed difference of the transform rotations (degrees)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its three subcommands."""
    parser = argparse.ArgumentParser(
        prog="freehand-calib",
        description="Ultrasound probe calibration with an N-wire phantom",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    calibrate = sub.add_parser(
        "calibrate",
        help="Calibrate from two tracked sweeps and compare with a baseline",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    calibrate.add_argument(
        "--input-freehand-motion-1-sequence-file",
        type=Path,
        required=True,
        help="Sequence used for calibration (.h5)",
    )
    calibrate.add_argument(
        "--input-freehand-motion-2-sequence-file",
        type=Path,
        required=True,
        help="Sequence used for validation (.h5)",
    )
    calibrate.add_argument(
        "--input-config-file-name",
        type=Path,
        required=True,
        help="Configuration file name",
    )
    calibrate.add_argument(
        "--input-baseline-file-name",
        type=Path,
        default=None,
        help="Name of file storing baseline calibration results",
    )
    calibrate.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for the calibration result file",
    )
    _add_threshold_arguments(calibrate)
    _add_common_arguments(calibrate)

    compare = sub.add_parser(
        "compare",
        help="Compare a calibration result file with a baseline",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    compare.add_argument("baseline", type=Path, help="Baseline result file")
    compare.add_argument("current", type=Path, help="Current result file")
    _add_threshold_arguments(compare)
    _add_common_arguments(compare)

    generate = sub.add_parser(
        "generate-synthetic",
        help="Write a synthetic phantom dataset",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    generate.add_argument("--output-dir", type=Path, required=True)
    generate.add_argument("--num-frames", type=int, default=40)
    generate.add_argument("--seed", type=int, default=0)
    generate.add_argument("--noise-std", type=float, default=8.0, help="Speckle noise (gray levels)")
    generate.add_argument(
        "--invalid-pose-interval",
        type=int,
        default=0,
        help="Mark every n-th pose as untracked (0 disables)",
    )
    _add_common_arguments(generate)

    return parser


def _run_calibrate(args: argparse.Namespace, logger: logging.Logger) -> int:
    result = run_freehand_calibration(
        calibration_sequence_path=args.input_freehand_motion_1_sequence_file,
        validation_sequence_path=args.input_freehand_motion_2_sequence_file,
        config_path=args.input_config_file_name,
        output_dir=args.output_dir,
        baseline_path=args.input_baseline_file_name,
        translation_threshold=args.translation_error_threshold,
        rotation_threshold=args.rotation_error_threshold,
        logger=logger,
    )
    if result.comparison is None:
        logger.info("No baseline given, comparison skipped")
        return 0
    if not result.comparison.passed:
        logger.error(result.comparison.summary())
        return 1
    logger.info("Calibration matches the baseline")
    return 0


def _run_compare(args: argparse.Namespace, logger: logging.Logger) -> int:
    comparator = ResultComparator(
        PipelineContext(logger=logger),
        args.translation_error_threshold,
        args.rotation_error_threshold,
    )
    outcome = comparator.compare(args.baseline, args.current)
    if not outcome.passed:
        logger.error(outcome.summary())
        return 1
    logger.info("No differences found")
    return 0


def _run_generate(args: argparse.Namespace, logger: logging.Logger) -> int:
    dataset = generate_dataset(
        args.output_dir,
        num_frames=args.num_frames,
        seed=args.seed,
        noise_std=args.noise_std,
        invalid_pose_interval=args.invalid_pose_interval,
    )
    logger.info("Calibration sequence: %s", dataset.calibration_sequence)
    logger.info("Validation sequence: %s", dataset.validation_sequence)
    logger.info("Configuration: %s", dataset.configuration)
    logger.info("Ground truth: %s", dataset.ground_truth)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = setup_logger(args.verbose)

    commands = {
        "calibrate": _run_calibrate,
        "compare": _run_compare,
        "generate-synthetic": _run_generate,
    }
    try:
        return commands[args.cmd](args, logger)
    except CalibrationError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
