"""
End-to-end freehand calibration run.

Reads the configuration and both tracked sweeps, segments them, solves the
calibration on the first sweep, evaluates it on the second, writes the
result document and optionally compares it with a baseline.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
import logging
from typing import Any, Dict, Optional, Union

import numpy as np

from freehand_calib.calibration.solver import CalibrationSolver
from freehand_calib.config.loader import load_configuration
from freehand_calib.constants import TIMESTAMP_FORMAT
from freehand_calib.context import PipelineContext
from freehand_calib.data.loader import load_tracked_frame_sequence
from freehand_calib.results.comparison import ResultComparator
from freehand_calib.results.record_io import results_file_name, write_result_record
from freehand_calib.segmentation.recognizer import PatternRecognizer
from freehand_calib.types import CalibrationResultRecord, ComparisonOutcome
from freehand_calib.xml_utils import format_vector


@dataclass(frozen=True)
class CalibrationRunResult:
    """
    Output of run_freehand_calibration.

    Attributes:
        record: The persisted result record.
        result_path: Where the record was written.
        comparison: Baseline comparison, None when no baseline was given.
    """
    record: CalibrationResultRecord
    result_path: Path
    comparison: Optional[ComparisonOutcome] = None

    @property
    def passed(self) -> bool:
        return self.comparison is None or self.comparison.passed


def _metadata_value(value: Any) -> str:
    if isinstance(value, (list, tuple, np.ndarray)):
        return format_vector(value)
    return str(value)


def run_freehand_calibration(
    calibration_sequence_path: Union[str, Path],
    validation_sequence_path: Union[str, Path],
    config_path: Union[str, Path],
    output_dir: Union[str, Path],
    baseline_path: Optional[Union[str, Path]] = None,
    translation_threshold: float = 2.0,
    rotation_threshold: float = 3.0,
    logger: Optional[logging.Logger] = None,
    timestamp: Optional[str] = None,
) -> CalibrationRunResult:
    """
    Run a complete freehand calibration.

    Args:
        calibration_sequence_path: Sweep used for the solve (.h5).
        validation_sequence_path: Sweep used for error analysis (.h5).
        config_path: Configuration XML.
        output_dir: Directory for the result document.
        baseline_path: Optional baseline result document.
        translation_threshold: Allowed origin difference to the baseline (mm).
        rotation_threshold: Allowed rotation difference to the baseline (deg).
        logger: Logger for the run; the package logger if None.
        timestamp: Result file timestamp; the current time if None.

    Returns:
        CalibrationRunResult.

    Raises:
        CalibrationError: From any stage; comparison mismatches are reported
                          in the result instead.
    """
    logger = logger if logger is not None else logging.getLogger("freehand_calib")
    timestamp = timestamp or datetime.now().strftime(TIMESTAMP_FORMAT)

    configuration = load_configuration(config_path)
    logger.info("Configuration %s (hash %s)", config_path, configuration.content_hash)
    context = PipelineContext(configuration=configuration, logger=logger)
    repository = configuration.build_repository()

    calibration_sequence = load_tracked_frame_sequence(calibration_sequence_path)
    validation_sequence = load_tracked_frame_sequence(validation_sequence_path)
    logger.info(
        "Loaded %d calibration frames and %d validation frames",
        len(calibration_sequence), len(validation_sequence),
    )

    recognizer = PatternRecognizer(context)
    calibration_set = recognizer.recognize(calibration_sequence)
    validation_set = recognizer.recognize(validation_sequence)

    solver = CalibrationSolver(context)
    outcome = solver.calibrate(
        calibration_set,
        validation_set,
        repository,
        configuration.phantom.num_nwires,
    )

    metadata: Dict[str, str] = {
        "ConfigurationFile": str(config_path),
        "ConfigurationHash": configuration.content_hash,
        "CalibrationSequence": str(calibration_sequence_path),
        "ValidationSequence": str(validation_sequence_path),
        "NumberOfSegmentedCalibrationFrames": str(calibration_set.num_segmented),
        "NumberOfCalibrationFrames": str(len(calibration_sequence)),
        "NumberOfSegmentedValidationFrames": str(validation_set.num_segmented),
        "NumberOfValidationFrames": str(len(validation_sequence)),
    }
    for key, value in outcome.metadata.items():
        metadata.setdefault(key, _metadata_value(value))

    record = CalibrationResultRecord(
        transform=outcome.transform,
        pre=outcome.pre,
        plde=outcome.plde,
        timestamp=timestamp,
        metadata=metadata,
    )
    result_path = write_result_record(results_file_name(output_dir, timestamp), record)
    logger.info("Calibration results written to %s", result_path)

    comparison = None
    if baseline_path is not None:
        comparator = ResultComparator(context, translation_threshold, rotation_threshold)
        comparison = comparator.compare(baseline_path, result_path)
        if not comparison.passed:
            logger.error("Comparison of calibration data to baseline failed")

    return CalibrationRunResult(record=record, result_path=result_path, comparison=comparison)
