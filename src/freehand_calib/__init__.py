"""
freehand_calib - Ultrasound probe calibration with an N-wire phantom.

This package provides:
- Core types for tracked frames, segmentation results and calibration records
- N-wire phantom geometry and XML configuration loading
- Pattern recognition of wire cross-sections in ultrasound frames
- The image-to-probe calibration solver and its error analysis (PRE, PLDE)
- Result documents and regression comparison against a baseline
- A synthetic data generator and the freehand-calib command line tool
"""

from freehand_calib.types import (
    TrackedFrame,
    TrackedFrameSequence,
    SegmentationResult,
    SegmentedSequence,
    CalibrationTransform,
    ErrorStatistic,
    CalibrationResultRecord,
    Mismatch,
    ComparisonOutcome,
)
from freehand_calib.constants import (
    ERROR_THRESHOLD,
    NUM_FREE_PARAMETERS,
    NUM_PLDE_VALUES,
    NUM_PRE_VALUES,
)
from freehand_calib.errors import (
    CalibrationError,
    InputError,
    SegmentationError,
    SolverError,
    UnderdeterminedError,
    MissingCoordinateFrameError,
    DegenerateGeometryError,
    InsufficientValidationDataError,
)

__version__ = "0.1.0"

__all__ = [
    # Types
    "TrackedFrame",
    "TrackedFrameSequence",
    "SegmentationResult",
    "SegmentedSequence",
    "CalibrationTransform",
    "ErrorStatistic",
    "CalibrationResultRecord",
    "Mismatch",
    "ComparisonOutcome",
    # Constants
    "ERROR_THRESHOLD",
    "NUM_FREE_PARAMETERS",
    "NUM_PLDE_VALUES",
    "NUM_PRE_VALUES",
    # Errors
    "CalibrationError",
    "InputError",
    "SegmentationError",
    "SolverError",
    "UnderdeterminedError",
    "MissingCoordinateFrameError",
    "DegenerateGeometryError",
    "InsufficientValidationDataError",
]
