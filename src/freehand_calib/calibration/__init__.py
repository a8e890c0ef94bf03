"""Image-to-probe calibration solve."""

from freehand_calib.calibration.solver import (
    CalibrationOutcome,
    CalibrationSolver,
    FrameObservation,
    orthonormalize,
    refine_point_to_line,
    solve_linear,
)

__all__ = [
    "CalibrationOutcome",
    "CalibrationSolver",
    "FrameObservation",
    "orthonormalize",
    "refine_point_to_line",
    "solve_linear",
]
