"""Calibration error metrics."""

from freehand_calib.evaluation.metrics import (
    compute_plde,
    compute_pre,
    point_line_distances,
)

__all__ = [
    "compute_pre",
    "compute_plde",
    "point_line_distances",
]
