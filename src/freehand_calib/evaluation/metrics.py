"""
Error metrics for calibration validation.

This module computes the two statistics persisted with every calibration
result, both from validation frames that were not used for the solve:

    PRE:  point reconstruction error of the middle-wire points, per axis,
          in phantom coordinates.
    PLDE: point-line distance error of every reconstructed wire point from
          its wire line.

Each statistic carries a confidence level: the fraction of the expected
validation correspondences that were actually usable.
"""

import numpy as np

from freehand_calib.errors import InsufficientValidationDataError
from freehand_calib.types import ErrorStatistic


def _confidence_level(num_points: int, expected_count: int, statistic: str) -> float:
    if num_points == 0 or expected_count <= 0:
        raise InsufficientValidationDataError(statistic)
    if num_points > expected_count:
        raise ValueError(
            f"{statistic}: {num_points} usable points exceed the "
            f"{expected_count} expected"
        )
    return num_points / expected_count


def compute_pre(
    reconstructed: np.ndarray,
    ground_truth: np.ndarray,
    expected_count: int,
) -> ErrorStatistic:
    """
    Compute the point reconstruction error.

    Args:
        reconstructed: Middle-wire points reconstructed through the
                       calibration, phantom frame, shape [K, 3].
        ground_truth: The same points computed from the phantom geometry,
                      shape [K, 3].
        expected_count: Number of correspondences the validation data could
                        have produced (valid-pose frames x N-wires).

    Returns:
        ErrorStatistic named "PRE" with values
        [mean_x, mean_y, mean_z, rms_x, rms_y, rms_z, std_x, std_y, std_z].

    Raises:
        InsufficientValidationDataError: If there are no usable points.
        ValueError: If the inputs have different shapes.
    """
    reconstructed = np.asarray(reconstructed, dtype=np.float64).reshape(-1, 3)
    ground_truth = np.asarray(ground_truth, dtype=np.float64).reshape(-1, 3)
    if reconstructed.shape != ground_truth.shape:
        raise ValueError(
            f"Reconstructed points shape {reconstructed.shape} does not match "
            f"ground truth shape {ground_truth.shape}"
        )
    confidence = _confidence_level(reconstructed.shape[0], expected_count, "PRE")

    diff = reconstructed - ground_truth  # [K, 3]
    values = np.concatenate([
        diff.mean(axis=0),
        np.sqrt(np.mean(diff ** 2, axis=0)),
        diff.std(axis=0),
    ])

    return ErrorStatistic(
        name="PRE",
        values=values,
        confidence_level=confidence,
        num_points=reconstructed.shape[0],
    )


def compute_plde(
    points: np.ndarray,
    line_origins: np.ndarray,
    line_directions: np.ndarray,
    expected_count: int,
) -> ErrorStatistic:
    """
    Compute the point-line distance error.

    Args:
        points: Reconstructed wire points, phantom frame, shape [K, 3].
        line_origins: A point on each point's wire, shape [K, 3].
        line_directions: Direction of each point's wire, shape [K, 3].
                         Need not be normalized.
        expected_count: Number of wire points the validation data could have
                        produced (valid-pose frames x wires).

    Returns:
        ErrorStatistic named "PLDE" with values [mean, rms, std] of the
        perpendicular distances.

    Raises:
        InsufficientValidationDataError: If there are no usable points.
        ValueError: If the input shapes disagree.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    line_origins = np.asarray(line_origins, dtype=np.float64).reshape(-1, 3)
    line_directions = np.asarray(line_directions, dtype=np.float64).reshape(-1, 3)
    if not (points.shape == line_origins.shape == line_directions.shape):
        raise ValueError(
            f"points {points.shape}, line_origins {line_origins.shape} and "
            f"line_directions {line_directions.shape} must have the same shape"
        )
    confidence = _confidence_level(points.shape[0], expected_count, "PLDE")

    distances = point_line_distances(points, line_origins, line_directions)
    values = np.array([
        distances.mean(),
        np.sqrt(np.mean(distances ** 2)),
        distances.std(),
    ])

    return ErrorStatistic(
        name="PLDE",
        values=values,
        confidence_level=confidence,
        num_points=points.shape[0],
    )


def point_line_distances(
    points: np.ndarray,
    line_origins: np.ndarray,
    line_directions: np.ndarray,
) -> np.ndarray:
    """
    Perpendicular distance of each point from its line.

    Args:
        points: Shape [K, 3].
        line_origins: Shape [K, 3].
        line_directions: Shape [K, 3], non-zero.

    Returns:
        Distances, shape [K].
    """
    units = line_directions / np.linalg.norm(line_directions, axis=1, keepdims=True)
    return np.linalg.norm(np.cross(points - line_origins, units), axis=1)
