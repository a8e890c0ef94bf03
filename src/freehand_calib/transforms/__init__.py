"""Transform utilities for coordinate system conversions."""

from freehand_calib.transforms.rigid import (
    params_to_matrix,
    matrix_to_params,
    params_to_matrix_np,
    compose_transforms,
    invert_transform,
    transform_points,
    nearest_rotation,
    position_difference,
    orientation_difference_degrees,
)
from freehand_calib.transforms.repository import TransformRepository

__all__ = [
    "params_to_matrix",
    "matrix_to_params",
    "params_to_matrix_np",
    "compose_transforms",
    "invert_transform",
    "transform_points",
    "nearest_rotation",
    "position_difference",
    "orientation_difference_degrees",
    "TransformRepository",
]
