"""
Rigid transformation utilities.

This module provides:
- 6DOF parameter (rx, ry, rz, tx, ty, tz) <-> 4x4 matrix conversion (torch),
  used by the iterative calibration refinement and the synthetic data
  generator
- composition, inversion and point mapping of 4x4 matrices (numpy)
- position and orientation differences between two transforms, used by the
  baseline comparison

The Euler angle convention is ZYX (rotate around Z first, then Y, then X).

All transforms use LEFT multiplication: point_in_B = T_{B<-A} @ point_in_A.
"""

import numpy as np
import torch
import pytorch3d.transforms

from freehand_calib.constants import EULER_CONVENTION


def params_to_matrix(params: torch.Tensor) -> torch.Tensor:
    """
    Convert 6DOF parameters to 4x4 transformation matrices.

    Args:
        params: 6DOF parameters with shape [..., 6] where the last dimension
                contains (rx, ry, rz, tx, ty, tz). Euler angles in radians.
                Supports any number of batch dimensions.

    Returns:
        4x4 transformation matrices with shape [..., 4, 4].

    Raises:
        ValueError: If params does not have 6 elements in the last dimension.

    Example:
        >>> params = torch.zeros(10, 6)  # 10 identity transforms
        >>> matrices = params_to_matrix(params)
        >>> matrices.shape
        torch.Size([10, 4, 4])
    """
    if params.shape[-1] != 6:
        raise ValueError(
            f"params must have 6 elements in last dimension, got {params.shape[-1]}"
        )

    euler_angles = params[..., 0:3]
    translation = params[..., 3:6]

    rotation_matrix = pytorch3d.transforms.euler_angles_to_matrix(
        euler_angles, EULER_CONVENTION
    )

    transform_3x4 = torch.cat([rotation_matrix, translation[..., None]], dim=-1)

    batch_shape = params.shape[:-1]
    last_row = torch.zeros(
        (*batch_shape, 1, 4),
        dtype=params.dtype,
        device=params.device
    )
    last_row[..., 0, 3] = 1.0

    return torch.cat([transform_3x4, last_row], dim=-2)


def matrix_to_params(matrix: torch.Tensor) -> torch.Tensor:
    """
    Convert 4x4 transformation matrices to 6DOF parameters.

    Note: This function assumes the rotation matrix is orthogonal (valid rotation).
    Non-orthogonal matrices will produce undefined results.

    Args:
        matrix: 4x4 transformation matrices with shape [..., 4, 4].

    Returns:
        6DOF parameters with shape [..., 6] containing (rx, ry, rz, tx, ty, tz).

    Raises:
        ValueError: If matrix does not have shape [..., 4, 4].
    """
    if matrix.shape[-2:] != (4, 4):
        raise ValueError(
            f"matrix must have shape [..., 4, 4], got shape ending with {matrix.shape[-2:]}"
        )

    euler_angles = pytorch3d.transforms.matrix_to_euler_angles(
        matrix[..., 0:3, 0:3], EULER_CONVENTION
    )
    return torch.cat([euler_angles, matrix[..., 0:3, 3]], dim=-1)


def params_to_matrix_np(params: np.ndarray) -> np.ndarray:
    """NumPy convenience wrapper around params_to_matrix (float64)."""
    tensor = torch.as_tensor(np.asarray(params, dtype=np.float64))
    return params_to_matrix(tensor).numpy()


def compose_transforms(
    transform_a_to_b: np.ndarray,
    transform_b_to_c: np.ndarray,
) -> np.ndarray:
    """
    Compose two transformations to get transform from A to C.

    Returns T_{C<-A} = T_{C<-B} @ T_{B<-A}.

    Args:
        transform_a_to_b: Shape [..., 4, 4].
        transform_b_to_c: Shape [..., 4, 4], broadcastable with the first.

    Raises:
        ValueError: If transforms do not have shape [..., 4, 4].
    """
    if transform_a_to_b.shape[-2:] != (4, 4):
        raise ValueError(
            f"transform_a_to_b must have shape [..., 4, 4], "
            f"got shape ending with {transform_a_to_b.shape[-2:]}"
        )
    if transform_b_to_c.shape[-2:] != (4, 4):
        raise ValueError(
            f"transform_b_to_c must have shape [..., 4, 4], "
            f"got shape ending with {transform_b_to_c.shape[-2:]}"
        )
    return np.matmul(transform_b_to_c, transform_a_to_b)


def invert_transform(transform: np.ndarray) -> np.ndarray:
    """
    Compute the inverse of a 4x4 transformation.

    A general inverse is used because calibration transforms carry pixel
    spacing scaling and are not strictly rigid.

    Raises:
        ValueError: If transform does not have shape [..., 4, 4].
    """
    if transform.shape[-2:] != (4, 4):
        raise ValueError(
            f"transform must have shape [..., 4, 4], "
            f"got shape ending with {transform.shape[-2:]}"
        )
    return np.linalg.inv(transform)


def transform_points(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """
    Apply a 4x4 transformation to 3D points.

    Args:
        points: Points, shape [K, 3].
        transform: Transformation matrix, shape [4, 4].

    Returns:
        Transformed points, shape [K, 3].
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if transform.shape != (4, 4):
        raise ValueError(f"transform must have shape (4, 4), got {transform.shape}")
    return points @ transform[0:3, 0:3].T + transform[0:3, 3]


def nearest_rotation(matrix: np.ndarray) -> np.ndarray:
    """
    Project a 3x3 matrix onto the closest proper rotation (Frobenius norm).

    Args:
        matrix: Shape [3, 3].

    Returns:
        Rotation matrix with determinant +1, shape [3, 3].
    """
    u, _, vt = np.linalg.svd(matrix)
    correction = np.diag([1.0, 1.0, np.sign(np.linalg.det(u @ vt))])
    return u @ correction @ vt


def position_difference(transform_a: np.ndarray, transform_b: np.ndarray) -> float:
    """Euclidean distance between the origins of two 4x4 transforms."""
    return float(np.linalg.norm(transform_a[0:3, 3] - transform_b[0:3, 3]))


def orientation_difference_degrees(
    transform_a: np.ndarray,
    transform_b: np.ndarray,
) -> float:
    """
    Angle of the relative rotation between two transforms, in degrees.

    Column scaling (pixel spacing) is removed and each rotation part is
    projected to the nearest proper rotation before the comparison.

    Args:
        transform_a: Shape [4, 4].
        transform_b: Shape [4, 4].

    Returns:
        Rotation angle in [0, 180] degrees.
    """
    rotations = []
    for transform in (transform_a, transform_b):
        columns = np.asarray(transform[0:3, 0:3], dtype=np.float64)
        columns = columns / np.linalg.norm(columns, axis=0, keepdims=True)
        rotations.append(nearest_rotation(columns))

    relative = torch.as_tensor(rotations[0].T @ rotations[1])
    axis_angle = pytorch3d.transforms.matrix_to_axis_angle(relative)
    return float(torch.rad2deg(torch.linalg.norm(axis_angle)))
