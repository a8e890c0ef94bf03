"""
Image-to-probe calibration solver.

The solve runs in three steps:

1. Middle-wire correspondences. In every usable frame (pattern found, pose
   valid) each N-wire gives one point on its diagonal wire in phantom
   coordinates, located by the position ratio of the middle dot between the
   side dots. The point is carried to the probe frame through
   T_{Probe<-Phantom} = inv(pose) @ T_{PoseTarget<-Phantom}.
2. Weighted linear least squares over all correspondences jointly:
   probe_point = a * x + b * y + t, each correspondence weighted by the
   segmentation quality of its N-wire line. The 3x3 coefficient block is projected
   onto a rotation with per-axis in-plane spacing (SVD).
3. Optional refinement ("point_to_line"): minimise the squared distance of
   every reconstructed wire point from its wire line, weighted the same way,
   over 6DOF parameters plus the two pixel spacings, with torch L-BFGS in float64.

The validation sequence never contributes to the solve. Its residuals give
the PRE and PLDE statistics.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import torch

from freehand_calib.constants import NUM_FREE_PARAMETERS, WIRES_PER_NWIRE
from freehand_calib.context import PipelineContext
from freehand_calib.errors import (
    DegenerateGeometryError,
    InputError,
    UnderdeterminedError,
)
from freehand_calib.evaluation.metrics import compute_plde, compute_pre
from freehand_calib.logging_utils import trace
from freehand_calib.phantom import PhantomGeometry
from freehand_calib.transforms.repository import TransformRepository
from freehand_calib.transforms.rigid import (
    invert_transform,
    matrix_to_params,
    nearest_rotation,
    params_to_matrix,
    transform_points,
)
from freehand_calib.types import (
    CalibrationTransform,
    ErrorStatistic,
    SegmentedSequence,
    stack_points,
)


@dataclass(frozen=True)
class FrameObservation:
    """
    Wire points of one usable frame.

    Attributes:
        frame_index: Index of the frame in its sequence.
        image_points: Dot positions in pixels, shape [K, 2].
        wire_indices: Global wire index of each dot, shape [K].
        phantom_to_probe: T_{Probe<-Phantom} at this frame, shape [4, 4].
        weights: Segmentation weight of each dot, shape [K].
    """
    frame_index: int
    image_points: np.ndarray
    wire_indices: np.ndarray
    phantom_to_probe: np.ndarray
    weights: np.ndarray


@dataclass(frozen=True)
class CalibrationOutcome:
    """
    Output of CalibrationSolver.calibrate.

    Attributes:
        transform: Solved ImageToProbe transform.
        pre: Validation point reconstruction error.
        plde: Validation point-line distance error.
        metadata: Solve diagnostics (correspondence counts, costs, method).
    """
    transform: CalibrationTransform
    pre: ErrorStatistic
    plde: ErrorStatistic
    metadata: Dict[str, Any] = field(default_factory=dict)


def solve_linear(
    image_points: np.ndarray,
    probe_points: np.ndarray,
    weights: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Least-squares affine map from image points to probe points.

    Solves probe = a * x + b * y + t jointly for all correspondences.

    Args:
        image_points: Pixel coordinates, shape [K, 2].
        probe_points: Probe coordinates (mm), shape [K, 3].
        weights: Optional non-negative weight per correspondence, shape [K].

    Returns:
        4x4 matrix with columns (a, b, 0, t); the third column is filled by
        orthonormalize.

    Raises:
        DegenerateGeometryError: If the image points do not span the plane.
    """
    design = np.column_stack([image_points, np.ones(len(image_points))])  # [K, 3]
    if np.linalg.matrix_rank(design) < 3:
        raise DegenerateGeometryError(
            "image points are collinear, the in-plane axes cannot be solved"
        )
    if weights is not None:
        root_weights = np.sqrt(np.asarray(weights, dtype=np.float64))[:, None]
        design = design * root_weights
        probe_points = probe_points * root_weights
    coefficients, _, _, _ = np.linalg.lstsq(design, probe_points, rcond=None)  # [3, 3]

    matrix = np.eye(4)
    matrix[0:3, 0] = coefficients[0]
    matrix[0:3, 1] = coefficients[1]
    matrix[0:3, 2] = 0.0
    matrix[0:3, 3] = coefficients[2]
    return matrix


def orthonormalize(matrix: np.ndarray) -> np.ndarray:
    """
    Project an affine image-to-probe matrix onto [R * diag(sx, sy, 1) | t].

    The pixel spacings are the lengths of the first two columns. The rotation
    is the proper rotation nearest to the normalized in-plane axes completed
    by their cross product.

    Args:
        matrix: Shape [4, 4]; only columns 0, 1 and 3 are used.

    Returns:
        Calibration matrix, shape [4, 4].

    Raises:
        DegenerateGeometryError: If an in-plane axis vanishes or both axes
                                 are parallel.
    """
    axis_x = matrix[0:3, 0]
    axis_y = matrix[0:3, 1]
    spacing = np.array([np.linalg.norm(axis_x), np.linalg.norm(axis_y)])
    if np.any(spacing < 1e-12):
        raise DegenerateGeometryError("solved pixel spacing is zero")
    unit_x = axis_x / spacing[0]
    unit_y = axis_y / spacing[1]
    normal = np.cross(unit_x, unit_y)
    if np.linalg.norm(normal) < 1e-9:
        raise DegenerateGeometryError("solved image axes are parallel")
    normal = normal / np.linalg.norm(normal)

    rotation = nearest_rotation(np.column_stack([unit_x, unit_y, normal]))
    result = np.eye(4)
    result[0:3, 0:3] = rotation @ np.diag([spacing[0], spacing[1], 1.0])
    result[0:3, 3] = matrix[0:3, 3]
    return result


def refine_point_to_line(
    matrix: np.ndarray,
    observations: List[FrameObservation],
    phantom: PhantomGeometry,
    max_iterations: int,
) -> Tuple[np.ndarray, float, float]:
    """
    Refine a calibration by minimising point-to-wire distances.

    Every dot of every observation is mapped image -> probe -> phantom and
    its squared distance from its own wire line enters a weighted mean. Parameters are
    (rx, ry, rz, tx, ty, tz, sx, sy).

    Args:
        matrix: Initial calibration [R * diag(sx, sy, 1) | t], shape [4, 4].
        observations: Usable calibration frames.
        phantom: Phantom geometry giving the wire lines.
        max_iterations: L-BFGS iteration limit.

    Returns:
        (refined matrix, initial weighted mean squared distance, final
        weighted mean squared distance). The initial matrix is returned when refinement does not
        lower the cost.
    """
    dtype = torch.float64
    image_points = []
    probe_to_phantom = []
    origins = []
    directions = []
    weights = []
    for observation in observations:
        inverse = invert_transform(observation.phantom_to_probe)
        for point, wire_index, weight in zip(
            observation.image_points, observation.wire_indices, observation.weights
        ):
            wire = phantom.wire(int(wire_index))
            image_points.append(point)
            weights.append(weight)
            probe_to_phantom.append(inverse)
            origins.append(wire.end_point_front)
            directions.append(wire.direction)

    image_xy = torch.as_tensor(np.asarray(image_points), dtype=dtype)  # [M, 2]
    to_phantom = torch.as_tensor(np.asarray(probe_to_phantom), dtype=dtype)  # [M, 4, 4]
    line_origins = torch.as_tensor(np.asarray(origins), dtype=dtype)  # [M, 3]
    line_directions = torch.as_tensor(np.asarray(directions), dtype=dtype)  # [M, 3]
    point_weights = torch.as_tensor(np.asarray(weights), dtype=dtype)  # [M]
    point_weights = point_weights / point_weights.sum()

    spacing = np.linalg.norm(matrix[0:3, 0:2], axis=0)
    rigid = matrix.copy()
    rigid[0:3, 0:3] = matrix[0:3, 0:3] / np.array([spacing[0], spacing[1], 1.0])
    initial = torch.cat([
        matrix_to_params(torch.as_tensor(rigid, dtype=dtype)),
        torch.as_tensor(spacing, dtype=dtype),
    ])

    def to_matrix(params: torch.Tensor) -> torch.Tensor:
        scale = torch.cat([params[6:8], torch.ones(2, dtype=dtype)])
        return params_to_matrix(params[0:6]) * scale[None, :]

    def cost(params: torch.Tensor) -> torch.Tensor:
        calibration = to_matrix(params)
        probe = image_xy @ calibration[0:3, 0:2].T + calibration[0:3, 3]  # [M, 3]
        phantom_points = (
            torch.einsum("mij,mj->mi", to_phantom[:, 0:3, 0:3], probe)
            + to_phantom[:, 0:3, 3]
        )
        offsets = phantom_points - line_origins
        distances = torch.linalg.cross(offsets, line_directions, dim=1)
        return ((distances ** 2).sum(dim=1) * point_weights).sum()

    params = initial.clone().requires_grad_(True)
    optimizer = torch.optim.LBFGS(
        [params],
        max_iter=max_iterations,
        tolerance_grad=1e-12,
        tolerance_change=1e-15,
        line_search_fn="strong_wolfe",
    )

    def closure() -> torch.Tensor:
        optimizer.zero_grad()
        loss = cost(params)
        loss.backward()
        return loss

    with torch.no_grad():
        initial_cost = float(cost(initial))
    optimizer.step(closure)

    with torch.no_grad():
        final_cost = float(cost(params))
        if not np.isfinite(final_cost) or final_cost >= initial_cost:
            return matrix, initial_cost, initial_cost
        refined = to_matrix(params).numpy()
    return refined, initial_cost, final_cost


class CalibrationSolver:
    """
    Computes the ImageToProbe transform from segmented tracked frames.

    Example:
        >>> solver = CalibrationSolver(PipelineContext(configuration=config))
        >>> outcome = solver.calibrate(calibration_set, validation_set,
        ...                            config.build_repository(), 2)
        >>> outcome.transform.spacing
        array([0.2, 0.2])
    """

    def __init__(self, context: PipelineContext):
        """
        Args:
            context: Pipeline context; must carry a configuration.
        """
        configuration = context.require_configuration()
        self.phantom = configuration.phantom
        self.config = configuration.calibration
        self.logger = context.get_logger("solver")

        self.image_frame = self.config["ImageCoordinateFrame"]
        self.probe_frame = self.config["ProbeCoordinateFrame"]
        self.phantom_frame = self.config["PhantomCoordinateFrame"]

    def collect_observations(
        self,
        segmented: SegmentedSequence,
        repository: TransformRepository,
        number_of_nwires: int,
    ) -> List[FrameObservation]:
        """
        Gather the wire points and phantom poses of every usable frame.

        Args:
            segmented: Segmented sequence.
            repository: Transform repository holding the phantom registration.
            number_of_nwires: Number of N-wires whose dots are used.

        Returns:
            One FrameObservation per usable frame, in frame order.

        Raises:
            MissingCoordinateFrameError: If the phantom frame cannot be
                                         related to the pose target frame.
        """
        sequence = segmented.sequence
        phantom_to_pose_target = repository.get_transform(self.phantom_frame, sequence.pose_to)
        num_wires = number_of_nwires * WIRES_PER_NWIRE

        observations = []
        for index, (frame, result) in enumerate(zip(sequence.frames, segmented.results)):
            if not (result.found and frame.pose_valid):
                continue
            keep = result.wire_indices < num_wires
            observations.append(FrameObservation(
                frame_index=index,
                image_points=result.points[keep],
                wire_indices=result.wire_indices[keep],
                phantom_to_probe=invert_transform(frame.pose) @ phantom_to_pose_target,
                weights=result.point_weights()[keep],
            ))
        trace(self.logger, "%d usable frames in '%s'", len(observations), sequence.name)
        return observations

    def middle_wire_correspondences(
        self,
        observations: List[FrameObservation],
        number_of_nwires: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Middle-wire correspondences of the given frames.

        Returns:
            (image points [K, 2], phantom points [K, 3], probe points [K, 3],
            weights [K]). The weight of a correspondence is the weight of its
            middle dot.
        """
        image_points = []
        phantom_points = []
        probe_points = []
        weights = []
        for observation in observations:
            for k in range(number_of_nwires):
                nwire = self.phantom.nwires[k]
                dots = []
                dot_weights = []
                for j in range(WIRES_PER_NWIRE):
                    matches = np.nonzero(observation.wire_indices == k * WIRES_PER_NWIRE + j)[0]
                    if matches.size == 0:
                        break
                    dots.append(observation.image_points[matches[0]])
                    dot_weights.append(observation.weights[matches[0]])
                if len(dots) != WIRES_PER_NWIRE:
                    continue
                try:
                    phantom_point = nwire.middle_wire_point(np.stack(dots))
                except ValueError:
                    trace(self.logger, "frame %d N-wire %d: side dots coincide",
                          observation.frame_index, k)
                    continue
                image_points.append(dots[1])
                weights.append(dot_weights[1])
                phantom_points.append(phantom_point)
                probe_points.append(
                    transform_points(phantom_point[None, :], observation.phantom_to_probe)[0]
                )
        return (
            stack_points(image_points, 2),
            stack_points(phantom_points, 3),
            stack_points(probe_points, 3),
            np.asarray(weights, dtype=np.float64),
        )

    def calibrate(
        self,
        calibration_set: SegmentedSequence,
        validation_set: SegmentedSequence,
        repository: TransformRepository,
        number_of_nwires: int,
    ) -> CalibrationOutcome:
        """
        Solve the calibration and evaluate it on the validation set.

        Args:
            calibration_set: Segmented sequence used for the solve.
            validation_set: Segmented sequence used only for error analysis.
            repository: Fixed transforms (phantom registration).
            number_of_nwires: Number of N-wires to use, 1..phantom N-wires.

        Returns:
            CalibrationOutcome with the transform and validation statistics.

        Raises:
            InputError: If number_of_nwires is out of range.
            UnderdeterminedError: If fewer than 9 correspondences are usable.
            DegenerateGeometryError: If the correspondences are collinear in
                                     the image.
            MissingCoordinateFrameError: If a frame lookup fails.
            InsufficientValidationDataError: If the validation set yields no
                                             usable points.
        """
        if not (1 <= number_of_nwires <= self.phantom.num_nwires):
            raise InputError(
                f"number_of_nwires must be in [1, {self.phantom.num_nwires}], "
                f"got {number_of_nwires}"
            )

        observations = self.collect_observations(calibration_set, repository, number_of_nwires)
        image_points, _, probe_points, weights = self.middle_wire_correspondences(
            observations, number_of_nwires
        )
        num_correspondences = image_points.shape[0]
        self.logger.info(
            "Calibration set '%s': %d usable frames, %d middle-wire correspondences, "
            "mean weight %.3f",
            calibration_set.sequence.name, len(observations), num_correspondences,
            float(weights.mean()) if num_correspondences else 0.0,
        )
        if num_correspondences < NUM_FREE_PARAMETERS:
            raise UnderdeterminedError(num_correspondences, NUM_FREE_PARAMETERS)

        matrix = orthonormalize(solve_linear(image_points, probe_points, weights=weights))
        self.logger.debug(
            "Linear solution: spacing %s mm/px, origin %s mm",
            np.round(np.linalg.norm(matrix[0:3, 0:2], axis=0), 6),
            np.round(matrix[0:3, 3], 4),
        )

        metadata: Dict[str, Any] = {
            "NumberOfUsableCalibrationFrames": len(observations),
            "NumberOfCalibrationCorrespondences": num_correspondences,
            "OptimizationMethod": self.config["OptimizationMethod"],
        }
        if self.config["OptimizationMethod"] == "point_to_line":
            matrix, initial_cost, final_cost = refine_point_to_line(
                matrix, observations, self.phantom, self.config["MaxIterations"]
            )
            self.logger.info(
                "Point-to-line refinement: mean squared distance %.6g -> %.6g mm^2",
                initial_cost, final_cost,
            )
            metadata["InitialCost"] = initial_cost
            metadata["FinalCost"] = final_cost

        transform = CalibrationTransform(
            matrix=matrix, from_frame=self.image_frame, to_frame=self.probe_frame
        )

        calibration_pre = self._compute_pre(
            transform, observations, calibration_set, number_of_nwires
        )
        self.logger.info(
            "Calibration PRE mean (x, y, z): %s mm",
            np.round(calibration_pre.values[0:3], 4),
        )
        metadata["CalibrationPRE"] = calibration_pre.values.tolist()

        validation_observations = self.collect_observations(
            validation_set, repository, number_of_nwires
        )
        pre = self._compute_pre(
            transform, validation_observations, validation_set, number_of_nwires
        )
        plde = self._compute_plde(
            transform, validation_observations, validation_set, number_of_nwires
        )
        self.logger.info(
            "Validation PRE rms (x, y, z): %s mm, confidence %.3f",
            np.round(pre.values[3:6], 4), pre.confidence_level,
        )
        self.logger.info(
            "Validation PLDE mean %.4f mm, rms %.4f mm, confidence %.3f",
            plde.values[0], plde.values[1], plde.confidence_level,
        )
        return CalibrationOutcome(transform=transform, pre=pre, plde=plde, metadata=metadata)

    def _reconstruct(
        self,
        transform: CalibrationTransform,
        observation: FrameObservation,
        image_points: np.ndarray,
    ) -> np.ndarray:
        """Map pixels of one frame to phantom coordinates, shape [K, 3]."""
        probe = transform.apply(image_points)
        return transform_points(probe, invert_transform(observation.phantom_to_probe))

    def _compute_pre(
        self,
        transform: CalibrationTransform,
        observations: List[FrameObservation],
        segmented: SegmentedSequence,
        number_of_nwires: int,
    ) -> ErrorStatistic:
        reconstructed = []
        ground_truth = []
        for observation in observations:
            image_points, phantom_points, _, _ = self.middle_wire_correspondences(
                [observation], number_of_nwires
            )
            if image_points.shape[0] == 0:
                continue
            reconstructed.append(self._reconstruct(transform, observation, image_points))
            ground_truth.append(phantom_points)
        expected = segmented.sequence.num_valid_poses * number_of_nwires
        return compute_pre(
            stack_points([p for chunk in reconstructed for p in chunk], 3),
            stack_points([p for chunk in ground_truth for p in chunk], 3),
            expected,
        )

    def _compute_plde(
        self,
        transform: CalibrationTransform,
        observations: List[FrameObservation],
        segmented: SegmentedSequence,
        number_of_nwires: int,
    ) -> ErrorStatistic:
        points = []
        origins = []
        directions = []
        for observation in observations:
            reconstructed = self._reconstruct(transform, observation, observation.image_points)
            for point, wire_index in zip(reconstructed, observation.wire_indices):
                wire = self.phantom.wire(int(wire_index))
                points.append(point)
                origins.append(wire.end_point_front)
                directions.append(wire.direction)
        expected = segmented.sequence.num_valid_poses * number_of_nwires * WIRES_PER_NWIRE
        return compute_plde(
            stack_points(points, 3),
            stack_points(origins, 3),
            stack_points(directions, 3),
            expected,
        )
