"""
Core type definitions for the freehand_calib package.

These dataclasses define the standard interfaces for data flow between
the pattern recognizer, the calibration solver, the error analysis and the
result comparator.

Notation Convention:
    T_{B<-A} maps points from coordinate system A to B, applied by left
    multiplication: point_in_B = T_{B<-A} @ point_in_A. A transform named
    "ProbeToReference" is T_{Reference<-Probe}.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from freehand_calib.constants import (
    IMAGE_FRAME,
    NUM_PLDE_VALUES,
    NUM_PRE_VALUES,
    PROBE_FRAME,
    REFERENCE_FRAME,
)


@dataclass(frozen=True)
class TrackedFrame:
    """
    One synchronized (image, tracker pose) capture.

    WARNING: While this dataclass is frozen (attribute reassignment prevented),
    numpy array contents can still be modified in-place. Treat arrays as
    immutable by convention.

    Attributes:
        image: Ultrasound image, shape [H, W], dtype uint8.
        pose: Tracker pose, shape [4, 4], dtype float64. Maps the probe
              sensor frame to the sequence's pose target frame.
        pose_valid: False if tracking failed at this instant. Such frames
                    may still be segmented but are not used for calibration.
        timestamp: Acquisition time in seconds (informational).
    """
    image: np.ndarray
    pose: np.ndarray
    pose_valid: bool = True
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        """Validate image and pose shapes."""
        if self.image.ndim != 2:
            raise ValueError(f"image must be 2D [H, W], got shape {self.image.shape}")
        if self.pose.shape != (4, 4):
            raise ValueError(f"pose must have shape (4, 4), got {self.pose.shape}")

    @property
    def image_shape(self) -> Tuple[int, int]:
        """Return (height, width) of the image."""
        return (int(self.image.shape[0]), int(self.image.shape[1]))


@dataclass(frozen=True)
class TrackedFrameSequence:
    """
    Ordered, read-only collection of tracked frames.

    Insertion order is significant. All frames share the same image geometry.

    Attributes:
        frames: Tuple of TrackedFrame in acquisition order.
        name: Human readable identifier (usually the file stem).
        pose_from: Coordinate frame the poses map from (the probe sensor).
        pose_to: Coordinate frame the poses map to (e.g. "Reference").
    """
    frames: Tuple[TrackedFrame, ...]
    name: str = ""
    pose_from: str = PROBE_FRAME
    pose_to: str = REFERENCE_FRAME

    def __post_init__(self) -> None:
        """Validate that every frame has the same image geometry."""
        if len(self.frames) == 0:
            return
        expected = self.frames[0].image_shape
        for i, frame in enumerate(self.frames):
            if frame.image_shape != expected:
                raise ValueError(
                    f"frame {i} has image shape {frame.image_shape}, "
                    f"expected {expected} like frame 0"
                )

    @classmethod
    def from_arrays(
        cls,
        images: np.ndarray,
        poses: np.ndarray,
        pose_valid: Optional[np.ndarray] = None,
        timestamps: Optional[np.ndarray] = None,
        name: str = "",
        pose_from: str = PROBE_FRAME,
        pose_to: str = REFERENCE_FRAME,
    ) -> "TrackedFrameSequence":
        """
        Build a sequence from stacked arrays.

        Args:
            images: Images, shape [N, H, W].
            poses: Poses, shape [N, 4, 4].
            pose_valid: Optional validity flags, shape [N]. Poses containing
                        non-finite values are always marked invalid.
            timestamps: Optional acquisition times, shape [N].
            name: Sequence name.
            pose_from: Frame the poses map from.
            pose_to: Frame the poses map to.

        Returns:
            TrackedFrameSequence instance.

        Raises:
            ValueError: If array shapes are inconsistent.
        """
        if images.ndim != 3:
            raise ValueError(f"images must be 3D [N, H, W], got shape {images.shape}")
        if poses.ndim != 3 or poses.shape[1:] != (4, 4):
            raise ValueError(f"poses must have shape [N, 4, 4], got {poses.shape}")
        if images.shape[0] != poses.shape[0]:
            raise ValueError(
                f"Number of poses ({poses.shape[0]}) must match "
                f"number of images ({images.shape[0]})"
            )
        num_frames = images.shape[0]
        if pose_valid is None:
            pose_valid = np.ones(num_frames, dtype=bool)
        if timestamps is None:
            timestamps = np.arange(num_frames, dtype=np.float64)
        if pose_valid.shape != (num_frames,) or timestamps.shape != (num_frames,):
            raise ValueError("pose_valid and timestamps must have shape [N]")

        frames = tuple(
            TrackedFrame(
                image=np.ascontiguousarray(images[i], dtype=np.uint8),
                pose=np.asarray(poses[i], dtype=np.float64),
                pose_valid=bool(pose_valid[i]) and bool(np.isfinite(poses[i]).all()),
                timestamp=float(timestamps[i]),
            )
            for i in range(num_frames)
        )
        return cls(frames=frames, name=name, pose_from=pose_from, pose_to=pose_to)

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[TrackedFrame]:
        return iter(self.frames)

    def __getitem__(self, index: int) -> TrackedFrame:
        return self.frames[index]

    @property
    def num_frames(self) -> int:
        """Return the number of frames in this sequence."""
        return len(self.frames)

    @property
    def image_shape(self) -> Optional[Tuple[int, int]]:
        """Return the shared (height, width), or None for an empty sequence."""
        if not self.frames:
            return None
        return self.frames[0].image_shape

    @property
    def num_valid_poses(self) -> int:
        """Return the number of frames with a valid tracker pose."""
        return sum(1 for frame in self.frames if frame.pose_valid)


@dataclass(frozen=True)
class SegmentationResult:
    """
    Per-frame outcome of pattern recognition.

    Attributes:
        found: True if the complete fiducial pattern was recognized.
        points: Detected fiducial positions in pixels, shape [K, 2] with
                columns (x, y). Empty when found is False.
        wire_indices: Global wire index (in phantom definition order) of each
                      point, shape [K]. Empty when found is False.
        weights: Localization quality of each point in (0, 1], shape [K].
                 Left empty, every point has weight 1.
    """
    found: bool
    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 2)))
    wire_indices: np.ndarray = field(
        default_factory=lambda: np.zeros((0,), dtype=np.int64)
    )
    weights: np.ndarray = field(default_factory=lambda: np.zeros((0,)))

    def __post_init__(self) -> None:
        """Validate that points and labels agree."""
        if self.points.ndim != 2 or self.points.shape[1] != 2:
            raise ValueError(f"points must have shape [K, 2], got {self.points.shape}")
        if self.wire_indices.shape != (self.points.shape[0],):
            raise ValueError(
                f"wire_indices must have shape [{self.points.shape[0]}], "
                f"got {self.wire_indices.shape}"
            )
        if self.weights.shape not in ((0,), (self.points.shape[0],)):
            raise ValueError(
                f"weights must have shape [{self.points.shape[0]}], got {self.weights.shape}"
            )
        if self.weights.size and not ((self.weights > 0) & (self.weights <= 1)).all():
            raise ValueError("weights must lie in (0, 1]")
        if not self.found and self.points.shape[0] != 0:
            raise ValueError("a 'not found' result cannot carry points")

    @classmethod
    def not_found(cls) -> "SegmentationResult":
        """Return the canonical 'not found' result."""
        return cls(found=False)

    def point_for_wire(self, wire_index: int) -> Optional[np.ndarray]:
        """Return the (x, y) point labeled with wire_index, or None."""
        matches = np.nonzero(self.wire_indices == wire_index)[0]
        if matches.size == 0:
            return None
        return self.points[matches[0]]

    def point_weights(self) -> np.ndarray:
        """Return the weight of every point, shape [K]."""
        if self.weights.size == 0:
            return np.ones(self.points.shape[0])
        return self.weights


@dataclass(frozen=True)
class SegmentedSequence:
    """
    A tracked frame sequence together with its segmentation results.

    Attributes:
        sequence: The segmented TrackedFrameSequence.
        results: One SegmentationResult per frame, same order.
    """
    sequence: TrackedFrameSequence
    results: Tuple[SegmentationResult, ...]

    def __post_init__(self) -> None:
        if len(self.results) != len(self.sequence):
            raise ValueError(
                f"{len(self.results)} segmentation results for "
                f"{len(self.sequence)} frames"
            )

    @property
    def num_segmented(self) -> int:
        """Return the number of frames where the pattern was found."""
        return sum(1 for result in self.results if result.found)

    @property
    def success_rate(self) -> float:
        """Return the fraction of frames where the pattern was found."""
        if len(self.results) == 0:
            return 0.0
        return self.num_segmented / len(self.results)

    def usable_frames(self) -> List[Tuple[TrackedFrame, SegmentationResult]]:
        """Return (frame, result) pairs with a found pattern and a valid pose."""
        return [
            (frame, result)
            for frame, result in zip(self.sequence.frames, self.results)
            if result.found and frame.pose_valid
        ]


@dataclass(frozen=True)
class CalibrationTransform:
    """
    Image-to-probe calibration transform.

    The matrix maps homogeneous image coordinates (x, y, 0, 1) in pixels to
    probe sensor coordinates in millimeters. Its rotation part is orthonormal;
    the first two columns are scaled by the pixel spacing (mm/pixel) of the
    image axes and the third column is the unit image-plane normal.

    Attributes:
        matrix: 4x4 transform, dtype float64.
        from_frame: Source coordinate frame name.
        to_frame: Target coordinate frame name.
    """
    matrix: np.ndarray
    from_frame: str = IMAGE_FRAME
    to_frame: str = PROBE_FRAME

    def __post_init__(self) -> None:
        """Validate matrix shape, values and an invertible rotation part."""
        if self.matrix.shape != (4, 4):
            raise ValueError(f"matrix must have shape (4, 4), got {self.matrix.shape}")
        if not np.isfinite(self.matrix).all():
            raise ValueError("matrix contains NaN or Inf values")
        norms = np.linalg.norm(self.matrix[0:3, 0:3], axis=0)
        if np.any(norms < 1e-12):
            raise ValueError(f"rotation part has a zero column, column norms {norms}")
        if abs(np.linalg.det(self.matrix[0:3, 0:3] / norms)) < 1e-6:
            raise ValueError("rotation part is singular")

    @property
    def name(self) -> str:
        """Return the transform name, e.g. 'ImageToProbe'."""
        return f"{self.from_frame}To{self.to_frame}"

    @property
    def origin(self) -> np.ndarray:
        """Return the translation (image origin in the probe frame), shape [3]."""
        return self.matrix[0:3, 3].copy()

    @property
    def spacing(self) -> np.ndarray:
        """Return the (x, y) pixel spacing in mm/pixel, shape [2]."""
        return np.linalg.norm(self.matrix[0:3, 0:2], axis=0)

    @property
    def rotation(self) -> np.ndarray:
        """Return the rotation part with column scaling removed, shape [3, 3]."""
        columns = self.matrix[0:3, 0:3]
        return columns / np.linalg.norm(columns, axis=0, keepdims=True)

    def apply(self, points_xy: np.ndarray) -> np.ndarray:
        """
        Map image points to the target frame.

        Args:
            points_xy: Pixel coordinates, shape [K, 2].

        Returns:
            Points in the target frame, shape [K, 3].
        """
        points_xy = np.asarray(points_xy, dtype=np.float64).reshape(-1, 2)
        return points_xy @ self.matrix[0:3, 0:2].T + self.matrix[0:3, 3]

    def to_list(self) -> List[float]:
        """Return the 16 matrix values in row-major order."""
        return [float(v) for v in self.matrix.reshape(-1)]


@dataclass(frozen=True)
class ErrorStatistic:
    """
    A named error vector with its validation data confidence level.

    Attributes:
        name: Statistic name ("PRE" or "PLDE").
        values: Summary values, shape [V].
        confidence_level: Fraction in [0, 1] of the expected validation
                          data that contributed a usable correspondence.
        num_points: Number of points the statistic was computed from.
    """
    name: str
    values: np.ndarray
    confidence_level: float
    num_points: int = 0

    def __post_init__(self) -> None:
        """Validate values and confidence level."""
        if self.values.ndim != 1:
            raise ValueError(f"values must be 1D, got shape {self.values.shape}")
        if not np.isfinite(self.values).all():
            raise ValueError(f"{self.name} values contain NaN or Inf")
        if not (0.0 <= self.confidence_level <= 1.0):
            raise ValueError(
                f"confidence_level must be in [0, 1], got {self.confidence_level}"
            )


@dataclass(frozen=True)
class CalibrationResultRecord:
    """
    Persisted bundle of one calibration run. Never mutated once written.

    Attributes:
        transform: The solved image-to-probe transform.
        pre: Point reconstruction error, 9 values.
        plde: Point-line distance error, 3 values.
        timestamp: Run timestamp string.
        metadata: Provenance such as configuration file and content hash,
                  segmentation success counts.
    """
    transform: CalibrationTransform
    pre: ErrorStatistic
    plde: ErrorStatistic
    timestamp: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate the statistic vector lengths."""
        if self.pre.values.shape != (NUM_PRE_VALUES,):
            raise ValueError(
                f"PRE must have {NUM_PRE_VALUES} values, got {self.pre.values.shape}"
            )
        if self.plde.values.shape != (NUM_PLDE_VALUES,):
            raise ValueError(
                f"PLDE must have {NUM_PLDE_VALUES} values, got {self.plde.values.shape}"
            )


@dataclass(frozen=True)
class Mismatch:
    """
    One field-level difference between a baseline and a current record.

    Attributes:
        field: Field path, e.g. "PRE[3]" or "TransformImageToProbe.translation".
        baseline: Baseline value (or the computed ratio/error reference).
        current: Current value, or the computed error for transform checks.
        threshold: Threshold that was exceeded.
        message: Human readable explanation.
    """
    field: str
    baseline: float
    current: float
    threshold: float
    message: str


@dataclass
class ComparisonOutcome:
    """
    Result of comparing a current calibration record with a baseline.

    Attributes:
        mismatches: Field-level mismatches found.
        structural_failure: Set when the records could not be compared at all;
                            counts as exactly one failure and means no field
                            was checked.
        metadata: Computed quantities such as translation and rotation errors.
    """
    mismatches: List[Mismatch] = field(default_factory=list)
    structural_failure: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def num_failures(self) -> int:
        """Return the number of failures (structural failure counts as one)."""
        return len(self.mismatches) + (1 if self.structural_failure else 0)

    @property
    def passed(self) -> bool:
        """Return True if no failure was found."""
        return self.num_failures == 0

    def summary(self) -> str:
        """
        Generate a human-readable comparison summary.

        Returns:
            Multi-line string listing every failure.
        """
        lines = [f"Comparison found {self.num_failures} failure(s)"]
        if self.structural_failure:
            lines.append(f"Structural failure: {self.structural_failure}")
        for mismatch in self.mismatches:
            lines.append(
                f"{mismatch.field}: baseline={mismatch.baseline:g}, "
                f"current={mismatch.current:g}, threshold={mismatch.threshold:g} "
                f"({mismatch.message})"
            )
        return "\n".join(lines)


def stack_points(points: Sequence[np.ndarray], width: int) -> np.ndarray:
    """Stack a possibly empty list of row vectors into shape [K, width]."""
    if len(points) == 0:
        return np.zeros((0, width), dtype=np.float64)
    return np.asarray(np.stack(points), dtype=np.float64).reshape(-1, width)
