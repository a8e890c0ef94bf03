"""
Exception hierarchy for the calibration pipeline.

Every failure a component can report derives from CalibrationError so the
command-line driver can turn them into a single log line and an exit code.
Comparison mismatches are not exceptions; see results.comparison.
"""

from typing import Optional


class CalibrationError(Exception):
    """Base class for all pipeline failures."""


class InputError(CalibrationError, ValueError):
    """Unreadable file, malformed configuration or missing schema field."""


class SegmentationError(CalibrationError):
    """A whole sequence could not be segmented (single frames never raise)."""


class SolverError(CalibrationError):
    """The calibration solve could not produce a transform."""


class UnderdeterminedError(SolverError):
    """
    Too few correspondences for a well-posed solve.

    Attributes:
        num_correspondences: Number of usable correspondences found.
        num_required: Minimum number needed.
    """

    def __init__(self, num_correspondences: int, num_required: int) -> None:
        self.num_correspondences = num_correspondences
        self.num_required = num_required
        super().__init__(
            f"Underdetermined: {num_correspondences} correspondences, "
            f"at least {num_required} required"
        )


class MissingCoordinateFrameError(SolverError):
    """
    A coordinate frame could not be resolved by the transform repository.

    Attributes:
        frame_name: Name of the frame that could not be reached.
    """

    def __init__(self, frame_name: str, detail: Optional[str] = None) -> None:
        self.frame_name = frame_name
        message = f"MissingCoordinateFrame: '{frame_name}'"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class DegenerateGeometryError(SolverError):
    """Correspondences do not span the image plane (e.g. all collinear)."""


class InsufficientValidationDataError(CalibrationError):
    """
    No usable validation points for an error statistic.

    Attributes:
        statistic: Name of the statistic that could not be computed.
    """

    def __init__(self, statistic: str) -> None:
        self.statistic = statistic
        super().__init__(
            f"InsufficientValidationData: no usable validation points for {statistic}"
        )
