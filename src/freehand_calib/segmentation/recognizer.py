"""
N-wire fiducial pattern recognizer.

Turns each frame of a tracked sequence into a SegmentationResult: either
"not found", or one labeled (x, y) point per phantom wire. Frames are
independent, so a sequence can be segmented on a thread pool; results are
always returned in frame order.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from freehand_calib.constants import WIRES_PER_NWIRE
from freehand_calib.context import PipelineContext
from freehand_calib.errors import InputError, SegmentationError
from freehand_calib.logging_utils import trace
from freehand_calib.segmentation.dots import find_dots
from freehand_calib.segmentation.lines import find_lines, match_pattern
from freehand_calib.types import (
    SegmentationResult,
    SegmentedSequence,
    TrackedFrameSequence,
)


def parse_region_of_interest(text: str) -> Optional[Tuple[int, int, int, int]]:
    """
    Parse "x_min y_min x_max y_max" into integers.

    Returns:
        (x_min, y_min, x_max, y_max), or None for an empty string.

    Raises:
        InputError: If the text is not four integers with min < max.
    """
    if not text or not text.strip():
        return None
    try:
        x_min, y_min, x_max, y_max = (int(float(v)) for v in text.split())
    except ValueError as e:
        raise InputError(f"RegionOfInterest must be 4 integers, got '{text}'") from e
    if x_min < 0 or y_min < 0 or x_max <= x_min or y_max <= y_min:
        raise InputError(f"RegionOfInterest is empty or negative: '{text}'")
    return x_min, y_min, x_max, y_max


class PatternRecognizer:
    """
    Locates N-wire dot patterns in ultrasound frames.

    Expected image distances are derived from the phantom geometry and the
    configured approximate pixel spacing: the side wire spacing of each
    N-wire sets its expected line span, the distance between N-wire planes
    sets the expected separation of consecutive lines.

    Example:
        >>> recognizer = PatternRecognizer(PipelineContext(configuration=config))
        >>> segmented = recognizer.recognize(sequence)
        >>> segmented.success_rate
        0.97
    """

    def __init__(self, context: PipelineContext):
        """
        Args:
            context: Pipeline context; must carry a configuration.
        """
        configuration = context.require_configuration()
        self.phantom = configuration.phantom
        self.config = configuration.segmentation
        self.logger = context.get_logger("segmentation")

        spacing = self.config["ApproximateSpacingMmPerPixel"]
        self.opening_radius_px = int(round(self.config["MorphologicalOpeningRadiusMm"] / spacing))
        self.expected_lengths = [nwire.side_spacing / spacing for nwire in self.phantom.nwires]
        self.expected_separations = [
            self.phantom.nwire_separation(k) / spacing
            for k in range(self.phantom.num_nwires - 1)
        ]
        self.length_tolerance = self.config["MaxLineLengthErrorPercent"] / 100.0
        self.region_of_interest = parse_region_of_interest(self.config["RegionOfInterest"])

    @property
    def num_required_dots(self) -> int:
        return self.phantom.num_wires

    def segment_frame(self, image: np.ndarray) -> SegmentationResult:
        """
        Find the fiducial pattern in one image.

        Args:
            image: Grayscale frame, shape [H, W].

        Returns:
            SegmentationResult labeled with global wire indices, or
            SegmentationResult.not_found().
        """
        offset = np.zeros(2)
        if self.region_of_interest is not None:
            x_min, y_min, x_max, y_max = self.region_of_interest
            image = image[y_min:y_max, x_min:x_max]
            offset = np.array([x_min, y_min], dtype=np.float64)

        dots = find_dots(
            image,
            opening_radius_px=self.opening_radius_px,
            threshold_percent=self.config["ThresholdImagePercent"],
            min_area=self.config["MinDotAreaPx"],
            max_area=self.config["MaxDotAreaPx"],
            max_dots=self.config["MaxCandidateDots"],
        )
        if len(dots) < self.num_required_dots:
            trace(self.logger, "%d dots found, %d required", len(dots), self.num_required_dots)
            return SegmentationResult.not_found()

        dots_xy = np.array([[dot.x, dot.y] for dot in dots], dtype=np.float64)
        lines = find_lines(
            dots_xy,
            min_length=min(self.expected_lengths) * (1.0 - self.length_tolerance),
            max_length=max(self.expected_lengths) * (1.0 + self.length_tolerance),
            max_point_distance=self.config["MaxLinePointDistancePx"],
        )
        if len(lines) < self.phantom.num_nwires:
            trace(self.logger, "%d candidate lines, %d required", len(lines), self.phantom.num_nwires)
            return SegmentationResult.not_found()

        pattern = match_pattern(
            lines,
            expected_lengths=self.expected_lengths,
            expected_separations=self.expected_separations,
            max_length_error=self.length_tolerance,
            max_angle_difference=self.config["MaxLineAngleDifferenceDeg"],
            max_point_distance=self.config["MaxLinePointDistancePx"],
        )
        if pattern is None:
            trace(self.logger, "no geometrically consistent pattern among %d lines", len(lines))
            return SegmentationResult.not_found()

        points = np.concatenate([line.points for line in pattern], axis=0) + offset
        wire_indices = np.arange(len(pattern) * WIRES_PER_NWIRE, dtype=np.int64)
        weights = np.repeat(
            [line.weight(self.config["DotLocalizationErrorPx"]) for line in pattern],
            WIRES_PER_NWIRE,
        )
        return SegmentationResult(
            found=True, points=points, wire_indices=wire_indices, weights=weights
        )

    def recognize(self, sequence: TrackedFrameSequence) -> SegmentedSequence:
        """
        Segment every frame of a sequence.

        Frames without a valid pose are segmented too; the solver excludes
        them later. A frame where the pattern is not found never aborts the
        batch.

        Args:
            sequence: Tracked frame sequence.

        Returns:
            SegmentedSequence with one result per frame, in frame order.

        Raises:
            SegmentationError: If the sequence has no frames.
        """
        if len(sequence) == 0:
            raise SegmentationError(f"sequence '{sequence.name}' has no frames to segment")

        images = [frame.image for frame in sequence]
        num_workers = self.config["NumberOfWorkers"]
        if num_workers > 1:
            with ThreadPoolExecutor(max_workers=num_workers) as executor:
                results: List[SegmentationResult] = list(executor.map(self.segment_frame, images))
        else:
            results = [self.segment_frame(image) for image in images]

        segmented = SegmentedSequence(sequence=sequence, results=tuple(results))
        self.logger.info(
            "Segmented %d/%d frames of '%s' (%.1f%%)",
            segmented.num_segmented,
            len(sequence),
            sequence.name,
            100.0 * segmented.success_rate,
        )
        if segmented.success_rate < self.config["MinSegmentationSuccessRate"]:
            self.logger.warning(
                "Segmentation success rate %.1f%% of '%s' is below %.1f%%",
                100.0 * segmented.success_rate,
                sequence.name,
                100.0 * self.config["MinSegmentationSuccessRate"],
            )
        for index, result in enumerate(results):
            if not result.found:
                self.logger.debug("Frame %d of '%s': pattern not found", index, sequence.name)
        return segmented
