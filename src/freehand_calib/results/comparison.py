"""
Regression comparison of a calibration result against a baseline.

The comparison first parses both documents (baseline, then current). If
either cannot be parsed, the outcome is a single structural failure and no
field is compared. Otherwise:

    - the transform origins may differ by at most the translation threshold
      (mm) and the rotations by at most the rotation threshold (degrees);
    - every PRE and PLDE value and both confidence levels must satisfy
      baseline / current within [1 - error_threshold, 1 + error_threshold].

Mismatches are collected and counted, never raised.
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union

from freehand_calib.constants import ERROR_THRESHOLD, RATIO_EPSILON
from freehand_calib.context import PipelineContext
from freehand_calib.errors import InputError
from freehand_calib.results.record_io import TRANSFORM_ATTRIBUTE, read_result_record
from freehand_calib.transforms.rigid import (
    orientation_difference_degrees,
    position_difference,
)
from freehand_calib.types import (
    CalibrationResultRecord,
    ComparisonOutcome,
    ErrorStatistic,
    Mismatch,
)


def ratio_within_tolerance(baseline: float, current: float, threshold: float) -> bool:
    """
    Check baseline / current against [1 - threshold, 1 + threshold].

    A ratio exactly at a bound passes. A zero current value matches only a
    zero baseline.

    Args:
        baseline: Baseline value.
        current: Current value.
        threshold: Relative tolerance, e.g. 0.05.

    Returns:
        True if the values match.
    """
    if current == 0.0:
        return baseline == 0.0
    ratio = baseline / current
    return (1.0 - threshold - RATIO_EPSILON) <= ratio <= (1.0 + threshold + RATIO_EPSILON)


class ResultComparator:
    """
    Compares calibration result documents field by field.

    Example:
        >>> comparator = ResultComparator(PipelineContext(), 2.0, 3.0)
        >>> outcome = comparator.compare("baseline.xml", "current.xml")
        >>> outcome.num_failures
        0
    """

    def __init__(
        self,
        context: PipelineContext,
        translation_threshold: float,
        rotation_threshold: float,
        error_threshold: float = ERROR_THRESHOLD,
    ):
        """
        Args:
            context: Pipeline context (only its logger is used).
            translation_threshold: Allowed origin distance (mm).
            rotation_threshold: Allowed rotation angle (degrees).
            error_threshold: Allowed relative deviation of statistic fields.
        """
        if translation_threshold < 0 or rotation_threshold < 0 or error_threshold < 0:
            raise ValueError("comparison thresholds must be non-negative")
        self.translation_threshold = float(translation_threshold)
        self.rotation_threshold = float(rotation_threshold)
        self.error_threshold = float(error_threshold)
        self.logger = context.get_logger("comparison")

    def load_records(
        self,
        baseline_path: Union[str, Path],
        current_path: Union[str, Path],
    ) -> Tuple[Optional[Tuple[CalibrationResultRecord, CalibrationResultRecord]], Optional[str]]:
        """
        Parse both documents, baseline first.

        Returns:
            ((baseline, current), None) on success, or (None, reason) for
            the first document that could not be parsed.
        """
        try:
            baseline = read_result_record(baseline_path, "baseline result file")
            current = read_result_record(current_path, "current result file")
        except InputError as e:
            return None, str(e)
        return (baseline, current), None

    def compare(
        self,
        baseline_path: Union[str, Path],
        current_path: Union[str, Path],
    ) -> ComparisonOutcome:
        """
        Compare two result files.

        Args:
            baseline_path: Baseline result document.
            current_path: Newly written result document.

        Returns:
            ComparisonOutcome; file read or parse failures are reported as a
            single structural failure.
        """
        records, reason = self.load_records(baseline_path, current_path)
        if records is None:
            self.logger.error("Comparison aborted: %s", reason)
            return ComparisonOutcome(structural_failure=reason)
        return self.compare_records(*records)

    def compare_records(
        self,
        baseline: CalibrationResultRecord,
        current: CalibrationResultRecord,
    ) -> ComparisonOutcome:
        """
        Compare two parsed records.

        Returns:
            ComparisonOutcome listing every mismatch. Its metadata holds the
            computed translation_error (mm) and rotation_error (degrees).
        """
        outcome = ComparisonOutcome()

        baseline_matrix = baseline.transform.matrix
        current_matrix = current.transform.matrix
        translation_error = position_difference(baseline_matrix, current_matrix)
        rotation_error = orientation_difference_degrees(baseline_matrix, current_matrix)
        outcome.metadata["translation_error"] = translation_error
        outcome.metadata["rotation_error"] = rotation_error

        if translation_error > self.translation_threshold:
            outcome.mismatches.append(Mismatch(
                field=f"{TRANSFORM_ATTRIBUTE}.translation",
                baseline=0.0,
                current=translation_error,
                threshold=self.translation_threshold,
                message=f"translation error {translation_error:.4f} mm",
            ))
        if rotation_error > self.rotation_threshold:
            outcome.mismatches.append(Mismatch(
                field=f"{TRANSFORM_ATTRIBUTE}.rotation",
                baseline=0.0,
                current=rotation_error,
                threshold=self.rotation_threshold,
                message=f"rotation error {rotation_error:.4f} deg",
            ))

        outcome.mismatches.extend(self._compare_statistic(baseline.pre, current.pre))
        outcome.mismatches.extend(self._compare_statistic(baseline.plde, current.plde))

        for mismatch in outcome.mismatches:
            self.logger.error(
                "%s mismatch: current=%g, baseline=%g (%s)",
                mismatch.field, mismatch.current, mismatch.baseline, mismatch.message,
            )
        self.logger.info(
            "Compared with baseline: translation error %.4f mm, rotation error %.4f deg, "
            "%d failure(s)",
            translation_error, rotation_error, outcome.num_failures,
        )
        return outcome

    def _compare_statistic(
        self,
        baseline: ErrorStatistic,
        current: ErrorStatistic,
    ) -> List[Mismatch]:
        mismatches = []
        fields = [
            (f"{baseline.name}[{i}]", float(b), float(c))
            for i, (b, c) in enumerate(zip(baseline.values, current.values))
        ]
        fields.append((
            f"{baseline.name}.ValidationDataConfidenceLevel",
            baseline.confidence_level,
            current.confidence_level,
        ))
        for field_name, b, c in fields:
            if ratio_within_tolerance(b, c, self.error_threshold):
                continue
            if c == 0.0:
                message = "current value is zero"
            else:
                message = f"ratio {b / c:.6g} outside 1 +/- {self.error_threshold:g}"
            mismatches.append(Mismatch(
                field=field_name,
                baseline=b,
                current=c,
                threshold=self.error_threshold,
                message=message,
            ))
        return mismatches

