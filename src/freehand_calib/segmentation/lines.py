"""
Line finding and N-wire pattern matching.

Each N-wire images as three collinear dots. Candidate lines are dot triples
whose middle dot lies close to the segment joining the outer dots and whose
span is compatible with an N-wire's side wire spacing. The pattern is the
set of lines, one per N-wire, that is most consistent with the phantom:
mutually parallel, with spans and separations matching the geometry.
Assignment relies on relative geometry only, never on absolute position.
"""

from dataclasses import dataclass
from itertools import combinations
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Line:
    """
    Three collinear dots.

    Attributes:
        dot_indices: Indices of (left outer, middle, right outer) dots.
        points: Dot positions in the same order, shape [3, 2].
        length: Distance between the outer dots (pixels).
        angle_deg: Direction of the outer segment in [0, 180) degrees.
        distance_error: Distance of the middle dot from the outer segment line.
    """
    dot_indices: Tuple[int, int, int]
    points: np.ndarray
    length: float
    angle_deg: float
    distance_error: float

    @property
    def center(self) -> np.ndarray:
        return self.points.mean(axis=0)

    def distance_to_point(self, point: np.ndarray) -> float:
        """Perpendicular distance of point from the infinite line."""
        direction = (self.points[2] - self.points[0]) / self.length
        offset = point - self.points[0]
        return abs(float(direction[0] * offset[1] - direction[1] * offset[0]))

    def weight(self, localization_error: float) -> float:
        """
        Inverse-variance weight of the dots of this line, in (0, 1].

        The three wires of an N-wire are coplanar, so their dots are exactly
        collinear and the middle dot distance measures how badly the dots
        were localized. localization_error is the noise floor (pixels) that
        a perfectly collinear line is still assumed to carry.
        """
        floor = localization_error ** 2
        return floor / (floor + self.distance_error ** 2)


def _angle_difference(a: float, b: float) -> float:
    """Smallest difference between two undirected line angles, degrees."""
    diff = abs(a - b) % 180.0
    return min(diff, 180.0 - diff)


def find_lines(
    dots_xy: np.ndarray,
    min_length: float,
    max_length: float,
    max_point_distance: float,
) -> List[Line]:
    """
    Enumerate candidate lines among dots.

    Args:
        dots_xy: Dot positions, shape [D, 2].
        min_length: Shortest accepted outer span (pixels).
        max_length: Longest accepted outer span (pixels).
        max_point_distance: Largest accepted middle dot distance (pixels).

    Returns:
        Candidate lines in enumeration order of their dot triples.
    """
    lines: List[Line] = []
    for triple in combinations(range(len(dots_xy)), 3):
        points = dots_xy[list(triple)]

        # Outer dots are the farthest pair.
        best = None
        for a, b, m in ((0, 1, 2), (0, 2, 1), (1, 2, 0)):
            length = float(np.linalg.norm(points[b] - points[a]))
            if best is None or length > best[0]:
                best = (length, a, b, m)
        length, a, b, m = best
        if not (min_length <= length <= max_length) or length <= 0.0:
            continue

        vector = points[b] - points[a]
        if vector[0] < 0 or (vector[0] == 0 and vector[1] < 0):
            a, b = b, a
            vector = -vector
        direction = vector / length
        offset = points[m] - points[a]
        position = float(np.dot(offset, direction)) / length
        if not (0.0 < position < 1.0):
            continue
        distance = abs(float(direction[0] * offset[1] - direction[1] * offset[0]))
        if distance > max_point_distance:
            continue

        lines.append(Line(
            dot_indices=(triple[a], triple[m], triple[b]),
            points=points[[a, m, b]].copy(),
            length=length,
            angle_deg=math.degrees(math.atan2(direction[1], direction[0])) % 180.0,
            distance_error=distance,
        ))
    return lines


def match_pattern(
    lines: Sequence[Line],
    expected_lengths: Sequence[float],
    expected_separations: Sequence[float],
    max_length_error: float,
    max_angle_difference: float,
    max_point_distance: float,
) -> Optional[Tuple[Line, ...]]:
    """
    Select one line per N-wire.

    Args:
        lines: Candidate lines.
        expected_lengths: Expected outer span of each N-wire, top to bottom.
        expected_separations: Expected distance between consecutive N-wire
                              lines, length len(expected_lengths) - 1.
        max_length_error: Allowed relative span and separation error.
        max_angle_difference: Allowed angle between lines (degrees).
        max_point_distance: Normaliser for the middle dot distance error.

    Returns:
        Lines ordered top to bottom, or None if no consistent set exists.
        Among consistent sets the one with the lowest normalised geometric
        error wins; ties keep the first set in enumeration order.
    """
    num_nwires = len(expected_lengths)
    best: Optional[Tuple[Line, ...]] = None
    best_score = math.inf

    for combo in combinations(lines, num_nwires):
        used = [index for line in combo for index in line.dot_indices]
        if len(set(used)) != len(used):
            continue

        ordered = sorted(combo, key=lambda line: (line.center[1], line.center[0]))
        score = _score_lines(
            ordered,
            expected_lengths,
            expected_separations,
            max_length_error,
            max_angle_difference,
            max_point_distance,
        )
        if score is not None and score < best_score:
            best_score = score
            best = tuple(ordered)

    return best


def _score_lines(
    ordered: Sequence[Line],
    expected_lengths: Sequence[float],
    expected_separations: Sequence[float],
    max_length_error: float,
    max_angle_difference: float,
    max_point_distance: float,
) -> Optional[float]:
    """Normalised geometric error of a line set, None if inconsistent."""
    score = 0.0
    reference_angle = ordered[0].angle_deg
    for k, line in enumerate(ordered):
        length_error = abs(line.length - expected_lengths[k]) / expected_lengths[k]
        if length_error > max_length_error:
            return None
        angle_error = _angle_difference(line.angle_deg, reference_angle)
        if angle_error > max_angle_difference:
            return None
        score += (
            length_error / max_length_error
            + angle_error / max_angle_difference
            + line.distance_error / max_point_distance
        )

    for k, expected in enumerate(expected_separations):
        separation = ordered[k].distance_to_point(ordered[k + 1].center)
        separation_error = abs(separation - expected) / expected
        if separation_error > max_length_error:
            return None
        score += separation_error / max_length_error

    return score
