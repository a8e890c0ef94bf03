"""
Tests for PRE and PLDE error statistics.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pytest


class TestPRE:
    """Test the point reconstruction error."""

    def test_known_values(self):
        from freehand_calib.evaluation import compute_pre

        ground_truth = np.zeros((2, 3))
        reconstructed = np.array([[1.0, 0.0, -2.0], [3.0, 0.0, -2.0]])

        pre = compute_pre(reconstructed, ground_truth, expected_count=4)

        assert pre.name == "PRE"
        np.testing.assert_allclose(
            pre.values,
            [2.0, 0.0, -2.0, np.sqrt(5.0), 0.0, 2.0, 1.0, 0.0, 0.0],
        )
        assert pre.confidence_level == pytest.approx(0.5)
        assert pre.num_points == 2

    def test_exact_reconstruction(self):
        from freehand_calib.evaluation import compute_pre

        points = np.random.default_rng(0).normal(size=(5, 3))
        pre = compute_pre(points, points, expected_count=5)

        np.testing.assert_allclose(pre.values, np.zeros(9))
        assert pre.confidence_level == 1.0

    def test_no_points(self):
        from freehand_calib.errors import InsufficientValidationDataError
        from freehand_calib.evaluation import compute_pre

        with pytest.raises(InsufficientValidationDataError) as excinfo:
            compute_pre(np.zeros((0, 3)), np.zeros((0, 3)), expected_count=10)

        assert excinfo.value.statistic == "PRE"

    def test_shape_mismatch(self):
        from freehand_calib.evaluation import compute_pre

        with pytest.raises(ValueError, match="does not match"):
            compute_pre(np.zeros((2, 3)), np.zeros((3, 3)), expected_count=3)

    def test_more_points_than_expected(self):
        from freehand_calib.evaluation import compute_pre

        with pytest.raises(ValueError, match="exceed"):
            compute_pre(np.zeros((3, 3)), np.zeros((3, 3)), expected_count=2)


class TestPLDE:
    """Test the point-line distance error."""

    def test_known_values(self):
        from freehand_calib.evaluation import compute_plde

        points = np.array([[3.0, 4.0, 7.0], [0.0, 0.0, 1.0]])
        origins = np.zeros((2, 3))
        directions = np.array([[0.0, 0.0, 2.0], [0.0, 0.0, 1.0]])

        plde = compute_plde(points, origins, directions, expected_count=3)

        assert plde.name == "PLDE"
        np.testing.assert_allclose(plde.values, [2.5, np.sqrt(12.5), 2.5])
        assert plde.confidence_level == pytest.approx(2.0 / 3.0)

    def test_no_points(self):
        from freehand_calib.errors import InsufficientValidationDataError
        from freehand_calib.evaluation import compute_plde

        with pytest.raises(InsufficientValidationDataError, match="PLDE"):
            compute_plde(np.zeros((0, 3)), np.zeros((0, 3)), np.zeros((0, 3)), expected_count=6)

    def test_zero_expected(self):
        from freehand_calib.errors import InsufficientValidationDataError
        from freehand_calib.evaluation import compute_plde

        with pytest.raises(InsufficientValidationDataError):
            compute_plde(np.ones((1, 3)), np.zeros((1, 3)), np.ones((1, 3)), expected_count=0)

    def test_point_line_distances(self):
        from freehand_calib.evaluation import point_line_distances

        distances = point_line_distances(
            np.array([[1.0, 1.0, 0.0], [5.0, 0.0, 0.0]]),
            np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]),
            np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        )

        np.testing.assert_allclose(distances, [1.0, 5.0])
