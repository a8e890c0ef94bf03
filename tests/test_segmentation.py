"""
Tests for dot detection, line finding and the pattern recognizer.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pytest


@pytest.fixture
def setup():
    from freehand_calib.simulation import default_setup

    return default_setup()


@pytest.fixture
def recognizer(setup):
    from freehand_calib.context import PipelineContext
    from freehand_calib.segmentation import PatternRecognizer
    from freehand_calib.simulation import make_configuration

    return PatternRecognizer(PipelineContext(configuration=make_configuration(setup)))


class TestDots:
    """Test candidate dot detection."""

    def test_single_dot_centroid(self):
        from freehand_calib.segmentation import find_dots
        from freehand_calib.simulation import render_frame

        image = render_frame(np.array([[40.3, 25.7]]), (60, 80))
        dots = find_dots(image, 2, 50.0, 4, 400, 12)

        assert len(dots) == 1
        assert dots[0].x == pytest.approx(40.3, abs=0.5)
        assert dots[0].y == pytest.approx(25.7, abs=0.5)

    def test_blank_image(self):
        from freehand_calib.segmentation import find_dots

        assert find_dots(np.zeros((20, 20), dtype=np.uint8), 2, 50.0, 4, 400, 12) == []

    def test_brightest_dots_kept(self):
        from freehand_calib.segmentation import find_dots
        from freehand_calib.simulation import render_frame

        image = render_frame(np.array([[20.0, 20.0], [60.0, 20.0]]), (40, 80)).astype(np.float64)
        image[:, 40:] *= 0.8
        dots = find_dots(image.astype(np.uint8), 2, 50.0, 4, 400, 1)

        assert len(dots) == 1
        assert dots[0].x == pytest.approx(20.0, abs=0.5)

    def test_area_filter(self):
        """A large bright region is not a dot."""
        from freehand_calib.segmentation import find_dots

        image = np.zeros((50, 50), dtype=np.uint8)
        image[5:45, 5:45] = 200

        assert find_dots(image, 2, 50.0, 4, 400, 12) == []


class TestLines:
    """Test line candidates and pattern matching."""

    def test_line_orders_points_left_to_right(self):
        from freehand_calib.segmentation import find_lines

        dots = np.array([[250.0, 100.0], [100.0, 100.0], [130.0, 100.5]])
        lines = find_lines(dots, 140.0, 160.0, 2.0)

        assert len(lines) == 1
        assert lines[0].dot_indices == (1, 2, 0)
        assert lines[0].length == pytest.approx(150.0)

    def test_line_rejects_far_middle_dot(self):
        from freehand_calib.segmentation import find_lines

        dots = np.array([[100.0, 100.0], [130.0, 110.0], [250.0, 100.0]])

        assert find_lines(dots, 140.0, 160.0, 2.0) == []

    def test_line_weight_from_collinearity(self):
        from freehand_calib.segmentation import find_lines

        straight, bent = (
            find_lines(np.array([[100.0, 100.0], [130.0, 100.0 + offset], [250.0, 100.0]]), 140.0, 160.0, 2.0)[0]
            for offset in (0.0, 0.5)
        )

        assert straight.weight(0.5) == pytest.approx(1.0)
        assert bent.weight(0.5) == pytest.approx(0.5)
        assert bent.weight(1.0) == pytest.approx(0.8)

    def test_pattern_orders_lines_top_to_bottom(self):
        from freehand_calib.segmentation import find_lines, match_pattern

        dots = np.array([
            [85.0, 82.0], [110.0, 82.0], [235.0, 82.0],
            [85.0, 157.0], [200.0, 157.0], [235.0, 157.0],
        ])
        lines = find_lines(dots, 135.0, 165.0, 2.0)
        pattern = match_pattern(lines, [150.0, 150.0], [75.0], 0.1, 10.0, 2.0)

        assert pattern is not None
        np.testing.assert_allclose(pattern[0].points[:, 1], 82.0)
        np.testing.assert_allclose(pattern[1].points[:, 1], 157.0)
        np.testing.assert_allclose(pattern[1].points[1], [200.0, 157.0])

    def test_pattern_rejects_wrong_separation(self):
        from freehand_calib.segmentation import find_lines, match_pattern

        dots = np.array([
            [85.0, 82.0], [110.0, 82.0], [235.0, 82.0],
            [85.0, 182.0], [200.0, 182.0], [235.0, 182.0],
        ])
        lines = find_lines(dots, 135.0, 165.0, 2.0)

        assert match_pattern(lines, [150.0, 150.0], [75.0], 0.1, 10.0, 2.0) is None


class TestPatternRecognizer:
    """Test segmentation of rendered frames."""

    def test_rendered_frame_within_one_pixel(self, setup, recognizer):
        from freehand_calib.simulation import generate_sweep

        sweep = generate_sweep(setup, 5, seed=7)
        for frame, expected in zip(sweep.sequence, sweep.wire_points):
            result = recognizer.segment_frame(frame.image)

            assert result.found
            np.testing.assert_array_equal(result.wire_indices, np.arange(6))
            np.testing.assert_allclose(result.points, expected, atol=1.0)

    def test_deterministic(self, setup, recognizer):
        from freehand_calib.simulation import generate_sweep

        sweep = generate_sweep(setup, 3, seed=1)

        first = recognizer.recognize(sweep.sequence)
        second = recognizer.recognize(sweep.sequence)

        for a, b in zip(first.results, second.results):
            assert a.found == b.found
            np.testing.assert_array_equal(a.points, b.points)

    def test_not_found_frame_does_not_abort(self, setup, recognizer):
        from freehand_calib.simulation import generate_sweep
        from freehand_calib.types import TrackedFrameSequence

        sweep = generate_sweep(setup, 3, seed=2)
        images = np.stack([frame.image for frame in sweep.sequence])
        images[1] = 20
        poses = np.stack([frame.pose for frame in sweep.sequence])
        sequence = TrackedFrameSequence.from_arrays(images, poses, name="gap")

        segmented = recognizer.recognize(sequence)

        assert [result.found for result in segmented.results] == [True, False, True]
        assert segmented.num_segmented == 2

    def test_low_success_rate_warns(self, setup, recognizer, caplog):
        from freehand_calib.types import TrackedFrameSequence

        sequence = TrackedFrameSequence.from_arrays(
            np.full((2, 240, 320), 20, dtype=np.uint8),
            np.tile(np.eye(4), (2, 1, 1)),
            name="empty",
        )

        with caplog.at_level("WARNING", logger="freehand_calib"):
            segmented = recognizer.recognize(sequence)

        assert segmented.success_rate == 0.0
        assert any("below" in record.getMessage() for record in caplog.records)

    def test_empty_sequence_raises(self, recognizer):
        from freehand_calib.errors import SegmentationError
        from freehand_calib.types import TrackedFrameSequence

        with pytest.raises(SegmentationError):
            recognizer.recognize(TrackedFrameSequence(frames=()))

    def test_parallel_matches_sequential(self, setup):
        from freehand_calib.context import PipelineContext
        from freehand_calib.segmentation import PatternRecognizer
        from freehand_calib.simulation import generate_sweep, make_configuration

        sweep = generate_sweep(setup, 6, seed=4)
        sequential = PatternRecognizer(PipelineContext(configuration=make_configuration(setup)))
        parallel = PatternRecognizer(PipelineContext(
            configuration=make_configuration(setup, segmentation={"NumberOfWorkers": 3})
        ))

        a = sequential.recognize(sweep.sequence)
        b = parallel.recognize(sweep.sequence)

        for first, second in zip(a.results, b.results):
            np.testing.assert_array_equal(first.points, second.points)

    def test_region_of_interest_offsets_points(self, setup):
        from freehand_calib.context import PipelineContext
        from freehand_calib.segmentation import PatternRecognizer
        from freehand_calib.simulation import generate_sweep, make_configuration

        sweep = generate_sweep(setup, 1, seed=5)
        recognizer = PatternRecognizer(PipelineContext(
            configuration=make_configuration(setup, segmentation={"RegionOfInterest": "20 20 300 220"})
        ))

        result = recognizer.segment_frame(sweep.sequence[0].image)

        assert result.found
        np.testing.assert_allclose(result.points, sweep.wire_points[0], atol=1.0)

    def test_invalid_region_of_interest(self, setup):
        from freehand_calib.context import PipelineContext
        from freehand_calib.errors import InputError
        from freehand_calib.segmentation import PatternRecognizer
        from freehand_calib.simulation import make_configuration

        configuration = make_configuration(setup, segmentation={"RegionOfInterest": "50 50 10 10"})

        with pytest.raises(InputError):
            PatternRecognizer(PipelineContext(configuration=configuration))

    def test_misaligned_line_is_down_weighted(self, setup, recognizer):
        """A middle dot pushed off its line lowers the weight of that N-wire only."""
        from freehand_calib.simulation import generate_sweep, render_frame

        points = generate_sweep(setup, 1, seed=2).wire_points[0].copy()
        direction = (points[2] - points[0]) / np.linalg.norm(points[2] - points[0])
        points[1] += 1.2 * np.array([-direction[1], direction[0]])

        result = recognizer.segment_frame(render_frame(points, setup.image_shape))

        assert result.found
        assert (result.weights[0:3] < 0.5).all()
        assert (result.weights[3:6] > 0.8).all()
        assert result.weights[0] == result.weights[1] == result.weights[2]


class TestSegmentationResult:
    """Test per-point weights of a segmentation result."""

    def test_weights_default_to_one(self):
        from freehand_calib.simulation import exact_segmentation

        result = exact_segmentation(np.zeros((6, 2)))

        np.testing.assert_array_equal(result.point_weights(), np.ones(6))

    @pytest.mark.parametrize("weights", [np.ones(2), np.array([1.0, 0.0, 0.5])])
    def test_invalid_weights(self, weights):
        from freehand_calib.types import SegmentationResult

        with pytest.raises(ValueError):
            SegmentationResult(
                found=True,
                points=np.zeros((3, 2)),
                wire_indices=np.arange(3),
                weights=weights,
            )
