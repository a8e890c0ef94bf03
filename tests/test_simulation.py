"""
Tests for synthetic data generation.
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


class TestSweep:
    """Test generated sweeps."""

    def test_poses_consistent_with_geometry(self, setup):
        """pose @ ImageToProbe maps the image into the reference frame."""
        from freehand_calib.simulation import generate_sweep

        sweep = generate_sweep(setup, 4, seed=0)

        for frame, image_to_phantom in zip(sweep.sequence, sweep.image_to_phantom):
            np.testing.assert_allclose(
                frame.pose @ setup.image_to_probe,
                setup.phantom_to_reference @ image_to_phantom,
                atol=1e-9,
            )

    def test_intersections_lie_on_wires(self, setup):
        from freehand_calib.simulation import generate_sweep
        from freehand_calib.transforms import transform_points

        sweep = generate_sweep(setup, 3, seed=1)

        for points, image_to_phantom in zip(sweep.wire_points, sweep.image_to_phantom):
            in_phantom = transform_points(np.column_stack([points, np.zeros(len(points))]), image_to_phantom)
            for wire, point in zip(setup.phantom.wires, in_phantom):
                assert wire.distance_to_points(point[None, :])[0] == pytest.approx(0.0, abs=1e-9)

    def test_points_inside_image(self, setup):
        from freehand_calib.simulation import generate_sweep

        sweep = generate_sweep(setup, 20, seed=2)
        height, width = setup.image_shape

        assert (sweep.wire_points[..., 0] > 10).all() and (sweep.wire_points[..., 0] < width - 10).all()
        assert (sweep.wire_points[..., 1] > 10).all() and (sweep.wire_points[..., 1] < height - 10).all()

    def test_seed_is_deterministic(self, setup):
        from freehand_calib.simulation import generate_sweep

        a = generate_sweep(setup, 2, seed=5)
        b = generate_sweep(setup, 2, seed=5)

        np.testing.assert_array_equal(a.sequence[1].image, b.sequence[1].image)
        np.testing.assert_array_equal(a.wire_points, b.wire_points)

    def test_invalid_pose_interval(self, setup):
        from freehand_calib.simulation import generate_sweep

        sweep = generate_sweep(setup, 6, seed=0, invalid_pose_interval=3)

        assert [frame.pose_valid for frame in sweep.sequence] == [True, True, False, True, True, False]

    def test_render_without_noise(self):
        from freehand_calib.simulation import render_frame

        image = render_frame(np.array([[10.0, 5.0]]), (20, 30))

        assert image.dtype == np.uint8
        assert image[5, 10] == 220
        assert image[0, 29] == 20


class TestDataset:
    """Test the written dataset."""

    def test_ground_truth_round_trip(self, tmp_path):
        from freehand_calib.simulation import generate_dataset, read_ground_truth

        dataset = generate_dataset(tmp_path, num_frames=1)

        np.testing.assert_array_equal(read_ground_truth(dataset.ground_truth), dataset.image_to_probe)

    def test_ground_truth_missing_transform(self, tmp_path):
        from freehand_calib.errors import InputError
        from freehand_calib.simulation import read_ground_truth

        path = tmp_path / "GroundTruth.xml"
        path.write_text("<CalibrationGroundTruth/>")

        with pytest.raises(InputError):
            read_ground_truth(path)
