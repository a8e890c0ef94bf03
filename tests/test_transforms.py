"""
Tests for rigid transform utilities and the transform repository.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import torch
import pytest


class TestParams:
    """Test 6DOF parameter conversion."""

    def test_params_to_matrix_identity(self):
        """Test that zero params produce identity transform."""
        from freehand_calib.transforms import params_to_matrix

        matrix = params_to_matrix(torch.zeros(6))

        torch.testing.assert_close(matrix, torch.eye(4), atol=1e-6, rtol=1e-6)

    def test_params_to_matrix_batched(self):
        from freehand_calib.transforms import params_to_matrix

        matrices = params_to_matrix(torch.zeros(10, 6))

        assert matrices.shape == (10, 4, 4)

    def test_matrix_to_params_roundtrip(self):
        """Test matrix to params roundtrip in float64."""
        from freehand_calib.transforms import params_to_matrix, matrix_to_params

        params = torch.tensor([0.1, -0.2, 0.3, 5.0, -10.0, 20.0], dtype=torch.float64)
        recovered = matrix_to_params(params_to_matrix(params))

        torch.testing.assert_close(recovered, params, atol=1e-10, rtol=1e-10)

    def test_params_to_matrix_np_is_float64(self):
        from freehand_calib.transforms import params_to_matrix_np

        matrix = params_to_matrix_np(np.array([0.0, 0.0, 0.0, 1.0, 2.0, 3.0]))

        assert matrix.dtype == np.float64
        np.testing.assert_allclose(matrix[0:3, 3], [1.0, 2.0, 3.0])

    def test_invalid_param_count(self):
        from freehand_calib.transforms import params_to_matrix

        with pytest.raises(ValueError, match="6 elements"):
            params_to_matrix(torch.zeros(5))


class TestMatrixOps:
    """Test composition, inversion and differences."""

    def test_compose_order(self):
        """compose_transforms(a_to_b, b_to_c) applies a_to_b first."""
        from freehand_calib.transforms import compose_transforms, params_to_matrix_np

        a_to_b = params_to_matrix_np(np.array([0.0, 0.0, np.pi / 2, 0.0, 0.0, 0.0]))
        b_to_c = params_to_matrix_np(np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0]))

        a_to_c = compose_transforms(a_to_b, b_to_c)

        np.testing.assert_allclose(a_to_c, b_to_c @ a_to_b)

    def test_invert_scaled_transform(self):
        """Inversion handles the pixel spacing scaling."""
        from freehand_calib.transforms import invert_transform, params_to_matrix_np

        matrix = params_to_matrix_np(np.array([0.1, 0.2, 0.3, 1.0, 2.0, 3.0]))
        matrix = matrix @ np.diag([0.2, 0.3, 1.0, 1.0])

        np.testing.assert_allclose(invert_transform(matrix) @ matrix, np.eye(4), atol=1e-12)

    def test_transform_points(self):
        from freehand_calib.transforms import transform_points

        transform = np.eye(4)
        transform[0:3, 3] = [1.0, 2.0, 3.0]
        points = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]])

        np.testing.assert_allclose(
            transform_points(points, transform),
            [[1.0, 2.0, 3.0], [2.0, 3.0, 4.0]],
        )

    def test_nearest_rotation_is_proper(self):
        from freehand_calib.transforms import nearest_rotation

        rng = np.random.default_rng(3)
        rotation = nearest_rotation(np.eye(3) + 0.1 * rng.normal(size=(3, 3)))

        np.testing.assert_allclose(rotation.T @ rotation, np.eye(3), atol=1e-12)
        assert np.linalg.det(rotation) == pytest.approx(1.0)

    def test_position_difference(self):
        from freehand_calib.transforms import position_difference

        a = np.eye(4)
        b = np.eye(4)
        b[0:3, 3] = [0.03, 0.0, 0.0]

        assert position_difference(a, b) == pytest.approx(0.03)

    def test_orientation_difference_known_angle(self):
        from freehand_calib.transforms import orientation_difference_degrees, params_to_matrix_np

        a = params_to_matrix_np(np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0]))
        b = params_to_matrix_np(np.array([np.deg2rad(2.5), 0.0, 0.0, 0.0, 0.0, 0.0]))

        assert orientation_difference_degrees(a, b) == pytest.approx(2.5, abs=1e-6)

    def test_orientation_difference_ignores_spacing(self):
        """Column scaling does not count as rotation."""
        from freehand_calib.transforms import orientation_difference_degrees, params_to_matrix_np

        rigid = params_to_matrix_np(np.array([0.1, -0.2, 0.3, 5.0, -10.0, 20.0]))
        scaled = rigid @ np.diag([0.2, 0.25, 1.0, 1.0])

        assert orientation_difference_degrees(rigid, scaled) == pytest.approx(0.0, abs=1e-6)


class TestTransformRepository:
    """Test frame graph lookups."""

    @pytest.fixture
    def repository(self):
        from freehand_calib.transforms import TransformRepository, params_to_matrix_np

        repository = TransformRepository()
        repository.set_transform(
            "Phantom", "Reference", params_to_matrix_np(np.array([0.2, 0.1, -0.3, 100.0, 50.0, -30.0]))
        )
        repository.set_transform(
            "Reference", "Tracker", params_to_matrix_np(np.array([0.0, 0.5, 0.0, 0.0, 0.0, 1000.0]))
        )
        return repository

    def test_identity_for_same_frame(self, repository):
        np.testing.assert_array_equal(repository.get_transform("Phantom", "Phantom"), np.eye(4))

    def test_inverse_direction(self, repository):
        forward = repository.get_transform("Phantom", "Reference")
        backward = repository.get_transform("Reference", "Phantom")

        np.testing.assert_allclose(forward @ backward, np.eye(4), atol=1e-10)

    def test_chained_lookup(self, repository):
        """Phantom -> Tracker goes through Reference."""
        chained = repository.get_transform("Phantom", "Tracker")
        expected = repository.get_transform("Reference", "Tracker") @ repository.get_transform(
            "Phantom", "Reference"
        )

        np.testing.assert_allclose(chained, expected, atol=1e-10)

    def test_unknown_frame_raises(self, repository):
        from freehand_calib.errors import MissingCoordinateFrameError

        with pytest.raises(MissingCoordinateFrameError) as excinfo:
            repository.get_transform("Phantom", "Stylus")

        assert excinfo.value.frame_name == "Stylus"
        assert "MissingCoordinateFrame" in str(excinfo.value)
        assert repository.has_frame("Tracker")
        assert not repository.has_frame("Stylus")

    def test_disconnected_frames_raise(self, repository):
        from freehand_calib.errors import MissingCoordinateFrameError

        repository.set_transform("Needle", "NeedleTip", np.eye(4))

        with pytest.raises(MissingCoordinateFrameError):
            repository.get_transform("Phantom", "NeedleTip")

    def test_rejects_singular_matrix(self):
        from freehand_calib.transforms import TransformRepository

        with pytest.raises(ValueError, match="not invertible"):
            TransformRepository().set_transform("A", "B", np.zeros((4, 4)))
