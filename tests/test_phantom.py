"""
Tests for N-wire phantom geometry.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pytest


class TestNWire:
    """Test the middle-wire position computation."""

    @pytest.fixture
    def phantom(self):
        from freehand_calib.phantom import default_phantom

        return default_phantom()

    def test_default_geometry(self, phantom):
        assert phantom.num_nwires == 2
        assert phantom.num_wires == 6
        assert phantom.nwires[0].side_spacing == pytest.approx(30.0)
        assert phantom.nwire_separation(0) == pytest.approx(15.0)
        assert phantom.wire(4).name == "2:B"

    def test_middle_point_at_ratio(self, phantom):
        """A middle dot a quarter of the way gives a quarter along the diagonal."""
        nwire = phantom.nwires[0]
        image_points = np.array([[100.0, 50.0], [125.0, 50.0], [200.0, 50.0]])

        point = nwire.middle_wire_point(image_points)

        np.testing.assert_allclose(point, [12.0 + 7.5, 15.0, 10.0])

    def test_middle_point_independent_of_image_scale(self, phantom):
        nwire = phantom.nwires[1]
        small = np.array([[0.0, 0.0], [3.0, 0.0], [10.0, 0.0]])

        np.testing.assert_allclose(
            nwire.middle_wire_point(small),
            nwire.middle_wire_point(small * 7.0 + 5.0),
        )

    def test_middle_point_lies_on_diagonal(self, phantom):
        nwire = phantom.nwires[0]
        point = nwire.middle_wire_point(np.array([[0.0, 0.0], [6.0, 1.0], [10.0, 2.0]]))

        assert nwire.wires[1].distance_to_points(point[None, :])[0] == pytest.approx(0.0, abs=1e-12)

    def test_coincident_side_dots(self, phantom):
        with pytest.raises(ValueError, match="coincide"):
            phantom.nwires[0].middle_wire_point(np.zeros((3, 2)))

    def test_diagonal_end_points_ordered_from_first_side(self):
        """Reversed diagonal end points are reordered."""
        from freehand_calib.phantom import NWire, Wire

        nwire = NWire(wires=(
            Wire("A", np.array([0.0, 0.0, 0.0]), np.array([0.0, 0.0, 40.0])),
            Wire("B", np.array([30.0, 0.0, 40.0]), np.array([0.0, 0.0, 0.0])),
            Wire("C", np.array([30.0, 0.0, 0.0]), np.array([30.0, 0.0, 40.0])),
        ))

        start, end = nwire.diagonal_end_points()

        np.testing.assert_allclose(start, [0.0, 0.0, 0.0])
        np.testing.assert_allclose(end, [30.0, 0.0, 40.0])

    def test_side_wires_must_be_parallel(self):
        from freehand_calib.phantom import NWire, Wire

        with pytest.raises(ValueError, match="parallel"):
            NWire(wires=(
                Wire("A", np.array([0.0, 0.0, 0.0]), np.array([0.0, 0.0, 40.0])),
                Wire("B", np.array([0.0, 0.0, 0.0]), np.array([30.0, 0.0, 40.0])),
                Wire("C", np.array([30.0, 0.0, 0.0]), np.array([35.0, 0.0, 40.0])),
            ))

    def test_wire_distance(self):
        from freehand_calib.phantom import Wire

        wire = Wire("A", np.array([0.0, 0.0, 0.0]), np.array([0.0, 0.0, 10.0]))
        distances = wire.distance_to_points(np.array([[3.0, 4.0, 50.0], [0.0, 0.0, -2.0]]))

        np.testing.assert_allclose(distances, [5.0, 0.0])
