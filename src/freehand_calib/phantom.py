"""
N-wire phantom geometry.

An N-wire is three wires in one plane: two parallel side wires and a
diagonal wire joining them. A cross-sectional ultrasound image shows each
N-wire as three collinear dots. Because the side wires are parallel, the
position ratio of the middle dot between the two side dots equals the
position ratio of the imaged point along the diagonal wire, which gives the
3D position of the middle dot in phantom coordinates.

Wires are listed in the order their dots appear from left to right in the
image, and N-wires in the order they appear from top to bottom.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from freehand_calib.constants import MIDDLE_WIRE_INDEX, WIRES_PER_NWIRE


@dataclass(frozen=True)
class Wire:
    """
    A straight wire in phantom coordinates (mm).

    Attributes:
        name: Wire label from the phantom definition.
        end_point_front: Front end point, shape [3].
        end_point_back: Back end point, shape [3].
    """
    name: str
    end_point_front: np.ndarray
    end_point_back: np.ndarray

    def __post_init__(self) -> None:
        """Validate end points."""
        for label, point in (("end_point_front", self.end_point_front),
                             ("end_point_back", self.end_point_back)):
            if point.shape != (3,):
                raise ValueError(f"wire {self.name}: {label} must have shape (3,)")
        if np.linalg.norm(self.end_point_back - self.end_point_front) < 1e-9:
            raise ValueError(f"wire {self.name}: end points coincide")

    @property
    def direction(self) -> np.ndarray:
        """Unit direction from front to back, shape [3]."""
        vector = self.end_point_back - self.end_point_front
        return vector / np.linalg.norm(vector)

    def distance_to_points(self, points: np.ndarray) -> np.ndarray:
        """
        Perpendicular distance of points from the (infinite) wire line.

        Args:
            points: Shape [K, 3].

        Returns:
            Distances, shape [K].
        """
        offsets = np.asarray(points, dtype=np.float64).reshape(-1, 3) - self.end_point_front
        return np.linalg.norm(np.cross(offsets, self.direction), axis=1)


@dataclass(frozen=True)
class NWire:
    """
    Three coplanar wires forming an N: side wire, diagonal, side wire.

    Attributes:
        wires: (first side wire, diagonal wire, second side wire).
    """
    wires: Tuple[Wire, Wire, Wire]

    def __post_init__(self) -> None:
        """Validate wire count and side wire parallelism."""
        if len(self.wires) != WIRES_PER_NWIRE:
            raise ValueError(
                f"an N-wire needs {WIRES_PER_NWIRE} wires, got {len(self.wires)}"
            )
        first, _, second = self.wires
        if abs(abs(float(np.dot(first.direction, second.direction))) - 1.0) > 1e-6:
            raise ValueError(
                f"side wires {first.name} and {second.name} must be parallel"
            )

    @property
    def side_spacing(self) -> float:
        """Perpendicular distance between the two side wires (mm)."""
        first, _, second = self.wires
        return float(first.distance_to_points(second.end_point_front[None, :])[0])

    @property
    def plane_normal(self) -> np.ndarray:
        """Unit normal of the N-wire plane, shape [3]."""
        first, _, second = self.wires
        normal = np.cross(first.direction, second.end_point_front - first.end_point_front)
        return normal / np.linalg.norm(normal)

    def diagonal_end_points(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return the diagonal wire's end points ordered (near first side wire,
        near second side wire).
        """
        first = self.wires[0]
        diagonal = self.wires[MIDDLE_WIRE_INDEX]
        front, back = diagonal.end_point_front, diagonal.end_point_back
        distances = first.distance_to_points(np.stack([front, back]))
        if distances[0] <= distances[1]:
            return front, back
        return back, front

    def middle_wire_point(self, image_points: np.ndarray) -> np.ndarray:
        """
        Phantom position of the middle dot from its three image positions.

        Args:
            image_points: Dots for (first side, diagonal, second side) wires in
                          pixels, shape [3, 2].

        Returns:
            Point on the diagonal wire in phantom coordinates, shape [3].

        Raises:
            ValueError: If the two side dots coincide.
        """
        image_points = np.asarray(image_points, dtype=np.float64)
        span = np.linalg.norm(image_points[2] - image_points[0])
        if span < 1e-9:
            raise ValueError("side wire dots coincide, ratio undefined")
        ratio = np.linalg.norm(image_points[1] - image_points[0]) / span
        start, end = self.diagonal_end_points()
        return start + ratio * (end - start)


@dataclass(frozen=True)
class PhantomGeometry:
    """
    Immutable description of an N-wire phantom.

    Global wire indices run over all wires in definition order: N-wire k owns
    wires 3k, 3k+1 and 3k+2.

    Attributes:
        nwires: N-wires ordered top to bottom as seen in the image.
    """
    nwires: Tuple[NWire, ...]

    def __post_init__(self) -> None:
        if len(self.nwires) == 0:
            raise ValueError("phantom must define at least one N-wire")

    @property
    def num_nwires(self) -> int:
        return len(self.nwires)

    @property
    def num_wires(self) -> int:
        return len(self.nwires) * WIRES_PER_NWIRE

    def wire(self, global_index: int) -> Wire:
        """Return the wire with the given global index."""
        nwire_index, local_index = divmod(global_index, WIRES_PER_NWIRE)
        return self.nwires[nwire_index].wires[local_index]

    @property
    def wires(self) -> List[Wire]:
        """Return all wires in global index order."""
        return [wire for nwire in self.nwires for wire in nwire.wires]

    def nwire_separation(self, index: int) -> float:
        """
        Distance (mm) from N-wire index+1 to the plane of N-wire index.

        Args:
            index: Index of the upper N-wire, 0 <= index < num_nwires - 1.
        """
        upper = self.nwires[index]
        lower = self.nwires[index + 1]
        offset = lower.wires[0].end_point_front - upper.wires[0].end_point_front
        return float(abs(np.dot(offset, upper.plane_normal)))


def default_phantom() -> PhantomGeometry:
    """
    Double N-wire phantom used by the synthetic data generator.

    Two horizontal N-wire layers 15 mm apart, side wires 30 mm apart and
    40 mm long along the phantom z axis.
    """
    nwires = []
    for layer, y in enumerate((15.0, 30.0)):
        x0, x1 = 12.0, 42.0
        nwires.append(NWire(wires=(
            Wire(
                name=f"{layer + 1}:A",
                end_point_front=np.array([x0, y, 0.0]),
                end_point_back=np.array([x0, y, 40.0]),
            ),
            Wire(
                name=f"{layer + 1}:B",
                end_point_front=np.array([x0, y, 0.0]),
                end_point_back=np.array([x1, y, 40.0]),
            ),
            Wire(
                name=f"{layer + 1}:C",
                end_point_front=np.array([x1, y, 0.0]),
                end_point_back=np.array([x1, y, 40.0]),
            ),
        )))
    return PhantomGeometry(nwires=tuple(nwires))
