"""
Coordinate frame repository.

Stores named transforms between coordinate frames ("PhantomToReference",
"ReferenceToTracker", ...) and resolves any transform between two connected
frames by chaining stored transforms and their inverses.
"""

from collections import deque
from typing import Dict, List, Optional, Tuple

import numpy as np

from freehand_calib.errors import MissingCoordinateFrameError
from freehand_calib.transforms.rigid import compose_transforms, invert_transform


class TransformRepository:
    """
    Graph of coordinate frames connected by 4x4 transforms.

    Each stored edge T_{to<-from} is usable in both directions. Lookups
    perform a breadth-first search, so the shortest chain is used and the
    result does not depend on insertion order of unrelated transforms.

    The repository is populated once from the configuration and is read-only
    for the duration of a calibration run.

    Example:
        >>> repo = TransformRepository()
        >>> repo.set_transform("Phantom", "Reference", phantom_to_reference)
        >>> repo.get_transform("Reference", "Phantom")  # inverse
    """

    def __init__(self) -> None:
        self._edges: Dict[str, Dict[str, np.ndarray]] = {}

    def set_transform(self, from_frame: str, to_frame: str, matrix: np.ndarray) -> None:
        """
        Store T_{to_frame<-from_frame}.

        Raises:
            ValueError: If matrix is not a finite, invertible 4x4 transform or
                        the frame names are equal or empty.
        """
        if not from_frame or not to_frame or from_frame == to_frame:
            raise ValueError(
                f"invalid frame names: from='{from_frame}', to='{to_frame}'"
            )
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"matrix must have shape (4, 4), got {matrix.shape}")
        if not np.isfinite(matrix).all():
            raise ValueError(f"{from_frame}To{to_frame} contains NaN or Inf values")
        if abs(np.linalg.det(matrix)) < 1e-12:
            raise ValueError(f"{from_frame}To{to_frame} is not invertible")

        self._edges.setdefault(from_frame, {})[to_frame] = matrix
        self._edges.setdefault(to_frame, {})[from_frame] = invert_transform(matrix)

    def has_frame(self, frame: str) -> bool:
        """Return True if any stored transform involves frame."""
        return frame in self._edges

    @property
    def frames(self) -> List[str]:
        """Return all known frame names, sorted."""
        return sorted(self._edges.keys())

    def get_transform(self, from_frame: str, to_frame: str) -> np.ndarray:
        """
        Resolve T_{to_frame<-from_frame}.

        Raises:
            MissingCoordinateFrameError: If either frame is unknown or no chain
                                         of transforms connects them.
        """
        if from_frame == to_frame:
            return np.eye(4)
        for frame in (from_frame, to_frame):
            if not self.has_frame(frame):
                raise MissingCoordinateFrameError(
                    frame, f"known frames: {', '.join(self.frames) or 'none'}"
                )

        path = self._find_path(from_frame, to_frame)
        if path is None:
            raise MissingCoordinateFrameError(
                to_frame, f"no transform chain from '{from_frame}'"
            )

        result = np.eye(4)
        for step_from, step_to in path:
            result = compose_transforms(result, self._edges[step_from][step_to])
        return result

    def _find_path(
        self, from_frame: str, to_frame: str
    ) -> Optional[List[Tuple[str, str]]]:
        """Breadth-first search; returns the list of (from, to) hops."""
        previous: Dict[str, str] = {from_frame: from_frame}
        queue = deque([from_frame])
        while queue:
            current = queue.popleft()
            if current == to_frame:
                break
            for neighbor in sorted(self._edges[current]):
                if neighbor not in previous:
                    previous[neighbor] = current
                    queue.append(neighbor)

        if to_frame not in previous:
            return None

        hops: List[Tuple[str, str]] = []
        node = to_frame
        # LOOP INVARIANT: hops holds the path from node to to_frame, reversed.
        while node != from_frame:
            hops.append((previous[node], node))
            node = previous[node]
        hops.reverse()
        return hops
