"""
Loading and saving of tracked frame sequences.

A sequence file is HDF5 with:
    frames:      [N, H, W] uint8 ultrasound images
    tforms:      [N, 4, 4] tracker poses (probe sensor -> pose target frame)
    tform_valid: optional [N] bool, False where tracking failed
    timestamps:  optional [N] float acquisition times in seconds
and the string attributes pose_from / pose_to naming the pose frames.
"""

from pathlib import Path
from typing import Union

import h5py
import numpy as np

from freehand_calib.constants import PROBE_FRAME, REFERENCE_FRAME
from freehand_calib.errors import InputError
from freehand_calib.types import TrackedFrameSequence


def _attr_str(value: object, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def load_tracked_frame_sequence(path: Union[str, Path]) -> TrackedFrameSequence:
    """
    Load a tracked frame sequence from an HDF5 file.

    Args:
        path: Path to the .h5 sequence file.

    Returns:
        TrackedFrameSequence with all frames in file order.

    Raises:
        InputError: If the file is missing, unreadable, or has unexpected
                    datasets or shapes.
    """
    path = Path(path)
    if not path.exists():
        raise InputError(f"Sequence file not found: {path}")

    try:
        with h5py.File(path, "r") as h5file:
            if "frames" not in h5file:
                raise InputError(f"H5 file missing 'frames' dataset: {path}")
            if "tforms" not in h5file:
                raise InputError(f"H5 file missing 'tforms' dataset: {path}")
            frames = h5file["frames"][()]
            tforms = h5file["tforms"][()]
            tform_valid = h5file["tform_valid"][()] if "tform_valid" in h5file else None
            timestamps = h5file["timestamps"][()] if "timestamps" in h5file else None
            pose_from = _attr_str(h5file.attrs.get("pose_from"), PROBE_FRAME)
            pose_to = _attr_str(h5file.attrs.get("pose_to"), REFERENCE_FRAME)
    except OSError as e:
        raise InputError(f"Failed to read H5 file {path}: {e}") from e

    if frames.ndim != 3:
        raise InputError(
            f"Expected frames with 3 dimensions [N, H, W], got {frames.ndim}D "
            f"from {path}"
        )
    if tforms.ndim != 3 or tforms.shape[1:] != (4, 4):
        raise InputError(
            f"Expected tforms with shape [N, 4, 4], got {tforms.shape} "
            f"from {path}"
        )
    if frames.shape[0] != tforms.shape[0]:
        raise InputError(
            f"Mismatch: {frames.shape[0]} frames but {tforms.shape[0]} transforms "
            f"in {path}"
        )
    if frames.shape[0] == 0:
        raise InputError(f"Sequence file contains no frames: {path}")

    try:
        return TrackedFrameSequence.from_arrays(
            images=frames.astype(np.uint8),
            poses=tforms.astype(np.float64),
            pose_valid=None if tform_valid is None else tform_valid.astype(bool).reshape(-1),
            timestamps=None if timestamps is None else timestamps.astype(np.float64).reshape(-1),
            name=path.stem,
            pose_from=pose_from,
            pose_to=pose_to,
        )
    except ValueError as e:
        raise InputError(f"Invalid sequence data in {path}: {e}") from e


def save_tracked_frame_sequence(
    path: Union[str, Path],
    sequence: TrackedFrameSequence,
) -> Path:
    """
    Write a sequence in the layout read by load_tracked_frame_sequence.

    Args:
        path: Output .h5 path; parent directories are created.
        sequence: Sequence to write. Must not be empty.

    Returns:
        The written path.
    """
    if len(sequence) == 0:
        raise ValueError("cannot save an empty sequence")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(path, "w") as h5file:
        h5file.create_dataset(
            "frames",
            data=np.stack([frame.image for frame in sequence]).astype(np.uint8),
            compression="gzip",
        )
        h5file.create_dataset(
            "tforms",
            data=np.stack([frame.pose for frame in sequence]).astype(np.float64),
        )
        h5file.create_dataset(
            "tform_valid",
            data=np.array([frame.pose_valid for frame in sequence], dtype=bool),
        )
        h5file.create_dataset(
            "timestamps",
            data=np.array([frame.timestamp for frame in sequence], dtype=np.float64),
        )
        h5file.attrs["pose_from"] = sequence.pose_from
        h5file.attrs["pose_to"] = sequence.pose_to

    return path
