"""Tracked frame sequence file I/O."""

from freehand_calib.data.loader import (
    load_tracked_frame_sequence,
    save_tracked_frame_sequence,
)

__all__ = [
    "load_tracked_frame_sequence",
    "save_tracked_frame_sequence",
]
