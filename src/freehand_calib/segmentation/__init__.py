"""N-wire fiducial segmentation."""

from freehand_calib.segmentation.dots import Dot, find_dots, open_image
from freehand_calib.segmentation.lines import Line, find_lines, match_pattern
from freehand_calib.segmentation.recognizer import (
    PatternRecognizer,
    parse_region_of_interest,
)

__all__ = [
    "Dot",
    "find_dots",
    "open_image",
    "Line",
    "find_lines",
    "match_pattern",
    "PatternRecognizer",
    "parse_region_of_interest",
]
