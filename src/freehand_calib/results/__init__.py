"""Calibration result documents and baseline comparison."""

from freehand_calib.results.comparison import ResultComparator, ratio_within_tolerance
from freehand_calib.results.record_io import (
    parse_result_document,
    read_result_record,
    results_file_name,
    write_result_record,
)

__all__ = [
    "ResultComparator",
    "ratio_within_tolerance",
    "parse_result_document",
    "read_result_record",
    "results_file_name",
    "write_result_record",
]
