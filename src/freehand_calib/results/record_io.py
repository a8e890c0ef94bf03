"""
Persisted calibration result documents.

Layout:

    <CalibrationResultsDocument Timestamp="..." ConfigurationFile="..." ...>
      <CalibrationResults>
        <CalibrationTransform From="Image" To="Probe"
                              TransformImageToProbe="16 row-major values"/>
      </CalibrationResults>
      <ErrorReports>
        <PointReconstructionErrorAnalysis PRE="9 values"
                                          ValidationDataConfidenceLevel="..."/>
        <PointLineDistanceErrorAnalysis PLDE="3 values"
                                        ValidationDataConfidenceLevel="..."/>
      </ErrorReports>
    </CalibrationResultsDocument>

parse_result_document walks the required elements in a fixed order and stops
at the first one that is missing or malformed; the result comparator relies
on that order.
"""

from pathlib import Path
from typing import Union
import xml.etree.ElementTree as ET

from freehand_calib.constants import (
    IMAGE_FRAME,
    NUM_PLDE_VALUES,
    NUM_PRE_VALUES,
    NUM_TRANSFORM_VALUES,
    PROBE_FRAME,
    RESULTS_FILE_SUFFIX,
)
from freehand_calib.errors import InputError
from freehand_calib.types import (
    CalibrationResultRecord,
    CalibrationTransform,
    ErrorStatistic,
)
from freehand_calib.xml_utils import (
    find_nested,
    format_vector,
    parse_scalar,
    parse_vector,
    read_xml_root,
    write_xml,
)

ROOT_TAG = "CalibrationResultsDocument"
TRANSFORM_ATTRIBUTE = "TransformImageToProbe"
CONFIDENCE_ATTRIBUTE = "ValidationDataConfidenceLevel"


def results_file_name(output_dir: Union[str, Path], timestamp: str) -> Path:
    """Return <output_dir>/<timestamp>.Calibration.results.xml."""
    return Path(output_dir) / f"{timestamp}{RESULTS_FILE_SUFFIX}"


def write_result_record(path: Union[str, Path], record: CalibrationResultRecord) -> Path:
    """
    Write a calibration result document.

    Args:
        path: Output file; parent directories are created.
        record: Record to persist.

    Returns:
        The written path.
    """
    attributes = {"Timestamp": record.timestamp}
    attributes.update({key: str(value) for key, value in record.metadata.items()})
    root = ET.Element(ROOT_TAG, attributes)

    results = ET.SubElement(root, "CalibrationResults")
    ET.SubElement(results, "CalibrationTransform", {
        "From": record.transform.from_frame,
        "To": record.transform.to_frame,
        TRANSFORM_ATTRIBUTE: format_vector(record.transform.to_list()),
    })

    reports = ET.SubElement(root, "ErrorReports")
    ET.SubElement(reports, "PointReconstructionErrorAnalysis", {
        "PRE": format_vector(record.pre.values),
        CONFIDENCE_ATTRIBUTE: repr(float(record.pre.confidence_level)),
        "NumberOfPoints": str(record.pre.num_points),
    })
    ET.SubElement(reports, "PointLineDistanceErrorAnalysis", {
        "PLDE": format_vector(record.plde.values),
        CONFIDENCE_ATTRIBUTE: repr(float(record.plde.confidence_level)),
        "NumberOfPoints": str(record.plde.num_points),
    })

    return write_xml(root, path)


def read_result_record(
    path: Union[str, Path],
    description: str = "calibration result file",
) -> CalibrationResultRecord:
    """
    Read a calibration result document.

    Raises:
        InputError: If the file is unreadable or a required element or
                    attribute is missing or malformed.
    """
    root = read_xml_root(path, description)
    try:
        return parse_result_document(root)
    except InputError as e:
        raise InputError(f"{e} in {description} {path}") from e


def _require(parent: ET.Element, name: str) -> ET.Element:
    element = find_nested(parent, name)
    if element is None:
        raise InputError(f"Missing {name} element")
    return element


def _parse_statistic(
    element: ET.Element,
    name: str,
    count: int,
) -> ErrorStatistic:
    values = parse_vector(element.get(name), count)
    if values is None:
        raise InputError(f"{element.tag}@{name} must hold {count} numbers")
    confidence = parse_scalar(element.get(CONFIDENCE_ATTRIBUTE))
    if confidence is None:
        raise InputError(f"{element.tag}@{CONFIDENCE_ATTRIBUTE} is missing")
    num_points = parse_scalar(element.get("NumberOfPoints"))
    try:
        return ErrorStatistic(
            name=name,
            values=values,
            confidence_level=confidence,
            num_points=int(num_points) if num_points is not None else 0,
        )
    except ValueError as e:
        raise InputError(f"{element.tag}: {e}") from e


def parse_result_document(root: ET.Element) -> CalibrationResultRecord:
    """
    Build a CalibrationResultRecord from a parsed result document.

    Raises:
        InputError: Naming the first missing or malformed element.
    """
    results = _require(root, "CalibrationResults")
    transform_element = _require(results, "CalibrationTransform")
    matrix = parse_vector(transform_element.get(TRANSFORM_ATTRIBUTE), NUM_TRANSFORM_VALUES)
    if matrix is None:
        raise InputError(
            f"CalibrationTransform@{TRANSFORM_ATTRIBUTE} must hold "
            f"{NUM_TRANSFORM_VALUES} numbers"
        )
    try:
        transform = CalibrationTransform(
            matrix=matrix.reshape(4, 4),
            from_frame=transform_element.get("From", IMAGE_FRAME),
            to_frame=transform_element.get("To", PROBE_FRAME),
        )
    except ValueError as e:
        raise InputError(f"CalibrationTransform: {e}") from e

    reports = _require(root, "ErrorReports")
    pre = _parse_statistic(
        _require(reports, "PointReconstructionErrorAnalysis"), "PRE", NUM_PRE_VALUES
    )
    plde = _parse_statistic(
        _require(reports, "PointLineDistanceErrorAnalysis"), "PLDE", NUM_PLDE_VALUES
    )

    metadata = {key: value for key, value in root.attrib.items() if key != "Timestamp"}
    return CalibrationResultRecord(
        transform=transform,
        pre=pre,
        plde=plde,
        timestamp=root.get("Timestamp", ""),
        metadata=metadata,
    )
