"""
Loading of the XML calibration configuration.

Document layout:

    <CalibrationConfiguration>
      <CoordinateDefinitions>
        <Transform From="Phantom" To="Reference" Matrix="16 values"/>
      </CoordinateDefinitions>
      <PhantomDefinition>
        <NWire>
          <Wire Name="1:A" EndPointFront="x y z" EndPointBack="x y z"/>
          ... three wires per N-wire ...
        </NWire>
      </PhantomDefinition>
      <Segmentation ApproximateSpacingMmPerPixel="0.2" .../>
      <Calibration ImageCoordinateFrame="Image" .../>
    </CalibrationConfiguration>
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import hashlib
import xml.etree.ElementTree as ET

import numpy as np

from freehand_calib.config.defaults import (
    get_calibration_config_schema,
    get_segmentation_config_schema,
)
from freehand_calib.constants import NUM_TRANSFORM_VALUES, WIRES_PER_NWIRE
from freehand_calib.errors import InputError
from freehand_calib.phantom import NWire, PhantomGeometry, Wire
from freehand_calib.transforms.repository import TransformRepository
from freehand_calib.xml_utils import (
    find_nested,
    format_vector,
    parse_vector,
    read_xml_root,
    write_xml,
)

ROOT_TAG = "CalibrationConfiguration"


@dataclass(frozen=True)
class CoordinateDefinition:
    """
    One fixed transform from the configuration.

    Attributes:
        from_frame: Source frame name.
        to_frame: Target frame name.
        matrix: T_{to<-from}, shape [4, 4].
    """
    from_frame: str
    to_frame: str
    matrix: np.ndarray


@dataclass(frozen=True)
class CalibrationConfiguration:
    """
    Immutable configuration of one calibration run.

    Attributes:
        phantom: N-wire phantom geometry.
        coordinate_definitions: Fixed transforms for the transform repository.
        segmentation: Validated segmentation section.
        calibration: Validated calibration section.
        source_path: File the configuration was read from, if any.
        content_hash: First 16 hex characters of the SHA256 of the file bytes.
    """
    phantom: PhantomGeometry
    coordinate_definitions: Tuple[CoordinateDefinition, ...]
    segmentation: Dict[str, Any]
    calibration: Dict[str, Any]
    source_path: Optional[str] = None
    content_hash: str = ""

    def build_repository(self) -> TransformRepository:
        """
        Create a transform repository holding every coordinate definition.

        Raises:
            InputError: If a definition is not a valid transform.
        """
        repository = TransformRepository()
        for definition in self.coordinate_definitions:
            try:
                repository.set_transform(
                    definition.from_frame, definition.to_frame, definition.matrix
                )
            except ValueError as e:
                raise InputError(f"Invalid coordinate definition: {e}") from e
        return repository


def load_configuration(path: Union[str, Path]) -> CalibrationConfiguration:
    """
    Load and validate a configuration file.

    Args:
        path: Path to the XML configuration.

    Returns:
        CalibrationConfiguration instance.

    Raises:
        InputError: If the file cannot be read or its content is invalid.
    """
    path = Path(path)
    root = read_xml_root(path, "configuration file")
    content_hash = hashlib.sha256(path.read_bytes()).hexdigest()[:16]
    return parse_configuration(root, source_path=str(path), content_hash=content_hash)


def parse_configuration(
    root: ET.Element,
    source_path: Optional[str] = None,
    content_hash: str = "",
) -> CalibrationConfiguration:
    """
    Build a CalibrationConfiguration from a parsed XML root.

    Raises:
        InputError: If a section is missing or malformed.
    """
    config_root = find_nested(root, ROOT_TAG)
    if config_root is None:
        raise InputError(f"Missing {ROOT_TAG} element")

    segmentation_element = _require_section(config_root, "Segmentation")
    calibration_element = config_root.find("Calibration")

    segmentation = get_segmentation_config_schema().validate(
        dict(segmentation_element.attrib), section="Segmentation"
    )
    calibration = get_calibration_config_schema().validate(
        dict(calibration_element.attrib) if calibration_element is not None else {},
        section="Calibration",
    )

    return CalibrationConfiguration(
        phantom=_parse_phantom(_require_section(config_root, "PhantomDefinition")),
        coordinate_definitions=_parse_coordinate_definitions(
            _require_section(config_root, "CoordinateDefinitions")
        ),
        segmentation=segmentation,
        calibration=calibration,
        source_path=source_path,
        content_hash=content_hash,
    )


def _require_section(parent: ET.Element, name: str) -> ET.Element:
    element = parent.find(name)
    if element is None:
        raise InputError(f"Missing configuration section: {name}")
    return element


def _parse_coordinate_definitions(element: ET.Element) -> Tuple[CoordinateDefinition, ...]:
    definitions = []
    for transform in element.findall("Transform"):
        from_frame = transform.get("From")
        to_frame = transform.get("To")
        if not from_frame or not to_frame:
            raise InputError("CoordinateDefinitions/Transform needs From and To")
        values = parse_vector(transform.get("Matrix"), NUM_TRANSFORM_VALUES)
        if values is None:
            raise InputError(
                f"{from_frame}To{to_frame}: Matrix must hold {NUM_TRANSFORM_VALUES} numbers"
            )
        definitions.append(CoordinateDefinition(
            from_frame=from_frame,
            to_frame=to_frame,
            matrix=values.reshape(4, 4),
        ))
    return tuple(definitions)


def _parse_phantom(element: ET.Element) -> PhantomGeometry:
    nwires = []
    for nwire_index, nwire_element in enumerate(element.findall("NWire")):
        wire_elements = nwire_element.findall("Wire")
        if len(wire_elements) != WIRES_PER_NWIRE:
            raise InputError(
                f"NWire {nwire_index} must have {WIRES_PER_NWIRE} wires, "
                f"got {len(wire_elements)}"
            )
        wires = []
        for wire_index, wire_element in enumerate(wire_elements):
            name = wire_element.get("Name", f"{nwire_index + 1}:{wire_index}")
            front = parse_vector(wire_element.get("EndPointFront"), 3)
            back = parse_vector(wire_element.get("EndPointBack"), 3)
            if front is None or back is None:
                raise InputError(f"Wire {name}: EndPointFront/EndPointBack need 3 numbers")
            wires.append(Wire(name=name, end_point_front=front, end_point_back=back))
        try:
            nwires.append(NWire(wires=tuple(wires)))
        except ValueError as e:
            raise InputError(f"Invalid NWire {nwire_index}: {e}") from e

    try:
        return PhantomGeometry(nwires=tuple(nwires))
    except ValueError as e:
        raise InputError(f"Invalid PhantomDefinition: {e}") from e


def write_configuration(
    path: Union[str, Path],
    phantom: PhantomGeometry,
    coordinate_definitions: Tuple[CoordinateDefinition, ...],
    segmentation: Dict[str, Any],
    calibration: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Write a configuration document readable by load_configuration.

    Args:
        path: Output file.
        phantom: Phantom geometry.
        coordinate_definitions: Fixed transforms.
        segmentation: Segmentation section attributes.
        calibration: Calibration section attributes (defaults if None).

    Returns:
        The written path.
    """
    root = ET.Element(ROOT_TAG)

    definitions_element = ET.SubElement(root, "CoordinateDefinitions")
    for definition in coordinate_definitions:
        ET.SubElement(definitions_element, "Transform", {
            "From": definition.from_frame,
            "To": definition.to_frame,
            "Matrix": format_vector(np.asarray(definition.matrix).reshape(-1)),
        })

    phantom_element = ET.SubElement(root, "PhantomDefinition")
    for nwire in phantom.nwires:
        nwire_element = ET.SubElement(phantom_element, "NWire")
        for wire in nwire.wires:
            ET.SubElement(nwire_element, "Wire", {
                "Name": wire.name,
                "EndPointFront": format_vector(wire.end_point_front),
                "EndPointBack": format_vector(wire.end_point_back),
            })

    ET.SubElement(root, "Segmentation", {k: str(v) for k, v in segmentation.items()})
    ET.SubElement(root, "Calibration", {k: str(v) for k, v in (calibration or {}).items()})

    return write_xml(root, path)
