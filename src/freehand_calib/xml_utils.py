"""
Helpers shared by the XML configuration and result documents.

Numeric vectors are stored as whitespace separated attribute values, e.g.
Matrix="1 0 0 0  0 1 0 0  0 0 1 0  0 0 0 1".
"""

from pathlib import Path
from typing import Optional, Sequence, Union
import xml.etree.ElementTree as ET

import numpy as np

from freehand_calib.errors import InputError


def read_xml_root(path: Union[str, Path], description: str = "XML file") -> ET.Element:
    """
    Read an XML file and return its root element.

    Raises:
        InputError: If the file is missing or is not well-formed XML.
    """
    path = Path(path)
    if not path.exists():
        raise InputError(f"{description} not found: {path}")
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as e:
        raise InputError(f"Failed to parse {description} {path}: {e}") from e


def find_nested(element: ET.Element, name: str) -> Optional[ET.Element]:
    """Return element itself or its first descendant with the given tag."""
    if element.tag == name:
        return element
    return element.find(f".//{name}")


def parse_vector(text: Optional[str], count: Optional[int] = None) -> Optional[np.ndarray]:
    """
    Parse a whitespace separated float vector.

    Args:
        text: Attribute value, may be None.
        count: Required number of values, or None for any length.

    Returns:
        Float64 array, or None if text is None, not numeric, or has the
        wrong number of values.
    """
    if text is None:
        return None
    try:
        values = np.array([float(token) for token in text.split()], dtype=np.float64)
    except ValueError:
        return None
    if count is not None and values.shape != (count,):
        return None
    return values


def parse_scalar(text: Optional[str]) -> Optional[float]:
    """Parse a single float attribute value, None if missing or invalid."""
    values = parse_vector(text, 1)
    if values is None:
        return None
    return float(values[0])


def format_vector(values: Sequence[float]) -> str:
    """Format floats with full round-trip precision, space separated."""
    return " ".join(repr(float(v)) for v in values)


def write_xml(root: ET.Element, path: Union[str, Path]) -> Path:
    """Write an element tree with indentation and an XML declaration."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tree = ET.ElementTree(root)
    ET.indent(tree, space="  ")
    tree.write(path, encoding="utf-8", xml_declaration=True)
    return path
