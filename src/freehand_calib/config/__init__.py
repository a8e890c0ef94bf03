"""Configuration loading and validation."""

from freehand_calib.config.schema import ConfigSchema
from freehand_calib.config.defaults import (
    get_default_segmentation_config,
    get_segmentation_config_schema,
    get_default_calibration_config,
    get_calibration_config_schema,
)
from freehand_calib.config.loader import (
    CalibrationConfiguration,
    CoordinateDefinition,
    load_configuration,
    parse_configuration,
    write_configuration,
)

__all__ = [
    "ConfigSchema",
    "get_default_segmentation_config",
    "get_segmentation_config_schema",
    "get_default_calibration_config",
    "get_calibration_config_schema",
    "CalibrationConfiguration",
    "CoordinateDefinition",
    "load_configuration",
    "parse_configuration",
    "write_configuration",
]
