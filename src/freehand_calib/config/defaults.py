"""
Configuration schemas and defaults for segmentation and calibration.
"""

from typing import Any, Dict

from freehand_calib.config.schema import ConfigSchema
from freehand_calib.constants import (
    IMAGE_FRAME,
    PHANTOM_FRAME,
    PROBE_FRAME,
)

OPTIMIZATION_METHODS = ("none", "point_to_line")


def get_default_segmentation_config() -> Dict[str, Any]:
    """
    Get the default pattern recognition configuration.

    Returns:
        Dictionary of default configuration values.

    Configuration keys:
        ApproximateSpacingMmPerPixel: Nominal pixel size, used to turn phantom
            distances into expected image distances.
        MorphologicalOpeningRadiusMm: Radius of the opening disk that removes
            speckle smaller than a wire cross-section.
        ThresholdImagePercent: Dot threshold, percent of the opened frame maximum.
        MinDotAreaPx / MaxDotAreaPx: Accepted connected component areas.
        MaxCandidateDots: Brightest dots kept for line search.
        MaxLinePointDistancePx: Allowed distance of the middle dot from the
            line through the side dots.
        DotLocalizationErrorPx: Dot localization noise floor. Lines whose middle
            dot strays further from collinearity are down-weighted in the solve.
        MaxLineLengthErrorPercent: Allowed relative error of line spans and
            line separations against the phantom geometry.
        MaxLineAngleDifferenceDeg: Allowed angle between the lines of one frame.
        MinSegmentationSuccessRate: Below this success rate a warning is logged.
        NumberOfWorkers: Threads used to segment frames (1 = sequential).
        RegionOfInterest: "x_min y_min x_max y_max" in pixels, empty for the
            full frame.
    """
    return {
        "ApproximateSpacingMmPerPixel": 0.2,
        "MorphologicalOpeningRadiusMm": 0.3,
        "ThresholdImagePercent": 50.0,
        "MinDotAreaPx": 4,
        "MaxDotAreaPx": 400,
        "MaxCandidateDots": 12,
        "MaxLinePointDistancePx": 2.0,
        "DotLocalizationErrorPx": 0.5,
        "MaxLineLengthErrorPercent": 10.0,
        "MaxLineAngleDifferenceDeg": 10.0,
        "MinSegmentationSuccessRate": 0.5,
        "NumberOfWorkers": 1,
        "RegionOfInterest": "",
    }


def get_segmentation_config_schema() -> ConfigSchema:
    """
    Get the segmentation configuration schema for validation.

    Returns:
        ConfigSchema instance defining required and optional keys.
    """
    defaults = get_default_segmentation_config()
    return ConfigSchema(
        required={
            "ApproximateSpacingMmPerPixel": float,
        },
        optional={
            key: (type(value), value)
            for key, value in defaults.items()
            if key != "ApproximateSpacingMmPerPixel"
        },
        constraints={
            "ApproximateSpacingMmPerPixel": lambda v: v > 0,
            "MorphologicalOpeningRadiusMm": lambda v: v >= 0,
            "ThresholdImagePercent": lambda v: 0 < v < 100,
            "MinDotAreaPx": lambda v: v >= 1,
            "MaxDotAreaPx": lambda v: v >= 1,
            "MaxCandidateDots": lambda v: v >= 3,
            "MaxLinePointDistancePx": lambda v: v > 0,
            "DotLocalizationErrorPx": lambda v: v > 0,
            "MaxLineLengthErrorPercent": lambda v: v > 0,
            "MaxLineAngleDifferenceDeg": lambda v: v > 0,
            "MinSegmentationSuccessRate": lambda v: 0 <= v <= 1,
            "NumberOfWorkers": lambda v: v >= 1,
            "RegionOfInterest": lambda v: v.strip() == "" or len(v.split()) == 4,
        },
    )


def get_default_calibration_config() -> Dict[str, Any]:
    """
    Get the default calibration solver configuration.

    Configuration keys:
        ImageCoordinateFrame / ProbeCoordinateFrame / PhantomCoordinateFrame:
            Frame names used for the result and for repository lookups.
        OptimizationMethod: "none" keeps the linear solution, "point_to_line"
            refines it by minimising wire distances.
        MaxIterations: Iteration budget of the refinement.
    """
    return {
        "ImageCoordinateFrame": IMAGE_FRAME,
        "ProbeCoordinateFrame": PROBE_FRAME,
        "PhantomCoordinateFrame": PHANTOM_FRAME,
        "OptimizationMethod": "point_to_line",
        "MaxIterations": 100,
    }


def get_calibration_config_schema() -> ConfigSchema:
    """Get the calibration configuration schema for validation."""
    return ConfigSchema(
        optional={
            key: (type(value), value)
            for key, value in get_default_calibration_config().items()
        },
        constraints={
            "ImageCoordinateFrame": lambda v: len(v) > 0,
            "ProbeCoordinateFrame": lambda v: len(v) > 0,
            "PhantomCoordinateFrame": lambda v: len(v) > 0,
            "OptimizationMethod": lambda v: v in OPTIMIZATION_METHODS,
            "MaxIterations": lambda v: v >= 1,
        },
    )
