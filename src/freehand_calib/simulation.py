"""
Synthetic freehand calibration data.

Generates tracked ultrasound sweeps over the default double N-wire phantom
for a known ImageToProbe transform:

    - image planes roughly perpendicular to the wires, sampled with a seeded
      numpy generator (slice depth, small tilts, in-plane offsets);
    - tracker poses ProbeToReference consistent with a fixed phantom
      registration;
    - exact wire / image plane intersections (pixel coordinates);
    - rendered frames with Gaussian dots on a speckled background.

Used by the test suite and the generate-synthetic command.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union
import math
import xml.etree.ElementTree as ET

import numpy as np

from freehand_calib.config.defaults import (
    get_calibration_config_schema,
    get_default_calibration_config,
    get_default_segmentation_config,
    get_segmentation_config_schema,
)
from freehand_calib.config.loader import (
    CalibrationConfiguration,
    CoordinateDefinition,
    write_configuration,
)
from freehand_calib.constants import (
    IMAGE_FRAME,
    PHANTOM_FRAME,
    PROBE_FRAME,
    REFERENCE_FRAME,
)
from freehand_calib.data.loader import save_tracked_frame_sequence
from freehand_calib.errors import InputError
from freehand_calib.phantom import PhantomGeometry, default_phantom
from freehand_calib.transforms.rigid import invert_transform, params_to_matrix_np
from freehand_calib.types import SegmentationResult, TrackedFrameSequence
from freehand_calib.xml_utils import (
    find_nested,
    format_vector,
    parse_vector,
    read_xml_root,
    write_xml,
)

SPACING_MM_PER_PIXEL = 0.2
IMAGE_SHAPE = (240, 320)  # (height, width)
IMAGE_TO_PROBE_PARAMS = (0.1, -0.2, 0.3, 5.0, -10.0, 20.0)
PHANTOM_TO_REFERENCE_PARAMS = (0.2, 0.1, -0.3, 100.0, 50.0, -30.0)

SLICE_DEPTH_RANGE_MM = (8.0, 32.0)
MAX_TILT_DEG = 5.0
MAX_OFFSET_MM = 3.0


@dataclass(frozen=True)
class SimulationSetup:
    """
    Fixed geometry of a simulated acquisition.

    Attributes:
        phantom: Phantom geometry.
        image_to_probe: True calibration T_{Probe<-Image}, shape [4, 4].
        phantom_to_reference: Phantom registration T_{Reference<-Phantom}.
        spacing: Pixel spacing (mm/pixel), both axes.
        image_shape: (height, width) of the frames.
    """
    phantom: PhantomGeometry
    image_to_probe: np.ndarray
    phantom_to_reference: np.ndarray
    spacing: float = SPACING_MM_PER_PIXEL
    image_shape: Tuple[int, int] = IMAGE_SHAPE


@dataclass(frozen=True)
class SimulatedSweep:
    """
    One generated sweep.

    Attributes:
        sequence: Tracked frames (rendered images and poses).
        image_to_phantom: True T_{Phantom<-Image} per frame, shape [N, 4, 4].
        wire_points: Exact wire intersections in pixels, shape [N, W, 2].
    """
    sequence: TrackedFrameSequence
    image_to_phantom: np.ndarray
    wire_points: np.ndarray

    def exact_segmentation(self) -> Tuple[SegmentationResult, ...]:
        """Segmentation results carrying the exact intersections."""
        return tuple(exact_segmentation(points) for points in self.wire_points)


@dataclass(frozen=True)
class SyntheticDataset:
    """Paths written by generate_dataset."""
    calibration_sequence: Path
    validation_sequence: Path
    configuration: Path
    ground_truth: Path
    image_to_probe: np.ndarray


def default_setup() -> SimulationSetup:
    """Setup with the default phantom and fixed reference transforms."""
    image_to_probe = params_to_matrix_np(np.array(IMAGE_TO_PROBE_PARAMS)) @ np.diag(
        [SPACING_MM_PER_PIXEL, SPACING_MM_PER_PIXEL, 1.0, 1.0]
    )
    return SimulationSetup(
        phantom=default_phantom(),
        image_to_probe=image_to_probe,
        phantom_to_reference=params_to_matrix_np(np.array(PHANTOM_TO_REFERENCE_PARAMS)),
    )


def make_configuration(
    setup: SimulationSetup,
    segmentation: Optional[dict] = None,
    calibration: Optional[dict] = None,
) -> CalibrationConfiguration:
    """
    In-memory configuration matching a setup.

    Args:
        setup: Simulation setup.
        segmentation: Overrides of the default segmentation section.
        calibration: Overrides of the default calibration section.
    """
    segmentation_section = get_default_segmentation_config()
    segmentation_section["ApproximateSpacingMmPerPixel"] = setup.spacing
    segmentation_section.update(segmentation or {})
    calibration_section = get_default_calibration_config()
    calibration_section.update(calibration or {})
    return CalibrationConfiguration(
        phantom=setup.phantom,
        coordinate_definitions=(
            CoordinateDefinition(PHANTOM_FRAME, REFERENCE_FRAME, setup.phantom_to_reference),
        ),
        segmentation=get_segmentation_config_schema().validate(
            segmentation_section, section="Segmentation"
        ),
        calibration=get_calibration_config_schema().validate(
            calibration_section, section="Calibration"
        ),
    )


def sample_image_to_phantom(
    setup: SimulationSetup,
    num_frames: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    Sample image plane placements in the phantom.

    Each plane is centered over the phantom, tilted by at most
    MAX_TILT_DEG about every axis and shifted in-plane by at most
    MAX_OFFSET_MM.

    Returns:
        T_{Phantom<-Image} per frame (pixel input), shape [N, 4, 4].
    """
    height, width = setup.image_shape
    image_center_mm = np.array([width * setup.spacing / 2.0, height * setup.spacing / 2.0, 0.0])
    wires = np.stack([
        np.stack([wire.end_point_front, wire.end_point_back]) for wire in setup.phantom.wires
    ])
    phantom_center = wires.reshape(-1, 3).mean(axis=0)

    to_center = np.eye(4)
    to_center[0:3, 3] = -image_center_mm
    scale = np.diag([setup.spacing, setup.spacing, 1.0, 1.0])

    max_tilt = math.radians(MAX_TILT_DEG)
    transforms = np.zeros((num_frames, 4, 4))
    for i in range(num_frames):
        angles = rng.uniform(-max_tilt, max_tilt, size=3)
        offset = rng.uniform(-MAX_OFFSET_MM, MAX_OFFSET_MM, size=2)
        depth = rng.uniform(*SLICE_DEPTH_RANGE_MM)
        translation = np.array([
            phantom_center[0] + offset[0],
            phantom_center[1] + offset[1],
            depth,
        ])
        placement = params_to_matrix_np(np.concatenate([angles, translation]))
        transforms[i] = placement @ to_center @ scale
    return transforms


def project_wires(phantom: PhantomGeometry, image_to_phantom: np.ndarray) -> np.ndarray:
    """
    Intersect every wire with an image plane.

    Args:
        phantom: Phantom geometry.
        image_to_phantom: T_{Phantom<-Image}, shape [4, 4].

    Returns:
        Intersections in pixels, shape [W, 2], in global wire order.

    Raises:
        ValueError: If a wire is parallel to the image plane.
    """
    phantom_to_image = invert_transform(image_to_phantom)
    points = []
    for wire in phantom.wires:
        front = phantom_to_image[0:3, 0:3] @ wire.end_point_front + phantom_to_image[0:3, 3]
        back = phantom_to_image[0:3, 0:3] @ wire.end_point_back + phantom_to_image[0:3, 3]
        denominator = front[2] - back[2]
        if abs(denominator) < 1e-12:
            raise ValueError(f"wire {wire.name} is parallel to the image plane")
        t = front[2] / denominator
        points.append((front + t * (back - front))[0:2])
    return np.stack(points)


def exact_segmentation(points: np.ndarray) -> SegmentationResult:
    """SegmentationResult labeling points [W, 2] with wire indices 0..W-1."""
    points = np.asarray(points, dtype=np.float64)
    return SegmentationResult(
        found=True,
        points=points.copy(),
        wire_indices=np.arange(points.shape[0], dtype=np.int64),
    )


def render_frame(
    points: np.ndarray,
    image_shape: Tuple[int, int],
    rng: Optional[np.random.Generator] = None,
    sigma_px: float = 2.0,
    amplitude: float = 200.0,
    background: float = 20.0,
    noise_std: float = 8.0,
) -> np.ndarray:
    """
    Render wire cross-sections as Gaussian dots.

    Args:
        points: Dot centers (x, y) in pixels, shape [K, 2].
        image_shape: (height, width).
        rng: Generator for the speckle noise; no noise if None.
        sigma_px: Dot standard deviation.
        amplitude: Dot peak above background.
        background: Background level.
        noise_std: Standard deviation of the additive speckle.

    Returns:
        Image, shape [H, W], dtype uint8.
    """
    height, width = image_shape
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    image = np.full((height, width), background, dtype=np.float64)
    for x, y in np.asarray(points, dtype=np.float64).reshape(-1, 2):
        image += amplitude * np.exp(-((xs - x) ** 2 + (ys - y) ** 2) / (2.0 * sigma_px ** 2))
    if rng is not None and noise_std > 0:
        image += rng.normal(0.0, noise_std, size=image.shape)
    return np.clip(np.rint(image), 0, 255).astype(np.uint8)


def generate_sweep(
    setup: SimulationSetup,
    num_frames: int,
    seed: int = 0,
    name: str = "",
    noise_std: float = 8.0,
    invalid_pose_interval: int = 0,
) -> SimulatedSweep:
    """
    Generate a tracked sweep.

    Args:
        setup: Simulation setup.
        num_frames: Number of frames.
        seed: Seed of the numpy generator.
        name: Sequence name.
        noise_std: Speckle noise standard deviation.
        invalid_pose_interval: If > 0, every n-th frame (1-based) gets a NaN
                               pose, as when the tracker loses the probe.

    Returns:
        SimulatedSweep instance.
    """
    rng = np.random.default_rng(seed)
    image_to_phantom = sample_image_to_phantom(setup, num_frames, rng)
    probe_to_image = invert_transform(setup.image_to_probe)

    images = np.zeros((num_frames, *setup.image_shape), dtype=np.uint8)
    poses = np.zeros((num_frames, 4, 4))
    wire_points = np.zeros((num_frames, setup.phantom.num_wires, 2))
    for i in range(num_frames):
        wire_points[i] = project_wires(setup.phantom, image_to_phantom[i])
        images[i] = render_frame(wire_points[i], setup.image_shape, rng, noise_std=noise_std)
        poses[i] = setup.phantom_to_reference @ image_to_phantom[i] @ probe_to_image
        if invalid_pose_interval > 0 and (i + 1) % invalid_pose_interval == 0:
            poses[i] = np.nan

    sequence = TrackedFrameSequence.from_arrays(
        images=images,
        poses=poses,
        timestamps=np.arange(num_frames, dtype=np.float64) * 0.1,
        name=name,
        pose_from=PROBE_FRAME,
        pose_to=REFERENCE_FRAME,
    )
    return SimulatedSweep(sequence=sequence, image_to_phantom=image_to_phantom, wire_points=wire_points)


def write_ground_truth(path: Union[str, Path], image_to_probe: np.ndarray) -> Path:
    """Write the true ImageToProbe transform as an XML document."""
    root = ET.Element("CalibrationGroundTruth")
    ET.SubElement(root, "CalibrationTransform", {
        "From": IMAGE_FRAME,
        "To": PROBE_FRAME,
        "TransformImageToProbe": format_vector(np.asarray(image_to_probe).reshape(-1)),
    })
    return write_xml(root, path)


def read_ground_truth(path: Union[str, Path]) -> np.ndarray:
    """
    Read the true ImageToProbe transform written by write_ground_truth.

    Raises:
        InputError: If the file or its transform attribute is missing or malformed.
    """
    element = find_nested(read_xml_root(path, "ground truth file"), "CalibrationTransform")
    values = None if element is None else parse_vector(element.get("TransformImageToProbe"), 16)
    if values is None:
        raise InputError(f"No valid TransformImageToProbe in ground truth file {path}")
    return values.reshape(4, 4)


def generate_dataset(
    output_dir: Union[str, Path],
    num_frames: int = 40,
    seed: int = 0,
    noise_std: float = 8.0,
    invalid_pose_interval: int = 0,
) -> SyntheticDataset:
    """
    Write a complete synthetic calibration dataset.

    Files written to output_dir:
        FreehandMotion1.h5, FreehandMotion2.h5: calibration and validation sweeps
        CalibrationConfig.xml: phantom, registration and section defaults
        GroundTruth.xml: the true ImageToProbe transform

    Args:
        output_dir: Target directory, created if needed.
        num_frames: Frames per sweep.
        seed: Seed; the validation sweep uses seed + 1.
        noise_std: Speckle noise standard deviation.
        invalid_pose_interval: See generate_sweep.

    Returns:
        SyntheticDataset with the written paths.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    setup = default_setup()

    paths: List[Path] = []
    for index in (1, 2):
        name = f"FreehandMotion{index}"
        sweep = generate_sweep(
            setup,
            num_frames,
            seed=seed + index - 1,
            name=name,
            noise_std=noise_std,
            invalid_pose_interval=invalid_pose_interval,
        )
        paths.append(save_tracked_frame_sequence(output_dir / f"{name}.h5", sweep.sequence))

    segmentation = get_default_segmentation_config()
    segmentation["ApproximateSpacingMmPerPixel"] = setup.spacing
    configuration_path = write_configuration(
        output_dir / "CalibrationConfig.xml",
        phantom=setup.phantom,
        coordinate_definitions=(
            CoordinateDefinition(PHANTOM_FRAME, REFERENCE_FRAME, setup.phantom_to_reference),
        ),
        segmentation=segmentation,
        calibration=get_default_calibration_config(),
    )
    ground_truth_path = write_ground_truth(output_dir / "GroundTruth.xml", setup.image_to_probe)

    return SyntheticDataset(
        calibration_sequence=paths[0],
        validation_sequence=paths[1],
        configuration=configuration_path,
        ground_truth=ground_truth_path,
        image_to_probe=setup.image_to_probe,
    )
