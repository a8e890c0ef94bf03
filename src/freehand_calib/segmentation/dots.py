"""
Candidate dot detection in ultrasound frames.

Wire cross-sections image as small bright blobs on a speckled background.
A morphological opening removes speckle smaller than the structuring disk,
a relative threshold isolates bright regions, and each connected component
within the accepted area range becomes a dot at its intensity-weighted
centroid.

Pixel convention: the center of pixel (row r, column c) is at (x=c, y=r).
"""

from dataclasses import dataclass
from typing import List

import cv2
import numpy as np


@dataclass(frozen=True)
class Dot:
    """
    A candidate fiducial dot.

    Attributes:
        x: Column coordinate of the weighted centroid (pixels).
        y: Row coordinate of the weighted centroid (pixels).
        intensity: Sum of above-threshold intensity of the component.
        area: Component area in pixels.
    """
    x: float
    y: float
    intensity: float
    area: int


def open_image(image: np.ndarray, radius_px: int) -> np.ndarray:
    """
    Morphological opening with a disk of the given radius.

    Args:
        image: Grayscale image, shape [H, W], dtype uint8.
        radius_px: Disk radius; 0 returns the image unchanged.

    Returns:
        Opened image, same shape and dtype.
    """
    if radius_px <= 0:
        return image
    size = 2 * radius_px + 1
    kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (size, size))
    return cv2.morphologyEx(image, cv2.MORPH_OPEN, kernel)


def find_dots(
    image: np.ndarray,
    opening_radius_px: int,
    threshold_percent: float,
    min_area: int,
    max_area: int,
    max_dots: int,
) -> List[Dot]:
    """
    Detect candidate dots in a frame.

    Args:
        image: Grayscale image, shape [H, W].
        opening_radius_px: Radius of the speckle-removing opening.
        threshold_percent: Threshold as percent of the opened image maximum.
        min_area: Smallest accepted component area (pixels).
        max_area: Largest accepted component area (pixels).
        max_dots: Number of brightest dots to return.

    Returns:
        Dots sorted by decreasing intensity (ties by position), at most
        max_dots of them. Empty for a blank frame.
    """
    image = np.ascontiguousarray(image, dtype=np.uint8)
    opened = open_image(image, opening_radius_px)

    max_value = float(opened.max()) if opened.size else 0.0
    if max_value <= 0.0:
        return []
    threshold = max_value * threshold_percent / 100.0

    mask = (opened > threshold).astype(np.uint8)
    count, labels, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)

    weights = opened.astype(np.float64) - threshold
    dots: List[Dot] = []
    for label in range(1, count):
        area = int(stats[label, cv2.CC_STAT_AREA])
        if area < min_area or area > max_area:
            continue
        left = int(stats[label, cv2.CC_STAT_LEFT])
        top = int(stats[label, cv2.CC_STAT_TOP])
        width = int(stats[label, cv2.CC_STAT_WIDTH])
        height = int(stats[label, cv2.CC_STAT_HEIGHT])

        component = labels[top:top + height, left:left + width] == label
        ys, xs = np.nonzero(component)
        w = weights[top:top + height, left:left + width][ys, xs]
        total = float(w.sum())
        if total <= 0.0:
            continue
        dots.append(Dot(
            x=float(np.dot(w, xs + left) / total),
            y=float(np.dot(w, ys + top) / total),
            intensity=total,
            area=area,
        ))

    dots.sort(key=lambda dot: (-dot.intensity, dot.y, dot.x))
    return dots[:max_dots]
