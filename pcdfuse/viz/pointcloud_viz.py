"""
Point cloud visualization utilities.

Per-point coloring for the shared cloud (uniform, intensity, distance or
the class of the detection each point was associated with) and a
bird's eye view rendering used by the command line tools.
"""

from enum import Enum
from typing import Mapping, Optional, Tuple

import cv2
import numpy as np

from .color_sampling import ColorSampler
from ..fusion.associator import NO_RECT, Associations
from ..sensors.pointcloud import PointCloud


UNIFORM_COLOR = (0.0, 1.0, 0.5)
UNASSOCIATED_COLOR = (0.5, 0.5, 0.5)


# =============================================================================
# Colormaps
# =============================================================================

def depth_to_color(
    depth: np.ndarray,
    min_depth: float = 0.0,
    max_depth: float = 70.0,
    colormap: str = "turbo",
) -> np.ndarray:
    """
    Convert depth values to RGB colors using colormap.

    Args:
        depth: (N,) array of depth values.
        min_depth: Minimum depth for normalization.
        max_depth: Maximum depth for normalization.
        colormap: Colormap name ('turbo', 'jet', 'viridis', 'plasma').

    Returns:
        colors: (N, 3) array of RGB colors [0-255].
    """
    depth = np.asarray(depth, dtype=np.float64).reshape(-1)
    if len(depth) == 0:
        return np.zeros((0, 3), dtype=np.uint8)

    depth_norm = np.clip((depth - min_depth) / (max_depth - min_depth), 0, 1)
    depth_uint8 = (depth_norm * 255).astype(np.uint8)

    colormap_cv = {
        "turbo": cv2.COLORMAP_TURBO,
        "jet": cv2.COLORMAP_JET,
        "viridis": cv2.COLORMAP_VIRIDIS,
        "plasma": cv2.COLORMAP_PLASMA,
    }.get(colormap, cv2.COLORMAP_TURBO)

    # applyColorMap returns BGR
    colored = cv2.applyColorMap(depth_uint8.reshape(-1, 1), colormap_cv).reshape(-1, 3)
    return colored[:, ::-1]


def intensity_to_color(intensity: np.ndarray, colormap: str = "viridis") -> np.ndarray:
    """
    Convert intensity values to RGB colors [0-255].

    Intensities above 1 are taken to be on a 0-255 scale.
    """
    intensity = np.asarray(intensity, dtype=np.float64).reshape(-1)
    if len(intensity) and intensity.max() > 1.0:
        intensity = intensity / 255.0
    return depth_to_color(np.clip(intensity, 0, 1), 0, 1, colormap)


# =============================================================================
# Point Coloring
# =============================================================================

class PointColorMode(Enum):
    """How the point cloud view colors points."""

    UNIFORM = "uniform"
    INTENSITY = "intensity"
    DISTANCE = "distance"
    OBJECT_CLASS = "object_class"

    def next(self) -> "PointColorMode":
        """The following mode, wrapping around after the last one."""
        modes = list(PointColorMode)
        return modes[(modes.index(self) + 1) % len(modes)]


def colorize_points(
    cloud: PointCloud,
    associations: Optional[Mapping[str, Associations]] = None,
    mode: PointColorMode = PointColorMode.OBJECT_CLASS,
    sampler: Optional[ColorSampler] = None,
    max_distance: Optional[float] = None,
) -> np.ndarray:
    """
    Color every point of the cloud.

    Args:
        cloud: Shared point cloud.
        associations: Per-camera associations of the frame; used by
                      OBJECT_CLASS mode.
        mode: Coloring mode.
        sampler: Class color sampler for OBJECT_CLASS mode.
        max_distance: Upper end of the DISTANCE colormap; the farthest point
                      when omitted.

    Returns:
        colors: (N, 3) float RGB colors in [0, 1], aligned with the cloud.
    """
    num_points = len(cloud)

    if mode is PointColorMode.UNIFORM:
        return np.tile(np.asarray(UNIFORM_COLOR, dtype=np.float64), (num_points, 1))

    if mode is PointColorMode.INTENSITY:
        return intensity_to_color(cloud.intensities) / 255.0

    if mode is PointColorMode.DISTANCE:
        distances = cloud.distances()
        if max_distance is None:
            max_distance = float(distances.max(initial=0.0))
        return depth_to_color(distances, 0.0, max(max_distance, 1e-6)) / 255.0

    sampler = sampler or ColorSampler()
    colors = np.tile(np.asarray(UNASSOCIATED_COLOR, dtype=np.float64), (num_points, 1))

    for assocs in (associations or {}).values():
        if assocs.cloud is not cloud:
            raise ValueError("associations refer to a different point cloud")
        for rect_index, point_indices in assocs.by_rect().items():
            class_id = assocs.rects[rect_index].class_id
            if class_id is None:
                continue
            colors[point_indices] = sampler.sample_rgb(class_id)

    return colors


def create_bev_image(
    cloud: PointCloud,
    colors: np.ndarray,
    x_range: Tuple[float, float] = (0, 70.0),
    y_range: Tuple[float, float] = (-40, 40),
    resolution: float = 0.1,
) -> np.ndarray:
    """
    Render a bird's eye view of the cloud.

    Args:
        cloud: Shared point cloud.
        colors: (N, 3) float RGB colors in [0, 1], e.g. from colorize_points.
        x_range: (min, max) range in x (forward) direction.
        y_range: (min, max) range in y (left) direction.
        resolution: Meters per pixel.

    Returns:
        bev_image: (H, W, 3) BGR image, forward is up.
    """
    width = int((y_range[1] - y_range[0]) / resolution)
    height = int((x_range[1] - x_range[0]) / resolution)
    bev = np.zeros((height, width, 3), dtype=np.uint8)

    positions = cloud.positions
    mask = (
        (positions[:, 0] >= x_range[0]) & (positions[:, 0] < x_range[1]) &
        (positions[:, 1] >= y_range[0]) & (positions[:, 1] < y_range[1])
    )
    if not mask.any():
        return bev

    px = ((positions[mask, 0] - x_range[0]) / resolution).astype(int)
    py = ((positions[mask, 1] - y_range[0]) / resolution).astype(int)

    # Forward is up, left is left
    rows = np.clip(height - 1 - px, 0, height - 1)
    cols = np.clip(width - 1 - py, 0, width - 1)

    bgr = (np.asarray(colors)[mask][:, ::-1] * 255).astype(np.uint8)
    bev[rows, cols] = bgr
    return bev
