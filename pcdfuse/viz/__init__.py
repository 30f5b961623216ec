"""Visualization utilities for fused LiDAR and camera data."""

from .color_sampling import ColorSampler
from .image_overlay import (
    apply_camera_view,
    draw_associations,
    draw_rects,
    draw_text,
    render_camera_message,
    save_image,
)
from .pointcloud_viz import (
    PointColorMode,
    colorize_points,
    create_bev_image,
    depth_to_color,
    intensity_to_color,
)

__all__ = [
    "ColorSampler",
    # Image overlay
    "apply_camera_view",
    "draw_rects",
    "draw_associations",
    "draw_text",
    "render_camera_message",
    "save_image",
    # Point cloud
    "PointColorMode",
    "colorize_points",
    "create_bev_image",
    "depth_to_color",
    "intensity_to_color",
]
