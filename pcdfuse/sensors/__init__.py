"""Sensor data: shared point clouds, detection rectangles and LiDAR files."""

from .pointcloud import Point, PointCloud, PointRef
from .detections import DetectionRect, RectRef, RectSet, rects_from_detections
from .lidar import LiDARLoader, read_bin_pointcloud

__all__ = [
    "Point",
    "PointCloud",
    "PointRef",
    "DetectionRect",
    "RectRef",
    "RectSet",
    "rects_from_detections",
    "LiDARLoader",
    "read_bin_pointcloud",
]
