"""
Projection of LiDAR points into cameras and association with detections.

Example:
    >>> from pcdfuse.fusion import project, associate
    >>>
    >>> projected = project(cloud, calibration)
    >>> associations = associate(projected, rects)
    >>> for assoc in associations.associated():
    ...     print(assoc.point_ref.position, assoc.rect_ref.rect.class_id)
"""

from .projector import ProjectedPoints, PointProjector, project
from .associator import NO_RECT, Association, Associations, associate, containing_rects
from .messages import (
    DetectionCameraMessage,
    DetectionInput,
    FuseMessage,
    ImageCameraMessage,
    ImageInput,
    InputMessage,
    PointCloudInput,
    PointCloudMessage,
    assemble_messages,
    dispatch_message,
)
from .pipeline import (
    BufferClosed,
    CameraPipeline,
    FrameAssembler,
    FusionFrame,
    FusionPipeline,
    HandoffBuffer,
)

__all__ = [
    # Projection
    "ProjectedPoints",
    "PointProjector",
    "project",
    # Association
    "NO_RECT",
    "Association",
    "Associations",
    "associate",
    "containing_rects",
    # Messages
    "PointCloudInput",
    "ImageInput",
    "DetectionInput",
    "InputMessage",
    "ImageCameraMessage",
    "DetectionCameraMessage",
    "PointCloudMessage",
    "FuseMessage",
    "assemble_messages",
    "dispatch_message",
    # Pipeline
    "BufferClosed",
    "HandoffBuffer",
    "FusionFrame",
    "FrameAssembler",
    "CameraPipeline",
    "FusionPipeline",
]
