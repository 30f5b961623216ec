"""
Fusion message types.

Input messages arrive from the transport boundary; fusion messages leave
the core towards sinks (image overlay, point cloud visualizer, logging).
Both are closed sets of variants, dispatched exhaustively.

Input variants:
    PointCloudInput      a decoded point cloud, ownership passed to the core
    ImageInput           a camera image
    DetectionInput       a camera's detection rectangles

Fusion variants:
    ImageCameraMessage       image + associations of an image-only camera
    DetectionCameraMessage   rectangles + associations of a detecting camera
    PointCloudMessage        full cloud + associations of detecting cameras
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import numpy as np

from .associator import Associations
from ..sensors.detections import RectSet
from ..sensors.pointcloud import PointCloud


# =============================================================================
# Input Messages
# =============================================================================

@dataclass(frozen=True)
class PointCloudInput:
    cloud: PointCloud


@dataclass(frozen=True, eq=False)
class ImageInput:
    camera: str
    image: np.ndarray


@dataclass(frozen=True)
class DetectionInput:
    camera: str
    rects: RectSet


InputMessage = Union[PointCloudInput, ImageInput, DetectionInput]


# =============================================================================
# Fusion Messages
# =============================================================================

@dataclass(frozen=True, eq=False)
class ImageCameraMessage:
    """
    Output for a camera that delivers images only.

    Attributes:
        camera: Camera name.
        frame: Frame sequence number.
        image: Latest image of the camera, if any arrived yet.
        associations: Projected points, None when the frame was dropped.
    """

    camera: str
    frame: int
    image: Optional[np.ndarray] = None
    associations: Optional[Associations] = None


@dataclass(frozen=True)
class DetectionCameraMessage:
    """
    Output for a camera that delivers detections.

    Attributes:
        camera: Camera name.
        frame: Frame sequence number.
        rects: Latest detections of the camera, if any arrived yet.
        associations: Points associated with the rectangles, None when the
                      frame was dropped.
    """

    camera: str
    frame: int
    rects: Optional[RectSet] = None
    associations: Optional[Associations] = None


@dataclass(frozen=True)
class PointCloudMessage:
    """
    Output for the 3D visualizer.

    Attributes:
        frame: Frame sequence number.
        points: The full shared cloud.
        associations: Detection-camera associations keyed by camera name.
    """

    frame: int
    points: PointCloud
    associations: Dict[str, Associations] = field(default_factory=dict)


FuseMessage = Union[ImageCameraMessage, DetectionCameraMessage, PointCloudMessage]

FUSE_MESSAGE_TYPES = (ImageCameraMessage, DetectionCameraMessage, PointCloudMessage)
INPUT_MESSAGE_TYPES = (PointCloudInput, ImageInput, DetectionInput)


def dispatch_message(message, handlers: Mapping[type, Callable[[Any], Any]]) -> Any:
    """
    Call the handler registered for the message's variant.

    Args:
        message: A fusion or input message.
        handlers: Handler per variant type. Every variant of the message's
                  family must have a handler.

    Returns:
        The handler's return value.

    Raises:
        TypeError: If the message is not a known variant, or the handler
                   map does not cover the whole family.
    """
    for family in (FUSE_MESSAGE_TYPES, INPUT_MESSAGE_TYPES):
        if isinstance(message, family):
            missing = [variant.__name__ for variant in family if variant not in handlers]
            if missing:
                raise TypeError(f"no handlers for {missing}")
            return handlers[type(message)](message)

    raise TypeError(f"unknown message type {type(message).__name__}")


def assemble_messages(
    frame: int,
    cloud: PointCloud,
    camera_kinds: Mapping[str, str],
    associations: Mapping[str, Optional[Associations]],
    images: Optional[Mapping[str, np.ndarray]] = None,
    rects: Optional[Mapping[str, RectSet]] = None,
) -> List[FuseMessage]:
    """
    Package one frame's per-camera results into fusion messages.

    Args:
        frame: Frame sequence number.
        cloud: The frame's shared point cloud.
        camera_kinds: 'image' or 'detection' per camera name.
        associations: Per-camera associations, None for dropped frames.
        images: Latest image per image camera.
        rects: Latest rectangles per detection camera.

    Returns:
        List[FuseMessage]: One message per camera, in camera_kinds order,
                           followed by the point cloud message.
    """
    images = images or {}
    rects = rects or {}

    messages: List[FuseMessage] = []
    detection_assocs: Dict[str, Associations] = {}

    for camera, kind in camera_kinds.items():
        assocs = associations.get(camera)
        if kind == "image":
            messages.append(ImageCameraMessage(camera, frame, images.get(camera), assocs))
        elif kind == "detection":
            messages.append(DetectionCameraMessage(camera, frame, rects.get(camera), assocs))
            if assocs is not None:
                detection_assocs[camera] = assocs
        else:
            raise ValueError(f"camera '{camera}': unknown kind '{kind}'")

    messages.append(PointCloudMessage(frame, cloud, detection_assocs))
    return messages
