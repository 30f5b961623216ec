"""
Image overlay visualization utilities.

Draws detection rectangles and projected LiDAR points on camera images,
and applies each camera's display settings (region of interest, 180°
rotation). Images are OpenCV BGR arrays throughout.
"""

from pathlib import Path
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from .color_sampling import ColorSampler
from .pointcloud_viz import depth_to_color
from ..fusion.associator import NO_RECT, Associations
from ..fusion.messages import DetectionCameraMessage, ImageCameraMessage
from ..sensors.detections import RectSet
from ..utils.config_loader import CameraConfig


UNCLASSIFIED_COLOR = (128, 128, 128)


def draw_text(
    image: np.ndarray,
    text: str,
    position: Tuple[int, int],
    color: Tuple[int, int, int] = (255, 255, 255),
    font_scale: float = 0.5,
    thickness: int = 1,
    padding: int = 3,
) -> np.ndarray:
    """
    Draw text on image over a darkened background box.

    Args:
        image: Image to draw on (modified in place).
        text: Text string to draw.
        position: (x, y) position (bottom-left of text).
        color: Text color (BGR).
        font_scale: Font scale factor.
        thickness: Text thickness.
        padding: Background padding in pixels.

    Returns:
        Image with text drawn.
    """
    font = cv2.FONT_HERSHEY_SIMPLEX
    x, y = position

    (text_w, text_h), baseline = cv2.getTextSize(text, font, font_scale, thickness)

    # Keep text inside the image
    h, w = image.shape[:2]
    y = max(text_h + padding, min(y, h - padding))
    x = max(padding, min(x, w - text_w - padding))

    bg_color = tuple(int(c * 0.3) for c in color)
    cv2.rectangle(
        image,
        (x - padding, y - text_h - padding),
        (x + text_w + padding, y + baseline + padding),
        bg_color,
        -1,
    )
    cv2.putText(image, text, (x, y), font, font_scale, color, thickness, cv2.LINE_AA)

    return image


def draw_rects(
    image: np.ndarray,
    rects: RectSet,
    sampler: ColorSampler,
    thickness: int = 2,
    show_labels: bool = True,
) -> np.ndarray:
    """
    Draw detection rectangles colored by class.

    Args:
        image: (H, W, 3) BGR image.
        rects: Detections in image pixel coordinates.
        sampler: Class color sampler.
        thickness: Box line thickness.
        show_labels: Whether to draw class and score labels.

    Returns:
        A copy of the image with rectangles drawn.
    """
    result = image.copy()

    for rect in rects:
        color = _rect_color(rect.class_id, sampler)
        x1, y1 = int(round(rect.x)), int(round(rect.y))
        x2, y2 = int(round(rect.x2)), int(round(rect.y2))
        cv2.rectangle(result, (x1, y1), (x2, y2), color, thickness)

        if show_labels:
            label_parts = []
            if rect.class_id is not None:
                label_parts.append(rect.class_id)
            if rect.score is not None:
                label_parts.append(f"{rect.score:.2f}")
            if label_parts:
                draw_text(result, " ".join(label_parts), (x1, y1 - 5), color=color)

    return result


def draw_associations(
    image: np.ndarray,
    associations: Associations,
    sampler: ColorSampler,
    radius: int = 2,
    distance_range: Tuple[float, float] = (0.0, float("inf")),
    draw_unassociated: bool = True,
) -> np.ndarray:
    """
    Draw projected points on the image.

    Points inside a detection take the detection's class color; the others
    are colored by LiDAR distance. Points outside distance_range are not
    drawn.

    Args:
        image: (H, W, 3) BGR image.
        associations: One camera's associations for the frame.
        sampler: Class color sampler.
        radius: Point radius in pixels.
        distance_range: (min, max) LiDAR distance of points drawn.
        draw_unassociated: Whether to draw points outside every rectangle.

    Returns:
        A copy of the image with points drawn.
    """
    result = image.copy()
    if len(associations) == 0:
        return result

    distances = np.linalg.norm(associations.cloud.positions[associations.point_indices], axis=1)
    low, high = distance_range
    visible = (distances >= low) & (distances <= high)

    max_distance = high if np.isfinite(high) else float(distances.max(initial=1.0))
    distance_colors = depth_to_color(distances, low, max(max_distance, low + 1e-6))[:, ::-1]

    for position in np.flatnonzero(visible):
        rect_index = int(associations.rect_indices[position])
        if rect_index == NO_RECT:
            if not draw_unassociated:
                continue
            color = tuple(int(c) for c in distance_colors[position])
        else:
            color = _rect_color(associations.rects[rect_index].class_id, sampler)

        x, y = associations.pixels[position]
        cv2.circle(result, (int(round(x)), int(round(y))), radius, color, -1)

    return result


def apply_camera_view(
    image: np.ndarray,
    roi_tlbr: Optional[Tuple[int, int, int, int]] = None,
    rotate_180: bool = False,
) -> np.ndarray:
    """
    Crop to the region of interest, then optionally rotate by 180°.

    Args:
        image: (H, W, C) image.
        roi_tlbr: (top, left, bottom, right) in pixels, or None for all.
        rotate_180: Whether to rotate the result.
    """
    if roi_tlbr is not None:
        top, left, bottom, right = roi_tlbr
        image = image[top:bottom, left:right]
    if rotate_180:
        image = cv2.rotate(image, cv2.ROTATE_180)
    return np.ascontiguousarray(image)


def render_camera_message(
    message: Union[ImageCameraMessage, DetectionCameraMessage],
    camera: CameraConfig,
    sampler: ColorSampler,
    background: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Render one camera's fusion message.

    Image cameras draw over their own image; detection cameras draw over
    ``background`` or a black canvas of the camera's size.

    Args:
        message: The camera's fusion message.
        camera: The camera's configuration.
        sampler: Class color sampler.
        background: Canvas for detection cameras.

    Returns:
        BGR image after the camera's ROI crop and rotation.
    """
    height, width = camera.image_hw

    if isinstance(message, ImageCameraMessage) and message.image is not None:
        canvas = message.image
    elif background is not None:
        canvas = background
    else:
        canvas = np.zeros((height, width, 3), dtype=np.uint8)

    if isinstance(message, DetectionCameraMessage) and message.rects is not None:
        canvas = draw_rects(canvas, message.rects, sampler)

    if message.associations is not None:
        canvas = draw_associations(
            canvas,
            message.associations,
            sampler,
            radius=camera.present_size,
            distance_range=camera.distance_range,
        )

    return apply_camera_view(canvas, camera.roi_tlbr, camera.rotate_180)


def save_image(image: np.ndarray, path: Union[str, Path]) -> None:
    """Save a BGR image, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise IOError(f"Failed to write image: {path}")


def _rect_color(class_id: Optional[str], sampler: ColorSampler) -> Tuple[int, int, int]:
    if class_id is None:
        return UNCLASSIFIED_COLOR
    return sampler.sample_bgr8(class_id)
