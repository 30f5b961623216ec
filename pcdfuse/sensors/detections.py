"""
2D detection rectangles.

Detections arrive once per frame from the detection source. They are
converted into a RectSet, an immutable collection shared by every
Association of that frame. Associations address individual rectangles
through RectRef handles, a (rect_set, index) pair, mirroring PointRef.

Accepted detection layouts:
===========================
vision_msgs Detection2D-like mappings (both the older Pose2D center and
the newer ``center.position`` form, and both flat and nested hypotheses):

    {"bbox": {"center": {"x": 320, "y": 240}, "size_x": 40, "size_y": 80},
     "results": [{"id": "person", "score": 0.9}], "id": "track-7"}

or corner boxes as produced by the detector wrappers:

    {"bbox": [x1, y1, x2, y2], "class_name": "person", "confidence": 0.9,
     "track_id": 7}
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class DetectionRect:
    """
    Axis-aligned rectangle in image pixel space.

    Follows the OpenCV Rect convention: (x, y) is the top-left corner and a
    pixel (px, py) is inside when x <= px < x + width and
    y <= py < y + height.

    Attributes:
        x: Left edge.
        y: Top edge.
        width: Rectangle width in pixels.
        height: Rectangle height in pixels.
        class_id: Optional class identifier of the detection.
        instance_id: Optional identity (track id) of the detection.
        score: Optional detection confidence.
    """

    x: float
    y: float
    width: float
    height: float
    class_id: Optional[str] = None
    instance_id: Optional[str] = None
    score: Optional[float] = None

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(f"rectangle size must be non-negative, got {self.width}x{self.height}")

    @classmethod
    def from_xyxy(
        cls,
        bbox: Sequence[float],
        class_id: Optional[str] = None,
        instance_id: Optional[str] = None,
        score: Optional[float] = None,
    ) -> "DetectionRect":
        """Create from [x1, y1, x2, y2] corners."""
        x1, y1, x2, y2 = (float(v) for v in bbox)
        return cls(x1, y1, x2 - x1, y2 - y1, class_id, instance_id, score)

    @property
    def x2(self) -> float:
        """Right edge x coordinate (exclusive)."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge y coordinate (exclusive)."""
        return self.y + self.height

    @property
    def area(self) -> float:
        """Box area in pixels squared."""
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px < self.x2 and self.y <= py < self.y2

    def scaled(self, sx: float, sy: float) -> "DetectionRect":
        """Rectangle rescaled by (sx, sy), metadata preserved."""
        return DetectionRect(
            self.x * sx,
            self.y * sy,
            self.width * sx,
            self.height * sy,
            self.class_id,
            self.instance_id,
            self.score,
        )


class RectSet:
    """
    Immutable collection of one frame's detection rectangles.

    Example:
        >>> rects = RectSet([DetectionRect(0, 0, 10, 10, class_id="car")])
        >>> rects.bounds()   # (K, 4) x1, y1, x2, y2
    """

    __slots__ = ("_rects", "_bounds", "__weakref__")

    def __init__(self, rects: Iterable[DetectionRect] = ()):
        self._rects: Tuple[DetectionRect, ...] = tuple(rects)
        bounds = np.array(
            [[r.x, r.y, r.x2, r.y2] for r in self._rects],
            dtype=np.float64,
        ).reshape(-1, 4)
        bounds.setflags(write=False)
        self._bounds = bounds

    def bounds(self) -> np.ndarray:
        """Read-only (K, 4) array of [x1, y1, x2, y2]."""
        return self._bounds

    def areas(self) -> np.ndarray:
        """(K,) rectangle areas."""
        return (self._bounds[:, 2] - self._bounds[:, 0]) * (self._bounds[:, 3] - self._bounds[:, 1])

    def ref(self, index: int) -> "RectRef":
        return RectRef(self, index)

    def __len__(self) -> int:
        return len(self._rects)

    def __getitem__(self, index: int) -> DetectionRect:
        return self._rects[index]

    def __iter__(self) -> Iterator[DetectionRect]:
        return iter(self._rects)

    def __repr__(self) -> str:
        return f"RectSet(num_rects={len(self)})"


class RectRef:
    """Handle designating the index-th rectangle of a shared RectSet."""

    __slots__ = ("_rects", "_index")

    def __init__(self, rects: RectSet, index: Union[int, np.integer]):
        index = int(index)
        if not 0 <= index < len(rects):
            raise IndexError(f"rect index {index} out of range [0, {len(rects)})")
        self._rects = rects
        self._index = index

    @property
    def rect_set(self) -> RectSet:
        return self._rects

    @property
    def index(self) -> int:
        return self._index

    @property
    def rect(self) -> DetectionRect:
        return self._rects[self._index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, RectRef):
            return NotImplemented
        return self._rects is other._rects and self._index == other._index

    def __hash__(self) -> int:
        return hash((id(self._rects), self._index))

    def __repr__(self) -> str:
        return f"RectRef(index={self._index}, rect={self.rect!r})"


# =============================================================================
# Message Conversion
# =============================================================================

def rects_from_detections(
    detections: Union[Dict[str, Any], Sequence[Dict[str, Any]]],
    det_hw: Optional[Tuple[int, int]] = None,
    image_hw: Optional[Tuple[int, int]] = None,
) -> RectSet:
    """
    Convert a decoded detection message into a RectSet.

    Args:
        detections: Detection2DArray-like mapping (with a 'detections' list)
                    or a plain list of detections.
        det_hw: (height, width) the detector ran at.
        image_hw: (height, width) of the camera image. When both sizes are
                  given, rectangles are rescaled from det_hw to image_hw.

    Returns:
        RectSet: One rectangle per detection with a positive area.
    """
    if isinstance(detections, dict):
        detections = detections.get("detections", [])

    sx = sy = 1.0
    if det_hw is not None and image_hw is not None:
        sy = image_hw[0] / det_hw[0]
        sx = image_hw[1] / det_hw[1]

    rects: List[DetectionRect] = []
    for detection in detections:
        rect = _parse_detection(detection)
        if rect is None:
            logger.debug(f"Skipping empty detection rectangle {detection.get('bbox')}")
            continue
        rects.append(rect.scaled(sx, sy))

    return RectSet(rects)


def _parse_detection(detection: Dict[str, Any]) -> Optional[DetectionRect]:
    """Rectangle of one detection, or None when its box has no area."""
    bbox = detection["bbox"]

    if isinstance(bbox, dict):
        center = bbox["center"]
        if "position" in center:
            center = center["position"]
        cx, cy = float(center["x"]), float(center["y"])
        width, height = float(bbox["size_x"]), float(bbox["size_y"])
        if width <= 0 or height <= 0:
            return None
        class_id, score = _best_hypothesis(detection.get("results") or [])
        instance_id = detection.get("id") or None
        return DetectionRect(
            cx - width / 2,
            cy - height / 2,
            width,
            height,
            class_id=class_id,
            instance_id=None if instance_id is None else str(instance_id),
            score=score,
        )

    x1, y1, x2, y2 = (float(v) for v in bbox)
    if x2 <= x1 or y2 <= y1:
        return None

    class_id = detection.get("class_name", detection.get("class_id"))
    score = detection.get("confidence", detection.get("score"))
    track_id = detection.get("track_id")
    return DetectionRect.from_xyxy(
        (x1, y1, x2, y2),
        class_id=None if class_id is None else str(class_id),
        instance_id=None if track_id is None else str(track_id),
        score=None if score is None else float(score),
    )


def _best_hypothesis(results: Sequence[Dict[str, Any]]) -> Tuple[Optional[str], Optional[float]]:
    best_id, best_score = None, None
    for result in results:
        hypothesis = result.get("hypothesis", result)
        class_id = hypothesis.get("class_id", hypothesis.get("id"))
        score = hypothesis.get("score")
        score = None if score is None else float(score)
        if best_score is None or (score is not None and score > best_score):
            best_id = None if class_id is None else str(class_id)
            best_score = score
    return best_id, best_score
