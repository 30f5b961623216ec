"""
Point-to-Detection Association.

Links every projected point to the detection rectangle it falls inside.

Policy:
=======
    - Containment follows the OpenCV Rect convention:
          x <= px < x + width  and  y <= py < y + height
    - A point inside no rectangle still yields an Association, with no
      rectangle reference.
    - A point inside several rectangles is assigned the one with the
      smallest area (the most specific detection). Equal areas resolve to
      the rectangle that comes first in the RectSet.

The association is a pure function of its inputs, vectorised over the
(points x rectangles) containment matrix.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .projector import ProjectedPoints
from ..sensors.detections import RectRef, RectSet
from ..sensors.pointcloud import PointCloud, PointRef


NO_RECT = -1


@dataclass(frozen=True)
class Association:
    """
    A 3D point, its 2D projection and the rectangle it falls inside.

    Attributes:
        point_ref: Handle to the point in the shared cloud.
        pixel: (x, y) projected pixel coordinate, inside the image.
        rect_ref: Handle to the containing rectangle, or None.
    """

    point_ref: PointRef
    pixel: Tuple[float, float]
    rect_ref: Optional[RectRef] = None

    @property
    def is_associated(self) -> bool:
        return self.rect_ref is not None


class Associations:
    """
    Read-only sequence of one camera's Associations for one frame.

    Backed by the shared cloud and rectangle set plus three parallel arrays,
    so Association records are only materialised when accessed.

    Attributes:
        cloud: Shared point cloud.
        rects: Shared rectangle set.
        point_indices: (M,) indices into the cloud.
        pixels: (M, 2) pixel coordinates.
        rect_indices: (M,) indices into the rectangle set, -1 for none.
    """

    __slots__ = ("cloud", "rects", "point_indices", "pixels", "rect_indices")

    def __init__(
        self,
        cloud: PointCloud,
        rects: RectSet,
        point_indices: np.ndarray,
        pixels: np.ndarray,
        rect_indices: np.ndarray,
    ):
        point_indices = np.array(point_indices, dtype=np.int64, copy=True).reshape(-1)
        pixels = np.array(pixels, dtype=np.float64, copy=True).reshape(-1, 2)
        rect_indices = np.array(rect_indices, dtype=np.int64, copy=True).reshape(-1)
        if not len(point_indices) == len(pixels) == len(rect_indices):
            raise ValueError("association arrays must have equal length")

        for array in (point_indices, pixels, rect_indices):
            array.setflags(write=False)

        self.cloud = cloud
        self.rects = rects
        self.point_indices = point_indices
        self.pixels = pixels
        self.rect_indices = rect_indices

    def _subset(self, mask: np.ndarray) -> "Associations":
        return Associations(
            self.cloud,
            self.rects,
            self.point_indices[mask],
            self.pixels[mask],
            self.rect_indices[mask],
        )

    def associated(self) -> "Associations":
        """Associations that fall inside a rectangle."""
        return self._subset(self.rect_indices != NO_RECT)

    def unassociated(self) -> "Associations":
        """Associations outside every rectangle."""
        return self._subset(self.rect_indices == NO_RECT)

    def by_rect(self) -> Dict[int, np.ndarray]:
        """Map rectangle index to the cloud indices of its points."""
        return {
            int(rect_index): self.point_indices[self.rect_indices == rect_index]
            for rect_index in np.unique(self.rect_indices)
            if rect_index != NO_RECT
        }

    def __len__(self) -> int:
        return len(self.point_indices)

    def __getitem__(self, position: int) -> Association:
        rect_index = int(self.rect_indices[position])
        x, y = self.pixels[position]
        return Association(
            point_ref=PointRef(self.cloud, self.point_indices[position]),
            pixel=(float(x), float(y)),
            rect_ref=None if rect_index == NO_RECT else RectRef(self.rects, rect_index),
        )

    def __iter__(self) -> Iterator[Association]:
        for position in range(len(self)):
            yield self[position]

    def to_list(self) -> List[Association]:
        return list(self)

    def __repr__(self) -> str:
        return (
            f"Associations(num_points={len(self)}, "
            f"associated={int(np.count_nonzero(self.rect_indices != NO_RECT))}, "
            f"num_rects={len(self.rects)})"
        )


def containing_rects(pixels: np.ndarray, rects: RectSet) -> np.ndarray:
    """
    Index of the smallest rectangle containing each pixel.

    Args:
        pixels: (M, 2) pixel coordinates.
        rects: Rectangle set.

    Returns:
        np.ndarray: (M,) int64 rectangle indices, -1 where none contains
                    the pixel.
    """
    pixels = np.asarray(pixels, dtype=np.float64).reshape(-1, 2)
    if len(rects) == 0 or len(pixels) == 0:
        return np.full(len(pixels), NO_RECT, dtype=np.int64)

    bounds = rects.bounds()
    px = pixels[:, 0:1]
    py = pixels[:, 1:2]

    # (M, K) containment matrix
    inside = (
        (px >= bounds[:, 0]) &
        (px < bounds[:, 2]) &
        (py >= bounds[:, 1]) &
        (py < bounds[:, 3])
    )

    # argmin returns the first minimum, so equal areas keep RectSet order
    areas = np.where(inside, rects.areas(), np.inf)
    best = np.argmin(areas, axis=1)

    return np.where(inside.any(axis=1), best, NO_RECT).astype(np.int64)


def associate(projected: ProjectedPoints, rects: Optional[RectSet] = None) -> Associations:
    """
    Associate projected points with detection rectangles.

    Args:
        projected: Output of the point projector.
        rects: The frame's detection rectangles; None means no detections.

    Returns:
        Associations: Exactly one Association per projected point.
    """
    rects = rects if rects is not None else RectSet()
    rect_indices = containing_rects(projected.pixels, rects)
    return Associations(
        projected.cloud,
        rects,
        projected.indices,
        projected.pixels,
        rect_indices,
    )
