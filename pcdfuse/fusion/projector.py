"""
LiDAR-to-Image Point Projection.

Projects a shared point cloud into one camera's image plane and keeps the
points that are physically and geometrically valid for that view.

Projection Pipeline:
====================
Each step is a hard filter applied in order:

    1. Distance to LiDAR origin ||P_lidar|| <= 1.0  →  discarded
       (sensor self-returns, unstable to project)
    2. Camera depth (R @ P_lidar + t).z <= 1.0      →  discarded
       (behind or too close to the image plane)
    3. cv2.projectPoints(P_lidar, rvec, tvec, K, dist)
       one bulk call for all remaining points (pinhole + plumb-bob)
    4. Pixel outside [0, width] x [0, height]       →  discarded
    5. Survivors paired with PointRefs into the original cloud

The depth filter uses the single-precision pose; projection uses the
double-precision rvec/tvec derived from the same isometry.
"""

from typing import Iterator, Tuple

import cv2
import numpy as np

from ..calibration.camera import CameraCalibration
from ..errors import ProjectionError
from ..sensors.pointcloud import PointCloud, PointRef


DEFAULT_MIN_LIDAR_DISTANCE = 1.0
DEFAULT_MIN_CAMERA_DEPTH = 1.0


class ProjectedPoints:
    """
    Points of a shared cloud visible in one camera, with their pixels.

    A read-only sequence of (PointRef, (x, y)) entries. The entries are
    backed by the shared cloud plus an index array and a pixel array, so
    building the result never copies point data.

    Attributes:
        cloud: The cloud the indices point into.
        indices: (M,) int64 indices into the cloud, read-only.
        pixels: (M, 2) float64 pixel coordinates, read-only.
        width: Image width the pixels were bounded by.
        height: Image height the pixels were bounded by.
    """

    __slots__ = ("cloud", "indices", "pixels", "width", "height")

    def __init__(
        self,
        cloud: PointCloud,
        indices: np.ndarray,
        pixels: np.ndarray,
        width: int,
        height: int,
    ):
        indices = np.array(indices, dtype=np.int64, copy=True).reshape(-1)
        pixels = np.array(pixels, dtype=np.float64, copy=True).reshape(-1, 2)
        if len(indices) != len(pixels):
            raise ValueError(f"{len(indices)} indices but {len(pixels)} pixels")

        indices.setflags(write=False)
        pixels.setflags(write=False)
        self.cloud = cloud
        self.indices = indices
        self.pixels = pixels
        self.width = width
        self.height = height

    @classmethod
    def empty(cls, cloud: PointCloud, width: int, height: int) -> "ProjectedPoints":
        return cls(cloud, np.zeros(0, dtype=np.int64), np.zeros((0, 2)), width, height)

    def point_ref(self, position: int) -> PointRef:
        return PointRef(self.cloud, self.indices[position])

    def pixel(self, position: int) -> Tuple[float, float]:
        x, y = self.pixels[position]
        return float(x), float(y)

    def __len__(self) -> int:
        return len(self.indices)

    def __getitem__(self, position: int) -> Tuple[PointRef, Tuple[float, float]]:
        return self.point_ref(position), self.pixel(position)

    def __iter__(self) -> Iterator[Tuple[PointRef, Tuple[float, float]]]:
        for position in range(len(self)):
            yield self[position]

    def __repr__(self) -> str:
        return (
            f"ProjectedPoints(num_points={len(self)}, "
            f"image={self.width}x{self.height}, cloud={self.cloud!r})"
        )


class PointProjector:
    """
    Project LiDAR points into one camera's image.

    The projector holds only immutable data, so one instance can serve
    concurrent callers.

    Attributes:
        calibration: The camera's calibration.
        min_lidar_distance: Points at or within this distance from the LiDAR
                            origin are discarded.
        min_camera_depth: Points at or within this camera-space depth are
                          discarded.

    Example:
        >>> projector = PointProjector(calibration)
        >>> projected = projector.project(cloud)
        >>> for point_ref, (x, y) in projected:
        ...     ...
    """

    def __init__(
        self,
        calibration: CameraCalibration,
        min_lidar_distance: float = DEFAULT_MIN_LIDAR_DISTANCE,
        min_camera_depth: float = DEFAULT_MIN_CAMERA_DEPTH,
    ):
        self.calibration = calibration
        self.min_lidar_distance = min_lidar_distance
        self.min_camera_depth = min_camera_depth

    @property
    def width(self) -> int:
        return self.calibration.width

    @property
    def height(self) -> int:
        return self.calibration.height

    def filter_points(self, cloud: PointCloud) -> np.ndarray:
        """
        Indices of points that pass the distance and depth filters.

        Args:
            cloud: Shared point cloud.

        Returns:
            np.ndarray: (K,) int64 indices into the cloud, ascending.
        """
        params = self.calibration.params
        positions = cloud.positions

        # Step 1: drop sensor self-returns
        keep = np.linalg.norm(positions, axis=1) > self.min_lidar_distance

        # Step 2: drop points behind or too close to the image plane
        depths = positions @ params.R[2] + params.t[2]
        keep &= depths > self.min_camera_depth

        return np.flatnonzero(keep)

    def project_points(self, object_points: np.ndarray) -> np.ndarray:
        """
        Bulk pinhole + plumb-bob projection of LiDAR-frame points.

        Args:
            object_points: (K, 3) points in the LiDAR frame.

        Returns:
            np.ndarray: (K, 2) float64 pixel coordinates.

        Raises:
            ProjectionError: If OpenCV rejects the calibration.
        """
        params = self.calibration.params
        object_points = np.ascontiguousarray(object_points, dtype=np.float64).reshape(-1, 1, 3)

        try:
            image_points, _ = cv2.projectPoints(
                object_points,
                params.rvec,
                params.tvec,
                params.camera_matrix,
                params.distortion_coefficients,
            )
        except cv2.error as err:
            raise ProjectionError(
                f"camera '{self.calibration.name}': projection failed: {err}"
            ) from err

        return image_points.reshape(-1, 2)

    def project(self, cloud: PointCloud) -> ProjectedPoints:
        """
        Project a cloud into the camera image.

        Args:
            cloud: Shared point cloud.

        Returns:
            ProjectedPoints: Points inside [0, width] x [0, height], each
                             traced back to exactly one input point. Empty
                             when nothing survives.

        Raises:
            ProjectionError: If the projection primitive fails. No partial
                             results are returned.
        """
        indices = self.filter_points(cloud)
        if len(indices) == 0:
            return ProjectedPoints.empty(cloud, self.width, self.height)

        # Step 3: one bulk projection call
        pixels = self.project_points(cloud.positions[indices])

        # Step 4: inclusive image bounds
        in_bounds = (
            (pixels[:, 0] >= 0) &
            (pixels[:, 0] <= self.width) &
            (pixels[:, 1] >= 0) &
            (pixels[:, 1] <= self.height)
        )

        # Step 5: pair survivors with references into the original cloud
        return ProjectedPoints(
            cloud,
            indices[in_bounds],
            pixels[in_bounds],
            self.width,
            self.height,
        )


def project(cloud: PointCloud, calibration: CameraCalibration) -> ProjectedPoints:
    """
    Project a cloud into a camera image with the default filters.

    Args:
        cloud: Shared point cloud.
        calibration: The camera's calibration.

    Returns:
        ProjectedPoints: Visible points with their pixel coordinates.
    """
    return PointProjector(calibration).project(cloud)
