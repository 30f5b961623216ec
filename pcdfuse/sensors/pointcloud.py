"""
Shared, immutable LiDAR point cloud.

A PointCloud owns two read-only numpy buffers (positions and intensities)
built once when a point cloud message arrives. Every projection,
association and visualization consumer holds a reference to the same
cloud; Python reference counting keeps the buffers alive until the last
holder lets go.

Individual points are addressed through PointRef handles, a (cloud, index)
pair. Creating a PointRef never copies the point, and the cloud never
refers back to its PointRefs, so no reference cycles form.
"""

from typing import Iterator, List, NamedTuple, Optional, Sequence, Union

import numpy as np


class Point(NamedTuple):
    """A single LiDAR return."""

    x: float
    y: float
    z: float
    intensity: float


class PointCloud:
    """
    Immutable, shareable point cloud.

    Attributes:
        positions: (N, 3) float32 read-only array of x, y, z.
        intensities: (N,) float32 read-only array.

    Example:
        >>> cloud = PointCloud.from_array(np.fromfile(path, np.float32).reshape(-1, 4))
        >>> ref = cloud.ref(0)
        >>> ref.position      # view into the shared buffer
    """

    __slots__ = ("_positions", "_intensities", "__weakref__")

    def __init__(
        self,
        positions: np.ndarray,
        intensities: Optional[np.ndarray] = None,
    ):
        """
        Take ownership of a decoded point buffer.

        The cloud keeps its own read-only copy, made once here, so later
        writes to the caller's arrays cannot reach it.

        Args:
            positions: (N, 3) point positions.
            intensities: (N,) intensities, zeros when omitted.
        """
        positions = np.array(positions, dtype=np.float32, copy=True)
        if positions.size == 0:
            positions = positions.reshape(0, 3)
        if positions.ndim != 2 or positions.shape[1] != 3:
            raise ValueError(f"positions must be (N, 3), got {positions.shape}")

        if intensities is None:
            intensities = np.zeros(len(positions), dtype=np.float32)
        else:
            intensities = np.array(intensities, dtype=np.float32, copy=True).reshape(-1)
        if intensities.shape != (len(positions),):
            raise ValueError(
                f"intensities must be ({len(positions)},), got {intensities.shape}"
            )

        positions.setflags(write=False)
        intensities.setflags(write=False)
        self._positions = positions
        self._intensities = intensities

    @classmethod
    def empty(cls) -> "PointCloud":
        return cls(np.zeros((0, 3), dtype=np.float32))

    @classmethod
    def from_array(cls, points: np.ndarray) -> "PointCloud":
        """
        Create from an (N, 3) or (N, 4) array of x, y, z[, intensity].

        Args:
            points: Point array, e.g. a KITTI velodyne scan.
        """
        points = np.asarray(points)
        if points.size == 0:
            return cls.empty()
        if points.ndim != 2 or points.shape[1] not in (3, 4):
            raise ValueError(f"points must be (N, 3) or (N, 4), got {points.shape}")

        intensities = points[:, 3] if points.shape[1] == 4 else None
        return cls(points[:, :3], intensities)

    @classmethod
    def from_structured(cls, records: np.ndarray) -> "PointCloud":
        """
        Create from a structured array with x, y, z and optional intensity
        fields, the layout of a decoded PointCloud2 message.
        """
        names = records.dtype.names or ()
        missing = [name for name in ("x", "y", "z") if name not in names]
        if missing:
            raise ValueError(f"structured point array is missing fields {missing}")

        records = records.reshape(-1)
        positions = np.stack([records["x"], records["y"], records["z"]], axis=1)
        intensities = records["intensity"] if "intensity" in names else None
        return cls(positions, intensities)

    @property
    def positions(self) -> np.ndarray:
        return self._positions

    @property
    def intensities(self) -> np.ndarray:
        return self._intensities

    def distances(self) -> np.ndarray:
        """Euclidean distance of every point from the LiDAR origin, (N,)."""
        return np.linalg.norm(self._positions, axis=1)

    def ref(self, index: int) -> "PointRef":
        """Handle to the index-th point."""
        return PointRef(self, index)

    def refs(self, indices: Sequence[int]) -> List["PointRef"]:
        """Handles to several points."""
        return [PointRef(self, int(index)) for index in indices]

    def __len__(self) -> int:
        return len(self._positions)

    def __getitem__(self, index: int) -> Point:
        x, y, z = self._positions[index].tolist()
        return Point(x, y, z, float(self._intensities[index]))

    def __iter__(self) -> Iterator[Point]:
        for index in range(len(self)):
            yield self[index]

    def __repr__(self) -> str:
        return f"PointCloud(num_points={len(self)})"


class PointRef:
    """
    Handle designating the index-th point of a shared PointCloud.

    Holds the cloud and an index; reading the position returns a read-only
    view into the cloud buffer, never a copy.
    """

    __slots__ = ("_cloud", "_index")

    def __init__(self, cloud: PointCloud, index: Union[int, np.integer]):
        index = int(index)
        if not 0 <= index < len(cloud):
            raise IndexError(f"point index {index} out of range [0, {len(cloud)})")
        self._cloud = cloud
        self._index = index

    @property
    def cloud(self) -> PointCloud:
        return self._cloud

    @property
    def index(self) -> int:
        return self._index

    @property
    def position(self) -> np.ndarray:
        """Read-only (3,) view of the point position."""
        return self._cloud.positions[self._index]

    @property
    def intensity(self) -> float:
        return float(self._cloud.intensities[self._index])

    @property
    def point(self) -> Point:
        return self._cloud[self._index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, PointRef):
            return NotImplemented
        return self._cloud is other._cloud and self._index == other._index

    def __hash__(self) -> int:
        return hash((id(self._cloud), self._index))

    def __repr__(self) -> str:
        return f"PointRef(index={self._index}, cloud={self._cloud!r})"
