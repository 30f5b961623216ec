"""LiDAR point cloud reader for Velodyne-style binary scans."""

from pathlib import Path
from typing import Iterator, Tuple, Union

import numpy as np

from .pointcloud import PointCloud


def read_bin_pointcloud(path: Union[str, Path]) -> PointCloud:
    """
    Read a binary scan of float32 (x, y, z, intensity) records.

    Args:
        path: Path to the .bin file.

    Returns:
        PointCloud: The decoded cloud.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point cloud not found: {path}")

    points = np.fromfile(str(path), dtype=np.float32)
    if points.size % 4 != 0:
        raise ValueError(f"{path}: size is not a multiple of 4 float32 values")

    return PointCloud.from_array(points.reshape(-1, 4))


class LiDARLoader:
    """Load point clouds from a directory of .bin scans."""

    def __init__(self, lidar_dir: Union[str, Path]):
        """
        Initialize the LiDAR loader.

        Args:
            lidar_dir: Directory containing .bin point clouds.
        """
        self.lidar_path = Path(lidar_dir)
        self._validate_path()
        self._index_pointclouds()

    def _validate_path(self) -> None:
        """Validate that the LiDAR directory exists."""
        if not self.lidar_path.is_dir():
            raise FileNotFoundError(f"LiDAR directory not found: {self.lidar_path}")

    def _index_pointclouds(self) -> None:
        """Index all available point cloud files."""
        self.lidar_files = sorted(self.lidar_path.glob("*.bin"))

    def __len__(self) -> int:
        """Return the number of available point clouds."""
        return len(self.lidar_files)

    def __getitem__(self, index: int) -> PointCloud:
        """Load point cloud by index."""
        return self.load_pointcloud(index)

    def load_pointcloud(self, index: int) -> PointCloud:
        """
        Load a single point cloud.

        Args:
            index: Point cloud index.
        """
        if index < 0 or index >= len(self.lidar_files):
            raise IndexError(f"Point cloud index {index} out of range [0, {len(self) - 1}]")
        return read_bin_pointcloud(self.lidar_files[index])

    def get_frame_id(self, index: int) -> str:
        """
        Get frame ID for given index.

        Returns:
            Frame ID string (e.g., '000000').
        """
        return self.lidar_files[index].stem

    def iterate_frames(self) -> Iterator[Tuple[str, PointCloud]]:
        """Yield (frame_id, cloud) in file order."""
        for index in range(len(self)):
            yield self.get_frame_id(index), self.load_pointcloud(index)
