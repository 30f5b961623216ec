"""Tests for the shared point cloud and LiDAR file loading."""

import numpy as np
import pytest


@pytest.fixture
def points():
    """Four points with intensities."""
    return np.array([
        [1.0, 2.0, 3.0, 0.1],
        [4.0, 5.0, 6.0, 0.2],
        [7.0, 8.0, 9.0, 0.3],
        [10.0, 0.0, 0.0, 0.4],
    ], dtype=np.float32)


class TestPointCloud:
    """Tests for PointCloud."""

    def test_from_array(self, points):
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)

        assert len(cloud) == 4
        assert cloud.positions.shape == (4, 3)
        assert cloud.positions.dtype == np.float32
        np.testing.assert_allclose(cloud.intensities, [0.1, 0.2, 0.3, 0.4])

    def test_xyz_only_has_zero_intensity(self, points):
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points[:, :3])

        np.testing.assert_array_equal(cloud.intensities, np.zeros(4))

    def test_buffers_are_read_only(self, points):
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)

        with pytest.raises(ValueError):
            cloud.positions[0, 0] = 100.0
        with pytest.raises(ValueError):
            cloud.intensities[0] = 1.0

    def test_source_array_is_copied(self, points):
        """Later writes to the caller's buffer do not reach the cloud."""
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)
        points[0, 0] = -1.0

        assert cloud[0].x == 1.0

    def test_empty(self):
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(np.zeros((0, 4), dtype=np.float32))

        assert len(cloud) == 0
        assert cloud.positions.shape == (0, 3)
        assert list(cloud) == []

    def test_bad_shape(self):
        from pcdfuse.sensors import PointCloud

        with pytest.raises(ValueError):
            PointCloud.from_array(np.zeros((5, 2)))

    def test_from_structured(self):
        """PointCloud2-like structured records."""
        from pcdfuse.sensors import PointCloud

        dtype = np.dtype([("x", np.float32), ("y", np.float32), ("z", np.float32),
                          ("intensity", np.float32), ("ring", np.uint16)])
        records = np.zeros(3, dtype=dtype)
        records["x"] = [1, 2, 3]
        records["intensity"] = [5, 6, 7]

        cloud = PointCloud.from_structured(records)

        np.testing.assert_array_equal(cloud.positions[:, 0], [1, 2, 3])
        np.testing.assert_array_equal(cloud.intensities, [5, 6, 7])

    def test_from_structured_missing_field(self):
        from pcdfuse.sensors import PointCloud

        records = np.zeros(2, dtype=[("x", np.float32), ("y", np.float32)])

        with pytest.raises(ValueError, match="z"):
            PointCloud.from_structured(records)

    def test_distances(self, points):
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)

        assert np.isclose(cloud.distances()[3], 10.0)

    def test_getitem_returns_point(self, points):
        from pcdfuse.sensors import PointCloud

        point = PointCloud.from_array(points)[1]

        assert (point.x, point.y, point.z) == (4.0, 5.0, 6.0)
        assert np.isclose(point.intensity, 0.2)


class TestPointRef:
    """Tests for PointRef handles."""

    def test_position_is_view(self, points):
        """Reading through a PointRef never copies the point."""
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)
        ref = cloud.ref(2)

        assert np.shares_memory(ref.position, cloud.positions)
        np.testing.assert_array_equal(ref.position, [7.0, 8.0, 9.0])
        assert not ref.position.flags.writeable

    def test_out_of_range(self, points):
        from pcdfuse.sensors import PointCloud, PointRef

        cloud = PointCloud.from_array(points)

        with pytest.raises(IndexError):
            PointRef(cloud, 4)
        with pytest.raises(IndexError):
            PointRef(cloud, -1)

    def test_equality_by_cloud_and_index(self, points):
        from pcdfuse.sensors import PointCloud, PointRef

        cloud = PointCloud.from_array(points)
        other = PointCloud.from_array(points)

        assert PointRef(cloud, 1) == cloud.ref(1)
        assert PointRef(cloud, 1) != PointRef(cloud, 2)
        assert PointRef(cloud, 1) != PointRef(other, 1)
        assert len({cloud.ref(0), cloud.ref(0), cloud.ref(1)}) == 2

    def test_ref_keeps_cloud_alive(self, points):
        """The last holder of a reference keeps the cloud alive."""
        import gc
        import weakref

        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)
        watcher = weakref.ref(cloud)
        ref = cloud.ref(3)
        del cloud
        gc.collect()
        alive = watcher() is not None

        assert alive
        assert ref.point.x == 10.0

        del ref
        gc.collect()
        alive = watcher() is not None

        assert not alive

    def test_refs(self, points):
        from pcdfuse.sensors import PointCloud

        cloud = PointCloud.from_array(points)
        refs = cloud.refs(np.array([0, 3]))

        assert [r.index for r in refs] == [0, 3]
        assert all(r.cloud is cloud for r in refs)


class TestLiDARFiles:
    """Tests for .bin scan loading."""

    def test_read_bin(self, tmp_path, points):
        from pcdfuse.sensors import read_bin_pointcloud

        path = tmp_path / "000000.bin"
        points.tofile(str(path))

        cloud = read_bin_pointcloud(path)

        assert len(cloud) == 4
        np.testing.assert_array_equal(cloud.positions, points[:, :3])

    def test_read_bin_truncated(self, tmp_path):
        from pcdfuse.sensors import read_bin_pointcloud

        path = tmp_path / "bad.bin"
        np.zeros(7, dtype=np.float32).tofile(str(path))

        with pytest.raises(ValueError):
            read_bin_pointcloud(path)

    def test_read_bin_missing(self, tmp_path):
        from pcdfuse.sensors import read_bin_pointcloud

        with pytest.raises(FileNotFoundError):
            read_bin_pointcloud(tmp_path / "missing.bin")

    def test_loader_iterates_in_order(self, tmp_path, points):
        from pcdfuse.sensors import LiDARLoader

        points.tofile(str(tmp_path / "000001.bin"))
        points[:2].tofile(str(tmp_path / "000000.bin"))

        loader = LiDARLoader(tmp_path)
        frames = list(loader.iterate_frames())

        assert len(loader) == 2
        assert [frame_id for frame_id, _ in frames] == ["000000", "000001"]
        assert [len(cloud) for _, cloud in frames] == [2, 4]

    def test_loader_index_error(self, tmp_path):
        from pcdfuse.sensors import LiDARLoader

        with pytest.raises(IndexError):
            LiDARLoader(tmp_path).load_pointcloud(0)

    def test_loader_missing_dir(self, tmp_path):
        from pcdfuse.sensors import LiDARLoader

        with pytest.raises(FileNotFoundError):
            LiDARLoader(tmp_path / "missing")
