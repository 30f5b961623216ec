"""
Tests for LiDAR point projection.

Covers the filtering steps (LiDAR distance, camera depth, image bounds),
pixel accuracy against the pinhole model, and failure handling.
"""

import numpy as np
import pytest

from conftest import make_intrinsics_dict


def make_calibration(extrinsics=None, rotate_90=False, **intrinsics_kwargs):
    from pcdfuse.calibration import CameraCalibration, CameraExtrinsics, CameraIntrinsics

    intrinsics = CameraIntrinsics.from_dict(make_intrinsics_dict(**intrinsics_kwargs))
    return CameraCalibration.create(
        intrinsics,
        extrinsics if extrinsics is not None else CameraExtrinsics(),
        rotate_90=rotate_90,
    )


def make_cloud(points):
    from pcdfuse.sensors import PointCloud
    return PointCloud.from_array(np.asarray(points, dtype=np.float32))


# =============================================================================
# Pixel accuracy
# =============================================================================

class TestProjectionGeometry:
    """Projected pixels follow u = fx * X/Z + cx, v = fy * Y/Z + cy."""

    def test_principal_point(self, identity_calibration):
        """A point on the optical axis lands on the principal point."""
        from pcdfuse.fusion import project

        projected = project(make_cloud([[0.0, 0.0, 5.0]]), identity_calibration)

        assert len(projected) == 1
        np.testing.assert_allclose(projected.pixels[0], [320.0, 240.0], atol=1e-9)

    def test_offset_point(self, identity_calibration):
        from pcdfuse.fusion import project

        projected = project(make_cloud([[1.0, 2.0, 10.0]]), identity_calibration)

        np.testing.assert_allclose(projected.pixels[0], [370.0, 340.0], atol=1e-6)

    def test_lidar_axes(self, lidar_calibration):
        """Forward, right and up in the LiDAR frame map to center, right and up in the image."""
        from pcdfuse.fusion import project

        cloud = make_cloud([
            [10.0, 0.0, 0.0],
            [10.0, -1.0, 0.0],
            [10.0, 0.0, 1.0],
        ])

        projected = project(cloud, lidar_calibration)

        np.testing.assert_allclose(
            projected.pixels,
            [[320.0, 240.0], [370.0, 240.0], [320.0, 190.0]],
            atol=1e-6,
        )

    def test_rotate_90_restores_pre_rotated_cloud(self, intrinsics):
        """A cloud pre-rotated by -90° yaw projects like the original."""
        from pcdfuse.calibration import CameraCalibration, CameraExtrinsics
        from pcdfuse.fusion import project

        from conftest import LIDAR_TO_CAMERA_R

        extrinsics = CameraExtrinsics.from_rotation_matrix(LIDAR_TO_CAMERA_R, [0, 0, 0])
        calibration = CameraCalibration.create(intrinsics, extrinsics, rotate_90=True)

        # (10, 0, 0) rotated by -90° about z
        projected = project(make_cloud([[0.0, -10.0, 0.0]]), calibration)

        assert len(projected) == 1
        np.testing.assert_allclose(projected.pixels[0], [320.0, 240.0], atol=1e-6)

    def test_distortion_applied(self):
        """Radial distortion moves off-axis points."""
        from pcdfuse.fusion import project

        cloud = make_cloud([[2.0, 0.0, 10.0]])
        plain = project(cloud, make_calibration())
        distorted = project(cloud, make_calibration(dist=(-0.2, 0.0, 0.0, 0.0, 0.0)))

        # x = 0.2, r² = 0.04: x' = 0.2 * (1 - 0.2 * 0.04)
        assert np.isclose(plain.pixels[0, 0], 420.0)
        assert np.isclose(distorted.pixels[0, 0], 320.0 + 500.0 * 0.2 * (1 - 0.008))


# =============================================================================
# Filtering
# =============================================================================

class TestProjectionFilters:
    """Tests for the distance, depth and bounds filters."""

    def test_close_lidar_points_excluded(self):
        """Points within 1 m of the LiDAR are dropped even when far from the camera."""
        from pcdfuse.calibration import CameraExtrinsics
        from pcdfuse.fusion import project

        calibration = make_calibration(CameraExtrinsics(t=[0.0, 0.0, 5.0]))
        cloud = make_cloud([[0.0, 0.0, 0.5], [0.0, 0.0, 1.0], [0.0, 0.0, 1.5]])

        projected = project(cloud, calibration)

        np.testing.assert_array_equal(projected.indices, [2])

    def test_shallow_depth_excluded(self, identity_calibration):
        """Points at or within 1 m camera depth, or behind the camera, are dropped."""
        from pcdfuse.fusion import project

        cloud = make_cloud([
            [3.0, 0.0, 0.5],
            [3.0, 0.0, 1.0],
            [0.0, 0.0, -5.0],
            [0.0, 0.0, 2.0],
        ])

        projected = project(cloud, identity_calibration)

        np.testing.assert_array_equal(projected.indices, [3])

    def test_three_point_scenario(self, identity_calibration):
        from pcdfuse.fusion import project

        cloud = make_cloud([[0.0, 0.0, 0.5], [3.0, 0.0, 0.5], [0.0, 0.0, 5.0]])

        projected = project(cloud, identity_calibration)

        assert len(projected) == 1
        point_ref, pixel = projected[0]
        assert point_ref.index == 2
        assert point_ref.cloud is cloud
        np.testing.assert_allclose(pixel, (320.0, 240.0), atol=1e-9)

    def test_far_edges_inclusive(self):
        """Pixels exactly at (width, height) are kept."""
        from pcdfuse.fusion import project

        calibration = make_calibration(cx=640.0, cy=480.0)
        cloud = make_cloud([[0.0, 0.0, 5.0], [0.01, 0.0, 5.0], [0.0, 0.01, 5.0]])

        projected = project(cloud, calibration)

        np.testing.assert_array_equal(projected.indices, [0])
        np.testing.assert_array_equal(projected.pixels[0], [640.0, 480.0])

    def test_near_edges_inclusive(self):
        """Pixels exactly at (0, 0) are kept."""
        from pcdfuse.fusion import project

        calibration = make_calibration(cx=0.0, cy=0.0)
        cloud = make_cloud([[0.0, 0.0, 5.0], [-0.01, 0.0, 5.0], [0.0, -0.01, 5.0]])

        projected = project(cloud, calibration)

        np.testing.assert_array_equal(projected.indices, [0])

    def test_custom_thresholds(self, identity_calibration):
        from pcdfuse.fusion import PointProjector

        projector = PointProjector(identity_calibration, min_lidar_distance=0.0, min_camera_depth=0.1)

        projected = projector.project(make_cloud([[0.0, 0.0, 0.5]]))

        assert len(projected) == 1


# =============================================================================
# Output properties
# =============================================================================

class TestProjectionOutput:
    """Tests for properties of the projection result."""

    @pytest.fixture
    def random_cloud(self):
        rng = np.random.default_rng(7)
        points = rng.uniform([-20, -20, -5, 0], [20, 20, 30, 1], size=(500, 4))
        return make_cloud(points)

    @pytest.fixture
    def distorted_calibration(self):
        return make_calibration(dist=(-0.05, 0.01, 0.001, -0.001, 0.0))

    def test_empty_cloud(self, identity_calibration):
        from pcdfuse.fusion import project
        from pcdfuse.sensors import PointCloud

        projected = project(PointCloud.empty(), identity_calibration)

        assert len(projected) == 0
        assert projected.pixels.shape == (0, 2)

    def test_nothing_survives(self, identity_calibration):
        from pcdfuse.fusion import project

        projected = project(make_cloud([[0.0, 0.0, -10.0]]), identity_calibration)

        assert len(projected) == 0
        assert list(projected) == []

    def test_every_output_traces_to_one_input(self, random_cloud, distorted_calibration):
        from pcdfuse.fusion import project

        projected = project(random_cloud, distorted_calibration)

        assert len(projected) > 0
        assert len(np.unique(projected.indices)) == len(projected)
        assert np.all(np.diff(projected.indices) > 0)
        assert projected.indices.max() < len(random_cloud)

    def test_outputs_satisfy_filters(self, random_cloud, distorted_calibration):
        from pcdfuse.fusion import project

        projected = project(random_cloud, distorted_calibration)
        positions = random_cloud.positions[projected.indices]

        assert np.all(np.linalg.norm(positions, axis=1) > 1.0)
        assert np.all(positions[:, 2] > 1.0)
        assert np.all((projected.pixels >= 0) & (projected.pixels <= [640, 480]))

    def test_idempotent(self, random_cloud, distorted_calibration):
        from pcdfuse.fusion import project

        first = project(random_cloud, distorted_calibration)
        second = project(random_cloud, distorted_calibration)

        np.testing.assert_array_equal(first.indices, second.indices)
        np.testing.assert_array_equal(first.pixels, second.pixels)

    def test_batched_equals_per_point(self, random_cloud, distorted_calibration):
        """Projecting the whole cloud matches projecting points one at a time."""
        from pcdfuse.fusion import project

        batched = project(random_cloud, distorted_calibration)
        pixels = dict(zip(batched.indices.tolist(), batched.pixels))

        for index in range(len(random_cloud)):
            single = project(make_cloud(random_cloud.positions[index:index + 1]), distorted_calibration)
            if index in pixels:
                assert len(single) == 1
                np.testing.assert_allclose(single.pixels[0], pixels[index], atol=1e-6)
            else:
                assert len(single) == 0

    def test_outputs_are_read_only(self, random_cloud, identity_calibration):
        from pcdfuse.fusion import project

        projected = project(random_cloud, identity_calibration)

        with pytest.raises(ValueError):
            projected.pixels[0, 0] = -1.0
        with pytest.raises(ValueError):
            projected.indices[0] = 0

    def test_point_refs_share_cloud(self, random_cloud, identity_calibration):
        from pcdfuse.fusion import project

        projected = project(random_cloud, identity_calibration)

        for point_ref, _ in projected:
            assert point_ref.cloud is random_cloud
            assert np.shares_memory(point_ref.position, random_cloud.positions)

    def test_caller_arrays_stay_writable(self, random_cloud):
        from pcdfuse.fusion import ProjectedPoints

        indices = np.array([0, 1], dtype=np.int64)
        pixels = np.array([[1.0, 2.0], [3.0, 4.0]])

        projected = ProjectedPoints(random_cloud, indices, pixels, 640, 480)
        indices[0] = 5
        pixels[0, 0] = -1.0

        assert projected.indices[0] == 0
        assert projected.pixels[0, 0] == 1.0


class TestProjectionErrors:
    """Tests for projection failure handling."""

    def test_bad_camera_matrix(self):
        """A camera matrix OpenCV cannot use fails the call."""
        from pcdfuse.calibration import CameraCalibration, CameraExtrinsics, CameraIntrinsics
        from pcdfuse.errors import ProjectionError
        from pcdfuse.fusion import project

        data = make_intrinsics_dict()
        data["camera_matrix"] = {"rows": 2, "cols": 2, "data": [500.0, 0.0, 0.0, 500.0]}
        calibration = CameraCalibration.create(CameraIntrinsics.from_dict(data), CameraExtrinsics())

        with pytest.raises(ProjectionError):
            project(make_cloud([[0.0, 0.0, 5.0]]), calibration)

    def test_bad_camera_matrix_empty_cloud(self):
        """With nothing to project the primitive is never called."""
        from pcdfuse.calibration import CameraCalibration, CameraExtrinsics, CameraIntrinsics
        from pcdfuse.fusion import project

        data = make_intrinsics_dict()
        data["camera_matrix"] = {"rows": 2, "cols": 2, "data": [500.0, 0.0, 0.0, 500.0]}
        calibration = CameraCalibration.create(CameraIntrinsics.from_dict(data), CameraExtrinsics())

        assert len(project(make_cloud([[0.0, 0.0, 0.5]]), calibration)) == 0
