"""Shared fixtures for the test suite."""

import numpy as np
import pytest


def make_intrinsics_dict(
    fx=500.0,
    fy=500.0,
    cx=320.0,
    cy=240.0,
    width=640,
    height=480,
    dist=(0.0, 0.0, 0.0, 0.0, 0.0),
    name="front",
):
    """Intrinsics mapping in calibration file layout."""
    return {
        "camera_name": name,
        "focal_length_meters": 0.004,
        "image_height": height,
        "image_width": width,
        "distortion_model": "plumb_bob",
        "distortion_coefficients": {"rows": 1, "cols": len(dist), "data": list(dist)},
        "camera_matrix": {
            "rows": 3,
            "cols": 3,
            "data": [fx, 0.0, cx, 0.0, fy, cy, 0.0, 0.0, 1.0],
        },
        "projection_matrix": {
            "rows": 3,
            "cols": 4,
            "data": [fx, 0.0, cx, 0.0, 0.0, fy, cy, 0.0, 0.0, 0.0, 1.0, 0.0],
        },
        "rectification_matrix": {
            "rows": 3,
            "cols": 3,
            "data": [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0],
        },
    }


# LiDAR (x forward, y left, z up) to camera (x right, y down, z forward)
LIDAR_TO_CAMERA_R = np.array([
    [0.0, -1.0, 0.0],
    [0.0, 0.0, -1.0],
    [1.0, 0.0, 0.0],
])


@pytest.fixture
def intrinsics():
    """640x480 camera, f=500, principal point at the center, no distortion."""
    from pcdfuse.calibration import CameraIntrinsics
    return CameraIntrinsics.from_dict(make_intrinsics_dict())


@pytest.fixture
def identity_calibration(intrinsics):
    """Camera frame equal to the LiDAR frame."""
    from pcdfuse.calibration import CameraCalibration, CameraExtrinsics
    return CameraCalibration.create(intrinsics, CameraExtrinsics(), name="front")


@pytest.fixture
def lidar_calibration(intrinsics):
    """Forward-looking camera with the usual LiDAR-to-camera axes swap."""
    from pcdfuse.calibration import CameraCalibration, CameraExtrinsics
    extrinsics = CameraExtrinsics.from_rotation_matrix(LIDAR_TO_CAMERA_R, [0.0, 0.0, 0.0])
    return CameraCalibration.create(intrinsics, extrinsics, name="front")


@pytest.fixture
def calibration_dir(tmp_path):
    """Directory with intrinsics, extrinsics and a fusion config."""
    import json
    import yaml

    with open(tmp_path / "front_intrinsics.yaml", "w") as f:
        yaml.safe_dump(make_intrinsics_dict(), f)
    with open(tmp_path / "front_extrinsics.json", "w") as f:
        json.dump(
            {"type": "matrix", "rot": LIDAR_TO_CAMERA_R.tolist(), "trans": [0.0, 0.0, 0.0]},
            f,
        )

    config = {
        "version": "0.1.0",
        "namespace": "fuse_demo",
        "pcd_topic": "/points",
        "max_workers": 2,
        "cameras": [
            {
                "name": "front",
                "kind": "detection",
                "intrinsics_file": "front_intrinsics.yaml",
                "extrinsics_file": "front_extrinsics.json",
                "image_hw": [480, 640],
                "det_hw": [240, 320],
                "present_size": 3,
                "distance_range": [1.0, 40.0],
            },
            {
                "name": "side",
                "kind": "image",
                "intrinsics_file": "front_intrinsics.yaml",
                "extrinsics_file": "front_extrinsics.json",
                "image_hw": [480, 640],
                "rotate_180": True,
            },
        ],
    }
    with open(tmp_path / "fusion.yaml", "w") as f:
        yaml.safe_dump(config, f)

    return tmp_path
