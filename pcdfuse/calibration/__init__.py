"""
Calibration modules for camera-LiDAR geometry.

Classes:
    CalibrationMatrix: Row-major matrix as stored in calibration files.
    CameraIntrinsics: Pinhole camera matrix and plumb-bob distortion.
    CameraExtrinsics: LiDAR to camera rigid transform.
    CameraParams: Precomputed projection inputs for one camera.
    CameraCalibration: Intrinsics, extrinsics and params of one camera.

Functions:
    load_camera_calibration: Load a camera's calibration files from config.

Example Usage:
    >>> from pcdfuse.calibration import CameraIntrinsics, CameraExtrinsics, CameraCalibration
    >>>
    >>> intrinsics = CameraIntrinsics.from_yaml("configs/front_intrinsics.yaml")
    >>> extrinsics = CameraExtrinsics.from_file("configs/front_extrinsics.json")
    >>> calibration = CameraCalibration.create(intrinsics, extrinsics, rotate_90=False)
"""

from .intrinsics import CalibrationMatrix, CameraIntrinsics
from .extrinsics import CameraExtrinsics
from .camera import CameraCalibration, CameraParams, load_camera_calibration

__all__ = [
    "CalibrationMatrix",
    "CameraIntrinsics",
    "CameraExtrinsics",
    "CameraParams",
    "CameraCalibration",
    "load_camera_calibration",
]
