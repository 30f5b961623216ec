"""
Per-camera calibration bundle.

Combines intrinsics and the (optionally yaw-corrected) LiDAR-to-camera pose
into the immutable value shared by every frame of one camera, and derives
the projection-ready parameters consumed by the point projector.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np

from .extrinsics import CameraExtrinsics
from .intrinsics import CameraIntrinsics
from ..errors import ValidationError
from ..utils.logger import get_logger


logger = get_logger(__name__)

ROTATE_90_YAW_DEGREES = 90.0


@dataclass(frozen=True, eq=False)
class CameraParams:
    """
    Projection-ready parameter bundle.

    Attributes:
        R: float32 rotation (3x3), LiDAR to camera, for depth filtering.
        t: float32 translation (3,).
        rvec: float64 Rodrigues rotation vector (3, 1) for cv2.projectPoints.
        tvec: float64 translation (3, 1) for cv2.projectPoints.
        camera_matrix: float64 dense camera matrix.
        distortion_coefficients: float64 flat distortion vector.
    """

    R: np.ndarray
    t: np.ndarray
    rvec: np.ndarray
    tvec: np.ndarray
    camera_matrix: np.ndarray
    distortion_coefficients: np.ndarray

    @classmethod
    def from_calibration(
        cls,
        intrinsics: CameraIntrinsics,
        extrinsics: CameraExtrinsics,
    ) -> "CameraParams":
        R, t = extrinsics.as_float32()
        rvec, tvec = extrinsics.to_rvec_tvec()
        camera_matrix = intrinsics.K
        distortion = intrinsics.dist_coeffs

        for array in (rvec, tvec, camera_matrix, distortion):
            array.setflags(write=False)

        return cls(
            R=R,
            t=t,
            rvec=rvec,
            tvec=tvec,
            camera_matrix=camera_matrix,
            distortion_coefficients=distortion,
        )


@dataclass(frozen=True, eq=False)
class CameraCalibration:
    """
    Immutable calibration of one camera.

    Attributes:
        name: Camera name used in logs and messages.
        intrinsics: Camera intrinsic parameters.
        extrinsics: LiDAR-to-camera pose, yaw correction already applied.
        params: Projection-ready parameters derived from the two above.

    Example:
        >>> calib = CameraCalibration.create(intrinsics, extrinsics, rotate_90=True)
        >>> projected = project(cloud, calib)
    """

    name: str
    intrinsics: CameraIntrinsics
    extrinsics: CameraExtrinsics
    params: CameraParams

    @classmethod
    def create(
        cls,
        intrinsics: CameraIntrinsics,
        extrinsics: CameraExtrinsics,
        rotate_90: bool = False,
        name: Optional[str] = None,
    ) -> "CameraCalibration":
        """
        Build a calibration, applying the 90° yaw correction if requested.

        Args:
            intrinsics: Camera intrinsics.
            extrinsics: LiDAR-to-camera pose as calibrated.
            rotate_90: Whether the source cloud was pre-rotated by 90° yaw.
            name: Camera name (defaults to the intrinsics camera name).
        """
        if rotate_90:
            extrinsics = extrinsics.with_yaw(ROTATE_90_YAW_DEGREES)

        return cls(
            name=name or intrinsics.camera_name,
            intrinsics=intrinsics,
            extrinsics=extrinsics,
            params=CameraParams.from_calibration(intrinsics, extrinsics),
        )

    @property
    def width(self) -> int:
        return self.intrinsics.image_width

    @property
    def height(self) -> int:
        return self.intrinsics.image_height

    def __repr__(self) -> str:
        return (
            f"CameraCalibration(name={self.name!r}, "
            f"size={self.width}x{self.height}, extrinsics={self.extrinsics!r})"
        )


def load_camera_calibration(
    camera_config,
    base_dir: Optional[Union[str, Path]] = None,
) -> CameraCalibration:
    """
    Load the calibration named by a camera configuration.

    Args:
        camera_config: A CameraConfig (intrinsics_file, extrinsics_file,
                       rotate_90, image_hw, name).
        base_dir: Directory that relative calibration paths resolve against.

    Returns:
        CameraCalibration: Ready for projection.

    Raises:
        ValidationError: If either file is malformed, or the configured image
                         size disagrees with the intrinsics.
        FileNotFoundError: If either file is missing.
    """
    base_dir = Path(base_dir) if base_dir is not None else Path(".")

    def resolve(path: Union[str, Path]) -> Path:
        path = Path(path)
        return path if path.is_absolute() else base_dir / path

    intrinsics = CameraIntrinsics.from_yaml(resolve(camera_config.intrinsics_file))
    extrinsics = CameraExtrinsics.from_file(resolve(camera_config.extrinsics_file))

    height, width = camera_config.image_hw
    if (height, width) != (intrinsics.image_height, intrinsics.image_width):
        raise ValidationError(
            f"camera '{camera_config.name}': configured image size {height}x{width} "
            f"does not match intrinsics {intrinsics.image_height}x{intrinsics.image_width}"
        )

    calibration = CameraCalibration.create(
        intrinsics,
        extrinsics,
        rotate_90=camera_config.rotate_90,
        name=camera_config.name,
    )
    logger.info(f"Loaded calibration {calibration!r}")
    return calibration
