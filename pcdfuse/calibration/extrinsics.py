"""
Camera-LiDAR Extrinsic Calibration Module.

This module handles the extrinsic calibration between the LiDAR and each
camera, i.e. the rigid body transformation from the LiDAR frame to the
camera frame.

Mathematical Background:
========================

Rigid Body Transformation:
--------------------------
A rigid body transformation (isometry) consists of a rotation R (3x3
orthonormal matrix) and translation t (3x1 vector). For a point P in the
LiDAR frame, its coordinates in the camera frame are:

    P_cam = R * P_lidar + t

As a 4x4 homogeneous matrix:

    T = | R   t |
        | 0   1 |

Inverse Transformation:
-----------------------
    T^(-1) = | R^T  -R^T * t |
             |  0       1    |

Axis-Angle (Rodrigues) Form:
----------------------------
OpenCV's projection routines take the rotation as an axis-angle vector
rvec = θ * k (unit axis k, angle θ) together with tvec = t. cv2.Rodrigues
converts between the two forms.

Yaw Correction:
---------------
When the source cloud was pre-rotated by 90° about the LiDAR Z axis, the
pose is right-multiplied by that rotation before use:

    T' = T * | Rz(90°)  0 |
             |    0     1 |

so R' = R @ Rz(90°) and t' = t. The corrected pose feeds both the
isometry used for depth filtering and the rvec/tvec used for projection.

Extrinsics File Forms:
======================
    {"rotation": [w, i, j, k], "translation": [x, y, z]}
    {"rotation": [[r00, r01, r02], [...], [...]], "translation": [x, y, z]}
    {"type": "quaternion", "rot_wijk": [w, i, j, k], "trans_xyz": [x, y, z]}
    {"type": "matrix", "rot": [[...], [...], [...]], "trans": [x, y, z]}
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple, Union

import cv2
import numpy as np
import yaml
from scipy.spatial.transform import Rotation

from ..errors import ValidationError


def _read_only(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def _float_array(values: Any, name: str) -> np.ndarray:
    """Float64 copy of values, ValidationError if they are not numeric."""
    try:
        return np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as err:
        raise ValidationError(f"{name} must be numeric: {err}") from err


@dataclass(frozen=True, eq=False)
class CameraExtrinsics:
    """
    Camera extrinsic parameters (rotation and translation).

    Stored in double precision. Instances are immutable; the arrays are
    flagged read-only.

    Attributes:
        R: Rotation matrix (3x3) - transforms vectors from LiDAR to camera frame.
        t: Translation vector (3,) - position of LiDAR origin in camera frame.

    Example:
        >>> extrinsics = CameraExtrinsics.from_quaternion([1, 0, 0, 0], [0.1, 0, 0])
        >>> rvec, tvec = extrinsics.to_rvec_tvec()
    """

    R: np.ndarray = field(default_factory=lambda: np.eye(3))
    t: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        """Validate inputs after initialization."""
        R = _float_array(self.R, "R")
        t = _float_array(self.t, "t").flatten()

        if R.shape != (3, 3):
            raise ValidationError(f"R must be 3x3, got {R.shape}")
        if t.shape != (3,):
            raise ValidationError(f"t must be (3,), got {t.shape}")
        if not (np.all(np.isfinite(R)) and np.all(np.isfinite(t))):
            raise ValidationError("extrinsics contain non-finite values")

        object.__setattr__(self, "R", _read_only(R))
        object.__setattr__(self, "t", _read_only(t))

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_quaternion(
        cls,
        rot_wijk: Sequence[float],
        trans_xyz: Sequence[float],
    ) -> "CameraExtrinsics":
        """
        Create from a unit quaternion and a translation.

        The quaternion is normalised before use.

        Args:
            rot_wijk: Quaternion as [w, i, j, k] (scalar first).
            trans_xyz: Translation [x, y, z].

        Raises:
            ValidationError: If the quaternion is not 4 values or has zero norm.
        """
        q = _float_array(rot_wijk, "quaternion").flatten()
        if q.shape != (4,):
            raise ValidationError(f"quaternion must have 4 values [w, i, j, k], got {q.shape}")

        w, i, j, k = q
        try:
            # scipy orders quaternions scalar-last
            rotation = Rotation.from_quat([i, j, k, w])
        except ValueError as err:
            raise ValidationError(f"invalid quaternion {q.tolist()}: {err}") from err

        return cls(R=rotation.as_matrix(), t=trans_xyz)

    @classmethod
    def from_rotation_matrix(
        cls,
        rot: Sequence[Sequence[float]],
        trans_xyz: Sequence[float],
    ) -> "CameraExtrinsics":
        """
        Create from a row-major 3x3 rotation matrix and a translation.

        The matrix is projected onto the nearest proper rotation.

        Args:
            rot: 3x3 rotation matrix (rows).
            trans_xyz: Translation [x, y, z].
        """
        rot = _float_array(rot, "rotation matrix")
        if rot.shape != (3, 3):
            raise ValidationError(f"rotation matrix must be 3x3, got {rot.shape}")

        try:
            rotation = Rotation.from_matrix(rot)
        except ValueError as err:
            raise ValidationError(f"invalid rotation matrix: {err}") from err

        return cls(R=rotation.as_matrix(), t=trans_xyz)

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "CameraExtrinsics":
        """
        Create from 4x4 or 3x4 transformation matrix.

        Args:
            T: 4x4 homogeneous or 3x4 transformation matrix.
        """
        T = _float_array(T, "transformation matrix")
        if T.shape == (4, 4):
            return cls(R=T[:3, :3], t=T[:3, 3])
        elif T.shape == (3, 4):
            return cls(R=T[:, :3], t=T[:, 3])
        else:
            raise ValidationError(f"Expected 4x4 or 3x4 matrix, got {T.shape}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CameraExtrinsics":
        """
        Create from parsed extrinsics data.

        Accepts the untagged ``rotation``/``translation`` form, where the
        rotation is either a [w, i, j, k] quaternion or a 3x3 matrix, and the
        tagged ``type: quaternion`` / ``type: matrix`` forms.

        Raises:
            ValidationError: If the mapping matches none of the forms.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"extrinsics: expected a mapping, got {type(data).__name__}")

        kind = data.get("type")
        if kind == "quaternion":
            _require(data, ("rot_wijk", "trans_xyz"))
            return cls.from_quaternion(data["rot_wijk"], data["trans_xyz"])
        if kind == "matrix":
            _require(data, ("rot", "trans"))
            return cls.from_rotation_matrix(data["rot"], data["trans"])
        if kind is not None:
            raise ValidationError(f"extrinsics: unknown type '{kind}'")

        _require(data, ("rotation", "translation"))
        rotation = _float_array(data["rotation"], "extrinsics rotation")

        if rotation.shape == (4,):
            return cls.from_quaternion(rotation, data["translation"])
        if rotation.shape == (3, 3):
            return cls.from_rotation_matrix(rotation, data["translation"])
        raise ValidationError(
            f"extrinsics: rotation must be a [w, i, j, k] quaternion or a 3x3 matrix, "
            f"got shape {rotation.shape}"
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CameraExtrinsics":
        """
        Load extrinsics from a JSON or YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValidationError: If its content is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Extrinsics file not found: {path}")

        with open(path, "r") as f:
            try:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
            except (json.JSONDecodeError, yaml.YAMLError) as err:
                raise ValidationError(f"{path}: cannot parse extrinsics: {err}") from err

        try:
            return cls.from_dict(data)
        except ValidationError as err:
            raise ValidationError(f"{path}: {err}") from err

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get_transform_matrix(self) -> np.ndarray:
        """
        Get the 4x4 homogeneous transformation matrix.

            T = | R  t |
                | 0  1 |
        """
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.R
        T[:3, 3] = self.t
        return T

    def inverse(self) -> "CameraExtrinsics":
        """
        Get the inverse transformation (camera to LiDAR).

            T^(-1) = [R^T, -R^T @ t]
        """
        R_inv = self.R.T
        t_inv = -R_inv @ self.t
        return CameraExtrinsics(R=R_inv, t=t_inv)

    def compose(self, other: "CameraExtrinsics") -> "CameraExtrinsics":
        """
        Compose this transformation with another (chain transformations).

        If this is T1 and other is T2, result is T1 @ T2
        (applies T2 first, then T1).

        Args:
            other: The transformation applied before this one.
        """
        R_combined = self.R @ other.R
        t_combined = self.R @ other.t + self.t
        return CameraExtrinsics(R=R_combined, t=t_combined)

    def with_yaw(self, degrees: float = 90.0) -> "CameraExtrinsics":
        """
        Right-multiply the pose by a rotation about the LiDAR Z axis.

        Args:
            degrees: Yaw angle in degrees.

        Returns:
            CameraExtrinsics: T @ Rz(degrees); the translation is unchanged.
        """
        yaw = Rotation.from_euler("z", degrees, degrees=True).as_matrix()
        return self.compose(CameraExtrinsics(R=yaw, t=np.zeros(3)))

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """
        Transform 3D points from LiDAR to camera frame.

        Args:
            points: 3D points (N, 3).

        Returns:
            np.ndarray: Transformed points (N, 3).
        """
        points = np.atleast_2d(points)
        return points @ self.R.T + self.t

    def to_rvec_tvec(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Express the pose in OpenCV's axis-angle form.

        Returns:
            Tuple[np.ndarray, np.ndarray]: (rvec, tvec), both float64 (3, 1).
        """
        rvec, _ = cv2.Rodrigues(np.ascontiguousarray(self.R))
        tvec = self.t.reshape(3, 1).copy()
        return rvec.reshape(3, 1), tvec

    def as_float32(self) -> Tuple[np.ndarray, np.ndarray]:
        """Single-precision (R, t) for the projection hot path."""
        return (
            _read_only(self.R.astype(np.float32)),
            _read_only(self.t.astype(np.float32)),
        )

    def __repr__(self) -> str:
        rotvec = Rotation.from_matrix(self.R).as_rotvec()
        return (
            f"CameraExtrinsics(rotvec={np.round(rotvec, 4).tolist()}, "
            f"t={np.round(self.t, 4).tolist()})"
        )


def _require(data: Dict[str, Any], keys: Sequence[str]) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ValidationError(f"extrinsics: missing keys {missing}")
