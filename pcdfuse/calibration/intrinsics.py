"""
Camera Intrinsic Parameters Module.

This module handles camera intrinsic parameters as written by the MRPT
camera-calib tool (ROS camera_info compatible YAML), including the camera
matrix, plumb-bob distortion coefficients, projection and rectification
matrices.

Mathematical Background:
========================

The camera intrinsic matrix K transforms 3D points in the camera coordinate
frame to 2D pixel coordinates:

    K = | fx   0  cx |
        |  0  fy  cy |
        |  0   0   1 |

Plumb-Bob Distortion:
=====================
The plumb-bob model stores five coefficients (k1, k2, p1, p2, k3). For a
normalised point (x, y) with r² = x² + y²:

    x' = x (1 + k1 r² + k2 r⁴ + k3 r⁶) + 2 p1 x y + p2 (r² + 2x²)
    y' = y (1 + k1 r² + k2 r⁴ + k3 r⁶) + p1 (r² + 2y²) + 2 p2 x y

    u = fx * x' + cx
    v = fy * y' + cy

File Layout:
============
    camera_name: front
    focal_length_meters: 0.004
    image_height: 480
    image_width: 640
    distortion_model: plumb_bob
    distortion_coefficients: {rows: 1, cols: 5, data: [...]}
    camera_matrix:           {rows: 3, cols: 3, data: [...]}
    projection_matrix:       {rows: 3, cols: 4, data: [...]}
    rectification_matrix:    {rows: 3, cols: 3, data: [...]}

Every matrix declares its own row/column count; a declaration that does not
match the flattened data length is rejected at load time.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np
import yaml

from ..errors import ValidationError


SUPPORTED_DISTORTION_MODELS = ("plumb_bob",)


@dataclass(frozen=True)
class CalibrationMatrix:
    """
    Row-major matrix as stored in calibration files.

    Attributes:
        rows: Declared number of rows.
        cols: Declared number of columns.
        data: Flattened row-major values.

    Raises:
        ValidationError: If rows * cols does not match len(data).

    Example:
        >>> m = CalibrationMatrix(rows=1, cols=5, data=(0.1, 0.0, 0.0, 0.0, 0.0))
        >>> m.to_numpy().shape
        (1, 5)
    """

    rows: int
    cols: int
    data: Tuple[float, ...]

    def __post_init__(self):
        """Validate declared dimensions against the data length."""
        try:
            data = tuple(float(value) for value in self.data)
        except (TypeError, ValueError) as err:
            raise ValidationError(f"matrix data must be numeric: {err}") from err
        object.__setattr__(self, "data", data)

        if self.rows < 0 or self.cols < 0:
            raise ValidationError(
                f"matrix dimensions must be non-negative, got rows ({self.rows}) "
                f"and cols ({self.cols})"
            )
        if self.rows * self.cols != len(data):
            raise ValidationError(
                f"data size ({len(data)}) does not match rows ({self.rows}) "
                f"and cols ({self.cols})"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: str = "matrix") -> "CalibrationMatrix":
        """
        Create from a ``{rows, cols, data}`` mapping.

        Args:
            data: Mapping with 'rows', 'cols' and 'data' keys.
            name: Field name used in error messages.

        Returns:
            CalibrationMatrix: Validated matrix.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"{name}: expected a mapping, got {type(data).__name__}")
        missing = [key for key in ("rows", "cols", "data") if key not in data]
        if missing:
            raise ValidationError(f"{name}: missing keys {missing}")
        try:
            rows, cols, values = int(data["rows"]), int(data["cols"]), tuple(data["data"])
        except (TypeError, ValueError) as err:
            raise ValidationError(f"{name}: malformed matrix: {err}") from err
        try:
            return cls(rows=rows, cols=cols, data=values)
        except ValidationError as err:
            raise ValidationError(f"{name}: {err}") from err

    @classmethod
    def from_numpy(cls, array: np.ndarray) -> "CalibrationMatrix":
        """Create from a 2D numpy array."""
        array = np.atleast_2d(np.asarray(array, dtype=np.float64))
        rows, cols = array.shape
        return cls(rows=rows, cols=cols, data=tuple(array.ravel().tolist()))

    @property
    def shape(self) -> Tuple[int, int]:
        """Declared (rows, cols)."""
        return self.rows, self.cols

    def to_numpy(self) -> np.ndarray:
        """
        Dense float64 matrix of shape (rows, cols).

        Returns:
            np.ndarray: A fresh array; callers may mutate it freely.
        """
        return np.array(self.data, dtype=np.float64).reshape(self.rows, self.cols)


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    Camera intrinsic parameters.

    Attributes:
        camera_name: Camera identifier from the calibration tool.
        focal_length_meters: Physical focal length.
        image_height: Image height in pixels.
        image_width: Image width in pixels.
        distortion_model: Distortion model tag, only 'plumb_bob' is accepted.
        distortion_coefficients: Distortion coefficients (1x5 for plumb-bob).
        camera_matrix: 3x3 intrinsic matrix K.
        projection_matrix: 3x4 projection matrix P.
        rectification_matrix: 3x3 rectification matrix.

    Example:
        >>> intrinsics = CameraIntrinsics.from_yaml("configs/front_intrinsics.yaml")
        >>> K = intrinsics.K
        >>> fov_h, fov_v = intrinsics.get_fov()
    """

    camera_name: str
    focal_length_meters: float
    image_height: int
    image_width: int
    distortion_model: str
    distortion_coefficients: CalibrationMatrix
    camera_matrix: CalibrationMatrix
    projection_matrix: CalibrationMatrix
    rectification_matrix: CalibrationMatrix

    def __post_init__(self):
        """Validate scalar fields."""
        if self.distortion_model not in SUPPORTED_DISTORTION_MODELS:
            raise ValidationError(
                f"unsupported distortion model '{self.distortion_model}', "
                f"expected one of {SUPPORTED_DISTORTION_MODELS}"
            )
        if self.image_height <= 0 or self.image_width <= 0:
            raise ValidationError(
                f"image size must be positive, got "
                f"{self.image_height}x{self.image_width}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CameraIntrinsics":
        """
        Create intrinsics from a parsed calibration mapping.

        Args:
            data: Mapping in the MRPT camera-calib layout (see module docs).

        Returns:
            CameraIntrinsics: Validated instance.

        Raises:
            ValidationError: If a key is missing or a matrix is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"intrinsics: expected a mapping, got {type(data).__name__}")

        required = [
            "camera_name",
            "focal_length_meters",
            "image_height",
            "image_width",
            "distortion_model",
            "distortion_coefficients",
            "camera_matrix",
            "projection_matrix",
            "rectification_matrix",
        ]
        missing = [key for key in required if key not in data]
        if missing:
            raise ValidationError(f"intrinsics: missing keys {missing}")

        try:
            focal_length = float(data["focal_length_meters"])
            height = int(data["image_height"])
            width = int(data["image_width"])
        except (TypeError, ValueError) as err:
            raise ValidationError(f"intrinsics: {err}") from err

        return cls(
            camera_name=str(data["camera_name"]),
            focal_length_meters=focal_length,
            image_height=height,
            image_width=width,
            distortion_model=str(data["distortion_model"]),
            distortion_coefficients=CalibrationMatrix.from_dict(
                data["distortion_coefficients"], "distortion_coefficients"
            ),
            camera_matrix=CalibrationMatrix.from_dict(data["camera_matrix"], "camera_matrix"),
            projection_matrix=CalibrationMatrix.from_dict(
                data["projection_matrix"], "projection_matrix"
            ),
            rectification_matrix=CalibrationMatrix.from_dict(
                data["rectification_matrix"], "rectification_matrix"
            ),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "CameraIntrinsics":
        """
        Load intrinsics from a calibration YAML file.

        Args:
            path: Path to the YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValidationError: If its content is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Intrinsics file not found: {path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as err:
                raise ValidationError(f"{path}: invalid YAML: {err}") from err

        try:
            return cls.from_dict(data)
        except ValidationError as err:
            raise ValidationError(f"{path}: {err}") from err

    @property
    def K(self) -> np.ndarray:
        """Dense camera matrix (as declared, normally 3x3)."""
        return self.camera_matrix.to_numpy()

    @property
    def dist_coeffs(self) -> np.ndarray:
        """Distortion coefficients as a flat float64 vector."""
        return self.distortion_coefficients.to_numpy().ravel()

    @property
    def fx(self) -> float:
        return float(self.K[0, 0])

    @property
    def fy(self) -> float:
        return float(self.K[1, 1])

    @property
    def cx(self) -> float:
        return float(self.K[0, 2])

    @property
    def cy(self) -> float:
        return float(self.K[1, 2])

    def get_fov(self) -> Tuple[float, float]:
        """
        Calculate the camera field of view.

        Horizontal FOV:
            θ_h = 2 * arctan(width / (2 * fx))

        Vertical FOV:
            θ_v = 2 * arctan(height / (2 * fy))

        Returns:
            Tuple[float, float]: (horizontal_fov, vertical_fov) in radians.
        """
        horizontal_fov = 2 * np.arctan(self.image_width / (2 * self.fx))
        vertical_fov = 2 * np.arctan(self.image_height / (2 * self.fy))
        return horizontal_fov, vertical_fov

    def is_in_image(self, points_2d: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
        """
        Check if 2D points are within image bounds.

        Bounds are inclusive on both ends: [0, width] x [0, height].

        Args:
            points_2d: 2D points (N, 2) in pixel coordinates.

        Returns:
            np.ndarray: Boolean mask (N,) indicating valid points.
        """
        points_2d = np.atleast_2d(points_2d)

        return (
            (points_2d[:, 0] >= 0) &
            (points_2d[:, 0] <= self.image_width) &
            (points_2d[:, 1] >= 0) &
            (points_2d[:, 1] <= self.image_height)
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"CameraIntrinsics(camera_name={self.camera_name!r}, "
            f"camera_matrix={self.camera_matrix.shape}, "
            f"distortion_model={self.distortion_model!r}, "
            f"width={self.image_width}, height={self.image_height})"
        )
