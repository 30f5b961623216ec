"""Configuration loading utilities."""

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..errors import ValidationError


SUPPORTED_CONFIG_VERSION = (0, 1)

CAMERA_KINDS = ("detection", "image")


class ConfigLoader:
    """Load and manage YAML configurations."""

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_dir: Default directory for config files.
        """
        self.config_dir = Path(config_dir) if config_dir else Path("configs")
        self._cache: Dict[str, Dict] = {}

    def resolve(self, config_path: Union[str, Path]) -> Path:
        """Resolve a config path, falling back to the config directory."""
        config_path = Path(config_path)

        if config_path.is_absolute() or config_path.exists():
            return config_path
        # Avoid double-prefixing paths that already start with config_dir
        if str(config_path).startswith(str(self.config_dir)):
            return config_path
        return self.config_dir / config_path

    def load(
        self,
        config_path: Union[str, Path],
        use_cache: bool = True,
    ) -> Dict[str, Any]:
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file.
            use_cache: Whether to use cached config.

        Returns:
            Configuration dictionary.
        """
        config_path = self.resolve(config_path)
        cache_key = str(config_path)

        if use_cache and cache_key in self._cache:
            return copy.deepcopy(self._cache[cache_key])

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as err:
                raise ValidationError(f"{config_path}: invalid YAML: {err}") from err

        if not isinstance(config, dict):
            raise ValidationError(f"{config_path}: top level must be a mapping")

        # Process includes
        config = self._process_includes(config, config_path.parent)

        if use_cache:
            self._cache[cache_key] = copy.deepcopy(config)

        return config

    def _process_includes(
        self,
        config: Dict,
        base_dir: Path,
    ) -> Dict:
        """
        Process !include directives in config.

        Args:
            config: Configuration dictionary.
            base_dir: Base directory for relative includes.

        Returns:
            Processed configuration.
        """
        if not isinstance(config, dict):
            return config

        result = {}

        for key, value in config.items():
            if isinstance(value, str) and value.startswith("!include "):
                include_path = base_dir / value[9:]
                with open(include_path, "r") as f:
                    result[key] = yaml.safe_load(f)
            elif isinstance(value, dict):
                result[key] = self._process_includes(value, base_dir)
            else:
                result[key] = value

        return result

    def merge(
        self,
        base: Dict[str, Any],
        override: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Deep merge two configurations.

        Args:
            base: Base configuration.
            override: Override configuration.

        Returns:
            Merged configuration.
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.merge(result[key], value)
            else:
                result[key] = value

        return result

    def clear_cache(self) -> None:
        """Clear configuration cache."""
        self._cache.clear()


def load_config(
    config_path: Union[str, Path],
    overrides: Optional[Dict[str, Any]] = None,
    loader: Optional[ConfigLoader] = None,
) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file.
        overrides: Optional overrides to apply.
        loader: Loader whose cache is reused across calls; a fresh one
                when omitted.

    Returns:
        Configuration dictionary.
    """
    loader = loader or ConfigLoader()
    config = loader.load(config_path)

    if overrides:
        config = loader.merge(config, overrides)

    return config


# =============================================================================
# Fusion Configuration
# =============================================================================

@dataclass(frozen=True)
class CameraConfig:
    """
    Per-camera configuration.

    Attributes:
        name: Camera name, unique within a config.
        kind: 'detection' for cameras delivering 2D detections, 'image' for
              cameras delivering raw images.
        intrinsics_file: Intrinsics YAML path.
        extrinsics_file: Extrinsics JSON/YAML path.
        image_hw: (height, width) of the camera image.
        det_hw: (height, width) of the detector input, if it differs from
                the image size. Detection boxes are rescaled to image_hw.
        topic: Input topic of the camera's messages.
        roi_tlbr: Region of interest (top, left, bottom, right) in pixels.
        rotate_90: Whether the point cloud was pre-rotated by 90° yaw.
        rotate_180: Whether the image is shown rotated by 180°. Display only.
        present_size: Radius of drawn points in pixels.
        distance_range: (min, max) LiDAR distance of points shown. Display only.
    """

    name: str
    kind: str
    intrinsics_file: str
    extrinsics_file: str
    image_hw: Tuple[int, int]
    det_hw: Optional[Tuple[int, int]] = None
    topic: Optional[str] = None
    roi_tlbr: Optional[Tuple[int, int, int, int]] = None
    rotate_90: bool = False
    rotate_180: bool = False
    present_size: int = 2
    distance_range: Tuple[float, float] = (0.0, float("inf"))

    def __post_init__(self):
        """Validate field values."""
        prefix = f"camera '{self.name}'"

        if self.kind not in CAMERA_KINDS:
            raise ValidationError(f"{prefix}: kind must be one of {CAMERA_KINDS}, got '{self.kind}'")

        _check_hw(self.image_hw, f"{prefix}: image_hw")
        if self.det_hw is not None:
            _check_hw(self.det_hw, f"{prefix}: det_hw")

        if self.roi_tlbr is not None:
            if len(self.roi_tlbr) != 4:
                raise ValidationError(f"{prefix}: roi_tlbr must have 4 values")
            top, left, bottom, right = self.roi_tlbr
            height, width = self.image_hw
            if not (0 <= top < bottom <= height and 0 <= left < right <= width):
                raise ValidationError(
                    f"{prefix}: roi_tlbr {list(self.roi_tlbr)} is not inside a "
                    f"{height}x{width} image"
                )

        if self.present_size <= 0:
            raise ValidationError(f"{prefix}: present_size must be positive")

        low, high = self.distance_range
        if low < 0 or high <= low:
            raise ValidationError(f"{prefix}: invalid distance_range {list(self.distance_range)}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CameraConfig":
        """Create from a parsed mapping."""
        if not isinstance(data, dict):
            raise ValidationError(f"camera entry must be a mapping, got {type(data).__name__}")

        required = ["name", "kind", "intrinsics_file", "extrinsics_file", "image_hw"]
        missing = [key for key in required if key not in data]
        if missing:
            raise ValidationError(f"camera '{data.get('name', '?')}': missing keys {missing}")

        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValidationError(f"camera '{data['name']}': unknown keys {sorted(unknown)}")

        values = dict(data)
        try:
            values["image_hw"] = _int_tuple(values["image_hw"])
            if values.get("det_hw") is not None:
                values["det_hw"] = _int_tuple(values["det_hw"])
            if values.get("roi_tlbr") is not None:
                values["roi_tlbr"] = _int_tuple(values["roi_tlbr"])
            if "distance_range" in values:
                values["distance_range"] = tuple(float(v) for v in values["distance_range"])
            if "present_size" in values:
                values["present_size"] = int(values["present_size"])
        except (TypeError, ValueError) as err:
            raise ValidationError(f"camera '{data['name']}': {err}") from err

        for flag in ("rotate_90", "rotate_180"):
            if flag in values and not isinstance(values[flag], bool):
                raise ValidationError(f"camera '{data['name']}': {flag} must be a boolean")

        return cls(**values)


@dataclass(frozen=True)
class FusionConfig:
    """
    Top-level fusion configuration.

    Attributes:
        version: Config format version, compatible with 0.1.
        cameras: Per-camera configurations.
        namespace: Namespace of the input topics.
        pcd_topic: Input topic of the point cloud.
        max_workers: Worker threads used to run camera pipelines.
        base_dir: Directory relative calibration paths resolve against.
    """

    version: str
    cameras: List[CameraConfig] = field(default_factory=list)
    namespace: str = ""
    pcd_topic: str = ""
    max_workers: int = 4
    base_dir: Path = Path(".")

    def __post_init__(self):
        """Validate version and camera names."""
        _check_version(self.version)

        names = [camera.name for camera in self.cameras]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(f"duplicate camera names: {duplicates}")

        if self.max_workers <= 0:
            raise ValidationError("max_workers must be positive")

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        base_dir: Union[str, Path] = ".",
    ) -> "FusionConfig":
        """Create from a parsed mapping."""
        if "version" not in data:
            raise ValidationError("config: missing 'version'")

        cameras = data.get("cameras") or []
        if not isinstance(cameras, list):
            raise ValidationError("config: 'cameras' must be a list")

        return cls(
            version=str(data["version"]),
            cameras=[CameraConfig.from_dict(camera) for camera in cameras],
            namespace=str(data.get("namespace", "")),
            pcd_topic=str(data.get("pcd_topic", "")),
            max_workers=int(data.get("max_workers", 4)),
            base_dir=Path(base_dir),
        )

    def camera(self, name: str) -> CameraConfig:
        """Look up a camera by name."""
        for camera in self.cameras:
            if camera.name == name:
                return camera
        raise KeyError(f"Camera '{name}' not configured")


def load_fusion_config(
    config_path: Union[str, Path],
    overrides: Optional[Dict[str, Any]] = None,
    loader: Optional[ConfigLoader] = None,
) -> FusionConfig:
    """
    Load and validate a fusion configuration file.

    Relative calibration paths resolve against the config file's directory.

    Args:
        config_path: Path to the YAML config.
        overrides: Optional overrides deep-merged over the file content.
        loader: Loader to read the file with.

    Returns:
        FusionConfig: Validated configuration.
    """
    loader = loader or ConfigLoader()
    config_path = loader.resolve(config_path)
    config = load_config(config_path, overrides, loader)
    return FusionConfig.from_dict(config, base_dir=config_path.parent)


def _int_tuple(values) -> Tuple[int, ...]:
    return tuple(int(v) for v in values)


def _check_hw(hw: Tuple[int, ...], name: str) -> None:
    if len(hw) != 2 or hw[0] <= 0 or hw[1] <= 0:
        raise ValidationError(f"{name} must be two positive integers, got {list(hw)}")


def _check_version(version: str) -> None:
    parts = version.split(".")
    try:
        major, minor = int(parts[0]), int(parts[1])
    except (IndexError, ValueError):
        raise ValidationError(f"config: malformed version '{version}'") from None

    if (major, minor) != SUPPORTED_CONFIG_VERSION:
        expected = ".".join(str(v) for v in SUPPORTED_CONFIG_VERSION)
        raise ValidationError(f"config: version {version} is not compatible with {expected}")
