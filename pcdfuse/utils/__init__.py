"""Utility modules."""

from .config_loader import (
    CameraConfig,
    ConfigLoader,
    FusionConfig,
    load_config,
    load_fusion_config,
)
from .logger import LoggerMixin, get_logger, setup_logger

__all__ = [
    "ConfigLoader",
    "load_config",
    "CameraConfig",
    "FusionConfig",
    "load_fusion_config",
    "setup_logger",
    "get_logger",
    "LoggerMixin",
]
