"""
Stable per-value color sampling.

Maps any hashable value (class id, track id) to an RGB color by hashing it
into a hue. The sampler is plain configuration passed to whoever draws;
there is no process-wide hasher state.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Tuple

import cv2
import numpy as np


HUE_MULTIPLIER = 79
_U64_MASK = (1 << 64) - 1


@dataclass(frozen=True)
class ColorSampler:
    """
    Sample RGB colors from the hash of a value.

    Attributes:
        seed: Key mixed into the hash; equal seeds give equal colors across
              processes.
        saturation: HSV saturation in [0, 1].
        value: HSV value in [0, 1].

    Example:
        >>> sampler = ColorSampler(seed=7)
        >>> r, g, b = sampler.sample_rgb("person")
    """

    seed: int = 0
    saturation: float = 1.0
    value: float = 1.0

    def hash_value(self, value: Any) -> int:
        """64-bit keyed hash of repr(value)."""
        digest = hashlib.blake2b(
            repr(value).encode("utf-8"),
            digest_size=8,
            key=self.seed.to_bytes(8, "little", signed=True),
        ).digest()
        return int.from_bytes(digest, "little")

    def hue_degrees(self, value: Any) -> float:
        return float(((self.hash_value(value) * HUE_MULTIPLIER) & _U64_MASK) % 360)

    def sample_rgb(self, value: Any) -> Tuple[float, float, float]:
        """
        RGB color in [0, 1] for a value.

        Returns:
            Tuple[float, float, float]: (r, g, b).
        """
        hsv = np.array([[[self.hue_degrees(value), self.saturation, self.value]]], dtype=np.float32)
        r, g, b = cv2.cvtColor(hsv, cv2.COLOR_HSV2RGB)[0, 0]
        return float(r), float(g), float(b)

    def sample_bgr8(self, value: Any) -> Tuple[int, int, int]:
        """OpenCV drawing color (B, G, R) in [0, 255] for a value."""
        r, g, b = self.sample_rgb(value)
        return int(round(b * 255)), int(round(g * 255)), int(round(r * 255))
