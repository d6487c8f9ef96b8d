"""
DecodedImage model for captured photographs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass
class DecodedImage:
    """
    A decoded photograph at its original resolution.

    Attributes:
        pixels: RGB pixel data as a (height, width, 3) uint8 array.
        width: Original image width in pixels.
        height: Original image height in pixels.
    """
    pixels: np.ndarray
    width: int
    height: int

    @classmethod
    def from_numpy(cls, pixels: np.ndarray) -> "DecodedImage":
        """Create DecodedImage from an RGB numpy array."""
        h, w = pixels.shape[:2]
        return cls(pixels=pixels, width=w, height=h)

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)
