"""
Analysis Image
==============

Internal image representation shared by all estimators of one run.

Design Rules:
    - This is the ONLY image format passed to estimators
    - Pixels are RGB uint8, shape (H, W, 3), origin top-left
    - Estimators treat the pixels as read-only
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True, eq=False)
class AnalysisImage:
    """
    Decoded image for one analysis run.

    It is immutable (frozen) and its pixel buffer is marked read-only so
    concurrent estimators cannot modify the shared image.

    Attributes:
        pixels: RGB image as np.ndarray (H, W, 3), dtype=uint8
        width: Image width in pixels
        height: Image height in pixels
    """

    pixels: np.ndarray
    width: int
    height: int

    @classmethod
    def from_rgb(cls, pixels: np.ndarray) -> "AnalysisImage":
        """Wrap an RGB array, making it read-only."""
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Expected (H, W, 3) RGB array, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
        pixels = np.ascontiguousarray(pixels)
        pixels.setflags(write=False)
        height, width = pixels.shape[:2]
        return cls(pixels=pixels, width=int(width), height=int(height))

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return f"AnalysisImage(width={self.width}, height={self.height})"
