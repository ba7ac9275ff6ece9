"""Decoded image buffer model."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """RGBA pixels of a decoded map tile.

    Buffers compare and hash by identity; compare ``data`` explicitly for
    pixel equality.
    """

    width: int
    height: int
    data: np.ndarray  # uint8, shape (height, width, 4)

    def __post_init__(self):
        """Validate buffer shape."""
        if self.data.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Pixel data shape {self.data.shape} does not match {self.width}x{self.height} RGBA"
            )

    @property
    def nbytes(self) -> int:
        """Size of the pixel data in bytes."""
        return int(self.data.nbytes)

    @classmethod
    def transparent(cls, width: int = 1, height: int = 1) -> "PixelBuffer":
        """Create a fully transparent buffer."""
        return cls(width=width, height=height, data=np.zeros((height, width, 4), dtype=np.uint8))
