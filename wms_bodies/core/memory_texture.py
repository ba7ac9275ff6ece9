"""In-memory texture sink for headless rendering."""

import numpy as np

from wms_bodies.models.pixel_buffer import PixelBuffer


class MemoryTextureSink:
    """Texture sink that keeps the last uploaded image in memory."""

    def __init__(self, name: str = "texture"):
        self.name = name
        self.width = 0
        self.height = 0
        self.pixels: np.ndarray | None = None
        self.upload_count = 0
        self.generate_mipmaps = False

    def upload(self, width: int, height: int, rgba: np.ndarray, generate_mipmaps: bool = False) -> None:
        """Store a copy of the uploaded pixels."""
        self.pixels = np.array(rgba, dtype=np.uint8, copy=True).reshape(height, width, 4)
        self.width = width
        self.height = height
        self.generate_mipmaps = generate_mipmaps
        self.upload_count += 1

    def to_pixel_buffer(self) -> PixelBuffer | None:
        """Get the current contents, or None if nothing was uploaded yet."""
        if self.pixels is None:
            return None
        return PixelBuffer(width=self.width, height=self.height, data=self.pixels)

    def __repr__(self) -> str:
        return f"MemoryTextureSink({self.name!r}, {self.width}x{self.height}, uploads={self.upload_count})"
