"""Protocol for GPU texture upload targets."""

from typing import Protocol

import numpy as np


class TextureSink(Protocol):
    """A texture slot the renderer samples from.

    Uploads are only ever issued from the tick thread.
    """

    def upload(self, width: int, height: int, rgba: np.ndarray, generate_mipmaps: bool) -> None:
        """Replace the texture contents.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            rgba: Pixel data, uint8, row-major RGBA
            generate_mipmaps: Whether the sink should build mipmaps
        """
        ...
