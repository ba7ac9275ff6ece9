"""CPU rendition of the body surface blend for headless output."""

from typing import Optional

import numpy as np
from PIL import Image

from wms_bodies.models.pixel_buffer import PixelBuffer


def _overlay_array(buffer: PixelBuffer, size: tuple) -> np.ndarray:
    """Resample an overlay to ``size`` and normalize it to 0..1 floats."""
    image = Image.fromarray(buffer.data)
    if image.size != size:
        image = image.resize(size, Image.Resampling.BILINEAR)
    return np.array(image, dtype=np.float32) / 255.0


def composite_surface(
    background: Image.Image,
    primary: Optional[PixelBuffer],
    secondary: Optional[PixelBuffer] = None,
    fade: float = 1.0,
) -> Image.Image:
    """
    Blend the WMS textures over the background the way the surface shader does.

    ``color = mix(bg, primary.rgb, primary.a)``; with a secondary texture the
    result is additionally cross-faded:
    ``color = mix(mix(bg, secondary.rgb, secondary.a), color, fade)``.

    Args:
        background: Background texture of the body
        primary: Texture of the current bucket, or None for background only
        secondary: Texture of the next bucket, or None
        fade: Weight of the primary texture in the cross-fade (1 = primary only)

    Returns:
        RGB image the size of the background
    """
    base = np.array(background.convert("RGB"), dtype=np.float32) / 255.0
    size = background.size

    if primary is None:
        color = base
    else:
        overlay = _overlay_array(primary, size)
        alpha = overlay[:, :, 3:4]
        color = base * (1 - alpha) + overlay[:, :, :3] * alpha

        if secondary is not None:
            second = _overlay_array(secondary, size)
            second_alpha = second[:, :, 3:4]
            second_color = base * (1 - second_alpha) + second[:, :, :3] * second_alpha
            fade = min(max(fade, 0.0), 1.0)
            color = second_color * (1 - fade) + color * fade

    result = np.clip(color * 255.0 + 0.5, 0, 255).astype(np.uint8)
    return Image.fromarray(result)
