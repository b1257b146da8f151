"""Image encoding helpers built on Pillow.

Converts rendered ARGB pixel buffers to RGBA arrays and encodes them as
JPEG or PNG, with aspect-preserving resize for thumbnails.
"""

from io import BytesIO

import numpy as np
from PIL import Image

from pacsview.services.dicom.parser import PixelBuffer


def argb_to_rgba(buffer: PixelBuffer) -> np.ndarray:
    """Unpack a 0xAARRGGBB buffer into an (height, width, 4) RGBA array."""
    packed = buffer.pixels.reshape(buffer.height, buffer.width)
    rgba = np.empty((buffer.height, buffer.width, 4), dtype=np.uint8)
    rgba[:, :, 0] = (packed >> 16) & 0xFF
    rgba[:, :, 1] = (packed >> 8) & 0xFF
    rgba[:, :, 2] = packed & 0xFF
    rgba[:, :, 3] = (packed >> 24) & 0xFF
    return rgba


def encode_jpeg(rgba: np.ndarray, quality: int = 85) -> bytes:
    """Encode an RGBA array as JPEG; alpha is dropped."""
    quality = min(max(quality, 0), 100)
    img = Image.fromarray(rgba).convert("RGB")
    buffer = BytesIO()
    img.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def encode_png(rgba: np.ndarray) -> bytes:
    """Encode an RGBA array as lossless PNG."""
    img = Image.fromarray(rgba)
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def resize_to_fit(rgba: np.ndarray, max_side: int) -> np.ndarray:
    """Resize so the longest side equals ``max_side``, keeping the aspect ratio."""
    height, width = rgba.shape[:2]
    scale = max_side / max(width, height)
    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    if new_size == (width, height):
        return rgba

    img = Image.fromarray(rgba).resize(new_size, Image.Resampling.LANCZOS)
    return np.asarray(img)
