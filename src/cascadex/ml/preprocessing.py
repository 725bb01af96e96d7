"""Image preprocessing: decoding uploads and grayscale conversion.

Decoding honours EXIF orientation and rejects images above a pixel budget
before the pixel data is loaded.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

# ITU-R BT.601 luma weights
LUMA_WEIGHTS: tuple[float, float, float] = (0.299, 0.587, 0.114)


@dataclass(frozen=True)
class GrayscaleImage:
    """Row-major intensity buffer, shape (height, width)."""

    pixels: NDArray[np.float64]

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Decode raw image bytes into an HxWx3 RGB uint8 array.

    Raises:
        ValueError: If the image cannot be decoded or exceeds ``max_pixels``.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if max_pixels is not None and width * height > max_pixels:
                raise ValueError(f"Image of {width}x{height} pixels exceeds the limit of {max_pixels}")
            oriented = ImageOps.exif_transpose(img)
            rgb = oriented.convert("RGB")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise ValueError(f"Could not decode image: {exc}") from exc
    return np.asarray(rgb, dtype=np.uint8)


def to_grayscale(rgb: NDArray[np.uint8] | NDArray[np.floating]) -> GrayscaleImage:
    """Convert an HxWx3 (or HxWx4) array to a float luma image."""
    if rgb.ndim == 2:
        return GrayscaleImage(pixels=np.asarray(rgb, dtype=np.float64))
    if rgb.ndim != 3 or rgb.shape[2] < 3:
        raise ValueError(f"Expected an HxWx3 colour array, got shape {rgb.shape}")

    channels = np.asarray(rgb[..., :3], dtype=np.float64)
    r, g, b = LUMA_WEIGHTS
    gray = r * channels[..., 0] + g * channels[..., 1] + b * channels[..., 2]
    return GrayscaleImage(pixels=gray)


def load_grayscale(image_bytes: bytes, max_pixels: int | None = None) -> GrayscaleImage:
    return to_grayscale(decode_image(image_bytes, max_pixels))
