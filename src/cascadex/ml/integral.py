"""Integral images (summed-area tables) and constant-time rectangle sums.

Both tables are stored with a leading zero row and column, so a corner that
falls above or left of the image reads as 0 without branching.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


@dataclass(frozen=True)
class IntegralImage:
    """Intensity and squared-intensity integral tables for one frame."""

    padded: NDArray[np.float64]
    padded_sq: NDArray[np.float64]

    @property
    def width(self) -> int:
        return int(self.padded.shape[1]) - 1

    @property
    def height(self) -> int:
        return int(self.padded.shape[0]) - 1

    @property
    def ii(self) -> NDArray[np.float64]:
        """Intensity table with the source image's dimensions."""
        return self.padded[1:, 1:]

    @property
    def ii2(self) -> NDArray[np.float64]:
        """Squared-intensity table with the source image's dimensions."""
        return self.padded_sq[1:, 1:]


def compute_integral_image(pixels: NDArray[np.floating] | NDArray[np.integer]) -> IntegralImage:
    """Build both integral tables for a 2-D grayscale array.

    Each row is accumulated as a running sum, then added to the row above,
    which is what the two successive ``cumsum`` calls compute.
    """
    values = np.asarray(pixels, dtype=np.float64)
    if values.ndim != 2:
        raise ValueError(f"Expected a 2-D grayscale array, got shape {values.shape}")

    height, width = values.shape
    padded = np.zeros((height + 1, width + 1), dtype=np.float64)
    padded_sq = np.zeros((height + 1, width + 1), dtype=np.float64)
    if height and width:
        padded[1:, 1:] = np.cumsum(np.cumsum(values, axis=1), axis=0)
        padded_sq[1:, 1:] = np.cumsum(np.cumsum(values * values, axis=1), axis=0)
    return IntegralImage(padded=padded, padded_sq=padded_sq)


def rect_sum(table: NDArray[np.float64], x: int, y: int, width: int, height: int) -> float:
    """Sum of the rectangle at (x, y) of the given size, using a padded table.

    Rectangles are clamped to the image; empty or fully outside ones sum to 0.
    """
    if width <= 0 or height <= 0:
        return 0.0

    max_y = table.shape[0] - 1
    max_x = table.shape[1] - 1
    x0 = min(max(x, 0), max_x)
    y0 = min(max(y, 0), max_y)
    x1 = min(max(x + width, 0), max_x)
    y1 = min(max(y + height, 0), max_y)
    if x1 <= x0 or y1 <= y0:
        return 0.0

    d = table[y1, x1]
    b = table[y0, x1]
    c = table[y1, x0]
    a = table[y0, x0]
    return float(d - b - c + a)


def rect_sum_batch(
    table: NDArray[np.float64],
    xs: NDArray[np.int64],
    ys: NDArray[np.int64],
    width: int,
    height: int,
) -> NDArray[np.float64]:
    """Vectorised ``rect_sum`` for many origins sharing one rectangle size."""
    if width <= 0 or height <= 0:
        return np.zeros(xs.shape, dtype=np.float64)

    max_y = table.shape[0] - 1
    max_x = table.shape[1] - 1
    x0 = np.clip(xs, 0, max_x)
    y0 = np.clip(ys, 0, max_y)
    x1 = np.clip(xs + width, 0, max_x)
    y1 = np.clip(ys + height, 0, max_y)

    sums = table[y1, x1] - table[y0, x1] - table[y1, x0] + table[y0, x0]
    return np.where((x1 > x0) & (y1 > y0), sums, 0.0)
