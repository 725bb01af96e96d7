"""Multi-scale sliding-window search."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from cascadex.ml import evaluator
from cascadex.ml.geometry import Detection

if TYPE_CHECKING:
    from collections.abc import Iterator

    from cascadex.ml.cascade import Cascade
    from cascadex.ml.integral import IntegralImage

logger = logging.getLogger(__name__)

MIN_STEP: int = 2
STEP_FRACTION: float = 0.1


class ScanConfigError(ValueError):
    """Raised for scan options that cannot produce a terminating scan."""


@dataclass(frozen=True)
class ScanOptions:
    """Scan configuration.

    ``min_size`` defaults to the cascade's base width and ``max_size`` to the
    smaller image dimension, which also caps an explicit ``max_size``.
    Combinations that are invalid on their own raise ``ScanConfigError`` on
    construction; an explicit ``min_size`` above the image's usable maximum
    raises when the scan starts.
    """

    scale_factor: float = 1.2
    min_size: int | None = None
    max_size: int | None = None

    def __post_init__(self) -> None:
        if not self.scale_factor > 1.0:
            raise ScanConfigError(f"scale_factor must be greater than 1, got {self.scale_factor}")
        if self.min_size is not None and self.min_size < 1:
            raise ScanConfigError(f"min_size must be at least 1, got {self.min_size}")
        if self.max_size is not None and self.max_size < 1:
            raise ScanConfigError(f"max_size must be at least 1, got {self.max_size}")
        if self.min_size is not None and self.max_size is not None and self.min_size > self.max_size:
            raise ScanConfigError(f"min_size {self.min_size} is larger than max_size {self.max_size}")

    def resolve(self, width: int, height: int, cascade: Cascade) -> tuple[int, int]:
        """Return the effective ``(min_size, max_size)`` for an image and cascade.

        Raises:
            ScanConfigError: If an explicit ``min_size`` exceeds the resolved ``max_size``.
        """
        limit = min(width, height)
        max_size = limit if self.max_size is None else min(self.max_size, limit)
        if self.min_size is None:
            return cascade.base_width, max_size
        if self.min_size > max_size:
            raise ScanConfigError(
                f"min_size {self.min_size} is larger than max_size {max_size} for a {width}x{height} image"
            )
        return self.min_size, max_size


def window_step(window_width: int) -> int:
    return max(MIN_STEP, math.floor(STEP_FRACTION * window_width))


def iter_scales(cascade: Cascade, options: ScanOptions, min_size: int, max_size: int) -> Iterator[tuple[float, int, int]]:
    """Yield ``(scale, window_width, window_height)`` for every scale to scan."""
    scale = 1.0
    while True:
        win_w = evaluator.round_half_up(cascade.base_width * scale)
        win_h = evaluator.round_half_up(cascade.base_height * scale)
        if win_w > max_size or win_h > max_size:
            return
        if win_w >= min_size and win_h >= min_size:
            yield scale, win_w, win_h
        scale *= options.scale_factor


def scan_windows(
    integral: IntegralImage,
    cascade: Cascade | None,
    options: ScanOptions | None = None,
    *,
    vectorized: bool = True,
) -> list[Detection]:
    """Run ``cascade`` over every scale and position; returns raw detections before NMS."""
    if cascade is None or not cascade.is_configured:
        return []

    options = options or ScanOptions()
    width, height = integral.width, integral.height
    min_size, max_size = options.resolve(width, height, cascade)

    detections: list[Detection] = []
    for scale, win_w, win_h in iter_scales(cascade, options, min_size, max_size):
        step = window_step(win_w)
        if vectorized:
            found = _scan_scale_batch(integral, cascade, scale, win_w, win_h, step)
        else:
            found = _scan_scale(integral, cascade, scale, win_w, win_h, step)
        logger.debug("scale=%.3f window=%dx%d step=%d hits=%d", scale, win_w, win_h, step, len(found))
        detections.extend(found)
    return detections


def _scan_scale(
    integral: IntegralImage, cascade: Cascade, scale: float, win_w: int, win_h: int, step: int
) -> list[Detection]:
    found: list[Detection] = []
    for y in range(0, integral.height - win_h + 1, step):
        for x in range(0, integral.width - win_w + 1, step):
            if evaluator.evaluate_cascade(cascade, integral, x, y, win_w, win_h, scale):
                found.append(Detection(x=x, y=y, width=win_w, height=win_h, scale=scale))
    return found


def _scan_scale_batch(
    integral: IntegralImage, cascade: Cascade, scale: float, win_w: int, win_h: int, step: int
) -> list[Detection]:
    grid_y, grid_x = np.meshgrid(
        np.arange(0, integral.height - win_h + 1, step, dtype=np.int64),
        np.arange(0, integral.width - win_w + 1, step, dtype=np.int64),
        indexing="ij",
    )
    xs = grid_x.ravel()
    ys = grid_y.ravel()
    passed = evaluator.evaluate_cascade_batch(cascade, integral, xs, ys, win_w, win_h, scale)
    return [
        Detection(x=int(x), y=int(y), width=win_w, height=win_h, scale=scale)
        for x, y in zip(xs[passed], ys[passed], strict=True)
    ]
