"""Feature, stage and cascade evaluation for candidate windows.

Each layer returns a definitive answer and the cascade stops at the first
rejecting stage, so most negative windows cost one or two stages.

``evaluate_cascade_batch`` evaluates every origin of one window size at once
and only carries the windows still alive into the next stage. Its arithmetic
mirrors the scalar functions operation for operation, so both paths give the
same decisions.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np

from cascadex.ml.integral import rect_sum, rect_sum_batch

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from cascadex.ml.cascade import Cascade, HaarFeature, Stage
    from cascadex.ml.integral import IntegralImage

MIN_VARIANCE: float = 1.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upward (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def window_statistics(integral: IntegralImage, x: int, y: int, width: int, height: int) -> tuple[float, float]:
    """Return ``(inv_area, std_dev)`` for a window, with variance clamped to ``MIN_VARIANCE``."""
    area = width * height
    mean = rect_sum(integral.padded, x, y, width, height) / area
    variance = rect_sum(integral.padded_sq, x, y, width, height) / area - mean * mean
    return 1.0 / area, math.sqrt(max(variance, MIN_VARIANCE))


def evaluate_feature(
    feature: HaarFeature,
    table: NDArray[np.float64],
    x: int,
    y: int,
    scale: float,
    inv_area: float,
    std_dev: float,
) -> float:
    """Return the lighting-normalised response of ``feature`` at window (x, y)."""
    value = 0.0
    for rect in feature.rects:
        s = rect_sum(
            table,
            x + round_half_up(rect.x * scale),
            y + round_half_up(rect.y * scale),
            round_half_up(rect.width * scale),
            round_half_up(rect.height * scale),
        )
        value += rect.weight * s
    return value * inv_area / std_dev


def evaluate_stage(
    stage: Stage,
    integral: IntegralImage,
    x: int,
    y: int,
    scale: float,
    inv_area: float,
    std_dev: float,
) -> bool:
    total = 0.0
    for wc in stage.classifiers:
        value = evaluate_feature(wc.feature, integral.padded, x, y, scale, inv_area, std_dev)
        total += wc.alpha if value < wc.threshold else wc.beta
    return total >= stage.threshold


def evaluate_cascade(
    cascade: Cascade,
    integral: IntegralImage,
    x: int,
    y: int,
    width: int,
    height: int,
    scale: float,
) -> bool:
    """Return True if the window at (x, y) passes every stage of ``cascade``."""
    inv_area, std_dev = window_statistics(integral, x, y, width, height)
    return all(evaluate_stage(stage, integral, x, y, scale, inv_area, std_dev) for stage in cascade.stages)


# ---------------------------------------------------------------------------
# Vectorised path
# ---------------------------------------------------------------------------


def _stage_passes_batch(
    stage: Stage,
    integral: IntegralImage,
    xs: NDArray[np.int64],
    ys: NDArray[np.int64],
    scale: float,
    inv_area: float,
    std_devs: NDArray[np.float64],
) -> NDArray[np.bool_]:
    total = np.zeros(xs.shape, dtype=np.float64)
    for wc in stage.classifiers:
        value = np.zeros(xs.shape, dtype=np.float64)
        for rect in wc.feature.rects:
            s = rect_sum_batch(
                integral.padded,
                xs + round_half_up(rect.x * scale),
                ys + round_half_up(rect.y * scale),
                round_half_up(rect.width * scale),
                round_half_up(rect.height * scale),
            )
            value = value + rect.weight * s
        value = value * inv_area / std_devs
        total = total + np.where(value < wc.threshold, wc.alpha, wc.beta)
    return total >= stage.threshold


def evaluate_cascade_batch(
    cascade: Cascade,
    integral: IntegralImage,
    xs: NDArray[np.int64],
    ys: NDArray[np.int64],
    width: int,
    height: int,
    scale: float,
) -> NDArray[np.bool_]:
    """Evaluate many same-sized windows; returns a pass mask aligned with ``xs``/``ys``."""
    area = width * height
    mean = rect_sum_batch(integral.padded, xs, ys, width, height) / area
    variance = rect_sum_batch(integral.padded_sq, xs, ys, width, height) / area - mean * mean
    std_devs = np.sqrt(np.maximum(variance, MIN_VARIANCE))
    inv_area = 1.0 / area

    passed = np.zeros(xs.shape, dtype=bool)
    alive = np.arange(xs.shape[0])
    for stage in cascade.stages:
        if alive.size == 0:
            return passed
        keep = _stage_passes_batch(stage, integral, xs[alive], ys[alive], scale, inv_area, std_devs[alive])
        alive = alive[keep]

    passed[alive] = True
    return passed
