"""Greedy non-maximum suppression over cascade detections."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cascadex.ml.geometry import intersection_over_union

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cascadex.ml.geometry import Detection

DEFAULT_OVERLAP_THRESHOLD: float = 0.3


def non_maximum_suppression(
    detections: Iterable[Detection],
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> list[Detection]:
    """Collapse overlapping detections, preferring larger windows.

    Detections are visited largest area first (stable, so equal areas keep
    their enumeration order). Each kept box suppresses every later box whose
    IoU with it exceeds ``overlap_threshold``.
    """
    ordered = sorted(detections, key=lambda d: d.area, reverse=True)
    suppressed = [False] * len(ordered)
    keep: list[Detection] = []

    for i, candidate in enumerate(ordered):
        if suppressed[i]:
            continue
        keep.append(candidate)
        for j in range(i + 1, len(ordered)):
            if not suppressed[j] and intersection_over_union(candidate, ordered[j]) > overlap_threshold:
                suppressed[j] = True

    return keep
