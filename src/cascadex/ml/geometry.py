"""Detection boxes and overlap measures."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Detection:
    """A window that passed the full cascade, in source-image pixels."""

    x: int
    y: int
    width: int
    height: int
    scale: float = 1.0

    @property
    def area(self) -> int:
        return self.width * self.height


def intersection_over_union(a: Detection, b: Detection) -> float:
    """IoU of two boxes; 0.0 when they do not overlap."""
    left = max(a.x, b.x)
    top = max(a.y, b.y)
    right = min(a.x + a.width, b.x + b.width)
    bottom = min(a.y + a.height, b.y + b.height)

    intersection = max(0, right - left) * max(0, bottom - top)
    if intersection <= 0:
        return 0.0
    return intersection / (a.area + b.area - intersection)


def largest(detections: list[Detection]) -> Detection:
    """Largest-area detection; the earliest one wins ties."""
    return max(detections, key=lambda d: d.area)
