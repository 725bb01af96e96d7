"""Face detection with a Haar cascade.

Builds the integral image for a frame, scans all scales and collapses the raw
hits with non-maximum suppression.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from cascadex.ml.integral import compute_integral_image
from cascadex.ml.nms import DEFAULT_OVERLAP_THRESHOLD, non_maximum_suppression
from cascadex.ml.scanner import ScanOptions, scan_windows

if TYPE_CHECKING:
    from cascadex.ml.cascade import Cascade
    from cascadex.ml.geometry import Detection
    from cascadex.ml.preprocessing import GrayscaleImage

logger = logging.getLogger(__name__)


class FaceDetector(Protocol):
    """Protocol for face detectors."""

    def detect(self, image: GrayscaleImage) -> list[Detection]:
        """Detect faces in a grayscale image.

        Args:
            image: Grayscale frame.

        Returns:
            Detections in source-image pixel coordinates, after suppression.
        """
        ...


class CascadeFaceDetector:
    """Viola-Jones detector over a shared, read-only cascade.

    A ``None`` cascade is the "no detector configured" state: every call
    returns no detections.
    """

    def __init__(
        self,
        cascade: Cascade | None,
        options: ScanOptions | None = None,
        overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
        *,
        vectorized: bool = True,
    ) -> None:
        self.cascade = cascade
        self.options = options or ScanOptions()
        self.overlap_threshold = overlap_threshold
        self.vectorized = vectorized

    def detect_raw(self, image: GrayscaleImage) -> list[Detection]:
        """All windows accepted by the cascade, before suppression."""
        if self.cascade is None or not self.cascade.is_configured:
            return []
        integral = compute_integral_image(image.pixels)
        return scan_windows(integral, self.cascade, self.options, vectorized=self.vectorized)

    def detect(self, image: GrayscaleImage) -> list[Detection]:
        raw = self.detect_raw(image)
        kept = non_maximum_suppression(raw, self.overlap_threshold)
        logger.debug("Detected %d raw windows, %d after suppression", len(raw), len(kept))
        return kept
