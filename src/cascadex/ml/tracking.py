"""Frame-to-frame face selection.

``select_face`` is pure: the previously selected box goes in, the new one
comes out. ``FaceTracker`` is the frame loop that owns that state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cascadex.ml.geometry import intersection_over_union, largest

if TYPE_CHECKING:
    from cascadex.config import Settings
    from cascadex.ml.face_detector import FaceDetector
    from cascadex.ml.geometry import Detection
    from cascadex.ml.preprocessing import GrayscaleImage

logger = logging.getLogger(__name__)

DEFAULT_MIN_IOU: float = 0.1
DEFAULT_DETECT_EVERY: int = 5


def select_face(
    detections: list[Detection],
    previous: Detection | None,
    min_iou: float = DEFAULT_MIN_IOU,
) -> Detection | None:
    """Pick the face to follow in this frame.

    Without a previous box the largest detection is chosen. Otherwise the
    detection overlapping the previous box most is chosen, unless that
    overlap is below ``min_iou``, in which case the largest detection wins.
    """
    if not detections:
        return None
    if previous is None:
        return largest(detections)

    best: Detection | None = None
    best_iou = 0.0
    for detection in detections:
        score = intersection_over_union(previous, detection)
        if score > best_iou:
            best_iou = score
            best = detection

    if best is None or best_iou < min_iou:
        return largest(detections)
    return best


class FaceTracker:
    """Runs detection on every n-th frame and holds the selected face in between.

    Not thread-safe: one tracker per video stream.
    """

    def __init__(
        self,
        detector: FaceDetector,
        detect_every: int = DEFAULT_DETECT_EVERY,
        min_iou: float = DEFAULT_MIN_IOU,
    ) -> None:
        if detect_every < 1:
            raise ValueError(f"detect_every must be at least 1, got {detect_every}")
        self._detector = detector
        self._detect_every = detect_every
        self._min_iou = min_iou
        self.frame_count = 0
        self.current: Detection | None = None

    @classmethod
    def from_settings(cls, detector: FaceDetector, settings: Settings) -> FaceTracker:
        return cls(detector, detect_every=settings.detect_every_n_frames, min_iou=settings.track_min_iou)

    def process(self, image: GrayscaleImage) -> Detection | None:
        """Advance one frame and return the face to show for it."""
        self.frame_count += 1
        if self.frame_count % self._detect_every == 0:
            detections = self._detector.detect(image)
            self.current = select_face(detections, self.current, self._min_iou)
            logger.debug("frame=%d detections=%d selected=%s", self.frame_count, len(detections), self.current)
        return self.current

    def reset(self) -> None:
        self.frame_count = 0
        self.current = None
