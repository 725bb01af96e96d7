"""Tests for the multi-scale window scanner."""

from __future__ import annotations

from unittest.mock import patch

import numpy as np
import pytest

from cascadex.ml.cascade import Cascade, HaarFeature, Rect, Stage, WeakClassifier
from cascadex.ml.integral import IntegralImage, compute_integral_image
from cascadex.ml.scanner import ScanConfigError, ScanOptions, iter_scales, scan_windows, window_step

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _accept_all(base: int = 10) -> Cascade:
    """A cascade whose single empty stage accepts every window."""
    return Cascade(base_width=base, base_height=base, stages=(Stage(classifiers=(), threshold=0.0),))


def _reject_all(base: int = 10) -> Cascade:
    zero = HaarFeature(rects=(Rect(0, 0, base, base, 0.0),))
    stage = Stage(classifiers=(WeakClassifier(zero, threshold=0.5, alpha=0.0, beta=1.0),), threshold=1.0)
    return Cascade(base_width=base, base_height=base, stages=(stage,))


def _edge_cascade() -> Cascade:
    vertical = HaarFeature(rects=(Rect(0, 0, 5, 10, 1.0), Rect(5, 0, 5, 10, -1.0)))
    horizontal = HaarFeature(rects=(Rect(0, 0, 10, 5, 1.0), Rect(0, 5, 10, 5, -1.0)))
    return Cascade(
        base_width=10,
        base_height=10,
        stages=(
            Stage(classifiers=(WeakClassifier(vertical, 0.0, 0.0, 1.0),), threshold=1.0),
            Stage(classifiers=(WeakClassifier(horizontal, 0.0, 1.0, 0.0),), threshold=1.0),
        ),
    )


def _blank_integral(width: int = 30, height: int = 20) -> IntegralImage:
    return compute_integral_image(np.zeros((height, width)))


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class TestScanOptions:
    @pytest.mark.parametrize("scale_factor", [1.0, 0.9, 0.0, -1.2])
    def test_scale_factor_must_exceed_one(self, scale_factor: float) -> None:
        with pytest.raises(ScanConfigError, match="scale_factor"):
            ScanOptions(scale_factor=scale_factor)

    def test_min_larger_than_max_rejected(self) -> None:
        with pytest.raises(ScanConfigError, match="larger than max_size"):
            ScanOptions(min_size=50, max_size=40)

    def test_non_positive_sizes_rejected(self) -> None:
        with pytest.raises(ScanConfigError):
            ScanOptions(min_size=0)
        with pytest.raises(ScanConfigError):
            ScanOptions(max_size=0)

    def test_scan_config_error_is_value_error(self) -> None:
        assert issubclass(ScanConfigError, ValueError)

    def test_defaults_resolve_from_cascade_and_image(self) -> None:
        assert ScanOptions().resolve(640, 480, _accept_all(24)) == (24, 480)
        assert ScanOptions(min_size=30, max_size=200).resolve(640, 480, _accept_all(24)) == (30, 200)

    def test_max_size_capped_at_image(self) -> None:
        assert ScanOptions(max_size=1000).resolve(640, 480, _accept_all(24)) == (24, 480)
        assert ScanOptions(min_size=30, max_size=1000).resolve(50, 40, _accept_all(24)) == (30, 40)

    def test_explicit_min_size_above_image_rejected(self) -> None:
        with pytest.raises(ScanConfigError, match="50x40"):
            ScanOptions(min_size=45).resolve(50, 40, _accept_all(24))


class TestWindowGeometry:
    @pytest.mark.parametrize(("width", "step"), [(10, 2), (24, 2), (30, 3), (45, 4), (100, 10)])
    def test_step(self, width: int, step: int) -> None:
        assert window_step(width) == step

    def test_scales_stop_at_max_size(self) -> None:
        scales = list(iter_scales(_accept_all(10), ScanOptions(scale_factor=1.5), 10, 30))
        assert [(w, h) for _, w, h in scales] == [(10, 10), (15, 15), (23, 23)]

    def test_scales_below_min_size_are_skipped_not_fatal(self) -> None:
        scales = list(iter_scales(_accept_all(10), ScanOptions(scale_factor=1.5), 20, 40))
        assert [w for _, w, _ in scales] == [23, 34]


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


class TestScanWindows:
    @pytest.mark.parametrize("vectorized", [True, False])
    def test_enumerates_positions_and_scales(self, vectorized: bool) -> None:
        options = ScanOptions(scale_factor=2.0, min_size=10, max_size=20)

        detections = scan_windows(_blank_integral(), _accept_all(), options, vectorized=vectorized)

        small = [d for d in detections if d.width == 10]
        large = [d for d in detections if d.width == 20]
        assert len(small) == 11 * 6
        assert len(large) == 6
        assert len(detections) == 72
        assert sorted({d.x for d in small}) == list(range(0, 21, 2))
        assert sorted({d.y for d in small}) == list(range(0, 11, 2))
        assert all(d.scale == 2.0 and d.y == 0 for d in large)

    def test_min_size_skips_small_scales(self) -> None:
        options = ScanOptions(scale_factor=2.0, min_size=15, max_size=20)
        detections = scan_windows(_blank_integral(), _accept_all(), options)
        assert len(detections) == 6
        assert {d.width for d in detections} == {20}

    @pytest.mark.parametrize("vectorized", [True, False])
    def test_reject_all_cascade_finds_nothing(self, vectorized: bool) -> None:
        rng = np.random.default_rng(11)
        integral = compute_integral_image(rng.integers(0, 256, size=(60, 80)).astype(np.float64))
        assert scan_windows(integral, _reject_all(), ScanOptions(scale_factor=1.1), vectorized=vectorized) == []

    def test_unconfigured_cascade_returns_empty(self) -> None:
        assert scan_windows(_blank_integral(), None) == []
        assert scan_windows(_blank_integral(), Cascade(base_width=0, base_height=0, stages=())) == []

    def test_image_smaller_than_base_window(self) -> None:
        assert scan_windows(_blank_integral(8, 8), _accept_all(10)) == []

    def test_invalid_options_rejected_before_evaluation(self) -> None:
        with patch("cascadex.ml.evaluator.evaluate_cascade") as mock_eval, pytest.raises(ScanConfigError):
            scan_windows(_blank_integral(), _accept_all(), ScanOptions(min_size=25, max_size=15), vectorized=False)
        mock_eval.assert_not_called()

    @pytest.mark.parametrize("vectorized", [True, False])
    def test_min_size_above_default_max_rejected_before_evaluation(self, vectorized: bool) -> None:
        integral = compute_integral_image(np.zeros((50, 50)))
        with (
            patch("cascadex.ml.evaluator.evaluate_cascade") as mock_eval,
            patch("cascadex.ml.evaluator.evaluate_cascade_batch") as mock_batch,
            pytest.raises(ScanConfigError, match="min_size 100"),
        ):
            scan_windows(integral, _accept_all(), ScanOptions(min_size=100), vectorized=vectorized)
        mock_eval.assert_not_called()
        mock_batch.assert_not_called()

    @pytest.mark.parametrize("vectorized", [True, False])
    def test_max_size_above_image_stops_at_image(self, vectorized: bool) -> None:
        options = ScanOptions(scale_factor=2.0, min_size=10, max_size=500)
        detections = scan_windows(_blank_integral(), _accept_all(), options, vectorized=vectorized)
        assert len(detections) == 72
        assert max(d.height for d in detections) == 20

    def test_vectorized_matches_scalar(self) -> None:
        rng = np.random.default_rng(5)
        integral = compute_integral_image(rng.integers(0, 256, size=(48, 64)).astype(np.float64))
        options = ScanOptions(scale_factor=1.25)

        fast = scan_windows(integral, _edge_cascade(), options, vectorized=True)
        slow = scan_windows(integral, _edge_cascade(), options, vectorized=False)

        assert fast
        assert fast == slow
