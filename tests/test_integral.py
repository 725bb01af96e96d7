"""Tests for integral image construction and rectangle sums."""

from __future__ import annotations

import numpy as np
import pytest

from cascadex.ml.integral import compute_integral_image, rect_sum, rect_sum_batch


def _random_image(height: int = 12, width: int = 17, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width)).astype(np.float64)


class TestComputeIntegralImage:
    def test_tables_match_image_dimensions(self) -> None:
        integral = compute_integral_image(_random_image())
        assert integral.ii.shape == (12, 17)
        assert integral.ii2.shape == (12, 17)
        assert (integral.width, integral.height) == (17, 12)

    def test_each_entry_is_sum_up_to_and_including_pixel(self) -> None:
        image = _random_image()
        integral = compute_integral_image(image)
        for y, x in [(0, 0), (0, 16), (11, 0), (5, 9), (11, 16)]:
            assert integral.ii[y, x] == image[: y + 1, : x + 1].sum()
            assert integral.ii2[y, x] == (image[: y + 1, : x + 1] ** 2).sum()

    def test_row_recurrence(self) -> None:
        image = _random_image()
        ii = compute_integral_image(image).ii
        for y in range(1, image.shape[0]):
            np.testing.assert_array_equal(ii[y], ii[y - 1] + np.cumsum(image[y]))

    def test_empty_image_yields_empty_tables(self) -> None:
        integral = compute_integral_image(np.zeros((0, 0)))
        assert integral.ii.shape == (0, 0)
        assert rect_sum(integral.padded, 0, 0, 1, 1) == 0.0

    def test_zero_width_image(self) -> None:
        integral = compute_integral_image(np.zeros((5, 0)))
        assert integral.ii.shape == (5, 0)
        assert integral.width == 0

    def test_rejects_colour_array(self) -> None:
        with pytest.raises(ValueError, match="2-D"):
            compute_integral_image(np.zeros((4, 4, 3)))


class TestRectSum:
    def test_full_image_equals_pixel_total(self) -> None:
        image = _random_image()
        integral = compute_integral_image(image)
        assert rect_sum(integral.padded, 0, 0, 17, 12) == image.sum()
        assert rect_sum(integral.padded_sq, 0, 0, 17, 12) == (image**2).sum()

    def test_single_pixel(self) -> None:
        image = _random_image()
        integral = compute_integral_image(image)
        for y, x in [(0, 0), (3, 4), (11, 16)]:
            assert rect_sum(integral.padded, x, y, 1, 1) == image[y, x]

    def test_tiling_is_additive(self) -> None:
        image = _random_image()
        table = compute_integral_image(image).padded
        whole = rect_sum(table, 2, 1, 12, 9)
        pieces = (
            rect_sum(table, 2, 1, 5, 4)
            + rect_sum(table, 7, 1, 7, 4)
            + rect_sum(table, 2, 5, 5, 5)
            + rect_sum(table, 7, 5, 7, 5)
        )
        assert pieces == whole

    @pytest.mark.parametrize(
        ("x", "y", "w", "h"),
        [(0, 0, 0, 5), (0, 0, 5, 0), (2, 2, -3, 4), (17, 0, 3, 3), (0, 12, 3, 3), (-10, -10, 5, 5)],
    )
    def test_degenerate_or_outside_is_zero(self, x: int, y: int, w: int, h: int) -> None:
        table = compute_integral_image(_random_image()).padded
        assert rect_sum(table, x, y, w, h) == 0.0

    def test_partially_outside_is_clamped(self) -> None:
        image = _random_image()
        table = compute_integral_image(image).padded
        assert rect_sum(table, -3, -2, 6, 5) == image[0:3, 0:3].sum()
        assert rect_sum(table, 14, 10, 10, 10) == image[10:12, 14:17].sum()


class TestRectSumBatch:
    def test_matches_scalar_lookup(self) -> None:
        table = compute_integral_image(_random_image()).padded
        xs = np.array([-4, 0, 3, 10, 15, 20], dtype=np.int64)
        ys = np.array([0, -1, 4, 7, 11, 2], dtype=np.int64)

        batch = rect_sum_batch(table, xs, ys, 5, 3)

        expected = [rect_sum(table, int(x), int(y), 5, 3) for x, y in zip(xs, ys, strict=True)]
        np.testing.assert_array_equal(batch, expected)

    def test_non_positive_size_is_zero(self) -> None:
        table = compute_integral_image(_random_image()).padded
        xs = np.array([0, 1], dtype=np.int64)
        np.testing.assert_array_equal(rect_sum_batch(table, xs, xs, 0, 3), [0.0, 0.0])
