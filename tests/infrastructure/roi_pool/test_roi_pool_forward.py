import unittest

import numpy as np

from roipool.domain._box import Box
from roipool.domain._errors import InvalidGeometryError
from roipool.infrastructure.ops.roi_pool_cpu import (
    EMPTY_BIN,
    compute_bin_windows,
    mask_to_rows_cols,
    roi_pool_forward_cpu,
)


def _quadrant_map() -> np.ndarray:
    return np.arange(1, 17, dtype=np.float32).reshape(4, 4, 1)


def _random_boxes(rng: np.random.Generator, count: int, image_hw) -> np.ndarray:
    H, W = image_hw
    x0 = rng.uniform(0, W - 1, size=count)
    y0 = rng.uniform(0, H - 1, size=count)
    x1 = x0 + rng.uniform(1, W, size=count)
    y1 = y0 + rng.uniform(1, H, size=count)
    return np.stack([x0, y0, np.minimum(x1, W), np.minimum(y1, H)], axis=1)


class TestRoiPoolForwardCpu(unittest.TestCase):
    def test_whole_image_box_pools_quadrants(self):
        y, mask = roi_pool_forward_cpu(_quadrant_map(), (4, 4), [Box(0, 0, 4, 4)], 2)

        self.assertEqual(y.shape, (2, 2, 1, 1))
        self.assertEqual(mask.shape, y.shape)
        self.assertEqual(y.dtype, np.float32)
        self.assertEqual(mask.dtype, np.int64)
        np.testing.assert_array_equal(y[:, :, 0, 0], [[6, 8], [14, 16]])

        rows, cols = mask_to_rows_cols(mask[:, :, 0, 0], width=4)
        np.testing.assert_array_equal(rows, [[1, 1], [3, 3]])
        np.testing.assert_array_equal(cols, [[1, 3], [1, 3]])

    def test_matches_brute_force_scan(self):
        rng = np.random.default_rng(0)
        x = rng.standard_normal((6, 7, 3)).astype(np.float32)
        image_size = (12, 14)
        boxes = _random_boxes(rng, 8, image_size)

        y, _ = roi_pool_forward_cpu(x, image_size, boxes, (3, 2))
        self.assertEqual(y.shape, (3, 2, 3, 8))

        for r, box in enumerate(boxes):
            h_start, h_end, w_start, w_end = compute_bin_windows(
                box, image_size, x.shape[:2], (3, 2)
            )
            for i in range(3):
                for j in range(2):
                    window = x[h_start[i] : h_end[i], w_start[j] : w_end[j], :]
                    if window.size == 0:
                        np.testing.assert_array_equal(y[i, j, :, r], 0)
                        continue
                    np.testing.assert_array_equal(
                        y[i, j, :, r], window.reshape(-1, 3).max(axis=0)
                    )

    def test_mask_points_at_pooled_values(self):
        rng = np.random.default_rng(1)
        x = rng.standard_normal((9, 5, 4)).astype(np.float32)
        boxes = _random_boxes(rng, 6, (18, 10))
        # one box partially outside, one fully outside
        boxes = np.vstack([boxes, [[-4, -4, 6, 30]], [[40, 40, 50, 50]]])

        y, mask = roi_pool_forward_cpu(x, (18, 10), boxes, (2, 3))

        flat = x.reshape(-1, 4)
        channels = np.broadcast_to(np.arange(4).reshape(1, 1, 4, 1), mask.shape)
        selected = mask != EMPTY_BIN
        self.assertTrue(np.all(mask[selected] < 9 * 5))
        np.testing.assert_array_equal(flat[mask[selected], channels[selected]], y[selected])
        np.testing.assert_array_equal(y[~selected], 0)
        self.assertTrue(np.all(mask[..., -1] == EMPTY_BIN))

    def test_forward_is_deterministic(self):
        rng = np.random.default_rng(2)
        x = rng.integers(0, 3, size=(6, 6, 2)).astype(np.float32)
        boxes = _random_boxes(rng, 5, (6, 6))

        y1, m1 = roi_pool_forward_cpu(x, (6, 6), boxes, 2)
        y2, m2 = roi_pool_forward_cpu(x, (6, 6), boxes, 2)
        np.testing.assert_array_equal(y1, y2)
        np.testing.assert_array_equal(m1, m2)

    def test_ties_resolve_to_first_in_row_major_order(self):
        x = np.full((4, 4, 1), 5.0, dtype=np.float32)
        _, mask = roi_pool_forward_cpu(x, (4, 4), [Box(0, 0, 4, 4)], 1)
        self.assertEqual(mask[0, 0, 0, 0], 0)

        x = np.zeros((3, 3, 1), dtype=np.float32)
        x[1, 0, 0] = 9.0
        x[0, 2, 0] = 9.0
        _, mask = roi_pool_forward_cpu(x, (3, 3), [Box(0, 0, 3, 3)], 1)
        self.assertEqual(mask[0, 0, 0, 0], 0 * 3 + 2)

    def test_channels_share_window_but_select_independently(self):
        x = np.zeros((2, 2, 2), dtype=np.float32)
        x[0, 1, 0] = 3.0
        x[1, 0, 1] = 4.0
        y, mask = roi_pool_forward_cpu(x, (2, 2), [Box(0, 0, 2, 2)], 1)
        np.testing.assert_array_equal(y[0, 0, :, 0], [3.0, 4.0])
        np.testing.assert_array_equal(mask[0, 0, :, 0], [1, 2])

    def test_negative_features_are_not_clipped_to_zero(self):
        x = -np.arange(1, 5, dtype=np.float32).reshape(2, 2, 1)
        y, mask = roi_pool_forward_cpu(x, (2, 2), [Box(0, 0, 2, 2)], 1)
        self.assertEqual(y[0, 0, 0, 0], -1.0)
        self.assertEqual(mask[0, 0, 0, 0], 0)

    def test_box_is_scaled_into_feature_map(self):
        # image 16x16 at stride 4; box maps to cells [1, 3) x [1, 3)
        x = np.arange(16, dtype=np.float32).reshape(4, 4, 1)
        y, mask = roi_pool_forward_cpu(x, (16, 16), [[4, 4, 12, 12]], 1)
        self.assertEqual(y[0, 0, 0, 0], 10.0)
        self.assertEqual(mask[0, 0, 0, 0], 2 * 4 + 2)

    def test_zero_sized_boxes_give_zeros_and_sentinels(self):
        x = _quadrant_map()
        boxes = [Box(2, 0, 2, 4), Box(0, 1, 4, 1), Box(3, 3, 1, 1)]
        y, mask = roi_pool_forward_cpu(x, (4, 4), boxes, 2)
        np.testing.assert_array_equal(y, 0)
        self.assertTrue(np.all(mask == EMPTY_BIN))

    def test_box_collapsing_after_scaling_gives_sentinels(self):
        x = _quadrant_map()
        y, mask = roi_pool_forward_cpu(x, (64, 64), [[10, 10, 10, 50]], 3)
        np.testing.assert_array_equal(y, 0)
        self.assertTrue(np.all(mask == EMPTY_BIN))

    def test_non_finite_and_foreign_image_boxes_are_empty(self):
        x = _quadrant_map()
        boxes = [[0, np.nan, 0, 4, 4], [0, 0, 0, np.inf, 4], [1, 0, 0, 4, 4]]
        y, mask = roi_pool_forward_cpu(x, (4, 4), boxes, 2)
        np.testing.assert_array_equal(y, 0)
        self.assertTrue(np.all(mask == EMPTY_BIN))

    def test_box_smaller_than_grid_leaves_empty_bins(self):
        # one cell, three bins per axis: only the last bin on each axis holds it
        x = _quadrant_map()
        y, mask = roi_pool_forward_cpu(x, (4, 4), [Box(1, 1, 2, 2)], 3)

        expected_y = np.zeros((3, 3), dtype=np.float32)
        expected_y[2, 2] = 6.0
        expected_mask = np.full((3, 3), EMPTY_BIN)
        expected_mask[2, 2] = 5
        np.testing.assert_array_equal(y[..., 0, 0], expected_y)
        np.testing.assert_array_equal(mask[..., 0, 0], expected_mask)

    def test_uneven_box_selects_each_cell_at_most_once(self):
        # five columns over two bins: [0, 2) and [2, 5)
        x = np.array([[1, 7, 9, 2, 3]], dtype=np.float32).reshape(1, 5, 1)
        y, mask = roi_pool_forward_cpu(x, (1, 5), [[0, 0, 5, 1]], (1, 2))
        np.testing.assert_array_equal(y[0, :, 0, 0], [7.0, 9.0])
        np.testing.assert_array_equal(mask[0, :, 0, 0], [1, 2])

    def test_no_boxes(self):
        y, mask = roi_pool_forward_cpu(_quadrant_map(), (4, 4), np.zeros((0, 4)), 2)
        self.assertEqual(y.shape, (2, 2, 1, 0))
        self.assertEqual(mask.shape, (2, 2, 1, 0))

    def test_feature_map_is_not_modified(self):
        x = _quadrant_map()
        before = x.copy()
        roi_pool_forward_cpu(x, (4, 4), [Box(0, 0, 4, 4), Box(1, 1, 3, 3)], 2)
        np.testing.assert_array_equal(x, before)

    def test_invalid_feature_map_raises(self):
        with self.assertRaises(InvalidGeometryError):
            roi_pool_forward_cpu(np.zeros((4, 4)), (4, 4), [Box(0, 0, 4, 4)], 2)
        with self.assertRaises(InvalidGeometryError):
            roi_pool_forward_cpu(np.zeros((0, 4, 1)), (4, 4), [Box(0, 0, 4, 4)], 2)
        with self.assertRaises(InvalidGeometryError):
            roi_pool_forward_cpu(_quadrant_map(), (0, 4), [Box(0, 0, 4, 4)], 2)

    def test_invalid_pool_size_raises(self):
        with self.assertRaises(ValueError):
            roi_pool_forward_cpu(_quadrant_map(), (4, 4), [Box(0, 0, 4, 4)], (0, 2))


if __name__ == "__main__":
    unittest.main()
