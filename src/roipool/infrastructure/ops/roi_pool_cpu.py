"""
CPU reference implementation of ROI max pooling (NumPy backend).

This module provides **readable and correct** NumPy implementations of the
three stages of region-of-interest pooling for feature maps in **HWC** layout:

- Coordinate mapping: image-space boxes to per-bin feature-map windows
- Forward pooling: per-bin max with argmax bookkeeping
- Backward scatter: route output gradients to the selected maxima

These functions are the backend kernels used by the autograd `Function`
and the graph layer, and the numerical ground truth for unit tests.

Design notes
------------
- Boxes are continuous image coordinates ``[x_min, x_max) x [y_min, y_max)``.
  A box is mapped by the per-axis ratio ``feature_size / image_size`` and the
  covering integer cell range of length ``n`` is split at the proportional
  edges ``floor(i * n / bins)``; bin ``i`` ends where bin ``i + 1`` starts,
  so every cell of the box belongs to exactly one bin. When ``n < bins``
  some bins are empty.
- Bins are clipped to the feature map. A bin left with no cells pools to 0
  and records `EMPTY_BIN` in the mask; malformed boxes never raise.
- The argmax is the first maximum in row-major scan order of the bin window.
- Mask entries are flat spatial indices ``row * W + col`` into the feature
  map; they do not depend on the channel.
"""

from __future__ import annotations

import math
from typing import Any, Sequence, Tuple

import numpy as np

from ...domain._box import Box
from ...domain._errors import InvalidGeometryError, ShapeMismatchError

EMPTY_BIN = -1
"""Mask sentinel for an output cell whose window holds no feature-map cells."""


def _pair(v: int | Sequence[int]) -> Tuple[int, int]:
    """
    Normalize a positive integer or pair into a 2-tuple of positive ints.

    Raises
    ------
    ValueError
        If the value is not one or two positive integers.
    """
    pair = tuple(v) if isinstance(v, (tuple, list)) else (v, v)
    if len(pair) != 2:
        raise ValueError(f"Expected an int or a pair of ints, got {v!r}")
    h, w = (int(p) for p in pair)
    if h <= 0 or w <= 0:
        raise ValueError(f"pool_size must be positive, got {v!r}")
    return h, w


def _size_pair(what: str, size: Any) -> Tuple[float, float]:
    """Validate a (height, width) size and return it as floats."""
    try:
        arr = np.asarray(size, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError):
        raise InvalidGeometryError(what, size, "expected numeric (height, width)")
    if arr.size != 2:
        raise InvalidGeometryError(what, size, "expected (height, width)")
    if not np.all(np.isfinite(arr)) or np.any(arr <= 0):
        raise InvalidGeometryError(what, size, "sizes must be finite and positive")
    return float(arr[0]), float(arr[1])


def feature_map_scale(
    image_size: Any, feature_size: Any
) -> Tuple[float, float]:
    """
    Compute the image-to-feature-map ratio per spatial axis.

    Parameters
    ----------
    image_size : pair
        Original image (height, width) in pixels.
    feature_size : pair
        Feature map (height, width) in cells.

    Returns
    -------
    tuple[float, float]
        ``(feature_h / image_h, feature_w / image_w)``. For a trunk with a
        uniform subsampling factor ``s`` both entries equal ``1 / s``.

    Raises
    ------
    InvalidGeometryError
        If either size is not two finite positive numbers.
    """
    img_h, img_w = _size_pair("image_size", image_size)
    fm_h, fm_w = _size_pair("feature_size", feature_size)
    return fm_h / img_h, fm_w / img_w


def as_box_array(boxes: Any) -> np.ndarray:
    """
    Normalize a box list into an ``(R, 5)`` float64 array.

    Accepted encodings
    ------------------
    - a `Box` or a sequence of `Box` records
    - an ``(R, 4)`` array of ``x_min, y_min, x_max, y_max`` (image index 0)
    - an ``(R, 5)`` array of ``image_index, x_min, y_min, x_max, y_max``
    - a single 4- or 5-element row

    Returns
    -------
    np.ndarray
        Rows of ``(image_index, x_min, y_min, x_max, y_max)``.

    Raises
    ------
    InvalidGeometryError
        If the box list is not one of the encodings above.
    """
    if isinstance(boxes, Box):
        boxes = [boxes]
    if isinstance(boxes, (list, tuple)) and boxes and isinstance(boxes[0], Box):
        return np.array([b.as_row() for b in boxes], dtype=np.float64).reshape(-1, 5)

    try:
        arr = np.asarray(boxes, dtype=np.float64)
    except (TypeError, ValueError):
        raise InvalidGeometryError("boxes", boxes, "expected numeric box rows")
    if arr.size == 0:
        return np.zeros((0, 5), dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] not in (4, 5):
        raise InvalidGeometryError(
            "boxes shape", arr.shape, "expected an (R, 4) or (R, 5) array"
        )
    if arr.shape[1] == 4:
        arr = np.concatenate([np.zeros((arr.shape[0], 1)), arr], axis=1)
    return arr


def map_box_to_feature_map(
    box: Any, scale: Tuple[float, float]
) -> Tuple[float, float, float, float]:
    """
    Scale a box into continuous feature-map coordinates.

    Returns
    -------
    tuple[float, float, float, float]
        ``(x_min, y_min, x_max, y_max)`` in feature-map cells.
    """
    _, x_min, y_min, x_max, y_max = as_box_array(box)[0]
    s_h, s_w = scale
    return x_min * s_w, y_min * s_h, x_max * s_w, y_max * s_h


def roi_bin_edges(
    lo: float, hi: float, bins: int, limit: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split the mapped interval ``[lo, hi)`` into `bins` contiguous cell ranges.

    Parameters
    ----------
    lo, hi : float
        Interval in feature-map coordinates along one axis.
    bins : int
        Number of output bins along this axis.
    limit : int
        Feature-map extent along this axis; bins are clipped to ``[0, limit]``.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        ``(starts, ends)`` int64 arrays of length `bins`; bin ``i`` covers
        cells ``starts[i] <= k < ends[i]`` and is empty when the two are equal.
        ``ends[i] == starts[i + 1]`` always holds.
    """
    if not (math.isfinite(lo) and math.isfinite(hi) and hi > lo):
        return np.zeros(bins, dtype=np.int64), np.zeros(bins, dtype=np.int64)

    # Python ints: huge (but finite) coordinates must not overflow int64.
    first = math.floor(lo)
    n = math.ceil(hi) - first
    edges = [min(max(first + (i * n) // bins, 0), limit) for i in range(bins + 1)]
    return (
        np.asarray(edges[:-1], dtype=np.int64),
        np.asarray(edges[1:], dtype=np.int64),
    )


def _bin_windows(
    row: np.ndarray,
    scale: Tuple[float, float],
    feature_hw: Tuple[int, int],
    pool_hw: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    image_index, x_min, y_min, x_max, y_max = row
    H, W = feature_hw
    p_h, p_w = pool_hw
    if image_index != 0:
        zeros_h = np.zeros(p_h, dtype=np.int64)
        zeros_w = np.zeros(p_w, dtype=np.int64)
        return zeros_h, zeros_h, zeros_w, zeros_w

    s_h, s_w = scale
    h_start, h_end = roi_bin_edges(y_min * s_h, y_max * s_h, p_h, H)
    w_start, w_end = roi_bin_edges(x_min * s_w, x_max * s_w, p_w, W)
    return h_start, h_end, w_start, w_end


def compute_bin_windows(
    box: Any,
    image_size: Any,
    feature_size: Any,
    pool_size: int | Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Compute the feature-map pooling window of every output cell of one box.

    Parameters
    ----------
    box : Box or row
        The box in image coordinates.
    image_size : pair
        Original image (height, width).
    feature_size : pair
        Feature map (height, width).
    pool_size : int or tuple[int, int]
        Output grid (pool_h, pool_w).

    Returns
    -------
    tuple[np.ndarray, ...]
        ``(h_start, h_end, w_start, w_end)``; output cell ``(i, j)`` pools rows
        ``h_start[i]:h_end[i]`` and columns ``w_start[j]:w_end[j]``.

    Raises
    ------
    InvalidGeometryError
        If the image or feature-map size is invalid. Malformed boxes never
        raise; they yield empty windows.
    """
    scale = feature_map_scale(image_size, feature_size)
    H, W = (int(s) for s in _size_pair("feature_size", feature_size))
    return _bin_windows(as_box_array(box)[0], scale, (H, W), _pair(pool_size))


def _check_feature_map(x: np.ndarray) -> Tuple[int, int, int]:
    if x.ndim != 3 or 0 in x.shape:
        raise InvalidGeometryError(
            "feature_map shape", x.shape, "expected a non-empty (H, W, C) array"
        )
    H, W, C = x.shape
    return H, W, C


def roi_pool_forward_cpu(
    x: np.ndarray,
    image_size: Any,
    boxes: Any,
    pool_size: int | Tuple[int, int],
) -> tuple[np.ndarray, np.ndarray]:
    """
    ROI max pooling forward pass (CPU, NumPy), HWC.

    Parameters
    ----------
    x : np.ndarray
        Feature map of shape (H, W, C). Not modified.
    image_size : pair
        Original image (height, width) the boxes refer to.
    boxes : Any
        Box list accepted by `as_box_array` (R boxes).
    pool_size : int or tuple[int, int]
        Output grid (pool_h, pool_w).

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        y :
            Pooled output of shape (pool_h, pool_w, C, R), dtype of `x`.
        mask :
            int64 array of the same shape holding the flat spatial index
            ``row * W + col`` of each selected maximum, or `EMPTY_BIN`.

    Notes
    -----
    - Ties resolve to the first maximum in row-major order (`np.argmax`
      semantics), so backward routes gradient to exactly one element.
    - All channels of a cell share the same window.
    """
    x = np.asarray(x)
    H, W, C = _check_feature_map(x)
    scale = feature_map_scale(image_size, (H, W))
    p_h, p_w = _pair(pool_size)
    rows = as_box_array(boxes)
    R = rows.shape[0]

    y = np.zeros((p_h, p_w, C, R), dtype=x.dtype)
    mask = np.full((p_h, p_w, C, R), EMPTY_BIN, dtype=np.int64)
    channels = np.arange(C)

    for r in range(R):
        h_start, h_end, w_start, w_end = _bin_windows(
            rows[r], scale, (H, W), (p_h, p_w)
        )
        for i in range(p_h):
            h0, h1 = int(h_start[i]), int(h_end[i])
            if h1 <= h0:
                continue
            for j in range(p_w):
                w0, w1 = int(w_start[j]), int(w_end[j])
                if w1 <= w0:
                    continue
                patch = x[h0:h1, w0:w1, :].reshape(-1, C)
                flat_idx = np.argmax(patch, axis=0)
                y[i, j, :, r] = patch[flat_idx, channels]

                k_w = w1 - w0
                mask[i, j, :, r] = (h0 + flat_idx // k_w) * W + (w0 + flat_idx % k_w)

    return y, mask


def roi_pool_backward_cpu(
    box_count: int,
    x_shape: Tuple[int, int, int],
    pool_size: int | Tuple[int, int],
    mask: np.ndarray,
    grad_out: np.ndarray,
) -> np.ndarray:
    """
    ROI max pooling backward pass (CPU, NumPy), HWC.

    Parameters
    ----------
    box_count : int
        Number of boxes R used in the forward pass.
    x_shape : tuple[int, int, int]
        Feature map shape (H, W, C).
    pool_size : int or tuple[int, int]
        Output grid used in the forward pass.
    mask : np.ndarray
        Argmax mask returned by the paired forward pass.
    grad_out : np.ndarray
        Gradient with respect to the pooled output, shape (pool_h, pool_w, C, R).

    Returns
    -------
    np.ndarray
        Gradient with respect to the feature map, shape (H, W, C).

    Raises
    ------
    ShapeMismatchError
        If `mask` or `grad_out` does not have shape (pool_h, pool_w, C, R).
    ValueError
        If a mask entry addresses a cell outside the feature map.

    Notes
    -----
    - Gradients are routed only to the cells selected during forward.
    - Cells selected by several (box, output cell) pairs receive the sum of
      all contributions (`np.add.at` is unbuffered).
    - `EMPTY_BIN` entries contribute nothing.
    """
    H, W, C = (int(d) for d in x_shape)
    p_h, p_w = _pair(pool_size)
    expected = (p_h, p_w, C, int(box_count))

    mask = np.asarray(mask)
    grad_out = np.asarray(grad_out)
    if mask.shape != expected:
        raise ShapeMismatchError("argmax mask", expected, mask.shape)
    if grad_out.shape != expected:
        raise ShapeMismatchError("output gradient", expected, grad_out.shape)

    dtype = grad_out.dtype if np.issubdtype(grad_out.dtype, np.floating) else np.float32
    grad_x = np.zeros((H * W, C), dtype=dtype)

    selected = mask != EMPTY_BIN
    cells = mask[selected]
    if cells.size and (cells.min() < 0 or cells.max() >= H * W):
        raise ValueError("argmax mask addresses a cell outside the feature map")

    channel_idx = np.broadcast_to(np.arange(C).reshape(1, 1, C, 1), expected)
    np.add.at(grad_x, (cells, channel_idx[selected]), grad_out[selected])

    return grad_x.reshape(H, W, C)


def mask_to_rows_cols(mask: np.ndarray, width: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split flat mask entries into (row, col) arrays.

    `EMPTY_BIN` entries map to ``(-1, -1)``.
    """
    mask = np.asarray(mask)
    rows = np.where(mask == EMPTY_BIN, -1, mask // width)
    cols = np.where(mask == EMPTY_BIN, -1, mask % width)
    return rows, cols
