"""
ROI pooling primitives with placement boundaries.

This module defines small, backend-facing wrapper functions around the NumPy
kernels in `roi_pool_cpu`.

Responsibilities
----------------
- Gather operands to host memory (`to_host`) before the computation.
- Call the CPU kernels that operate on NumPy arrays.
- Place results back on the feature map's device (`from_host`), keeping the
  NumPy boundary inside infrastructure code.

Notes
-----
- Placement is a transparent transfer: it has no effect on the numbers.
- Autograd integration (Context bookkeeping) happens in higher-level code
  (`RoiPool2dFn`, `RoiPool2d`) that calls these primitives.
"""

from __future__ import annotations

from typing import Any, Tuple

from ..tensor._tensor import Tensor, from_host, to_host
from .roi_pool_cpu import as_box_array, roi_pool_backward_cpu, roi_pool_forward_cpu


def _gather(value: Any) -> Any:
    """Bring tensors to host memory; leave other values (e.g., Box lists) as is."""
    return to_host(value) if isinstance(value, Tensor) else value


def roi_pool2d_forward(
    x: Tensor,
    image_size: Any,
    boxes: Any,
    *,
    pool_size: Tuple[int, int],
) -> tuple[Tensor, Tensor]:
    """
    Compute the forward pass of ROI max pooling.

    Parameters
    ----------
    x : Tensor
        Feature map of shape (H, W, C).
    image_size : Tensor or pair
        Original image (height, width).
    boxes : Tensor, array-like, or sequence of Box
        R boxes in image coordinates.
    pool_size : tuple[int, int]
        Output grid (pool_h, pool_w).

    Returns
    -------
    tuple[Tensor, Tensor]
        ``(rois, mask)``, both of shape (pool_h, pool_w, C, R) and placed on
        `x.device`; `mask` is int64.
    """
    y_np, mask_np = roi_pool_forward_cpu(
        to_host(x), _gather(image_size), _gather(boxes), pool_size
    )
    return from_host(y_np, device=x.device), from_host(mask_np, device=x.device)


def roi_pool2d_backward(
    grad_out: Tensor,
    *,
    mask: Any,
    x_shape: Tuple[int, int, int],
    pool_size: Tuple[int, int],
    box_count: int,
) -> Tensor:
    """
    Compute the backward pass of ROI max pooling.

    Parameters
    ----------
    grad_out : Tensor
        Gradient with respect to the pooled output.
    mask : Tensor or np.ndarray
        Argmax mask produced by the paired forward call.
    x_shape : tuple[int, int, int]
        Feature map shape (H, W, C).
    pool_size : tuple[int, int]
        Output grid used in the forward pass.
    box_count : int
        Number of boxes used in the forward pass.

    Returns
    -------
    Tensor
        Gradient with respect to the feature map, placed on `grad_out.device`.
    """
    gx_np = roi_pool_backward_cpu(
        box_count, x_shape, pool_size, _gather(mask), to_host(grad_out)
    )
    device = grad_out.device if isinstance(grad_out, Tensor) else None
    return from_host(gx_np, device=device)


def count_boxes(boxes: Any) -> int:
    """Return R, the number of boxes in any accepted box encoding."""
    return int(as_box_array(_gather(boxes)).shape[0])
