"""
Autograd `Function` adapter for ROI max pooling.

This module connects the ROI pooling primitives in `ops.roi_pool_cpu_ext` to
the roipool autograd contract (`Tensor`, `Context`, `Function`).

`RoiPool2dFn`
    - `forward(ctx, x, image_size, boxes, *, pool_size)` computes the pooled
      output and the argmax mask, returns both, and saves what backward needs
      into `ctx.saved_tensors` / `ctx.saved_meta`.
    - `backward(ctx, grad_out)` scatters the output gradient back to the
      feature-map cells selected in forward.

Design notes
------------
- Assumes **HWC** feature maps and (pool_h, pool_w, C, R) outputs.
- The forward boundary asserts the output shape; a mismatch is a
  programming error and raises `ShapeMismatchError`.
- The mask lives in the caller-owned `ctx`, never on the function, so one
  context models exactly one in-flight forward/backward pair.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

from ...domain._errors import DeviceNotSupportedError, ShapeMismatchError
from ...domain._function import Function
from ..ops import roi_pool_cpu_ext as cpu_ext
from ..ops.roi_pool_cpu import _pair
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import Context


def _dispatch_backend(x: Tensor) -> str:
    """Return backend tag for x ("cpu") or raise for unsupported placements."""
    if x.device.is_cpu():
        return "cpu"
    raise DeviceNotSupportedError("roi_pool2d", str(x.device))


def check_pooled_shapes(
    rois: Tensor, mask: Tensor, pool_size: Tuple[int, int], channels: int, boxes: int
) -> None:
    """
    Assert that `rois` and `mask` have shape (pool_h, pool_w, C, R).

    Raises
    ------
    ShapeMismatchError
        If either shape differs.
    """
    expected = (int(pool_size[0]), int(pool_size[1]), int(channels), int(boxes))
    if tuple(rois.shape) != expected:
        raise ShapeMismatchError("pooled output", expected, rois.shape)
    if tuple(mask.shape) != expected:
        raise ShapeMismatchError("argmax mask", expected, mask.shape)


class RoiPool2dFn(Function):
    """
    Autograd-enabled ROI max pooling.

    Saved context
    -------------
    - `saved_tensors`: [mask]
    - `saved_meta`:
        - "x_shape": feature map shape (H, W, C)
        - "pool_size": (pool_h, pool_w)
        - "box_count": R
    """

    @staticmethod
    def forward(
        ctx: Context,
        x: Tensor,
        image_size: Any,
        boxes: Any,
        *,
        pool_size,
    ) -> Tuple[Tensor, Tensor]:
        """
        Pool every box and save the argmax mask for backward.

        Parameters
        ----------
        ctx : Context
            Caller-owned context for the paired backward call.
        x : Tensor
            Feature map of shape (H, W, C).
        image_size : Tensor or pair
            Original image (height, width).
        boxes : Tensor, array-like, or sequence of Box
            Boxes in image coordinates.
        pool_size : int | tuple[int, int]
            Output grid.

        Returns
        -------
        tuple[Tensor, Tensor]
            ``(rois, mask)`` of shape (pool_h, pool_w, C, R).
        """
        p = _pair(pool_size)
        _dispatch_backend(x)

        box_count = cpu_ext.count_boxes(boxes)
        rois, mask = cpu_ext.roi_pool2d_forward(x, image_size, boxes, pool_size=p)

        check_pooled_shapes(rois, mask, p, x.shape[2], box_count)

        ctx.save_for_backward(mask)
        ctx.saved_meta["x_shape"] = tuple(x.shape)
        ctx.saved_meta["pool_size"] = p
        ctx.saved_meta["box_count"] = box_count
        return rois, mask

    @staticmethod
    def backward(ctx: Context, grad_out: Tensor) -> Sequence[Optional[Tensor]]:
        """
        Backpropagate through ROI max pooling.

        Parameters
        ----------
        ctx : Context
            Context populated by the paired forward call.
        grad_out : Tensor
            Gradient with respect to the pooled output.

        Returns
        -------
        Sequence[Optional[Tensor]]
            ``(grad_x, None, None)``: image size and boxes are not
            differentiable.
        """
        (mask,) = ctx.saved_tensors
        gx = cpu_ext.roi_pool2d_backward(
            grad_out,
            mask=mask,
            x_shape=ctx.saved_meta["x_shape"],
            pool_size=ctx.saved_meta["pool_size"],
            box_count=ctx.saved_meta["box_count"],
        )
        return (gx, None, None)


def roi_pool2d(
    x: Tensor, image_size: Any, boxes: Any, pool_size
) -> Tuple[Tensor, Tensor, Context]:
    """
    Functional ROI pooling: run `RoiPool2dFn.forward` with a fresh context.

    Returns
    -------
    tuple[Tensor, Tensor, Context]
        ``(rois, mask, ctx)``; pass `ctx` to `RoiPool2dFn.backward`.
    """
    ctx = Context()
    rois, mask = RoiPool2dFn.forward(ctx, x, image_size, boxes, pool_size=pool_size)
    return rois, mask, ctx
