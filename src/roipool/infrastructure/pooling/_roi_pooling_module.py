"""
ROI pooling layer for roipool (HWC feature maps).

This module defines `RoiPool2d`, the graph-hosted wrapper around
`RoiPool2dFn`:

- inputs  : ``(feature_map, image_size, boxes)``
- outputs : ``[rois, mask]``

The mask is exposed as a second output so an adjacent layer can consume it.
It never carries a derivative, which is why `derivative_outputs` is ``(0,)``.

Design notes
------------
- The only construction-time option is the output grid `pool_size`, stored
  in an immutable `RoiPool2dMeta`.
- The layer keeps no state between calls: `backward` reads the mask from
  the outputs of the paired forward call, which the graph hands back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from ...domain.model._roi_pool_mixin import RoiPool2dConfigMixin
from .._layer import Layer
from ..ops.roi_pool_cpu import _pair
from ..ops.roi_pool_cpu_ext import count_boxes
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import Context
from ._roi_pooling_function import RoiPool2dFn


@dataclass(frozen=True)
class RoiPool2dMeta:
    """
    Immutable configuration container for ROI pooling.

    Attributes
    ----------
    pool_size : tuple[int, int]
        Output grid (pool_h, pool_w).
    """

    pool_size: Tuple[int, int]


class RoiPool2d(RoiPool2dConfigMixin, Layer):
    """
    Region-of-interest max pooling layer.

    Shape semantics
    ---------------
    Inputs:
        feature_map.shape == (H, W, C)
        image_size        == (image_h, image_w)
        boxes             : R boxes

    Outputs:
        rois.shape == mask.shape == (pool_h, pool_w, C, R)

    Notes
    -----
    - Backpropagation routes gradients to the feature-map cells that produced
      the maxima during the paired forward pass.
    - Image size and boxes are not differentiable.
    """

    num_inputs = 3
    num_outputs = 2

    def __init__(self, pool_size: int | Tuple[int, int] = (1, 1)) -> None:
        """
        Construct a RoiPool2d layer.

        Parameters
        ----------
        pool_size : int or tuple[int, int], optional
            Output grid. If an int, it is expanded to (p, p).

        Raises
        ------
        ValueError
            If `pool_size` is not positive.
        """
        self._meta = RoiPool2dMeta(pool_size=_pair(pool_size))

    @property
    def pool_size(self) -> Tuple[int, int]:
        """
        Return the output grid shape.

        Returns
        -------
        tuple[int, int]
            Output grid as (pool_h, pool_w).
        """
        return self._meta.pool_size

    @property
    def derivative_outputs(self) -> Tuple[int, ...]:
        return (0,)

    def forward(self, inputs: Sequence[Any], params: Sequence[Any] = ()) -> list:
        """
        Pool every box of the input box list.

        Parameters
        ----------
        inputs : Sequence
            ``(feature_map, image_size, boxes)``.
        params : Sequence
            Unused.

        Returns
        -------
        list
            ``[rois, mask]``.
        """
        self._check_inputs(inputs)
        feature_map, image_size, boxes = inputs
        rois, mask = RoiPool2dFn.forward(
            Context(), feature_map, image_size, boxes, pool_size=self.pool_size
        )
        return [rois, mask]

    def backward(
        self,
        inputs: Sequence[Any],
        params: Sequence[Any],
        outputs: Sequence[Any],
        der_outputs: Sequence[Tensor],
    ) -> Tuple[list, list]:
        """
        Route the pooled-output derivative back to the feature map.

        Parameters
        ----------
        inputs : Sequence
            ``(feature_map, image_size, boxes)`` as given to forward.
        params : Sequence
            Unused.
        outputs : Sequence
            ``[rois, mask]`` returned by the paired forward call.
        der_outputs : Sequence[Tensor]
            Exactly one derivative, for `rois`.

        Returns
        -------
        tuple[list, list]
            ``([d_feature_map, None, None], [])``.
        """
        if len(der_outputs) != 1:
            raise ValueError(
                f"RoiPool2d expects 1 output derivative, got {len(der_outputs)}"
            )
        feature_map = inputs[0]
        mask = outputs[1]

        ctx = Context()
        ctx.save_for_backward(mask)
        ctx.saved_meta["x_shape"] = tuple(feature_map.shape)
        ctx.saved_meta["pool_size"] = self.pool_size
        ctx.saved_meta["box_count"] = count_boxes(inputs[2])

        grads = RoiPool2dFn.backward(ctx, der_outputs[0])
        return list(grads), []
