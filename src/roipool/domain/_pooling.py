"""
ROI pooling interfaces for roipool.

This module defines the **domain-level Protocol** for region-of-interest
pooling. Concrete implementations in the infrastructure layer (e.g.,
`RoiPool2d`) must satisfy it.

Shape semantics
---------------
Inputs:
    feature_map.shape == (H, W, C)
    image_size        == (image_height, image_width)
    boxes             : R boxes in image coordinates

Outputs:
    rois.shape == mask.shape == (pool_h, pool_w, C, R)

Notes
-----
This module contains **no NumPy or backend-specific logic**.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, Tuple, runtime_checkable

from ._tensor import ITensor


@runtime_checkable
class IRoiPooling2D(Protocol):
    """
    Protocol for ROI max-pooling layers.

    Design constraints
    ------------------
    - ROI pooling layers MUST NOT own trainable parameters.
    - The output grid shape is fixed at construction.
    - The argmax mask is an explicit output; backward receives it back as an
      explicit value rather than reading layer-held state.
    """

    @property
    def pool_size(self) -> Tuple[int, int]:
        """
        Return the output grid shape.

        Returns
        -------
        Tuple[int, int]
            Output grid as (pool_h, pool_w).
        """

    def forward(self, inputs: Sequence[Any], params: Sequence[Any]) -> list:
        """
        Pool every box into a fixed-size descriptor.

        Parameters
        ----------
        inputs : Sequence
            Exactly ``(feature_map, image_size, boxes)``.
        params : Sequence
            Unused; ROI pooling has no parameters.

        Returns
        -------
        list
            ``[rois, mask]``.
        """

    def backward(
        self,
        inputs: Sequence[Any],
        params: Sequence[Any],
        outputs: Sequence[Any],
        der_outputs: Sequence[ITensor],
    ) -> Tuple[list, list]:
        """
        Route the pooled-output derivative back to the feature map.

        Returns
        -------
        tuple[list, list]
            ``([d_feature_map, None, None], [])``.
        """
