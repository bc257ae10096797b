"""
Element-wise sum layer.

`Sum` adds any number of same-shaped inputs. Its backward pass hands the
output derivative unchanged to every input, so a variable reaching the sum
through several paths receives one contribution per path and the graph's
accumulation rule adds them up.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

from ...domain.model._stateless_mixin import StatelessConfigMixin
from .._layer import Layer
from ..tensor._tensor import Tensor


class Sum(StatelessConfigMixin, Layer):
    """
    Element-wise sum of one or more tensors.

    Notes
    -----
    - Inputs must share shape and device.
    - The returned tensor is freshly allocated; inputs are never modified.
    """

    def forward(self, inputs: Sequence[Any], params: Sequence[Any] = ()) -> list:
        if not inputs:
            raise ValueError("Sum expects at least one input")
        out = inputs[0].clone()
        for x in inputs[1:]:
            out = Tensor._add_no_grad(out, x)
        return [out]

    def backward(
        self,
        inputs: Sequence[Any],
        params: Sequence[Any],
        outputs: Sequence[Any],
        der_outputs: Sequence[Tensor],
    ) -> Tuple[list, list]:
        (der,) = der_outputs
        return [der for _ in inputs], []
