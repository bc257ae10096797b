"""
Differentiable operation contract.

A `Function` pairs a forward kernel with the backward kernel that consumes
its saved state. The state never lives on the function: `forward` writes it
to a caller-owned context and `backward` reads it from the same object, so
two invocations of one function cannot see each other's masks or shapes.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ._tensor import ITensor


class Function(ABC):
    """
    Abstract differentiable operation.

    Both methods are static. An operation may return several outputs from
    `forward` (e.g., pooled values plus an argmax mask); `backward` receives
    the derivative of the first one only.
    """

    @staticmethod
    @abstractmethod
    def forward(ctx, *inputs: Any, **kwargs: Any) -> Any:
        """
        Compute the outputs and record backward state on `ctx`.

        Parameters
        ----------
        ctx : Context
            Fresh context owned by the caller.
        *inputs
            Operation inputs; tensors and plain values may be mixed.
        **kwargs
            Non-differentiable options (e.g., an output grid size).
        """
        ...

    @staticmethod
    @abstractmethod
    def backward(ctx, grad_out: ITensor) -> Sequence[Optional[ITensor]]:
        """
        Map the derivative of the primary output to input derivatives.

        Returns
        -------
        Sequence[Optional[ITensor]]
            One entry per positional input of `forward`; None where the input
            is not differentiable.
        """
        ...
