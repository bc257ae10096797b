"""
Infrastructure layer base class.

This module provides a concrete `Layer` implementation that satisfies the
domain-level `IGraphLayer` protocol. It implements the conveniences shared by
every graph-hosted layer:

- the declared number of inputs, outputs and parameters
- the default set of derivative-carrying outputs (all of them)
- `__call__` forwarding to `forward` for ergonomic invocation

Concrete layers (`RoiPool2d`, `Sum`) subclass it and implement `forward` and
`backward`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

from ..domain._graph import IGraphLayer


class Layer(IGraphLayer):
    """
    Infrastructure base class for graph layers.

    Attributes
    ----------
    num_inputs : Optional[int]
        Exact number of inputs `forward` accepts, or None for variadic layers.
    num_outputs : int
        Number of values `forward` returns.
    """

    num_inputs: Optional[int] = None
    num_outputs: int = 1

    @property
    def derivative_outputs(self) -> Tuple[int, ...]:
        """
        Output positions that receive derivatives during a backward sweep.

        Defaults to every output.
        """
        return tuple(range(self.num_outputs))

    def _check_inputs(self, inputs: Sequence[Any]) -> None:
        if self.num_inputs is not None and len(inputs) != self.num_inputs:
            raise ValueError(
                f"{type(self).__name__} expects {self.num_inputs} inputs, "
                f"got {len(inputs)}"
            )

    def forward(self, inputs: Sequence[Any], params: Sequence[Any]) -> list:
        """
        Execute the forward computation of the layer.

        Subclasses must implement this.
        """
        raise NotImplementedError

    def backward(
        self,
        inputs: Sequence[Any],
        params: Sequence[Any],
        outputs: Sequence[Any],
        der_outputs: Sequence[Any],
    ) -> Tuple[list, list]:
        """
        Execute the backward computation of the layer.

        Subclasses must implement this.
        """
        raise NotImplementedError

    def __call__(self, inputs: Sequence[Any], params: Sequence[Any] = ()) -> list:
        return self.forward(inputs, params)

    def get_config(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable configuration for this layer.

        Layers with construction-time options override this (usually through a
        config mixin).
        """
        return {}

    def __repr__(self) -> str:
        cfg = ", ".join(f"{k}={v!r}" for k, v in self.get_config().items())
        return f"{type(self).__name__}({cfg})"
