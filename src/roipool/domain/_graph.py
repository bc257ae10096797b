"""
Graph layer interface definitions.

This module defines the capability interface every layer hosted by a
computation graph must provide. The set of layer kinds is closed (see
`roipool.infrastructure.graph.LayerKind`); the Protocol only pins down the
shared `{forward, backward}` contract the graph node relies on.

Structural typing is used instead of inheritance, so layers stay decoupled
from the domain layer.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ._tensor import ITensor


@runtime_checkable
class IGraphLayer(Protocol):
    """
    Domain-level graph layer interface.

    Notes
    -----
    - `derivative_outputs` lists the output positions that receive a
      derivative during a backward sweep. Outputs not listed (e.g., an argmax
      mask) never carry one and are excluded from the readiness check.
    - `backward` receives the output values produced by the matching forward
      call, so any selection state travels through the graph explicitly.
    """

    @property
    def derivative_outputs(self) -> Tuple[int, ...]:
        """Output positions that carry derivatives."""
        ...

    def forward(self, inputs: Sequence[Any], params: Sequence[Any]) -> list:
        """
        Compute the layer outputs.

        Parameters
        ----------
        inputs : Sequence
            Values of the input variables, in declaration order.
        params : Sequence
            Values of the parameters, in declaration order.

        Returns
        -------
        list
            Output values, in declaration order.
        """
        ...

    def backward(
        self,
        inputs: Sequence[Any],
        params: Sequence[Any],
        outputs: Sequence[Any],
        der_outputs: Sequence[ITensor],
    ) -> Tuple[list, list]:
        """
        Compute derivatives of inputs and parameters.

        Parameters
        ----------
        inputs, params : Sequence
            Same values as passed to the matching `forward` call.
        outputs : Sequence
            Values returned by the matching `forward` call.
        der_outputs : Sequence[ITensor]
            Derivatives for the positions in `derivative_outputs`, in order.

        Returns
        -------
        tuple[list, list]
            ``(der_inputs, der_params)``; entries are None for
            non-differentiable inputs.
        """
        ...

    def get_config(self) -> Dict[str, Any]:
        """Return a JSON-serializable construction config."""
        ...


@runtime_checkable
class IGraphVariable(Protocol):
    """
    A graph-owned slot holding a value and an accumulated derivative.
    """

    name: str
    value: Optional[Any]
    der: Optional[ITensor]
