"""
Graph node: one layer's participation in forward and backward sweeps.

A `GraphNode` binds a layer to named input, output and parameter slots of a
`DagNetwork`. The network resolves the names into indexes once
(`bind`) and then drives the node:

- `forward(net)` reads input values and stores the layer outputs.
- `backward_advanced(net, sweep)` implements the accumulation driver:
  readiness check over the derivative-carrying outputs only, memory release,
  the layer's backward call, and overwrite-then-add accumulation into the
  input variables and parameters through the sweep context.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence, Tuple

from .._layer import Layer
from ._layer_kinds import LayerKind, layer_kind_of
from ._sweep import BackwardSweep

if TYPE_CHECKING:
    from ._network import DagNetwork

logger = logging.getLogger(__name__)


class GraphNode:
    """
    A layer instance wired into a network.

    Parameters
    ----------
    name : str
        Unique node name.
    layer : Layer
        The hosted layer (one of the `LayerKind` implementations).
    inputs, outputs, params : Sequence[str]
        Variable and parameter names, in the layer's declaration order.
    """

    def __init__(
        self,
        name: str,
        layer: Layer,
        inputs: Sequence[str],
        outputs: Sequence[str],
        params: Sequence[str] = (),
    ) -> None:
        if layer.num_inputs is not None and len(inputs) != layer.num_inputs:
            raise ValueError(
                f"Layer {name!r} ({type(layer).__name__}) expects "
                f"{layer.num_inputs} inputs, got {len(inputs)}"
            )
        if len(outputs) != layer.num_outputs:
            raise ValueError(
                f"Layer {name!r} ({type(layer).__name__}) expects "
                f"{layer.num_outputs} outputs, got {len(outputs)}"
            )
        self.name = name
        self.layer = layer
        self.kind: LayerKind = layer_kind_of(layer)
        self.inputs: Tuple[str, ...] = tuple(inputs)
        self.outputs: Tuple[str, ...] = tuple(outputs)
        self.params: Tuple[str, ...] = tuple(params)

        self.input_indexes: Tuple[int, ...] = ()
        self.output_indexes: Tuple[int, ...] = ()
        self.param_indexes: Tuple[int, ...] = ()

    def bind(
        self,
        input_indexes: Sequence[int],
        output_indexes: Sequence[int],
        param_indexes: Sequence[int],
    ) -> None:
        """Record the network slot indexes of this node's variables."""
        self.input_indexes = tuple(input_indexes)
        self.output_indexes = tuple(output_indexes)
        self.param_indexes = tuple(param_indexes)

    @property
    def derivative_output_indexes(self) -> Tuple[int, ...]:
        """Variable indexes of the outputs that carry derivatives."""
        return tuple(self.output_indexes[k] for k in self.layer.derivative_outputs)

    def forward(self, net: "DagNetwork") -> None:
        """
        Run the layer on the current input values and store its outputs.

        Raises
        ------
        ValueError
            If an input variable holds no value.
        """
        inputs = []
        for v in self.input_indexes:
            var = net.vars[v]
            if var.value is None:
                raise ValueError(
                    f"Layer {self.name!r}: input variable {var.name!r} has no value"
                )
            inputs.append(var.value)
        params = [net.params[p].value for p in self.param_indexes]

        outputs = self.layer.forward(inputs, params)
        for v, value in zip(self.output_indexes, outputs):
            net.vars[v].value = value

    def backward_advanced(self, net: "DagNetwork", sweep: BackwardSweep) -> bool:
        """
        Compute and accumulate the derivatives of this node's inputs.

        Parameters
        ----------
        net : DagNetwork
            The network owning the variable and parameter slots.
        sweep : BackwardSweep
            Accumulation context of the sweep in progress.

        Returns
        -------
        bool
            True if the node ran; False if it deferred because a required
            output derivative is not available yet. A deferred call changes
            nothing.
        """
        der_indexes = self.derivative_output_indexes
        der_outputs = [net.vars[v].der for v in der_indexes]
        if any(d is None for d in der_outputs):
            logger.debug("Deferring %r: output derivative not ready", self.name)
            return False

        inputs = [net.vars[v].value for v in self.input_indexes]
        outputs = [net.vars[v].value for v in self.output_indexes]
        params = [net.params[p].value for p in self.param_indexes]

        for v in der_indexes:
            sweep.release(net.vars[v])

        der_inputs, der_params = self.layer.backward(
            inputs, params, outputs, der_outputs
        )

        for v, der in zip(self.input_indexes, der_inputs):
            sweep.accumulate_variable(v, net.vars[v], der)
        for p, der in zip(self.param_indexes, der_params):
            sweep.accumulate_param(p, net.params[p], der)

        logger.debug("Backward done for %r", self.name)
        return True

    def __repr__(self) -> str:
        return (
            f"GraphNode(name={self.name!r}, kind={self.kind.value}, "
            f"inputs={list(self.inputs)}, outputs={list(self.outputs)})"
        )
