"""
Minimal directed-acyclic computation graph hosting roipool layers.

`DagNetwork` owns the variable and parameter slots, orders its nodes
topologically, and drives forward and backward sweeps:

- `forward(inputs)` assigns input values and runs every node in execution
  order.
- `backward(der_outputs)` clears all variable derivatives, seeds the given
  ones, builds a fresh `BackwardSweep`, and walks the nodes in reverse
  execution order. A node that defers (its output derivatives are not all
  present) is retried on the next pass as long as some other node made
  progress.

It is intentionally small: no training loop, no persistence.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from .._layer import Layer
from ..tensor._tensor import Tensor
from ._layer_kinds import LayerKind, build_layer
from ._node import GraphNode
from ._sweep import BackwardSweep
from ._variables import GraphParam, GraphVariable

logger = logging.getLogger(__name__)


def _as_tensor(value: Any) -> Any:
    """Wrap NumPy arrays as host tensors; leave everything else untouched."""
    if isinstance(value, np.ndarray):
        return Tensor._from_numpy(value)
    return value


class DagNetwork:
    """
    Computation graph of `GraphNode`s over named variables.

    Parameters
    ----------
    conserve_memory : bool, optional
        Release non-precious derivative-carrying outputs during backward.
        Defaults to True.
    accumulate_param_ders : bool, optional
        Accumulate parameter derivatives across backward sweeps. Defaults to
        False.
    """

    def __init__(
        self, *, conserve_memory: bool = True, accumulate_param_ders: bool = False
    ) -> None:
        self.conserve_memory = conserve_memory
        self.accumulate_param_ders = accumulate_param_ders
        self.vars: List[GraphVariable] = []
        self.params: List[GraphParam] = []
        self.nodes: List[GraphNode] = []
        self._var_index: Dict[str, int] = {}
        self._param_index: Dict[str, int] = {}
        self._order: Optional[List[GraphNode]] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _ensure_var(self, name: str) -> int:
        if name not in self._var_index:
            self._var_index[name] = len(self.vars)
            self.vars.append(GraphVariable(name=name))
        return self._var_index[name]

    def _ensure_param(self, name: str) -> int:
        if name not in self._param_index:
            self._param_index[name] = len(self.params)
            self.params.append(GraphParam(name=name))
        return self._param_index[name]

    def add_layer(
        self,
        name: str,
        layer: Union[Layer, LayerKind, str],
        inputs: Sequence[str],
        outputs: Sequence[str],
        params: Sequence[str] = (),
        **config: Any,
    ) -> GraphNode:
        """
        Add a layer node.

        Parameters
        ----------
        name : str
            Unique node name.
        layer : Layer, LayerKind or str
            A layer instance, or a kind to build from `config`.
        inputs, outputs, params : Sequence[str]
            Slot names; missing slots are created.
        **config
            Construction options when `layer` is a kind.

        Returns
        -------
        GraphNode
            The new node.

        Raises
        ------
        ValueError
            If the name is taken, or an output already has a producer.
        """
        if any(n.name == name for n in self.nodes):
            raise ValueError(f"Duplicate layer name {name!r}")
        if len(set(outputs)) != len(outputs):
            raise ValueError(f"Layer {name!r} lists an output twice: {list(outputs)}")
        for n in self.nodes:
            shared = set(outputs) & set(n.outputs)
            if shared:
                raise ValueError(
                    f"Variable(s) {sorted(shared)} already produced by layer {n.name!r}"
                )
        if not isinstance(layer, Layer):
            layer = build_layer(layer, **config)
        elif config:
            raise ValueError("config is only accepted together with a layer kind")

        node = GraphNode(name, layer, inputs, outputs, params)
        node.bind(
            [self._ensure_var(v) for v in node.inputs],
            [self._ensure_var(v) for v in node.outputs],
            [self._ensure_param(p) for p in node.params],
        )
        self.nodes.append(node)
        self._order = None
        return node

    def add_param(self, name: str, value: Any) -> GraphParam:
        """Create (or update) a parameter slot with a value."""
        param = self.params[self._ensure_param(name)]
        param.value = _as_tensor(value)
        return param

    def set_precious(self, name: str, precious: bool = True) -> None:
        """Mark a variable as exempt from memory release."""
        self.get_var(name).precious = precious

    def get_var(self, name: str) -> GraphVariable:
        try:
            return self.vars[self._var_index[name]]
        except KeyError:
            raise KeyError(f"Unknown variable {name!r}") from None

    def get_param(self, name: str) -> GraphParam:
        try:
            return self.params[self._param_index[name]]
        except KeyError:
            raise KeyError(f"Unknown parameter {name!r}") from None

    # ------------------------------------------------------------------
    # Execution order
    # ------------------------------------------------------------------
    def execution_order(self) -> List[GraphNode]:
        """
        Return the nodes in topological order (Kahn's algorithm).

        Among nodes that are ready at the same time, insertion order wins.

        Raises
        ------
        ValueError
            If the graph has a cycle.
        """
        if self._order is not None:
            return list(self._order)

        producers: Dict[int, int] = {}
        for k, node in enumerate(self.nodes):
            for v in node.output_indexes:
                producers[v] = k

        deps = [
            {producers[v] for v in node.input_indexes if v in producers}
            for node in self.nodes
        ]
        done: set[int] = set()
        order: List[GraphNode] = []
        while len(order) < len(self.nodes):
            ready = [
                k for k in range(len(self.nodes)) if k not in done and deps[k] <= done
            ]
            if not ready:
                raise ValueError("The network contains a cycle")
            k = ready[0]
            done.add(k)
            order.append(self.nodes[k])

        self._order = order
        return list(order)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------
    def forward(self, inputs: Mapping[str, Any]) -> None:
        """
        Assign input values and run every node in execution order.

        NumPy arrays are wrapped as host tensors.
        """
        for name, value in inputs.items():
            self.get_var(name).value = _as_tensor(value)
        for node in self.execution_order():
            node.forward(self)

    def backward(self, der_outputs: Mapping[str, Any]) -> BackwardSweep:
        """
        Run one backward sweep seeded with `der_outputs`.

        Returns
        -------
        BackwardSweep
            The accumulation context of the sweep (pending counts included).
        """
        for var in self.vars:
            var.der = None
        for name, der in der_outputs.items():
            self.get_var(name).der = _as_tensor(der)

        sweep = BackwardSweep(
            conserve_memory=self.conserve_memory,
            accumulate_param_ders=self.accumulate_param_ders,
        )

        pending = list(reversed(self.execution_order()))
        while pending:
            deferred = [node for node in pending if not node.backward_advanced(self, sweep)]
            if len(deferred) == len(pending):
                for node in deferred:
                    logger.debug("Node %r received no derivative", node.name)
                break
            pending = deferred

        return sweep

    def eval(
        self,
        inputs: Mapping[str, Any],
        der_outputs: Optional[Mapping[str, Any]] = None,
    ) -> Optional[BackwardSweep]:
        """
        Forward pass, followed by a backward sweep when derivatives are given.
        """
        self.forward(inputs)
        if der_outputs is None:
            return None
        return self.backward(der_outputs)
