from ._layer_kinds import LayerKind, build_layer
from ._network import DagNetwork
from ._node import GraphNode
from ._sweep import BackwardSweep
from ._variables import GraphParam, GraphVariable


__all__ = [
    LayerKind.__name__,
    build_layer.__name__,
    DagNetwork.__name__,
    GraphNode.__name__,
    BackwardSweep.__name__,
    GraphParam.__name__,
    GraphVariable.__name__,
]
