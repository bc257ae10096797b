"""
Closed set of graph layer kinds.

Every layer a `DagNetwork` can host is listed in `LayerKind`; `build_layer`
is the single place that maps a kind to its implementation. Adding a layer
kind means adding an enum member and a table entry, not subclassing at
runtime.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Type, Union

from .._layer import Layer
from ..layers._sum import Sum
from ..pooling._roi_pooling_module import RoiPool2d


class LayerKind(Enum):
    """
    Layer kinds supported by the graph.

    Attributes
    ----------
    ROI_POOLING : LayerKind
        `RoiPool2d`: (feature_map, image_size, boxes) -> (rois, mask).
    SUM : LayerKind
        `Sum`: element-wise sum of its inputs.
    """

    ROI_POOLING = "roi_pooling"
    SUM = "sum"


_LAYER_TYPES: Dict[LayerKind, Type[Layer]] = {
    LayerKind.ROI_POOLING: RoiPool2d,
    LayerKind.SUM: Sum,
}


def layer_kind_of(layer: Layer) -> LayerKind:
    """
    Return the kind of a layer instance.

    Raises
    ------
    TypeError
        If the layer's type is not one of the supported kinds.
    """
    for kind, cls in _LAYER_TYPES.items():
        if type(layer) is cls:
            return kind
    raise TypeError(f"Unsupported layer type: {type(layer).__name__}")


def build_layer(kind: Union[LayerKind, str], **config: Any) -> Layer:
    """
    Construct a layer of the given kind from its configuration.

    Parameters
    ----------
    kind : LayerKind or str
        Layer kind, or its string value (e.g., "roi_pooling").
    **config
        Construction options, in the layer's `get_config()` format.

    Returns
    -------
    Layer
        A new layer instance.

    Raises
    ------
    ValueError
        If the kind is unknown or `config` holds keys the layer does not take.
    """
    kind = LayerKind(kind)
    return _LAYER_TYPES[kind].from_config(config)
