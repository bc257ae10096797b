"""
roipool: region-of-interest max pooling with graph-hosted reverse-mode
gradient propagation.
"""

from .domain._box import Box
from .domain._errors import (
    DeviceMismatchError,
    DeviceNotSupportedError,
    InvalidGeometryError,
    ShapeMismatchError,
)
from .domain.device._device import Device
from .infrastructure.graph import BackwardSweep, DagNetwork, GraphNode, LayerKind
from .infrastructure.layers._sum import Sum
from .infrastructure.ops.roi_pool_cpu import EMPTY_BIN
from .infrastructure.pooling._roi_pooling_function import RoiPool2dFn, roi_pool2d
from .infrastructure.pooling._roi_pooling_module import RoiPool2d
from .infrastructure.tensor import Context, Tensor, from_host, to_host

__version__ = "1.0.0"
