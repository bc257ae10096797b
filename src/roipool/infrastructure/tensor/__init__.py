from ._tensor import Tensor, to_host, from_host
from ._tensor_context import Context


__all__ = [Tensor.__name__, Context.__name__, to_host.__name__, from_host.__name__]
