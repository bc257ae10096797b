from typing import Any
from dataclasses import dataclass, field

from ...domain._tensor import ITensor


@dataclass
class Context:
    """
    State handed from one `Function.forward` call to its paired `backward`.

    For ROI pooling this is the argmax mask (in `saved_tensors`) and the
    feature-map shape, grid and box count (in `saved_meta`). The caller
    creates the context and keeps it alive between the two calls; the
    function object stays stateless.

    Attributes
    ----------
    saved_tensors : list[ITensor]
        Tensors recorded by forward, in save order.
    saved_meta : dict[str, Any]
        Plain-Python values recorded by forward.
    """

    saved_tensors: list["ITensor"] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)

    def save_for_backward(self, *tensors: "ITensor") -> None:
        """Append `tensors` to `saved_tensors`."""
        self.saved_tensors.extend(tensors)
