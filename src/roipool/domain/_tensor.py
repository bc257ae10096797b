"""
Structural contract for tensor values.

ROI pooling reads four things from a tensor: its shape (to validate the
feature map and the mask), its dtype, its placement tag (to pick a backend
and place results), and a host view for the NumPy kernels. `ITensor` pins
down exactly those, so the domain layer never imports NumPy at runtime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Tuple, runtime_checkable

from .device._device import Device

if TYPE_CHECKING:
    import numpy as np


@runtime_checkable
class ITensor(Protocol):
    @property
    def shape(self) -> Tuple[int, ...]: ...

    @property
    def dtype(self) -> Any: ...

    @property
    def device(self) -> Device:
        """Placement tag of the storage."""
        ...

    def to_numpy(self) -> "np.ndarray":
        """
        Host view of the storage.

        Only meaningful for host-resident tensors; anything else goes through
        `to_host` first.
        """
        ...
