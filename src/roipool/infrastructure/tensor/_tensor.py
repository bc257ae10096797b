"""
Host tensor with an explicit placement tag.

`Tensor` wraps a NumPy array together with a `Device` describing where the
array is meant to live. Only host (CPU) storage is implemented: every numeric
kernel in roipool runs on host arrays, and transfers across the placement
boundary are explicit (`to_host`, `from_host`, `Tensor.to`). Requesting an
accelerator placement raises `DeviceNotSupportedError` instead of silently
keeping the data on the host.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import DeviceMismatchError, DeviceNotSupportedError
from ...domain.device._device import Device


class Tensor:
    """
    Dense host array plus placement tag.

    Parameters
    ----------
    shape : Sequence[int]
        Tensor shape. Storage is zero-initialized.
    device : Device, optional
        Placement tag. Defaults to the host.
    dtype : numpy dtype, optional
        Element type. Defaults to `float32` (single precision feature maps).

    Raises
    ------
    DeviceNotSupportedError
        If `device` is not the host.
    """

    __slots__ = ("_data", "_device")

    def __init__(
        self,
        shape: Sequence[int],
        device: Optional[Device] = None,
        dtype: Any = np.float32,
    ) -> None:
        device = Device.host() if device is None else device
        if not device.is_cpu():
            raise DeviceNotSupportedError("allocate", str(device))
        self._device = device
        self._data = np.zeros(tuple(int(d) for d in shape), dtype=dtype)

    @classmethod
    def _from_numpy(
        cls, arr: np.ndarray, device: Optional[Device] = None, dtype: Any = None
    ) -> "Tensor":
        """
        Build a tensor that adopts `arr` as its storage (no copy when the dtype
        already matches).
        """
        arr = np.asarray(arr)
        out = cls((), device=device, dtype=arr.dtype if dtype is None else dtype)
        out._data = arr.astype(out._data.dtype, copy=False)
        return out

    @classmethod
    def from_numpy(
        cls, arr: Any, device: Optional[Device] = None, dtype: Any = np.float32
    ) -> "Tensor":
        """
        Build a tensor holding a copy of `arr` cast to `dtype`.
        """
        arr = np.asarray(arr)
        out = cls(arr.shape, device=device, dtype=dtype)
        out.copy_from_numpy(arr)
        return out

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self._data.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def device(self) -> Device:
        return self._device

    @property
    def ndim(self) -> int:
        return self._data.ndim

    def to_numpy(self) -> np.ndarray:
        """
        Return the host storage.

        The returned array shares memory with the tensor; callers must treat it
        as read-only unless they own the tensor.
        """
        return self._data

    def copy_from_numpy(self, arr: Any) -> None:
        """
        Copy `arr` into this tensor's storage, casting to the tensor dtype.

        Raises
        ------
        ValueError
            If `arr` does not have this tensor's shape.
        """
        arr = np.asarray(arr)
        if tuple(arr.shape) != self.shape:
            raise ValueError(
                f"copy_from_numpy shape mismatch: expected {self.shape}, got {arr.shape}"
            )
        self._data[...] = arr

    def clone(self) -> "Tensor":
        return Tensor._from_numpy(self._data.copy(), device=self._device)

    def to(self, device: Device) -> "Tensor":
        """
        Return this tensor placed on `device`.

        Host-to-host is the identity; every other transfer is unsupported.
        """
        if device == self._device:
            return self
        raise DeviceNotSupportedError("to", str(device))

    @staticmethod
    def _add_no_grad(a: "Tensor", b: "Tensor") -> "Tensor":
        """
        Add two tensors into a fresh tensor (neither operand is modified).
        """
        if a.device != b.device:
            raise DeviceMismatchError(str(a.device), str(b.device))
        if a.shape != b.shape:
            raise ValueError(f"Shape mismatch in _add_no_grad: {a.shape} vs {b.shape}")
        return Tensor._from_numpy(a._data + b._data, device=a.device)

    def __repr__(self) -> str:
        return f"Tensor(shape={self.shape}, dtype={self.dtype}, device={self.device})"


def to_host(t: Any) -> np.ndarray:
    """
    Gather a value into a host NumPy array.

    Tensors are read through their host storage; plain array-likes are
    converted with `np.asarray`.
    """
    if isinstance(t, Tensor):
        if not t.device.is_cpu():
            raise DeviceNotSupportedError("to_host", str(t.device))
        return t.to_numpy()
    return np.asarray(t)


def from_host(arr: np.ndarray, device: Optional[Device] = None) -> Tensor:
    """
    Place a host NumPy array on `device`, adopting it as storage.
    """
    return Tensor._from_numpy(arr, device=device)
