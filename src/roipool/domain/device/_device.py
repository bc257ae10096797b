"""
Placement tags for tensors.

Every `Tensor` records where its array is meant to live. ROI pooling only
ever computes on host arrays, so the tag is not an allocator: it marks the
boundary at which `to_host` / `from_host` must move data, and lets the
backend dispatch reject placements it cannot serve.

Accepted spellings are "cpu" and "cuda:<index>".
"""

from enum import Enum
import re
from typing import Optional, Tuple, Union


class DeviceType(Enum):
    """
    Placement category.

    Attributes
    ----------
    CPU : DeviceType
        Host memory; the only category with an implemented backend.
    CUDA : DeviceType
        Accelerator memory, identified by an ordinal.
    """

    CPU = "cpu"
    CUDA = "cuda"


_CUDA_SPELLING = re.compile(r"^cuda:(\d+)$")


def _parse(device: str) -> Tuple[DeviceType, Optional[int]]:
    if device == DeviceType.CPU.value:
        return DeviceType.CPU, None
    m = _CUDA_SPELLING.match(device)
    if m is None:
        raise ValueError(
            f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
        )
    return DeviceType.CUDA, int(m.group(1))


class Device:
    """
    Validated placement tag.

    Parameters
    ----------
    device : str or Device, optional
        "cpu" (default), "cuda:<index>", or another `Device` to copy.

    Raises
    ------
    ValueError
        If the string is not one of the accepted spellings.
    """

    __slots__ = ("type", "index")

    def __init__(self, device: Union[str, "Device"] = "cpu"):
        if isinstance(device, Device):
            self.type, self.index = device.type, device.index
        else:
            self.type, self.index = _parse(device)

    @classmethod
    def host(cls) -> "Device":
        return cls()

    def is_cpu(self) -> bool:
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        return self.type is DeviceType.CUDA

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return self.type is other.type and self.index == other.index

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def __str__(self) -> str:
        if self.index is None:
            return self.type.value
        return f"{self.type.value}:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"
