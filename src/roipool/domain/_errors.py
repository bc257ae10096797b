"""
Geometry-, shape- and device-related exceptions for roipool.

This module defines the runtime errors raised by the ROI pooling stack.
They let the framework fail fast and clearly when:

- feature-map or image dimensions are structurally invalid,
- a pooled output, argmax mask or output gradient does not have the
  shape implied by the pool grid, channel count and box count,
- a tensor is placed on (or combined across) a device backend that has
  not been implemented.

Malformed *boxes* are not an error condition: they degrade to empty
pooling bins. A missing upstream derivative is not an error either: the
graph node defers instead.
"""

from typing import Tuple


class InvalidGeometryError(ValueError):
    """
    Raised when feature-map, image or box-list dimensions are malformed.

    Typical causes are non-positive image sizes, a feature map with a
    zero-sized axis, or a box list whose array does not have 4 or 5 columns.

    Attributes
    ----------
    what : str
        Name of the offending quantity (e.g., "image_size").
    value : object
        The rejected value.
    """

    def __init__(self, what: str, value: object, reason: str) -> None:
        """
        Initialize the InvalidGeometryError.

        Parameters
        ----------
        what : str
            Name of the offending quantity.
        value : object
            The rejected value.
        reason : str
            Human-readable explanation.
        """
        super().__init__(f"Invalid {what} {value!r}: {reason}.")
        self.what = what
        self.value = value


class ShapeMismatchError(RuntimeError):
    """
    Raised when an array crossing the ROI pooling boundary has the wrong shape.

    This signals a programming error upstream (e.g., a mask produced for a
    different box set), not a recoverable runtime condition.
    """

    def __init__(
        self, what: str, expected: Tuple[int, ...], actual: Tuple[int, ...]
    ) -> None:
        super().__init__(
            f"{what} shape mismatch: expected {tuple(expected)}, got {tuple(actual)}."
        )
        self.what = what
        self.expected = tuple(expected)
        self.actual = tuple(actual)


class DeviceNotSupportedError(RuntimeError):
    """
    Raised when a tensor operation is requested on a device backend
    that is not implemented.

    Only host (CPU) storage exists; allocating on or transferring to an
    accelerator device raises this error.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted (e.g., "to", "allocate").
    device : str
        String representation of the device on which the operation
        was attempted.
    """

    def __init__(self, op: str, device: str) -> None:
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device


class DeviceMismatchError(RuntimeError):
    """
    Raised when an operation is attempted between tensors on different devices.
    """

    def __init__(self, device_a: str, device_b: str) -> None:
        super().__init__(f"Device mismatch: '{device_a}' vs '{device_b}'.")
        self.device_a = device_a
        self.device_b = device_b
