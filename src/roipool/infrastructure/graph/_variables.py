"""
Graph-owned variable and parameter slots.

A `GraphVariable` holds an activation value and its accumulated derivative;
a `GraphParam` does the same for a parameter. Both are plain mutable records
owned by the `DagNetwork`. Pending-reference counts are not stored here: they
belong to the `BackwardSweep` of the sweep in progress.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..tensor._tensor import Tensor


@dataclass
class GraphVariable:
    """
    Activation slot.

    Attributes
    ----------
    name : str
        Unique variable name within the network.
    value : Any, optional
        Current value (usually a `Tensor`), or None when absent or released.
    der : Tensor, optional
        Accumulated derivative, or None when absent or released.
    precious : bool
        If True, memory release never clears this variable.
    """

    name: str
    value: Optional[Any] = None
    der: Optional[Tensor] = None
    precious: bool = False

    def release(self) -> None:
        """Drop value and derivative."""
        self.value = None
        self.der = None


@dataclass
class GraphParam:
    """
    Parameter slot.

    Attributes
    ----------
    name : str
        Unique parameter name within the network.
    value : Tensor, optional
        Parameter value.
    der : Tensor, optional
        Accumulated derivative; may persist across sweeps when the network
        accumulates parameter derivatives.
    """

    name: str
    value: Optional[Tensor] = None
    der: Optional[Tensor] = None
