"""
Per-sweep gradient accumulation context.

A `BackwardSweep` is created fresh by the executor for every backward sweep
and passed explicitly to each node invocation. It carries the graph-wide
flags of the sweep and the pending-reference counters that decide whether a
derivative write is the first contribution (overwrite) or a later one (add).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import DefaultDict, Optional

from ..tensor._tensor import Tensor
from ._variables import GraphParam, GraphVariable

logger = logging.getLogger(__name__)


def _add(a: Tensor, b: Tensor) -> Tensor:
    return Tensor._add_no_grad(a, b)


@dataclass
class BackwardSweep:
    """
    Accumulation context of one backward sweep.

    Attributes
    ----------
    conserve_memory : bool
        If True, nodes release the values and derivatives of their
        non-precious, derivative-carrying outputs once they no longer need
        them.
    accumulate_param_ders : bool
        If True, the first contribution of a sweep to a parameter derivative
        is added to whatever the parameter already holds (accumulation across
        graph invocations) instead of overwriting it.
    pending_var_refs : dict[int, int]
        Number of contributions written to each variable index so far.
    pending_param_refs : dict[int, int]
        Number of contributions written to each parameter index so far.
    """

    conserve_memory: bool = True
    accumulate_param_ders: bool = False
    pending_var_refs: DefaultDict[int, int] = field(
        default_factory=lambda: defaultdict(int)
    )
    pending_param_refs: DefaultDict[int, int] = field(
        default_factory=lambda: defaultdict(int)
    )

    def accumulate_variable(
        self, index: int, var: GraphVariable, der: Optional[Tensor]
    ) -> None:
        """
        Write one consumer's contribution to a variable derivative.

        The contribution overwrites when it is the first of the sweep or the
        variable holds no derivative; otherwise it is added. An absent
        contribution is never added. The pending count grows by one either way.
        """
        if self.pending_var_refs[index] == 0 or var.der is None:
            var.der = der
        elif der is not None:
            var.der = _add(var.der, der)
        self.pending_var_refs[index] += 1

    def accumulate_param(
        self, index: int, param: GraphParam, der: Optional[Tensor]
    ) -> None:
        """
        Write one contribution to a parameter derivative.

        Overwrites on the first contribution of the sweep unless
        `accumulate_param_ders` is set, and whenever the parameter holds no
        derivative; otherwise adds.
        """
        first = self.pending_param_refs[index] == 0 and not self.accumulate_param_ders
        if first or param.der is None:
            param.der = der
        elif der is not None:
            param.der = _add(param.der, der)
        self.pending_param_refs[index] += 1

    def release(self, var: GraphVariable) -> bool:
        """
        Release a variable under the memory policy.

        Returns
        -------
        bool
            True if the variable was cleared.
        """
        if not self.conserve_memory or var.precious:
            return False
        logger.debug("Releasing variable %r", var.name)
        var.release()
        return True
