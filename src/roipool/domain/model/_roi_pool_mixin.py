"""
Configuration mixin for ROI pooling layers.

This module defines `RoiPool2dConfigMixin`, a lightweight mixin that provides
JSON-serializable configuration hooks for ROI pooling layers.

The only construction-time option of an ROI pooling layer is its output grid
shape (`pool_size`), which is fixed for the layer's lifetime. The mixin
exposes it as plain Python types so a layer can be described, cloned, and
rebuilt without special cases.
"""

from typing import Any, Dict, Type, TypeVar


T = TypeVar("T", bound="RoiPool2dConfigMixin")


class RoiPool2dConfigMixin:
    """
    Mixin providing configuration hooks for ROI pooling layers.

    This mixin assumes the host class exposes:
    - pool_size : tuple[int, int]
    """

    def get_config(self) -> Dict[str, Any]:
        """
        Return JSON-serializable configuration for this pooling layer.
        """
        p_h, p_w = self.pool_size
        return {"pool_size": [int(p_h), int(p_w)]}

    @classmethod
    def from_config(cls: Type[T], cfg: Dict[str, Any]) -> T:
        """
        Reconstruct the pooling layer from a configuration dict.

        A missing "pool_size" falls back to the layer default.

        Raises
        ------
        ValueError
            If `cfg` holds keys other than "pool_size".
        """
        unknown = sorted(set(cfg) - {"pool_size"})
        if unknown:
            raise ValueError(f"Unknown {cls.__name__} config keys: {unknown}")
        if "pool_size" not in cfg:
            return cls()
        pool_size = cfg["pool_size"]
        if isinstance(pool_size, list):
            pool_size = tuple(pool_size)
        return cls(pool_size=pool_size)
