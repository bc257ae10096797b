"""
Config hooks for graph layers without construction options.

`Sum` has nothing to configure, yet `build_layer` constructs every layer kind
through `from_config`. This mixin supplies the trivial pair.
"""

from typing import Any, Dict
from typing_extensions import Self


class StatelessConfigMixin:
    """
    Empty configuration for option-free layers.
    """

    def get_config(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> Self:
        """
        Build a default instance.

        Raises
        ------
        ValueError
            If `cfg` is not empty.
        """
        if cfg:
            raise ValueError(f"{cls.__name__} takes no config, got keys {sorted(cfg)}")
        return cls()
