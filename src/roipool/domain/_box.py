"""
Region-of-interest box records.

A `Box` is an immutable record in original-image pixel coordinates. Boxes are
not validated: zero-sized, inverted, non-finite or out-of-image boxes are
legal values and degrade to empty pooling bins downstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Box:
    """
    Candidate region in continuous image coordinates.

    The box spans ``[x_min, x_max) x [y_min, y_max)``; a whole ``W x H`` image
    is ``Box(0, 0, W, H)``.

    Attributes
    ----------
    x_min, y_min, x_max, y_max : float
        Corner coordinates in original-image pixels.
    image_index : int
        Index of the image the box belongs to. The pooling layer operates on a
        single feature map, so only index 0 addresses real data.
    """

    x_min: float
    y_min: float
    x_max: float
    y_max: float
    image_index: int = 0

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    def as_row(self) -> Tuple[float, float, float, float, float]:
        """Return ``(image_index, x_min, y_min, x_max, y_max)``."""
        return (
            float(self.image_index),
            float(self.x_min),
            float(self.y_min),
            float(self.x_max),
            float(self.y_max),
        )
