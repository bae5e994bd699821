"""Raster buffer model."""

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from cell_extractor.enums import ImageFormat


class RasterBuffer(BaseModel):
    """Decoded composite image with a per-pixel brightness plane."""

    image: np.ndarray = Field(description="Decoded BGR pixels, shape (height, width, 3)")
    brightness: np.ndarray = Field(description="(r + g + b) / 3 per pixel, shape (height, width)")
    source_format: ImageFormat | None = Field(
        default=None, description="Format family of the encoded payload, if recognised"
    )

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @property
    def width(self) -> int:
        return int(self.brightness.shape[1])

    @property
    def height(self) -> int:
        return int(self.brightness.shape[0])

    def brightness_at(self, x: int, y: int) -> float:
        """
        Brightness of a single in-bounds pixel.

        Args:
            x (int): Column.
            y (int): Row.

        Returns:
            float: Brightness in [0, 255].
        """
        return float(self.brightness[y, x])
