"""Crop result model."""

import base64

from pydantic import BaseModel, ConfigDict, Field

from cell_extractor.enums import ImageFormat


class CropResult(BaseModel):
    """Final crop of a single cell."""

    x: int = Field(ge=0, description="Left edge in image coordinates")
    y: int = Field(ge=0, description="Top edge in image coordinates")
    width: int = Field(gt=0, description="Crop width in pixels")
    height: int = Field(gt=0, description="Crop height in pixels")
    row: int = Field(ge=0, le=2, description="Resolved grid row")
    column: int = Field(ge=0, le=2, description="Resolved grid column")
    format: ImageFormat = Field(description="Encoded image format")
    data: bytes = Field(repr=False, description="Encoded crop bytes")

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_data_url(self) -> str:
        """
        Encode the crop as a data URL.

        Returns:
            str: "data:image/...;base64,..." string.
        """
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.format.media_type};base64,{encoded}"
