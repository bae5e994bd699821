"""Extraction request and response models."""

from pydantic import BaseModel, ConfigDict, Field

from cell_extractor.enums import ImageFormat
from cell_extractor.models.click_point import ClickPoint
from cell_extractor.models.crop_result import CropResult


class CropInfo(BaseModel):
    """Crop rectangle and resolved cell, without the pixel payload."""

    x: int = Field(description="Left edge in image coordinates")
    y: int = Field(description="Top edge in image coordinates")
    width: int = Field(description="Crop width in pixels")
    height: int = Field(description="Crop height in pixels")
    row: int = Field(description="Resolved grid row (0-2)")
    column: int = Field(description="Resolved grid column (0-2)")
    format: ImageFormat = Field(description="Encoded image format")

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_result(cls, result: CropResult) -> "CropInfo":
        """
        Build crop info from an extraction result.

        Args:
            result (CropResult): Extraction result.

        Returns:
            CropInfo: Rectangle and cell of the result.
        """
        return cls(
            x=result.x,
            y=result.y,
            width=result.width,
            height=result.height,
            row=result.row,
            column=result.column,
            format=result.format,
        )


class ExtractionResponse(BaseModel):
    """Single cell extraction response."""

    success: bool = Field(description="Whether extraction was successful")
    error: str | None = Field(default=None, description="Error message if extraction failed")
    crop: CropInfo | None = Field(default=None, description="Crop rectangle and resolved cell")
    image: str | None = Field(default=None, description="Cropped image as a data URL")

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "success": True,
                "error": None,
                "crop": {
                    "x": 310,
                    "y": 10,
                    "width": 280,
                    "height": 280,
                    "row": 0,
                    "column": 1,
                    "format": "png",
                },
                "image": "data:image/png;base64,iVBORw0KGgo...",
            }
        },
    )

    @classmethod
    def from_result(cls, result: CropResult) -> "ExtractionResponse":
        """
        Build a successful response from an extraction result.

        Args:
            result (CropResult): Extraction result.

        Returns:
            ExtractionResponse: Successful response.
        """
        return cls(
            success=True,
            crop=CropInfo.from_result(result),
            image=result.to_data_url(),
        )


class BatchExtractionRequest(BaseModel):
    """Several clicks on the same composite."""

    image: str = Field(description="Composite as a data URL or http(s) URL")
    clicks: list[ClickPoint] = Field(min_length=1, max_length=9, description="Clicks to resolve")

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "image": "https://example.com/sheet.png",
                "clicks": [
                    {"x_percent": 0.35, "y_percent": 0.05},
                    {"x_percent": 0.95, "y_percent": 0.95},
                ],
            }
        },
    )


class BatchExtractionResponse(BaseModel):
    """Batch extraction response."""

    success: bool = Field(description="Whether extraction was successful")
    error: str | None = Field(default=None, description="Error message if extraction failed")
    crops: list[ExtractionResponse] = Field(
        default_factory=list, description="One result per click, in request order"
    )

    model_config = ConfigDict(extra="forbid")
