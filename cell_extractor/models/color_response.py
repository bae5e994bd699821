"""Dominant colour response model."""

from pydantic import BaseModel, ConfigDict, Field


class DominantColorResponse(BaseModel):
    """Average colour of an image."""

    r: int = Field(ge=0, le=255, description="Red channel")
    g: int = Field(ge=0, le=255, description="Green channel")
    b: int = Field(ge=0, le=255, description="Blue channel")
    rgb: str = Field(description='CSS-ready "r, g, b" string')

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "r": 248,
                "g": 250,
                "b": 252,
                "rgb": "248, 250, 252",
            }
        },
    )

    @classmethod
    def from_rgb(cls, rgb: tuple[int, int, int]) -> "DominantColorResponse":
        """
        Build the response from an (r, g, b) tuple.

        Args:
            rgb (tuple[int, int, int]): Colour channels.

        Returns:
            DominantColorResponse: Response model.
        """
        r, g, b = rgb
        return cls(r=r, g=g, b=b, rgb=f"{r}, {g}, {b}")
