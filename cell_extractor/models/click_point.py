"""Click point model."""

from pydantic import BaseModel, ConfigDict, Field


class ClickPoint(BaseModel):
    """A click on the composite, normalised to the image size."""

    x_percent: float = Field(ge=0.0, le=1.0, description="Horizontal position in [0, 1]")
    y_percent: float = Field(ge=0.0, le=1.0, description="Vertical position in [0, 1]")

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "x_percent": 0.35,
                "y_percent": 0.05,
            }
        },
    )
