"""Content region model."""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ContentRegion(BaseModel):
    """Interior rectangle of a composite after the outer margin is removed."""

    left: int = Field(ge=0, description="First content column (inclusive)")
    right: int = Field(description="Last content column (exclusive)")
    top: int = Field(ge=0, description="First content row (inclusive)")
    bottom: int = Field(description="Last content row (exclusive)")

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        json_schema_extra={
            "example": {
                "left": 12,
                "right": 1012,
                "top": 12,
                "bottom": 1012,
            }
        },
    )

    @model_validator(mode="after")
    def validate_extent(self) -> Self:
        """Validate the region has positive area."""
        if self.right <= self.left or self.bottom <= self.top:
            raise ValueError(
                f"Content region must have positive area: "
                f"({self.left}, {self.top}) - ({self.right}, {self.bottom})"
            )
        return self

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top
