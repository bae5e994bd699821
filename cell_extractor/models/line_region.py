"""Line region model."""

from pydantic import BaseModel, ConfigDict, Field


class LineRegion(BaseModel):
    """A contiguous bright run in a brightness profile (a gutter candidate)."""

    start: int = Field(ge=0, description="First index of the run (inclusive)")
    end: int = Field(description="Index one past the run (exclusive)")
    avg_brightness: float = Field(description="Mean profile brightness over the run")

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        json_schema_extra={
            "example": {
                "start": 330,
                "end": 340,
                "avg_brightness": 252.5,
            }
        },
    )

    @property
    def center(self) -> float:
        return (self.start + self.end) / 2

    @property
    def thickness(self) -> int:
        return self.end - self.start
