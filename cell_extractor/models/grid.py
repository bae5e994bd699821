"""Grid layout models."""

from pydantic import BaseModel, ConfigDict, Field

from cell_extractor.models.region import ContentRegion


class AxisDividers(BaseModel):
    """The two dividers chosen for one axis, in profile-local coordinates."""

    first: float = Field(description="Position of the first divider")
    second: float = Field(description="Position of the second divider")
    first_thickness: int = Field(
        default=0, ge=0, description="Measured gutter thickness (0 = geometric cut)"
    )
    second_thickness: int = Field(
        default=0, ge=0, description="Measured gutter thickness (0 = geometric cut)"
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


class CellBoundary(BaseModel):
    """One of the three ranges of an axis, in content-local coordinates."""

    start: int = Field(ge=0, description="Range start (inclusive)")
    end: int = Field(ge=0, description="Range end (exclusive)")

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def center(self) -> float:
        return (self.start + self.end) / 2

    @property
    def size(self) -> int:
        return self.end - self.start

    def distance_to(self, position: float) -> float:
        """
        Distance from a position to this range (0 when inside).

        Args:
            position (float): Content-local coordinate.

        Returns:
            float: Distance in pixels.
        """
        if position < self.start:
            return self.start - position
        if position >= self.end:
            return position - self.end
        return 0.0


class GridLayout(BaseModel):
    """Detected 3x3 layout of a composite."""

    content: ContentRegion = Field(description="Interior region after border removal")
    vertical: AxisDividers = Field(description="Column dividers")
    horizontal: AxisDividers = Field(description="Row dividers")
    columns: list[CellBoundary] = Field(description="Three column ranges, left to right")
    rows: list[CellBoundary] = Field(description="Three row ranges, top to bottom")

    model_config = ConfigDict(extra="forbid", frozen=True)
