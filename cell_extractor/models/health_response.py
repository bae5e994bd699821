"""Health response model."""

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Health status")
    version: str = Field(description="Application version")
    opencv_version: str | None = Field(default=None, description="OpenCV version if available")

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "opencv_version": "4.10.0",
            }
        },
    )
