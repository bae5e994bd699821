"""Data models."""

from cell_extractor.models.click_point import ClickPoint
from cell_extractor.models.color_response import DominantColorResponse
from cell_extractor.models.crop_result import CropResult
from cell_extractor.models.extraction_response import (
    BatchExtractionRequest,
    BatchExtractionResponse,
    CropInfo,
    ExtractionResponse,
)
from cell_extractor.models.grid import AxisDividers, CellBoundary, GridLayout
from cell_extractor.models.health_response import HealthResponse
from cell_extractor.models.line_region import LineRegion
from cell_extractor.models.raster import RasterBuffer
from cell_extractor.models.region import ContentRegion

__all__ = [
    "AxisDividers",
    "BatchExtractionRequest",
    "BatchExtractionResponse",
    "CellBoundary",
    "ClickPoint",
    "ContentRegion",
    "CropInfo",
    "CropResult",
    "DominantColorResponse",
    "ExtractionResponse",
    "GridLayout",
    "HealthResponse",
    "LineRegion",
    "RasterBuffer",
]
