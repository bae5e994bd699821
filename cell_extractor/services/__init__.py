"""Business logic services."""

from cell_extractor.services.extraction_service import ExtractionService
from cell_extractor.services.grid_detection import analyze_grid
from cell_extractor.services.image_loader import ImageLoader, ImagePayload, decode_image

__all__ = [
    "ExtractionService",
    "ImageLoader",
    "ImagePayload",
    "analyze_grid",
    "decode_image",
]
