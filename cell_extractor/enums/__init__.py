"""Enumerations."""

from cell_extractor.enums.edge import Edge
from cell_extractor.enums.image_format import ImageFormat

__all__ = ["Edge", "ImageFormat"]
