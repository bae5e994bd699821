"""Cell Extractor - crop a single cell out of a 3x3 contact sheet."""

__version__ = "1.0.0"
