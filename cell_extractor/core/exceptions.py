"""Extraction errors."""


class ExtractError(Exception):
    """Base error for a failed cell extraction."""


class DecodeError(ExtractError):
    """The image payload could not be fetched or decoded, or has zero area."""


class RenderError(ExtractError):
    """The final crop could not be rendered into an encoded image."""
