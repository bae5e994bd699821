"""Image format enum."""

from enum import StrEnum


class ImageFormat(StrEnum):
    """Encoded image family used for crop output."""

    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        """
        File extension understood by OpenCV's encoder.

        Returns:
            str: Extension including the leading dot.
        """
        return ".jpg" if self is ImageFormat.JPEG else f".{self.value}"

    @property
    def media_type(self) -> str:
        """
        MIME type of the format.

        Returns:
            str: Media type, e.g. "image/png".
        """
        return f"image/{self.value}"

    @classmethod
    def sniff(cls, data: bytes) -> "ImageFormat | None":
        """
        Detect the format from the leading magic bytes.

        Args:
            data (bytes): Encoded image bytes.

        Returns:
            ImageFormat | None: Detected format, or None if unrecognised.
        """
        if data.startswith(b"\x89PNG\r\n\x1a\n"):
            return cls.PNG
        if data.startswith(b"\xff\xd8\xff"):
            return cls.JPEG
        if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
            return cls.WEBP
        return None
