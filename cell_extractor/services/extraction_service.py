"""Extraction service - maps a click on a composite to a trimmed crop of one cell."""

import logging
import os
import re

import cv2
import numpy as np

from cell_extractor.core.exceptions import DecodeError, ExtractError, RenderError
from cell_extractor.core.settings import AppSettings
from cell_extractor.core.settings.app_settings import ExtractionSettings
from cell_extractor.enums import ImageFormat
from cell_extractor.models import CellBoundary, ClickPoint, CropResult, GridLayout, RasterBuffer
from cell_extractor.services.grid_detection import analyze_grid
from cell_extractor.services.image_loader import ImageLoader, ImagePayload, decode_image

logger = logging.getLogger(__name__)

# Neutral slate colour returned when an image cannot be sampled
DEFAULT_DOMINANT_COLOR = (248, 250, 252)
DOMINANT_COLOR_SAMPLE_SIZE = 50


def _nearest_boundary(boundaries: list[CellBoundary], position: float) -> int:
    """
    Pick the range a position belongs to, or the nearest one.

    Args:
        boundaries (list[CellBoundary]): Ranges of one axis.
        position (float): Content-local coordinate.

    Returns:
        int: Index of the chosen range.
    """
    return min(
        range(len(boundaries)),
        key=lambda i: (boundaries[i].distance_to(position), abs(position - boundaries[i].center)),
    )


def resolve_click(
    layout: GridLayout,
    width: int,
    height: int,
    x_percent: float,
    y_percent: float,
) -> tuple[int, int]:
    """
    Map a normalised click to a grid cell.

    Columns and rows are resolved independently. A click inside a range selects
    it; a click in a gutter or outside the content region selects the nearest
    range, ties going to the nearer center. This only differs from picking the
    nearest center when a gutter is off-center and the click lands inside the
    wider range but closer to the narrower neighbour's center.

    Args:
        layout (GridLayout): Detected grid.
        width (int): Image width.
        height (int): Image height.
        x_percent (float): Horizontal click position in [0, 1].
        y_percent (float): Vertical click position in [0, 1].

    Returns:
        tuple[int, int]: (row, column).
    """
    click_x = x_percent * width - layout.content.left
    click_y = y_percent * height - layout.content.top
    column = _nearest_boundary(boundaries=layout.columns, position=click_x)
    row = _nearest_boundary(boundaries=layout.rows, position=click_y)
    return row, column


def _is_gutter_line(samples: np.ndarray, threshold: float, ratio: float) -> bool:
    """
    Check whether sampled edge pixels are mostly leftover gutter.

    Args:
        samples (np.ndarray): Brightness samples along the edge.
        threshold (float): Brightness a sample must exceed to count as white.
        ratio (float): Required fraction of white samples.

    Returns:
        bool: True if the edge line should be shaved off.
    """
    if samples.size == 0:
        return False
    return int(np.count_nonzero(samples > threshold)) >= ratio * samples.size


def trim_cell(
    brightness: np.ndarray,
    rect: tuple[int, int, int, int],
    settings: ExtractionSettings,
) -> tuple[int, int, int, int]:
    """
    Shave residual near-white lines off each side of a cell rectangle.

    Args:
        brightness (np.ndarray): Brightness plane of the composite.
        rect (tuple[int, int, int, int]): (x, y, width, height) in image coordinates.
        settings (ExtractionSettings): Trim thresholds and minimum size.

    Returns:
        tuple[int, int, int, int]: Trimmed (x, y, width, height).
    """
    x, y, w, h = rect
    floor = settings.min_cell_size
    step = settings.trim_sample_step
    threshold = settings.trim_threshold
    ratio = settings.trim_ratio

    def column_is_gutter(col: int) -> bool:
        return _is_gutter_line(brightness[y : y + h : step, col], threshold, ratio)

    def row_is_gutter(row: int) -> bool:
        return _is_gutter_line(brightness[row, x : x + w : step], threshold, ratio)

    while w > floor and column_is_gutter(x):
        x += 1
        w -= 1
    while w > floor and column_is_gutter(x + w - 1):
        w -= 1
    while h > floor and row_is_gutter(y):
        y += 1
        h -= 1
    while h > floor and row_is_gutter(y + h - 1):
        h -= 1

    return x, y, w, h


def clamp_crop(
    rect: tuple[int, int, int, int],
    width: int,
    height: int,
    settings: ExtractionSettings,
) -> tuple[int, int, int, int]:
    """
    Clamp a crop rectangle to safe, non-degenerate bounds inside the image.

    Args:
        rect (tuple[int, int, int, int]): (x, y, width, height).
        width (int): Image width.
        height (int): Image height.
        settings (ExtractionSettings): Minimum size and edge margin.

    Returns:
        tuple[int, int, int, int]: Clamped (x, y, width, height).
    """
    x, y, w, h = rect
    x = max(0, min(x, width - settings.edge_margin))
    y = max(0, min(y, height - settings.edge_margin))
    w = max(settings.min_cell_size, min(w, width - x))
    h = max(settings.min_cell_size, min(h, height - y))

    # Images smaller than the minimum size are returned whole
    w = min(w, width)
    h = min(h, height)
    x = min(x, width - w)
    y = min(y, height - h)
    return x, y, w, h


class ExtractionService:
    """Service for extracting single cells from 3x3 composites."""

    def __init__(self, settings: AppSettings, loader: ImageLoader | None = None) -> None:
        """
        Initialize the extraction service.

        Args:
            settings (AppSettings): Application settings instance.
            loader (ImageLoader | None): Payload loader (built from settings if omitted).
        """
        self.settings = settings
        self.loader = loader or ImageLoader(settings=settings.fetch)

        if settings.extraction.debug_mode:
            os.makedirs(settings.extraction.debug_output_dir, exist_ok=True)

    def _output_format(self, raster: RasterBuffer) -> ImageFormat:
        """
        Choose the crop output format.

        Args:
            raster (RasterBuffer): Source composite.

        Returns:
            ImageFormat: Configured format, else the input's family, else JPEG.
        """
        return self.settings.extraction.output_format or raster.source_format or ImageFormat.JPEG

    def _render(
        self,
        raster: RasterBuffer,
        rect: tuple[int, int, int, int],
        image_format: ImageFormat,
    ) -> bytes:
        """
        Encode a sub-region of the composite.

        Args:
            raster (RasterBuffer): Source composite.
            rect (tuple[int, int, int, int]): (x, y, width, height) to render.
            image_format (ImageFormat): Output format.

        Returns:
            bytes: Encoded crop.

        Raises:
            RenderError: If the region is empty or the encoder fails.
        """
        x, y, w, h = rect
        region = raster.image[y : y + h, x : x + w]
        if region.size == 0:
            raise RenderError("Crop region is empty")

        quality = self.settings.extraction.jpeg_quality
        params: list[int] = []
        if image_format is ImageFormat.JPEG:
            params = [cv2.IMWRITE_JPEG_QUALITY, quality]
        elif image_format is ImageFormat.WEBP:
            params = [cv2.IMWRITE_WEBP_QUALITY, quality]

        try:
            ok, buffer = cv2.imencode(ext=image_format.extension, img=region, params=params)
        except cv2.error as e:
            raise RenderError("Failed to encode crop") from e
        if not ok:
            raise RenderError("Failed to encode crop")
        return buffer.tobytes()

    def _save_debug_image(
        self,
        raster: RasterBuffer,
        layout: GridLayout,
        rect: tuple[int, int, int, int],
        filename: str,
    ) -> None:
        """
        Save the composite with detected dividers and the final crop drawn on it.

        Args:
            raster (RasterBuffer): Source composite.
            layout (GridLayout): Detected grid.
            rect (tuple[int, int, int, int]): Final crop rectangle.
            filename (str): Output filename (alphanumeric with underscores/hyphens).
        """
        safe_filename = os.path.basename(filename)
        if not re.match(r"^[\w\-\.]+$", safe_filename):
            logger.warning(f"Invalid debug filename rejected: {filename}")
            return

        debug_dir = os.path.realpath(self.settings.extraction.debug_output_dir)
        output_path = os.path.realpath(os.path.join(debug_dir, safe_filename))
        if not output_path.startswith(debug_dir + os.sep):
            logger.warning(f"Path traversal attempt rejected: {filename}")
            return

        debug_img = raster.image.copy()
        content = layout.content

        # Content region (blue)
        cv2.rectangle(
            img=debug_img,
            pt1=(content.left, content.top),
            pt2=(content.right - 1, content.bottom - 1),
            color=(255, 0, 0),
            thickness=2,
        )

        # Dividers (magenta)
        for position in (layout.vertical.first, layout.vertical.second):
            x = content.left + int(position)
            cv2.line(
                img=debug_img,
                pt1=(x, content.top),
                pt2=(x, content.bottom - 1),
                color=(255, 0, 255),
                thickness=1,
            )
        for position in (layout.horizontal.first, layout.horizontal.second):
            y = content.top + int(position)
            cv2.line(
                img=debug_img,
                pt1=(content.left, y),
                pt2=(content.right - 1, y),
                color=(255, 0, 255),
                thickness=1,
            )

        # Final crop (green)
        x, y, w, h = rect
        cv2.rectangle(
            img=debug_img,
            pt1=(x, y),
            pt2=(x + w - 1, y + h - 1),
            color=(0, 255, 0),
            thickness=2,
        )

        cv2.imwrite(filename=output_path, img=debug_img)
        logger.info(f"Debug image saved to {output_path}")

    def crop_cell(
        self,
        raster: RasterBuffer,
        layout: GridLayout,
        x_percent: float,
        y_percent: float,
    ) -> CropResult:
        """
        Crop the cell under a click from an analysed composite.

        Args:
            raster (RasterBuffer): Source composite.
            layout (GridLayout): Detected grid of the composite.
            x_percent (float): Horizontal click position in [0, 1].
            y_percent (float): Vertical click position in [0, 1].

        Returns:
            CropResult: Trimmed and encoded crop.
        """
        settings = self.settings.extraction
        row, column = resolve_click(
            layout=layout,
            width=raster.width,
            height=raster.height,
            x_percent=x_percent,
            y_percent=y_percent,
        )
        logger.debug(f"Click ({x_percent:.3f}, {y_percent:.3f}) resolved to cell {row},{column}")

        col_range = layout.columns[column]
        row_range = layout.rows[row]
        rect = (
            layout.content.left + col_range.start,
            layout.content.top + row_range.start,
            col_range.size,
            row_range.size,
        )
        rect = trim_cell(brightness=raster.brightness, rect=rect, settings=settings)
        rect = clamp_crop(rect=rect, width=raster.width, height=raster.height, settings=settings)
        logger.debug(f"Crop rectangle x={rect[0]} y={rect[1]} w={rect[2]} h={rect[3]}")

        if settings.debug_mode:
            self._save_debug_image(
                raster=raster,
                layout=layout,
                rect=rect,
                filename=f"debug_cell_{row}_{column}.png",
            )

        image_format = self._output_format(raster)
        x, y, w, h = rect
        return CropResult(
            x=x,
            y=y,
            width=w,
            height=h,
            row=row,
            column=column,
            format=image_format,
            data=self._render(raster=raster, rect=rect, image_format=image_format),
        )

    def _extract_all(self, raster: RasterBuffer, clicks: list[ClickPoint]) -> list[CropResult]:
        """
        Analyse a composite once and crop one cell per click.

        Args:
            raster (RasterBuffer): Decoded composite.
            clicks (list[ClickPoint]): Clicks to resolve.

        Returns:
            list[CropResult]: One crop per click, in order.

        Raises:
            RenderError: If OpenCV fails while processing the image.
            ExtractError: On any other processing failure.
        """
        try:
            layout = analyze_grid(raster=raster, settings=self.settings.extraction)
            return [
                self.crop_cell(
                    raster=raster,
                    layout=layout,
                    x_percent=click.x_percent,
                    y_percent=click.y_percent,
                )
                for click in clicks
            ]
        except ExtractError:
            raise
        except cv2.error as e:
            logger.error(f"OpenCV error during extraction: {e}")
            raise RenderError("Image processing error") from e
        except Exception as e:
            logger.exception(f"Unexpected error during extraction: {e}")
            raise ExtractError("Internal processing error") from e

    def extract_from_raster(
        self,
        raster: RasterBuffer,
        x_percent: float,
        y_percent: float,
    ) -> CropResult:
        """
        Extract the cell under a click from an already decoded composite.

        Args:
            raster (RasterBuffer): Decoded composite.
            x_percent (float): Horizontal click position in [0, 1].
            y_percent (float): Vertical click position in [0, 1].

        Returns:
            CropResult: Trimmed and encoded crop.
        """
        click = ClickPoint.model_construct(x_percent=x_percent, y_percent=y_percent)
        return self._extract_all(raster=raster, clicks=[click])[0]

    async def extract_cell(
        self,
        image: ImagePayload,
        x_percent: float,
        y_percent: float,
    ) -> CropResult:
        """
        Extract the cell under a click from a composite payload.

        Args:
            image (ImagePayload): Encoded bytes, a data URL or an http(s) URL.
            x_percent (float): Horizontal click position in [0, 1].
            y_percent (float): Vertical click position in [0, 1].

        Returns:
            CropResult: Trimmed and encoded crop.

        Raises:
            DecodeError: If the payload cannot be fetched or decoded.
            RenderError: If the crop cannot be rendered.
        """
        logger.info(f"Extracting cell at ({x_percent:.3f}, {y_percent:.3f})")
        raster = await self.loader.load(image)
        return self.extract_from_raster(raster=raster, x_percent=x_percent, y_percent=y_percent)

    async def extract_cells(self, image: ImagePayload, clicks: list[ClickPoint]) -> list[CropResult]:
        """
        Extract several cells from the same composite.

        Args:
            image (ImagePayload): Encoded bytes, a data URL or an http(s) URL.
            clicks (list[ClickPoint]): Clicks to resolve.

        Returns:
            list[CropResult]: One crop per click, in order.
        """
        logger.info(f"Extracting {len(clicks)} cells")
        raster = await self.loader.load(image)
        return self._extract_all(raster=raster, clicks=clicks)

    async def dominant_color(self, image: ImagePayload) -> tuple[int, int, int]:
        """
        Average colour of an image, sampled from a small downscale.

        Args:
            image (ImagePayload): Encoded bytes, a data URL or an http(s) URL.

        Returns:
            tuple[int, int, int]: (r, g, b), or a neutral default if the image
            cannot be loaded.
        """
        try:
            data = await self.loader.resolve(image)
            raster = decode_image(data)
        except DecodeError as e:
            logger.warning(f"Dominant colour unavailable, using default: {e}")
            return DEFAULT_DOMINANT_COLOR

        small = cv2.resize(
            src=raster.image,
            dsize=(DOMINANT_COLOR_SAMPLE_SIZE, DOMINANT_COLOR_SAMPLE_SIZE),
            interpolation=cv2.INTER_AREA,
        )
        blue, green, red = (int(channel) for channel in small.reshape(-1, 3).mean(axis=0))
        return red, green, blue
