"""Tests for the extraction service."""

from unittest.mock import patch

import cv2
import numpy as np
import pytest

from cell_extractor.core.exceptions import DecodeError, ExtractError, RenderError
from cell_extractor.core.settings import AppSettings
from cell_extractor.core.settings.app_settings import ExtractionSettings
from cell_extractor.enums import ImageFormat
from cell_extractor.models import ClickPoint
from cell_extractor.services.extraction_service import (
    DEFAULT_DOMINANT_COLOR,
    ExtractionService,
    clamp_crop,
    resolve_click,
    trim_cell,
)
from cell_extractor.services.grid_detection import analyze_grid
from cell_extractor.services.image_loader import decode_image
from tests.helpers import GRAY, WHITE, encode_png


@pytest.fixture
def service(mock_settings: AppSettings) -> ExtractionService:
    """
    Create an extraction service with mock settings.

    Args:
        mock_settings (AppSettings): Mock settings fixture.

    Returns:
        ExtractionService: Service instance.
    """
    return ExtractionService(settings=mock_settings)


def _decode_crop(data: bytes) -> np.ndarray:
    """Decode crop bytes back into pixels."""
    return cv2.imdecode(buf=np.frombuffer(buffer=data, dtype=np.uint8), flags=cv2.IMREAD_COLOR)


class TestResolveClick:
    """Tests for resolve_click function."""

    def test_click_inside_cell(self, grid_image: np.ndarray) -> None:
        """
        Test that a click inside a cell selects that cell.

        Args:
            grid_image (np.ndarray): Exact grid fixture.

        """
        layout = analyze_grid(decode_image(encode_png(grid_image)), ExtractionSettings())
        assert resolve_click(layout, 900, 900, 0.1, 0.9) == (2, 0)
        assert resolve_click(layout, 900, 900, 0.5, 0.5) == (1, 1)

    def test_click_near_shifted_gutter_stays_in_cell(self, shifted_grid_image: np.ndarray) -> None:
        """
        Test that a click just left of a shifted gutter resolves to the cell it is in.

        Args:
            shifted_grid_image (np.ndarray): Shifted grid fixture.

        """
        layout = analyze_grid(decode_image(encode_png(shifted_grid_image)), ExtractionSettings())

        assert resolve_click(layout, 900, 900, 325.5 / 900, 0.1) == (0, 0)
        assert resolve_click(layout, 900, 900, 0.9, 565 / 900) == (1, 2)

    def test_click_in_gutter_selects_closest_range(self, shifted_grid_image: np.ndarray) -> None:
        """
        Test that a click inside a gutter picks the range it is closest to.

        Args:
            shifted_grid_image (np.ndarray): Shifted grid fixture.

        """
        layout = analyze_grid(decode_image(encode_png(shifted_grid_image)), ExtractionSettings())

        assert resolve_click(layout, 900, 900, 0.1, 268 / 900) == (0, 0)
        assert resolve_click(layout, 900, 900, 0.1, 272 / 900) == (1, 0)

    def test_click_outside_content_region(self, top_row_image: np.ndarray) -> None:
        """
        Test that clicks in the stripped margin resolve to the nearest cell.

        Args:
            top_row_image (np.ndarray): Top-row composite fixture.

        """
        layout = analyze_grid(decode_image(encode_png(top_row_image)), ExtractionSettings())

        assert resolve_click(layout, 900, 900, 0.0, 0.0) == (0, 0)
        assert resolve_click(layout, 900, 900, 1.0, 1.0) == (2, 2)


class TestTrimCell:
    """Tests for trim_cell function."""

    def test_shaves_residual_gutter(self) -> None:
        """
        Test that white leftover lines on the edges are removed.

        """
        brightness = np.full((200, 200), float(GRAY))
        brightness[:, 0:5] = WHITE
        brightness[0:3, :] = WHITE

        rect = trim_cell(brightness, (0, 0, 200, 200), ExtractionSettings())
        assert rect == (5, 3, 195, 197)

    def test_stops_at_minimum_size(self) -> None:
        """
        Test that a blank cell is never trimmed below the minimum size.

        """
        brightness = np.full((120, 120), float(WHITE))

        rect = trim_cell(brightness, (0, 0, 120, 120), ExtractionSettings())
        assert rect == (70, 70, 50, 50)

    def test_leaves_content_untouched(self) -> None:
        """
        Test that a cell with no residual gutter keeps its rectangle.

        """
        brightness = np.full((200, 200), float(GRAY))

        rect = trim_cell(brightness, (10, 20, 150, 100), ExtractionSettings())
        assert rect == (10, 20, 150, 100)


class TestClampCrop:
    """Tests for clamp_crop function."""

    def test_rect_inside_image_unchanged(self) -> None:
        """
        Test that a valid rectangle is left as-is.

        """
        assert clamp_crop((100, 100, 200, 200), 900, 900, ExtractionSettings()) == (
            100,
            100,
            200,
            200,
        )

    def test_tiny_rect_at_corner(self) -> None:
        """
        Test that a tiny rectangle near the corner grows to the minimum size inside the image.

        """
        assert clamp_crop((895, 895, 5, 5), 900, 900, ExtractionSettings()) == (850, 850, 50, 50)

    def test_image_smaller_than_minimum(self) -> None:
        """
        Test that an image smaller than the minimum size is returned whole.

        """
        assert clamp_crop((0, 0, 30, 30), 30, 30, ExtractionSettings()) == (0, 0, 30, 30)


class TestExtractionService:
    """Tests for ExtractionService class."""

    def test_init_creates_debug_dir(self, mock_settings: AppSettings, tmp_path) -> None:
        """
        Test that debug mode creates the debug output directory.

        Args:
            mock_settings (AppSettings): Mock settings fixture.
            tmp_path: Pytest temporary directory.

        """
        debug_dir = tmp_path / "debug"
        mock_settings.extraction.debug_mode = True
        mock_settings.extraction.debug_output_dir = str(debug_dir)

        ExtractionService(settings=mock_settings)
        assert debug_dir.is_dir()

    @pytest.mark.asyncio
    async def test_extract_top_row_cell(
        self, service: ExtractionService, top_row_image_bytes: bytes
    ) -> None:
        """
        Test extracting the middle cell of the top row.

        Args:
            service (ExtractionService): Service fixture.
            top_row_image_bytes (bytes): Top-row composite PNG.

        """
        result = await service.extract_cell(top_row_image_bytes, 0.35, 0.05)

        assert (result.row, result.column) == (0, 1)
        assert (result.x, result.y, result.width, result.height) == (310, 10, 280, 251)
        assert result.format == ImageFormat.PNG
        assert result.data.startswith(b"\x89PNG")

        crop = _decode_crop(result.data)
        assert crop.shape == (251, 280, 3)
        assert int(crop.max()) == 128

    @pytest.mark.asyncio
    async def test_extract_blank_cell_keeps_minimum_size(
        self, service: ExtractionService, top_row_image_bytes: bytes
    ) -> None:
        """
        Test that clicking an empty cell yields a minimum-size crop.

        Args:
            service (ExtractionService): Service fixture.
            top_row_image_bytes (bytes): Top-row composite PNG.

        """
        result = await service.extract_cell(top_row_image_bytes, 0.95, 0.95)

        assert (result.row, result.column) == (2, 2)
        assert (result.x, result.y, result.width, result.height) == (840, 715, 50, 50)

    @pytest.mark.asyncio
    async def test_extract_exact_grid_center(
        self, service: ExtractionService, grid_image: np.ndarray
    ) -> None:
        """
        Test that the center cell of an exact grid excludes both gutters.

        Args:
            service (ExtractionService): Service fixture.
            grid_image (np.ndarray): Exact grid fixture.

        """
        result = await service.extract_cell(encode_png(grid_image), 0.5, 0.5)

        assert (result.x, result.y, result.width, result.height) == (302, 302, 296, 296)
        crop = _decode_crop(result.data)
        assert int(crop.max()) == GRAY

    @pytest.mark.asyncio
    async def test_extract_all_white_image(self, service: ExtractionService) -> None:
        """
        Test that a blank image still produces a non-degenerate crop.

        Args:
            service (ExtractionService): Service fixture.

        """
        image = np.full((300, 300, 3), WHITE, dtype=np.uint8)
        result = await service.extract_cell(encode_png(image), 1.0, 1.0)

        assert (result.x, result.y, result.width, result.height) == (205, 205, 50, 50)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fixture_name", ["grid_image", "shifted_grid_image", "noise_image"])
    async def test_crop_always_inside_image(
        self, service: ExtractionService, fixture_name: str, request: pytest.FixtureRequest
    ) -> None:
        """
        Test that every crop lies inside the image with at least the minimum size.

        Args:
            service (ExtractionService): Service fixture.
            fixture_name (str): Name of the image fixture.
            request (pytest.FixtureRequest): Pytest request object.

        """
        image = request.getfixturevalue(fixture_name)
        clicks = [
            ClickPoint(x_percent=x, y_percent=y)
            for x in (0.0, 0.33, 0.5, 0.67, 1.0)
            for y in (0.0, 0.33, 0.5, 0.67, 1.0)
        ]
        results = await service.extract_cells(encode_png(image), clicks)

        assert len(results) == len(clicks)
        for result in results:
            assert result.x >= 0
            assert result.y >= 0
            assert result.width >= 50
            assert result.height >= 50
            assert result.x + result.width <= 900
            assert result.y + result.height <= 900

    @pytest.mark.asyncio
    async def test_extract_cells_keeps_click_order(
        self, service: ExtractionService, top_row_image_bytes: bytes
    ) -> None:
        """
        Test that batch extraction returns one crop per click, in order.

        Args:
            service (ExtractionService): Service fixture.
            top_row_image_bytes (bytes): Top-row composite PNG.

        """
        clicks = [
            ClickPoint(x_percent=0.95, y_percent=0.95),
            ClickPoint(x_percent=0.35, y_percent=0.05),
        ]
        results = await service.extract_cells(top_row_image_bytes, clicks)

        assert [(r.row, r.column) for r in results] == [(2, 2), (0, 1)]

    @pytest.mark.asyncio
    async def test_configured_output_format(
        self, mock_settings: AppSettings, top_row_image_bytes: bytes
    ) -> None:
        """
        Test that a configured output format overrides the input family.

        Args:
            mock_settings (AppSettings): Mock settings fixture.
            top_row_image_bytes (bytes): Top-row composite PNG.

        """
        mock_settings.extraction.output_format = ImageFormat.JPEG
        service = ExtractionService(settings=mock_settings)

        result = await service.extract_cell(top_row_image_bytes, 0.35, 0.05)

        assert result.format == ImageFormat.JPEG
        assert result.data.startswith(b"\xff\xd8\xff")
        assert result.to_data_url().startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_jpeg_input_gives_jpeg_output(
        self, service: ExtractionService, top_row_image: np.ndarray
    ) -> None:
        """
        Test that the output format follows the input family.

        Args:
            service (ExtractionService): Service fixture.
            top_row_image (np.ndarray): Top-row composite fixture.

        """
        _, buffer = cv2.imencode(".jpg", top_row_image)
        result = await service.extract_cell(buffer.tobytes(), 0.35, 0.05)

        assert result.format == ImageFormat.JPEG

    @pytest.mark.asyncio
    async def test_invalid_image_raises_decode_error(
        self, service: ExtractionService, invalid_image_bytes: bytes
    ) -> None:
        """
        Test that undecodable bytes raise DecodeError.

        Args:
            service (ExtractionService): Service fixture.
            invalid_image_bytes (bytes): Invalid image data.

        """
        with pytest.raises(DecodeError):
            await service.extract_cell(invalid_image_bytes, 0.5, 0.5)

    @pytest.mark.asyncio
    async def test_empty_payload_raises_decode_error(self, service: ExtractionService) -> None:
        """
        Test that an empty payload raises DecodeError.

        Args:
            service (ExtractionService): Service fixture.

        """
        with pytest.raises(DecodeError):
            await service.extract_cell(b"", 0.5, 0.5)

    def test_unexpected_error_wrapped(
        self, service: ExtractionService, grid_image: np.ndarray
    ) -> None:
        """
        Test that unexpected failures surface as ExtractError.

        Args:
            service (ExtractionService): Service fixture.
            grid_image (np.ndarray): Exact grid fixture.

        """
        raster = decode_image(encode_png(grid_image))
        with patch(
            "cell_extractor.services.extraction_service.analyze_grid",
            side_effect=ValueError("boom"),
        ):
            with pytest.raises(ExtractError, match="Internal processing error"):
                service.extract_from_raster(raster, 0.5, 0.5)

    def test_opencv_error_wrapped(self, service: ExtractionService, grid_image: np.ndarray) -> None:
        """
        Test that OpenCV failures surface as RenderError.

        Args:
            service (ExtractionService): Service fixture.
            grid_image (np.ndarray): Exact grid fixture.

        """
        raster = decode_image(encode_png(grid_image))
        with patch(
            "cell_extractor.services.extraction_service.analyze_grid",
            side_effect=cv2.error("boom"),
        ):
            with pytest.raises(RenderError):
                service.extract_from_raster(raster, 0.5, 0.5)

    def test_render_empty_region_raises(
        self, service: ExtractionService, grid_image: np.ndarray
    ) -> None:
        """
        Test that rendering an empty region raises RenderError.

        Args:
            service (ExtractionService): Service fixture.
            grid_image (np.ndarray): Exact grid fixture.

        """
        raster = decode_image(encode_png(grid_image))
        with pytest.raises(RenderError, match="empty"):
            service._render(raster=raster, rect=(900, 900, 10, 10), image_format=ImageFormat.PNG)

    def test_debug_image_saved(
        self, mock_settings: AppSettings, grid_image: np.ndarray, tmp_path
    ) -> None:
        """
        Test that debug mode writes an annotated composite.

        Args:
            mock_settings (AppSettings): Mock settings fixture.
            grid_image (np.ndarray): Exact grid fixture.
            tmp_path: Pytest temporary directory.

        """
        mock_settings.extraction.debug_mode = True
        mock_settings.extraction.debug_output_dir = str(tmp_path)
        service = ExtractionService(settings=mock_settings)

        service.extract_from_raster(decode_image(encode_png(grid_image)), 0.5, 0.1)

        assert (tmp_path / "debug_cell_0_1.png").is_file()

    def test_debug_image_rejects_traversal(
        self, mock_settings: AppSettings, grid_image: np.ndarray, tmp_path
    ) -> None:
        """
        Test that unsafe debug filenames are rejected.

        Args:
            mock_settings (AppSettings): Mock settings fixture.
            grid_image (np.ndarray): Exact grid fixture.
            tmp_path: Pytest temporary directory.

        """
        mock_settings.extraction.debug_output_dir = str(tmp_path)
        service = ExtractionService(settings=mock_settings)
        raster = decode_image(encode_png(grid_image))
        layout = analyze_grid(raster, mock_settings.extraction)

        service._save_debug_image(raster, layout, (0, 0, 50, 50), "bad name!.png")

        assert list(tmp_path.iterdir()) == []


class TestDominantColor:
    """Tests for ExtractionService.dominant_color."""

    @pytest.mark.asyncio
    async def test_uniform_image(self, service: ExtractionService) -> None:
        """
        Test the dominant colour of a single-colour image.

        Args:
            service (ExtractionService): Service fixture.

        """
        image = np.zeros((120, 80, 3), dtype=np.uint8)
        image[:, :] = (30, 60, 90)

        assert await service.dominant_color(encode_png(image)) == (90, 60, 30)

    @pytest.mark.asyncio
    async def test_half_and_half_image(self, service: ExtractionService) -> None:
        """
        Test that the colour is the average over the whole image.

        Args:
            service (ExtractionService): Service fixture.

        """
        image = np.zeros((100, 100, 3), dtype=np.uint8)
        image[:, 50:] = (200, 200, 200)

        r, g, b = await service.dominant_color(encode_png(image))
        assert r == g == b == 100

    @pytest.mark.asyncio
    async def test_invalid_image_returns_default(
        self, service: ExtractionService, invalid_image_bytes: bytes
    ) -> None:
        """
        Test that an unreadable image yields the neutral default.

        Args:
            service (ExtractionService): Service fixture.
            invalid_image_bytes (bytes): Invalid image data.

        """
        assert await service.dominant_color(invalid_image_bytes) == DEFAULT_DOMINANT_COLOR
