"""Pytest configuration and fixtures."""

import numpy as np
import pytest
from fastapi.testclient import TestClient

from cell_extractor.api.dependencies import clear_dependency_caches
from cell_extractor.api.server import app, limiter
from cell_extractor.core.settings import AppSettings, reload_settings
from cell_extractor.core.settings.app_settings import (
    APIServerSettings,
    ExtractionSettings,
    LoggingSettings,
)
from tests.helpers import GRAY, WHITE, draw_gutters, encode_png


@pytest.fixture
def mock_settings() -> AppSettings:
    """
    Create mock application settings for testing.

    Returns:
        AppSettings: Mock settings instance.
    """
    return AppSettings(
        api_server=APIServerSettings(
            host="127.0.0.1",
            port=8000,
            workers=1,
            cors_allow_origins=["http://localhost:3000"],
            max_upload_size=50 * 1024 * 1024,
            rate_limit="100/minute",
        ),
        extraction=ExtractionSettings(debug_mode=False),
        logging=LoggingSettings(
            log_level="DEBUG",
            log_format="%(message)s",
        ),
    )


@pytest.fixture
def grid_image() -> np.ndarray:
    """
    900x900 composite with 4px white gutters at exactly 1/3 and 2/3.

    Returns:
        np.ndarray: BGR image.
    """
    image = np.full((900, 900, 3), GRAY, dtype=np.uint8)
    bands = [(298, 302), (598, 602)]
    return draw_gutters(image=image, columns=bands, rows=bands)


@pytest.fixture
def bordered_grid_image() -> np.ndarray:
    """
    The 900x900 grid composite surrounded by a 20px white margin.

    Returns:
        np.ndarray: 940x940 BGR image.
    """
    image = np.full((940, 940, 3), WHITE, dtype=np.uint8)
    content = np.full((900, 900, 3), GRAY, dtype=np.uint8)
    bands = [(298, 302), (598, 602)]
    image[20:920, 20:920] = draw_gutters(image=content, columns=bands, rows=bands)
    return image


@pytest.fixture
def shifted_grid_image() -> np.ndarray:
    """
    900x900 composite whose 6px gutters sit 10% away from the thirds.

    Columns are shifted right (gutters at 327-333 and 627-633) and rows are
    shifted up (gutters at 267-273 and 567-573).

    Returns:
        np.ndarray: BGR image.
    """
    image = np.full((900, 900, 3), GRAY, dtype=np.uint8)
    return draw_gutters(
        image=image,
        columns=[(327, 333), (627, 633)],
        rows=[(267, 273), (567, 573)],
    )


@pytest.fixture
def noise_image() -> np.ndarray:
    """
    900x900 composite with no near-white pixels at all.

    Returns:
        np.ndarray: BGR image of deterministic dark noise.
    """
    rng = np.random.default_rng(seed=7)
    return rng.integers(low=0, high=200, size=(900, 900, 3), dtype=np.uint8)


@pytest.fixture
def top_row_image() -> np.ndarray:
    """
    900x900 white sheet with three 280x280 mid-gray squares along the top row.

    Returns:
        np.ndarray: BGR image.
    """
    image = np.full((900, 900, 3), WHITE, dtype=np.uint8)
    for x in (10, 310, 610):
        image[10:290, x : x + 280] = 128
    return image


@pytest.fixture
def top_row_image_bytes(top_row_image: np.ndarray) -> bytes:
    """
    PNG bytes of the top-row composite.

    Returns:
        bytes: PNG image bytes.
    """
    return encode_png(top_row_image)


@pytest.fixture
def invalid_image_bytes() -> bytes:
    """
    Create invalid image bytes for testing error handling.

    Returns:
        bytes: Invalid image data.
    """
    return b"not a valid image"


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    """Reset settings and service caches before each test."""
    reload_settings()
    clear_dependency_caches()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset in-memory rate limit counters before each test."""
    limiter.reset()


@pytest.fixture
def test_client() -> TestClient:
    """
    Create a test client for the FastAPI application.

    Returns:
        TestClient: FastAPI test client.
    """
    return TestClient(app)
