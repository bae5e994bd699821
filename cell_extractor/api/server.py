"""FastAPI application server."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from cell_extractor import __version__
from cell_extractor.api.dependencies import get_extraction_service, verify_api_key
from cell_extractor.core.exceptions import ExtractError
from cell_extractor.core.settings import get_settings
from cell_extractor.core.utils import get_opencv_version, setup_logging
from cell_extractor.models import (
    BatchExtractionRequest,
    BatchExtractionResponse,
    DominantColorResponse,
    ExtractionResponse,
    HealthResponse,
)
from cell_extractor.services import ExtractionService

logger = logging.getLogger(__name__)

# Single user-facing message for every extraction failure
EXTRACTION_FAILED_MESSAGE = "Could not extract this region"

# Rate limiter instance
limiter = Limiter(key_func=get_remote_address)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # Only add HSTS if behind HTTPS proxy
        if request.headers.get("X-Forwarded-Proto") == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Handle rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please try again later."},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Args:
        app (FastAPI): The FastAPI application instance.

    Yields:
        None
    """
    settings = get_settings()
    setup_logging(settings=settings.logging)

    logger.info(f"Starting Cell Extractor Service v{__version__}")
    logger.info(f"OpenCV available: {get_opencv_version()}")

    yield

    logger.info("Shutting down Cell Extractor Service")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Cell Extractor Service",
        description="Crop single cells out of 3x3 contact sheet images",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]

    app.add_middleware(SecurityHeadersMiddleware)

    if settings.api_server.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api_server.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    return app


app = create_app()


async def _read_upload(upload: UploadFile) -> bytes:
    """
    Read an uploaded file, enforcing the configured size limit.

    Args:
        upload (UploadFile): Uploaded file.

    Returns:
        bytes: File contents.

    Raises:
        HTTPException: 413 if the file is larger than allowed.
    """
    max_size = get_settings().api_server.max_upload_size
    data = await upload.read()
    if len(data) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"Image exceeds maximum size of {max_size // (1024 * 1024)}MB",
        )
    return data


@app.get("/", include_in_schema=False)
async def index() -> dict[str, str]:
    """
    Service banner.

    Returns:
        dict[str, str]: Service name and docs link.
    """
    return {"message": "Cell Extractor Service", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint (no auth required).

    Returns:
        HealthResponse: Health status including version and OpenCV version.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        opencv_version=get_opencv_version(),
    )


@app.post("/extract", response_model=ExtractionResponse)
@limiter.limit(lambda: get_settings().api_server.rate_limit)
async def extract_cell(
    request: Request,
    click_x: Annotated[float, Form(ge=0.0, le=1.0, description="Horizontal click in [0, 1]")],
    click_y: Annotated[float, Form(ge=0.0, le=1.0, description="Vertical click in [0, 1]")],
    service: Annotated[ExtractionService, Depends(get_extraction_service)],
    _api_key: Annotated[str | None, Depends(verify_api_key)],
    image: Annotated[UploadFile | None, File(description="Composite image")] = None,
    image_url: Annotated[str | None, Form(description="Composite as data or http(s) URL")] = None,
) -> ExtractionResponse:
    """
    Crop the cell under a click from a 3x3 composite.

    Send either an uploaded ``image`` or an ``image_url``.

    Args:
        request (Request): The request object (required for rate limiting).
        click_x (float): Horizontal click position in [0, 1].
        click_y (float): Vertical click position in [0, 1].
        service (ExtractionService): Injected extraction service.
        image (UploadFile | None): Uploaded composite.
        image_url (str | None): Composite reference.

    Returns:
        ExtractionResponse: Crop rectangle and image, or a generic error.
    """
    if image is not None:
        payload: bytes | str = await _read_upload(image)
    elif image_url:
        payload = image_url
    else:
        raise HTTPException(status_code=422, detail="Either image or image_url is required")

    try:
        result = await service.extract_cell(image=payload, x_percent=click_x, y_percent=click_y)
    except ExtractError as e:
        logger.warning(f"Extraction failed: {e}")
        return ExtractionResponse(success=False, error=EXTRACTION_FAILED_MESSAGE)

    return ExtractionResponse.from_result(result)


@app.post("/extract/batch", response_model=BatchExtractionResponse)
@limiter.limit(lambda: get_settings().api_server.rate_limit)
async def extract_cells(
    request: Request,
    body: BatchExtractionRequest,
    service: Annotated[ExtractionService, Depends(get_extraction_service)],
    _api_key: Annotated[str | None, Depends(verify_api_key)],
) -> BatchExtractionResponse:
    """
    Crop one cell per click from the same composite.

    Args:
        request (Request): The request object (required for rate limiting).
        body (BatchExtractionRequest): Composite reference and clicks.
        service (ExtractionService): Injected extraction service.

    Returns:
        BatchExtractionResponse: One crop per click, or a generic error.
    """
    try:
        results = await service.extract_cells(image=body.image, clicks=body.clicks)
    except ExtractError as e:
        logger.warning(f"Batch extraction failed: {e}")
        return BatchExtractionResponse(success=False, error=EXTRACTION_FAILED_MESSAGE)

    return BatchExtractionResponse(
        success=True,
        crops=[ExtractionResponse.from_result(result) for result in results],
    )


@app.post("/dominant-color", response_model=DominantColorResponse)
async def dominant_color(
    image: Annotated[UploadFile, File(description="Image to sample")],
    service: Annotated[ExtractionService, Depends(get_extraction_service)],
    _api_key: Annotated[str | None, Depends(verify_api_key)],
) -> DominantColorResponse:
    """
    Average colour of an image.

    Args:
        image (UploadFile): Image to sample.
        service (ExtractionService): Injected extraction service.

    Returns:
        DominantColorResponse: Colour channels and CSS string.
    """
    data = await _read_upload(image)
    rgb = await service.dominant_color(image=data)
    return DominantColorResponse.from_rgb(rgb)
