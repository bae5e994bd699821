"""Application settings using pydantic-settings."""

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cell_extractor.enums import ImageFormat


class APIServerSettings(BaseModel):
    """API server configuration."""

    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    workers: int = Field(default=1, ge=1, le=32, description="Number of uvicorn workers")
    cors_allow_origins: list[str] = Field(
        default_factory=list, description="CORS allowed origins (empty = no CORS)"
    )
    max_upload_size: int = Field(
        default=50 * 1024 * 1024, description="Max upload size in bytes (default 50MB)"
    )
    rate_limit: str = Field(default="30/minute", description="Rate limit for extraction endpoints")
    api_key: str | None = Field(
        default=None, description="API key for authentication (None = auth disabled)"
    )


class ExtractionSettings(BaseModel):
    """Grid detection and cropping configuration."""

    # Outer margin detection
    border_threshold: float = Field(
        default=235, description="Brightness above which a pixel counts as border white"
    )
    border_min_ratio: float = Field(
        default=0.9, description="Fraction of sampled pixels that must be white for a border line"
    )
    border_max_scan_ratio: float = Field(
        default=0.15, description="Fraction of the dimension scanned inward from each edge"
    )
    border_sample_step: int = Field(default=3, ge=1, description="Sampling stride along a line")
    border_lookahead: int = Field(
        default=3, ge=0, description="Lines probed past a failing line before stopping"
    )
    border_lookahead_step: int = Field(
        default=5, ge=1, description="Sampling stride used for lookahead probes"
    )

    # Gutter detection
    gutter_threshold: float = Field(
        default=220, description="Profile brightness above which a run counts as a gutter"
    )
    min_line_thickness: int = Field(default=2, ge=1, description="Minimum gutter run length")
    edge_guard: int = Field(
        default=20, ge=0, description="Runs this close to a profile edge are discarded"
    )

    # Cell trimming and clamping
    trim_threshold: float = Field(
        default=240, description="Brightness above which a pixel counts as leftover gutter"
    )
    trim_ratio: float = Field(
        default=0.92, description="Fraction of white pixels needed to shave an edge line"
    )
    trim_sample_step: int = Field(default=3, ge=1, description="Sampling stride while trimming")
    min_cell_size: int = Field(default=50, ge=1, description="Minimum crop width and height")
    edge_margin: int = Field(
        default=10, ge=0, description="Crop origin is kept at least this far from the far edges"
    )

    # Output
    output_format: ImageFormat | None = Field(
        default=None, description="Crop output format (None = same family as the input)"
    )
    jpeg_quality: int = Field(default=92, ge=1, le=100, description="JPEG/WebP encoder quality")
    debug_mode: bool = Field(
        default=False, description="Save debug images with detected dividers and crop"
    )
    debug_output_dir: str = Field(default="debug", description="Directory for debug images")

    @field_validator("border_threshold", "gutter_threshold", "trim_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate brightness thresholds are within the 8-bit range."""
        if not 0 <= v <= 255:
            raise ValueError(f"Brightness threshold must be within [0, 255]: {v}")
        return v

    @field_validator("border_min_ratio", "border_max_scan_ratio", "trim_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        """Validate ratios are within (0, 1]."""
        if not 0 < v <= 1:
            raise ValueError(f"Ratio must be within (0, 1]: {v}")
        return v


class FetchSettings(BaseModel):
    """Remote image fetch configuration."""

    timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")
    max_bytes: int = Field(
        default=50 * 1024 * 1024, ge=1, description="Maximum size of a fetched image in bytes"
    )
    allow_remote: bool = Field(
        default=False, description="Allow http(s) image references to be fetched"
    )
    allowed_hosts: list[str] = Field(
        default_factory=list, description="Hosts that may be fetched (empty = any public host)"
    )
    allow_private_networks: bool = Field(
        default=False,
        description="Allow hosts resolving to private, loopback or link-local addresses",
    )
    max_redirects: int = Field(default=3, ge=0, description="Redirects followed per fetch")

    @field_validator("allowed_hosts")
    @classmethod
    def normalize_hosts(cls, v: list[str]) -> list[str]:
        """Lowercase host names so comparisons are case-insensitive."""
        return [host.strip().lower() for host in v if host.strip()]


class LoggingSettings(BaseModel):
    """Logging configuration."""

    loggers: dict[str, str] = Field(default={}, description="Loggers and their levels")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
        description="Log format",
    )
    date_format: str = Field(default="%Y-%m-%d %H:%M:%S", description="Log date format")
    rotate_logs: bool = Field(default=False, description="Rotate logs daily")
    log_file: str | None = Field(default=None, description="Log file to write to")


class AppSettings(BaseSettings):
    """Root application settings."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="CELLX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_server: APIServerSettings = Field(default_factory=APIServerSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
