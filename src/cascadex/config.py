"""Environment-based configuration for CascadeX."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cascadex.ml.scanner import ScanOptions


class Settings(BaseSettings):
    """Application settings loaded from CASCADEX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CASCADEX_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Authentication (None = disabled)
    api_key: str | None = None

    # Cascade selection
    cascade_name: str = "frontalface_default"
    cascades_dir: str = "cascades"
    cascade_repo_id: str | None = None
    cascade_ttl: int = Field(default=0, ge=0)

    # Scanning
    scale_factor: float = Field(default=1.2, gt=1.0)
    min_size: int | None = Field(default=None, ge=1)
    max_size: int | None = Field(default=None, ge=1)
    overlap_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    vectorized_scan: bool = True

    # Tracking
    track_min_iou: float = Field(default=0.1, ge=0.0, le=1.0)
    detect_every_n_frames: int = Field(default=5, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)

    def scan_options(self) -> ScanOptions:
        """Build scan options from the configured defaults."""
        return ScanOptions(scale_factor=self.scale_factor, min_size=self.min_size, max_size=self.max_size)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
