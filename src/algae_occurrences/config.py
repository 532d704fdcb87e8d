"""
Application settings.

Values come from environment variables prefixed with ``ALGAE_`` (or a local
``.env`` file).  Example::

    ALGAE_DATA_DIR=/var/lib/algae ALGAE_CONCURRENCY=5 algae-occurrences info
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from algae_occurrences.datasources.dataset import DEFAULT_COLUMN


class Settings(BaseSettings):
    """Runtime configuration for the resolution + caching engine."""

    model_config = SettingsConfigDict(
        env_prefix="ALGAE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "algae-occurrences"
    app_env: str = "development"
    debug: bool = False

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Root of the durable JSON store")

    # GBIF transport
    gbif_api_base: str = "https://api.gbif.org/v1"
    gbif_fallback_base: str | None = Field(
        default=None,
        description="Mirror or proxy base URL for the blocking fallback path; unset disables it",
    )
    request_timeout: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_backoff: float = Field(default=0.5, ge=0)

    # Batch scheduling
    concurrency: int = Field(default=3, ge=1)
    debounce_seconds: float = Field(default=1.0, ge=0)
    batch_delay: float = Field(default=0.0, ge=0)
    occurrence_limit: int = Field(default=50, ge=1)
    require_image: bool = False

    # Upstream dataset
    species_column: str = DEFAULT_COLUMN


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
