"""Centralized configuration for entity-search using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    All values are validated at startup. Hosts can also construct the model
    directly and inject it into the index manager and search service.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Index lifecycle
    index_refresh_interval_seconds: float = Field(
        default=3600.0,
        ge=0,
        description="Seconds between scheduled index refreshes (0 disables the schedule)",
    )
    loader_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-loader timeout; a loader exceeding it fails the whole build",
    )
    first_build_wait_seconds: float = Field(
        default=0.0,
        ge=0,
        description="How long queries wait for the first build (0 rejects with IndexNotReady)",
    )

    # Result cache
    search_cache_enabled: bool = Field(default=True, description="Memoize search results through the cache port")
    search_cache_ttl_seconds: int = Field(default=300, ge=1, description="TTL for cached search results")

    # Ranking and response shaping
    recency_window_days: float = Field(
        default=7.0,
        ge=0,
        description="Documents updated within this window receive the recency bonus",
    )
    max_facet_values: int = Field(default=10, ge=1, description="Values returned per facet")
    max_suggestions: int = Field(default=5, ge=0, description="Maximum query suggestions returned")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    def refresh_enabled(self) -> bool:
        """Return True when a periodic refresh should be scheduled on start."""
        return self.index_refresh_interval_seconds > 0
