"""
Shared configuration management for the Feed Access Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="FEED_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Observability
    metrics_enabled: bool = Field(default=True)


class FeedConfig(BaseConfig):
    """Configuration for the feed access layer."""

    # Remote content service
    content_service_url: str = Field(default="http://localhost:8090")
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    api_key: Optional[str] = Field(default=None)

    # Pagination
    page_size: int = Field(default=10, ge=1, le=100)

    # Cache store
    cache_max_entries: int = Field(default=500, ge=1)


def get_config(**overrides) -> FeedConfig:
    """Get configuration for the feed access layer."""
    return FeedConfig(**overrides)
