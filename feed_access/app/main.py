"""
Feed access layer composition root.

One ``FeedAccessLayer`` is created at application start and shared by every
view. It owns the single query cache; the cache is only emptied on sign-out.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry

from shared.config import FeedConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

from .adapters.content_client import ContentServiceClient
from .adapters.content_service import ContentService
from .caching.query_cache import QueryCache
from .orchestrator import FeedOrchestrator

SERVICE_NAME = "feed"


class FeedAccessLayer:
    """Wires config, logging, metrics, the content client and the cache."""

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        content: Optional[ContentService] = None,
        *,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.config = config or get_config()
        configure_logging(SERVICE_NAME, self.config.log_level)
        self.logger = get_logger(f"{SERVICE_NAME}.access_layer")

        self.metrics: Optional[MetricsCollector] = None
        if self.config.metrics_enabled:
            self.metrics = get_metrics_collector(SERVICE_NAME, registry)

        self.content: ContentService = content or ContentServiceClient(
            self.config.content_service_url,
            page_size=self.config.page_size,
            timeout=self.config.request_timeout_seconds,
            api_key=self.config.api_key,
            metrics=self.metrics,
        )
        self.cache = QueryCache(self.config.cache_max_entries, metrics=self.metrics)
        self.feed = FeedOrchestrator(self.cache, self.content)

        self.logger.info(
            "Feed access layer ready",
            env=self.config.env,
            content_service_url=self.config.content_service_url,
            cache_max_entries=self.config.cache_max_entries,
        )

    async def sign_out(self) -> Any:
        """Sign out and drop everything cached for the session."""
        return await self.feed.sign_out().mutate(None)

    async def close(self) -> None:
        """Let background refetches finish."""
        await self.cache.drain()

    def stats(self) -> Dict[str, Any]:
        return {"service": SERVICE_NAME, "cache": self.cache.stats()}


def create_access_layer(content: Optional[ContentService] = None, **overrides) -> FeedAccessLayer:
    """Build the access layer from environment configuration plus ``overrides``."""
    return FeedAccessLayer(get_config(**overrides), content)
