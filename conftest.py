"""
Shared pytest fixtures for the Feed Access Layer.
"""

import pytest
from prometheus_client import CollectorRegistry

from feed_access.app.caching.query_cache import QueryCache
from feed_access.app.orchestrator import FeedOrchestrator
from shared.metrics import MetricsCollector
from shared.test_helpers import InMemoryContentService, RecordFactory


@pytest.fixture
def metrics():
    """Metrics collector on an isolated registry."""
    return MetricsCollector("feed", CollectorRegistry())


@pytest.fixture
def cache(metrics):
    """Empty query cache."""
    return QueryCache(max_entries=50, metrics=metrics)


@pytest.fixture
def users():
    return RecordFactory.create_users(3)


@pytest.fixture
def content_service(users):
    """In-memory content service with three users and 25 posts."""
    service = InMemoryContentService(page_size=10)
    service.seed(users=users, posts=RecordFactory.create_posts(25))
    service.current_user_id = "user-1"
    return service


@pytest.fixture
def orchestrator(cache, content_service):
    return FeedOrchestrator(cache, content_service)
