"""
Unit tests for the query cache.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from feed_access.app.caching.query_cache import QueryCache, QueryStatus
from feed_access.app.domain.query_keys import (
    OperationTag,
    current_user_key,
    post_by_id_key,
    recent_posts_key,
    user_by_id_key,
)
from shared.errors import RemoteCallFailure


class TestQueryCacheBasics:
    """Test cases for get/set/peek."""

    def test_get_absent_key(self, cache):
        assert cache.get(post_by_id_key("p1")) is None

    def test_set_then_get(self, cache):
        cache.set(post_by_id_key("p1"), {"id": "p1"})

        entry = cache.get(post_by_id_key("p1"))

        assert entry is not None
        assert entry.data == {"id": "p1"}
        assert entry.status is QueryStatus.SUCCESS
        assert not entry.is_stale

    def test_set_notifies_subscribers(self, cache):
        seen = []
        cache.subscribe(post_by_id_key("p1"), lambda entry: seen.append(entry.data))

        cache.set(post_by_id_key("p1"), "v1")
        cache.set(post_by_id_key("p1"), "v2")

        assert seen == ["v1", "v2"]

    def test_stale_entry_hidden_from_get(self, cache):
        cache.set(post_by_id_key("p1"), "v1")
        cache.invalidate(post_by_id_key("p1"))

        assert cache.get(post_by_id_key("p1")) is None
        assert cache.peek(post_by_id_key("p1")).data == "v1"

    def test_listener_errors_do_not_break_set(self, cache):
        def broken(entry):
            raise RuntimeError("view blew up")

        cache.subscribe(post_by_id_key("p1"), broken)
        cache.set(post_by_id_key("p1"), "v1")

        assert cache.get(post_by_id_key("p1")).data == "v1"


class TestQueryCacheFetch:
    """Test cases for deduplicated fetching."""

    @pytest.mark.asyncio
    async def test_second_fetch_served_from_cache(self, cache):
        fetcher = AsyncMock(return_value="value")

        first = await cache.fetch(current_user_key(), fetcher)
        second = await cache.fetch(current_user_key(), fetcher)

        assert first == second == "value"
        fetcher.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_call(self, cache):
        release = asyncio.Event()
        calls = []

        async def fetcher():
            calls.append(1)
            await release.wait()
            return "value"

        pending = asyncio.gather(*(cache.fetch(current_user_key(), fetcher) for _ in range(3)))
        await asyncio.sleep(0)
        assert cache.peek(current_user_key()).is_fetching
        release.set()

        assert await pending == ["value", "value", "value"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_status_loading_while_first_fetch_in_flight(self, cache):
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return "value"

        task = asyncio.ensure_future(cache.fetch(current_user_key(), fetcher))
        await asyncio.sleep(0)

        assert cache.peek(current_user_key()).status is QueryStatus.LOADING
        release.set()
        await task
        assert cache.peek(current_user_key()).status is QueryStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_force_refetches_fresh_entry(self, cache):
        fetcher = AsyncMock(side_effect=["v1", "v2"])

        await cache.fetch(current_user_key(), fetcher)
        value = await cache.fetch(current_user_key(), fetcher, force=True)

        assert value == "v2"
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_recorded_on_entry_and_raised(self, cache, metrics):
        fetcher = AsyncMock(side_effect=RemoteCallFailure("get_current_user", "boom"))

        with pytest.raises(RemoteCallFailure):
            await cache.fetch(current_user_key(), fetcher)

        entry = cache.peek(current_user_key())
        assert entry.status is QueryStatus.ERROR
        assert isinstance(entry.error, RemoteCallFailure)
        assert not entry.is_fetching

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_data_and_is_not_retried(self, cache):
        fetcher = AsyncMock(side_effect=["v1", RemoteCallFailure("get_current_user", "boom")])

        await cache.fetch(current_user_key(), fetcher)
        with pytest.raises(RemoteCallFailure):
            await cache.fetch(current_user_key(), fetcher, force=True)

        entry = cache.peek(current_user_key())
        assert entry.data == "v1"
        assert entry.status is QueryStatus.ERROR
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_isolated_to_its_key(self, cache):
        await cache.fetch(post_by_id_key("p1"), AsyncMock(return_value="post"))

        with pytest.raises(RemoteCallFailure):
            await cache.fetch(current_user_key(), AsyncMock(side_effect=RemoteCallFailure("x", "boom")))

        assert cache.get(post_by_id_key("p1")).data == "post"

    @pytest.mark.asyncio
    async def test_hit_and_miss_metrics(self, cache, metrics):
        fetcher = AsyncMock(return_value="value")

        await cache.fetch(current_user_key(), fetcher)
        await cache.fetch(current_user_key(), fetcher)

        hits = metrics.registry.get_sample_value("cache_hits_total", {"operation": "current_user"})
        misses = metrics.registry.get_sample_value("cache_misses_total", {"operation": "current_user"})
        assert hits == 1
        assert misses == 1


class TestQueryCacheInvalidation:
    """Test cases for invalidation and background refetch."""

    @pytest.mark.asyncio
    async def test_invalidate_exact_key(self, cache):
        cache.set(post_by_id_key("p1"), "a")
        cache.set(post_by_id_key("p2"), "b")

        invalidated = cache.invalidate(post_by_id_key("p1"), exact=True)

        assert invalidated == [post_by_id_key("p1")]
        assert cache.get(post_by_id_key("p2")) is not None

    @pytest.mark.asyncio
    async def test_invalidate_by_tag_prefix(self, cache):
        cache.set(post_by_id_key("p1"), "a")
        cache.set(post_by_id_key("p2"), "b")
        cache.set(user_by_id_key("u1"), "c")

        invalidated = cache.invalidate((OperationTag.POST_BY_ID,))

        assert sorted(invalidated) == sorted([post_by_id_key("p1"), post_by_id_key("p2")])
        assert cache.get(user_by_id_key("u1")) is not None

    def test_invalidation_is_idempotent(self, cache):
        cache.set(post_by_id_key("p1"), "a")

        assert cache.invalidate(post_by_id_key("p1")) == [post_by_id_key("p1")]
        assert cache.invalidate(post_by_id_key("p1")) == []
        assert cache.invalidate(post_by_id_key("missing")) == []

    def test_invalidate_where_predicate(self, cache):
        cache.set(post_by_id_key("p1"), "a")
        cache.set(user_by_id_key("p1"), "b")
        cache.set(post_by_id_key("p2"), "c")

        invalidated = cache.invalidate_where(lambda key: "p1" in key[1:])

        assert len(invalidated) == 2
        assert cache.get(post_by_id_key("p2")) is not None

    @pytest.mark.asyncio
    async def test_unsubscribed_entry_refetches_on_next_read(self, cache):
        fetcher = AsyncMock(side_effect=["v1", "v2"])
        await cache.fetch(current_user_key(), fetcher)

        cache.invalidate(current_user_key())
        await cache.drain()
        assert fetcher.await_count == 1

        assert await cache.fetch(current_user_key(), fetcher) == "v2"
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_subscribed_entry_refetches_in_background(self, cache):
        fetcher = AsyncMock(side_effect=["v1", "v2"])
        seen = []
        cache.subscribe(current_user_key(), lambda entry: seen.append((entry.data, entry.is_stale, entry.is_fetching)))
        await cache.fetch(current_user_key(), fetcher)

        cache.invalidate(current_user_key())
        await cache.drain()

        assert fetcher.await_count == 2
        assert cache.get(current_user_key()).data == "v2"
        # Stale value stays visible while the refresh is in flight
        assert ("v1", True, True) in seen

    @pytest.mark.asyncio
    async def test_invalidation_during_fetch_marks_result_stale(self, cache):
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return "old"

        task = asyncio.ensure_future(cache.fetch(current_user_key(), fetcher))
        await asyncio.sleep(0)
        cache.invalidate(current_user_key())
        release.set()
        await task

        entry = cache.peek(current_user_key())
        assert entry.data == "old"
        assert entry.is_stale

    @pytest.mark.asyncio
    async def test_second_invalidation_during_refetch_not_lost(self, cache):
        release = asyncio.Event()
        calls = []

        async def fetcher():
            calls.append(1)
            if len(calls) == 2:
                await release.wait()
                return "v2-before-second-write"
            return f"v{len(calls)}"

        cache.subscribe(current_user_key(), lambda entry: None)
        await cache.fetch(current_user_key(), fetcher)

        cache.invalidate(current_user_key())
        await asyncio.sleep(0)
        assert cache.peek(current_user_key()).is_fetching

        assert cache.invalidate(current_user_key()) == [current_user_key()]
        release.set()
        await cache.drain()

        entry = cache.peek(current_user_key())
        assert entry.data == "v3"
        assert not entry.is_stale
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_invalidation_during_refetch_of_unwatched_entry(self, cache):
        release = asyncio.Event()
        fetcher = AsyncMock(return_value="v1")
        await cache.fetch(current_user_key(), fetcher)
        cache.invalidate(current_user_key())

        async def slow():
            await release.wait()
            return "v2"

        task = asyncio.ensure_future(cache.fetch(current_user_key(), slow))
        await asyncio.sleep(0)
        assert cache.invalidate(current_user_key()) == [current_user_key()]
        release.set()
        await task

        assert cache.get(current_user_key()) is None
        assert cache.peek(current_user_key()).data == "v2"

    @pytest.mark.asyncio
    async def test_failed_background_refetch_surfaces_as_error(self, cache):
        fetcher = AsyncMock(side_effect=["v1", RemoteCallFailure("get_current_user", "boom")])
        cache.subscribe(current_user_key(), lambda entry: None)
        await cache.fetch(current_user_key(), fetcher)

        cache.invalidate(current_user_key())
        await cache.drain()

        entry = cache.peek(current_user_key())
        assert entry.status is QueryStatus.ERROR
        assert entry.data == "v1"

    def test_never_fetched_entry_not_invalidated(self, cache):
        cache.subscribe(recent_posts_key(), lambda entry: None)

        assert cache.invalidate(recent_posts_key()) == []


class TestQueryCacheLifecycle:
    """Test cases for eviction and clearing."""

    def test_lru_eviction_bounded(self):
        cache = QueryCache(max_entries=2)
        cache.set(post_by_id_key("p1"), 1)
        cache.set(post_by_id_key("p2"), 2)
        cache.get(post_by_id_key("p1"))
        cache.set(post_by_id_key("p3"), 3)

        assert post_by_id_key("p2") not in cache
        assert post_by_id_key("p1") in cache
        assert post_by_id_key("p3") in cache

    def test_subscribed_entries_survive_eviction(self):
        cache = QueryCache(max_entries=1)
        cache.set(post_by_id_key("p1"), 1)
        unsubscribe = cache.subscribe(post_by_id_key("p1"), lambda entry: None)
        cache.set(post_by_id_key("p2"), 2)

        assert post_by_id_key("p1") in cache
        assert post_by_id_key("p2") in cache

        unsubscribe()
        assert len(cache) == 1
        assert post_by_id_key("p2") in cache

    def test_clear_drops_everything(self, cache):
        cache.set(post_by_id_key("p1"), 1)
        cache.set(current_user_key(), 2)

        cache.clear()

        assert len(cache) == 0
        assert cache.get(current_user_key()) is None

    @pytest.mark.asyncio
    async def test_clear_keeps_subscribers_attached(self, cache):
        fetcher = AsyncMock(side_effect=["v1", "v2", "v3"])
        seen = []
        cache.subscribe(current_user_key(), lambda entry: seen.append((entry.status, entry.data)))
        await cache.fetch(current_user_key(), fetcher)
        cache.set(post_by_id_key("p1"), 1)

        cache.clear()

        assert cache.keys() == [current_user_key()]
        entry = cache.peek(current_user_key())
        assert entry.status is QueryStatus.IDLE
        assert entry.data is None
        assert entry.subscriber_count == 1
        assert seen[-1] == (QueryStatus.IDLE, None)

        assert await cache.fetch(current_user_key(), fetcher) == "v2"
        cache.invalidate(current_user_key())
        await cache.drain()

        assert cache.get(current_user_key()).data == "v3"
        assert seen[-1] == (QueryStatus.SUCCESS, "v3")

    @pytest.mark.asyncio
    async def test_fetch_in_flight_at_clear_is_discarded(self, cache):
        release = asyncio.Event()
        seen = []

        async def fetcher():
            await release.wait()
            return "previous-session"

        cache.subscribe(current_user_key(), lambda entry: seen.append(entry.data))
        task = asyncio.ensure_future(cache.fetch(current_user_key(), fetcher))
        await asyncio.sleep(0)

        cache.clear()
        release.set()
        await task

        entry = cache.peek(current_user_key())
        assert entry.status is QueryStatus.IDLE
        assert entry.data is None
        assert "previous-session" not in seen

    def test_stats(self, cache):
        cache.set(post_by_id_key("p1"), 1)
        cache.set(post_by_id_key("p2"), 2)
        cache.invalidate(post_by_id_key("p2"))

        stats = cache.stats()

        assert stats["entries"] == 2
        assert stats["by_status"]["success"] == 2
        assert stats["stale"] == 1
