"""
Process-wide query cache.

Holds one entry per query key with its last value, fetch state and
subscribers. Fetches are deduplicated per key, invalidation marks entries
stale and refetches the ones somebody is watching.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Set

from shared.errors import FeedAccessException
from shared.logging import get_logger

from ..domain.query_keys import QueryKey, key_matches, operation_name

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

Fetcher = Callable[[], Awaitable[Any]]
Listener = Callable[["CacheEntry"], None]

DEFAULT_MAX_ENTRIES = 500


class QueryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CacheEntry:
    """State of one cache slot."""

    key: QueryKey
    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: Optional[BaseException] = None
    is_stale: bool = False
    fetcher: Optional[Fetcher] = None
    listeners: List[Listener] = field(default_factory=list)
    in_flight: Optional["asyncio.Task[Any]"] = None
    generation: int = 0
    # Generation the current data was loaded at
    loaded_generation: int = 0
    updated_at: Optional[float] = None
    fetch_count: int = 0

    @property
    def subscriber_count(self) -> int:
        return len(self.listeners)

    @property
    def is_invalidated(self) -> bool:
        """True once invalidated after the current data was loaded."""
        return self.generation != self.loaded_generation

    @property
    def is_fetching(self) -> bool:
        return self.in_flight is not None

    @property
    def is_fresh(self) -> bool:
        return self.status is QueryStatus.SUCCESS and not self.is_stale


class QueryCache:
    """Key to entry store shared by every query and mutation."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.max_entries = max(1, max_entries)
        self.metrics = metrics
        self.logger = get_logger("feed.query_cache")
        self._entries: "OrderedDict[QueryKey, CacheEntry]" = OrderedDict()
        self._background: Set["asyncio.Task[Any]"] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def keys(self) -> List[QueryKey]:
        return list(self._entries.keys())

    def peek(self, key: QueryKey) -> Optional[CacheEntry]:
        """Return the entry for ``key`` regardless of freshness."""
        return self._entries.get(key)

    def get(self, key: QueryKey) -> Optional[CacheEntry]:
        """Return the entry for ``key`` if it holds a fresh value."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh:
            return None
        self._entries.move_to_end(key)
        return entry

    def set(self, key: QueryKey, value: Any) -> CacheEntry:
        """Store ``value`` under ``key``, mark it fresh and notify subscribers."""
        entry = self._ensure(key)
        entry.data = value
        entry.status = QueryStatus.SUCCESS
        entry.error = None
        entry.is_stale = False
        entry.loaded_generation = entry.generation
        entry.updated_at = time.time()
        self._notify(entry)
        self._evict(keep=entry.key)
        return entry

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        force: bool = False,
        register: bool = True,
    ) -> Any:
        """Return the value for ``key``, fetching it when not fresh.

        A fetch already in flight for ``key`` is joined rather than repeated.
        ``register`` records ``fetcher`` as the function used for background
        refetches after invalidation.
        """
        entry = self._ensure(key)
        if register:
            entry.fetcher = fetcher

        if entry.in_flight is not None:
            self.logger.debug("Joining in-flight fetch", key=repr(key))
            return await asyncio.shield(entry.in_flight)

        if not force and entry.is_fresh:
            self._record("cache_hits_total", key)
            return entry.data

        self._record("cache_misses_total", key)
        task = self._start_fetch(entry, fetcher)
        return await asyncio.shield(task)

    def subscribe(self, key: QueryKey, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for changes to ``key``; return the unsubscriber."""
        entry = self._ensure(key)
        entry.listeners.append(listener)

        def _unsubscribe() -> None:
            current = self._entries.get(key)
            if current is not None and listener in current.listeners:
                current.listeners.remove(listener)
                self._evict()

        return _unsubscribe

    def invalidate(self, key_or_prefix: QueryKey, *, exact: bool = False) -> List[QueryKey]:
        """Mark matching entries stale; refetch the subscribed ones.

        Matching is by prefix unless ``exact``. Entries that were already
        invalidated since their last load, never fetched or absent are left
        alone, unless a fetch is in flight: its result may predate this
        write, so it always lands stale.
        """
        if exact:
            return self.invalidate_where(lambda key: key == tuple(key_or_prefix))
        return self.invalidate_where(lambda key: key_matches(key, key_or_prefix))

    def invalidate_where(self, predicate: Callable[[QueryKey], bool]) -> List[QueryKey]:
        """Invalidate every entry whose key satisfies ``predicate``."""
        invalidated: List[QueryKey] = []
        for key, entry in list(self._entries.items()):
            if not predicate(key) or not self._mark_stale(entry):
                continue
            invalidated.append(key)
            if entry.subscriber_count and entry.in_flight is None and entry.fetcher is not None:
                self._schedule_refetch(entry)

        if invalidated:
            self.logger.info("Cache INVALIDATE", keys=[repr(key) for key in invalidated])
        return invalidated

    def clear(self) -> None:
        """Drop every cached value.

        Entries with subscribers are replaced by empty idle entries that keep
        their listeners and fetcher, so mounted views keep receiving updates.
        Fetches in flight land on the discarded entries and are never seen.
        """
        count = len(self._entries)
        kept: List[CacheEntry] = []
        for key, entry in list(self._entries.items()):
            if not entry.subscriber_count:
                continue
            fresh = CacheEntry(key=key, fetcher=entry.fetcher, listeners=list(entry.listeners))
            entry.listeners.clear()
            entry.fetcher = None
            kept.append(fresh)

        self._entries.clear()
        for fresh in kept:
            self._entries[fresh.key] = fresh
            self._notify(fresh)
        self.logger.warning("Cache CLEARED", entries=count, kept_subscribed=len(kept))

    async def drain(self) -> None:
        """Wait for every background refetch, including ones they trigger."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _ensure(self, key: QueryKey) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=tuple(key))
            self._entries[entry.key] = entry
            self._evict(keep=entry.key)
        else:
            self._entries.move_to_end(key)
        return entry

    def _mark_stale(self, entry: CacheEntry) -> bool:
        if entry.in_flight is None:
            if entry.status is QueryStatus.IDLE or entry.is_invalidated:
                return False
        entry.is_stale = True
        entry.generation += 1
        self._record("cache_invalidations_total", entry.key)
        self._notify(entry)
        return True

    def _start_fetch(self, entry: CacheEntry, fetcher: Fetcher) -> "asyncio.Task[Any]":
        if entry.data is None and entry.status is not QueryStatus.SUCCESS:
            entry.status = QueryStatus.LOADING
        entry.fetch_count += 1
        task = asyncio.ensure_future(self._run_fetch(entry, fetcher, entry.generation))
        entry.in_flight = task
        self._notify(entry)
        return task

    async def _run_fetch(self, entry: CacheEntry, fetcher: Fetcher, generation: int) -> Any:
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            entry.in_flight = None
            raise
        except Exception as exc:
            entry.in_flight = None
            entry.status = QueryStatus.ERROR
            entry.error = exc
            entry.is_stale = True
            self.logger.error(
                "Query fetch failed",
                key=repr(entry.key),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            if self.metrics:
                code = exc.code if isinstance(exc, FeedAccessException) else type(exc).__name__
                self.metrics.record_error(code)
            self._notify(entry)
            raise

        entry.in_flight = None
        entry.data = data
        entry.status = QueryStatus.SUCCESS
        entry.error = None
        entry.loaded_generation = generation
        entry.updated_at = time.time()
        # Invalidated while the request was out: the value may predate the write
        entry.is_stale = entry.is_invalidated
        self._notify(entry)

        if entry.is_stale and entry.subscriber_count and entry.fetcher is not None:
            self._schedule_refetch(entry)
        return data

    def _schedule_refetch(self, entry: CacheEntry) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running loop; refetch deferred to next read", key=repr(entry.key))
            return

        task = asyncio.ensure_future(self._refetch(entry))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refetch(self, entry: CacheEntry) -> None:
        if entry.in_flight is not None or entry.fetcher is None:
            return
        self._record("cache_misses_total", entry.key)
        try:
            await self._start_fetch(entry, entry.fetcher)
        except Exception as exc:
            # Already recorded on the entry and logged by _run_fetch
            self.logger.debug("Background refetch failed", key=repr(entry.key), error=str(exc))

    def _notify(self, entry: CacheEntry) -> None:
        for listener in list(entry.listeners):
            try:
                listener(entry)
            except Exception as exc:
                self.logger.error("Cache listener failed", key=repr(entry.key), error=str(exc))

    def _evict(self, keep: Optional[QueryKey] = None) -> None:
        if len(self._entries) <= self.max_entries:
            return
        for key in list(self._entries.keys()):
            if len(self._entries) <= self.max_entries:
                break
            entry = self._entries[key]
            if key == keep or entry.subscriber_count or entry.in_flight is not None:
                continue
            del self._entries[key]
            self.logger.debug("Cache EVICT", key=repr(key))

    def _record(self, metric_name: str, key: QueryKey) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, operation=operation_name(key))

    def stats(self) -> Dict[str, Any]:
        """Entry counts by status."""
        by_status: Dict[str, int] = {status.value: 0 for status in QueryStatus}
        stale = fetching = subscribed = 0
        for entry in self._entries.values():
            by_status[entry.status.value] += 1
            stale += int(entry.is_stale)
            fetching += int(entry.is_fetching)
            subscribed += int(bool(entry.subscriber_count))
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "by_status": by_status,
            "stale": stale,
            "fetching": fetching,
            "subscribed": subscribed,
        }
