"""
View-facing handles over the query cache.

Observers translate cache entries into the status shape views render
(``data``, ``is_loading``, ``is_error`` and friends). A query whose key
parameter is missing is disabled: it stays idle and never fetches.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from shared.errors import FeedAccessException
from shared.logging import get_logger

from ..domain.query_keys import QueryKey
from .pagination import InfiniteData, PageFetcher, fetch_first_page, fetch_following_page
from .query_cache import CacheEntry, Fetcher, QueryCache, QueryStatus

ParamsT = TypeVar("ParamsT")
AckT = TypeVar("AckT")


@dataclass(frozen=True)
class QueryResult:
    """Snapshot of one query as seen by a view."""

    status: QueryStatus
    data: Any = None
    error: Optional[BaseException] = None
    is_fetching: bool = False
    is_stale: bool = False
    is_enabled: bool = True
    has_next_page: bool = False
    is_fetching_next_page: bool = False
    updated_at: Optional[float] = None

    @property
    def is_idle(self) -> bool:
        return self.status is QueryStatus.IDLE

    @property
    def is_loading(self) -> bool:
        return self.status is QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is QueryStatus.ERROR


class QueryObserver:
    """Read accessor for a single-value query."""

    def __init__(self, cache: QueryCache, key: Optional[QueryKey], fetcher: Fetcher):
        self.cache = cache
        self.key = key
        self.fetcher = fetcher
        self.logger = get_logger("feed.observer")

    @property
    def enabled(self) -> bool:
        return self.key is not None

    @property
    def result(self) -> QueryResult:
        if self.key is None:
            return QueryResult(status=QueryStatus.IDLE, is_enabled=False)
        return self._result_from(self.cache.peek(self.key))

    async def fetch(self) -> QueryResult:
        """Load the value unless a fresh one is cached."""
        return await self._load(force=False)

    async def refetch(self) -> QueryResult:
        """Load the value even if a fresh one is cached."""
        return await self._load(force=True)

    def subscribe(self, listener: Callable[[QueryResult], None]) -> Callable[[], None]:
        """Call ``listener`` with a new result whenever the entry changes."""
        if self.key is None:
            return lambda: None
        return self.cache.subscribe(self.key, lambda entry: listener(self._result_from(entry)))

    async def _load(self, *, force: bool) -> QueryResult:
        if self.key is None:
            return self.result
        try:
            await self.cache.fetch(self.key, self._fetch, force=force)
        except FeedAccessException as exc:
            # The failure lives on the entry; views read it from the result
            self.logger.debug("Query load failed", key=repr(self.key), error=exc.code)
        return self.result

    async def _fetch(self) -> Any:
        return await self.fetcher()

    def _result_from(self, entry: Optional[CacheEntry]) -> QueryResult:
        if entry is None:
            return QueryResult(status=QueryStatus.IDLE)
        return QueryResult(
            status=entry.status,
            data=entry.data,
            error=entry.error,
            is_fetching=entry.is_fetching,
            is_stale=entry.is_stale,
            updated_at=entry.updated_at,
        )


class InfiniteQueryObserver(QueryObserver):
    """Read accessor for a paginated query.

    Pages are pulled one at a time with ``fetch_next_page``. A refetch,
    including the one triggered by invalidation, starts over at page one.
    """

    def __init__(self, cache: QueryCache, key: Optional[QueryKey], fetch_page: PageFetcher):
        self.fetch_page = fetch_page
        self._fetching_next = False
        super().__init__(cache, key, self._fetch_first)

    async def _fetch_first(self) -> InfiniteData:
        return await fetch_first_page(self.fetch_page)

    @property
    def data(self) -> Optional[InfiniteData]:
        if self.key is None:
            return None
        entry = self.cache.peek(self.key)
        return entry.data if entry is not None else None

    @property
    def has_next_page(self) -> bool:
        data = self.data
        return data is not None and data.has_next_page

    @property
    def pages(self) -> List[Any]:
        data = self.data
        return list(data.pages) if data is not None else []

    @property
    def records(self) -> List[Any]:
        data = self.data
        return list(data.records()) if data is not None else []

    async def fetch_next_page(self) -> QueryResult:
        """Fetch the page after the last accumulated one.

        Loads the first page when nothing is cached or the key was
        invalidated, and does nothing once the last page came back empty.
        After a failed page load the same page is requested again; the
        pages already accumulated are kept.
        """
        if self.key is None:
            return self.result

        entry = self.cache.peek(self.key)
        if entry is None or not isinstance(entry.data, InfiniteData):
            return await self.fetch()
        if entry.is_fetching or entry.is_invalidated:
            return await self.fetch()

        data: InfiniteData = entry.data
        if not data.has_next_page:
            return self.result

        self._fetching_next = True
        try:
            await self.cache.fetch(
                self.key,
                lambda: fetch_following_page(data, self.fetch_page),
                force=True,
                register=False,
            )
        except FeedAccessException as exc:
            self.logger.debug("Next page load failed", key=repr(self.key), error=exc.code)
        finally:
            self._fetching_next = False
        return self.result

    def _result_from(self, entry: Optional[CacheEntry]) -> QueryResult:
        result = super()._result_from(entry)
        data = entry.data if entry is not None else None
        return QueryResult(
            status=result.status,
            data=result.data,
            error=result.error,
            is_fetching=result.is_fetching,
            is_stale=result.is_stale,
            has_next_page=isinstance(data, InfiniteData) and data.has_next_page,
            is_fetching_next_page=self._fetching_next,
            updated_at=result.updated_at,
        )


@dataclass(frozen=True)
class MutationResult:
    """Snapshot of a mutation trigger's last run."""

    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: Optional[BaseException] = None

    @property
    def is_idle(self) -> bool:
        return self.status is QueryStatus.IDLE

    @property
    def is_loading(self) -> bool:
        return self.status is QueryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status is QueryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is QueryStatus.ERROR


class MutationObserver(Generic[ParamsT, AckT]):
    """Trigger for one write operation plus its status."""

    def __init__(self, name: str, execute: Callable[[ParamsT], Awaitable[AckT]]):
        self.name = name
        self._execute = execute
        self._result = MutationResult()
        self.logger = get_logger("feed.mutation")

    @property
    def result(self) -> MutationResult:
        return self._result

    async def mutate(self, params: ParamsT) -> AckT:
        """Run the write; failures are recorded and re-raised."""
        self._result = MutationResult(status=QueryStatus.LOADING)
        try:
            ack = await self._execute(params)
        except FeedAccessException as exc:
            self._result = MutationResult(status=QueryStatus.ERROR, error=exc)
            self.logger.error("Mutation failed", mutation=self.name, error=exc.message, code=exc.code)
            raise
        self._result = MutationResult(status=QueryStatus.SUCCESS, data=ack)
        return ack

    def reset(self) -> None:
        self._result = MutationResult()
