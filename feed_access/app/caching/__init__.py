"""
Feed caching package.

Provides the process-wide query cache, the cursor pagination protocol and
the observers views read through. Entries stay fresh until explicitly
invalidated; there is no time-based expiry.
"""

from .observers import InfiniteQueryObserver, MutationObserver, MutationResult, QueryObserver, QueryResult
from .pagination import InfiniteData, next_cursor
from .query_cache import CacheEntry, QueryCache, QueryStatus

__all__ = [
    "CacheEntry",
    "InfiniteData",
    "InfiniteQueryObserver",
    "MutationObserver",
    "MutationResult",
    "QueryCache",
    "QueryObserver",
    "QueryResult",
    "QueryStatus",
    "next_cursor",
]
