"""
Domain definitions for the feed access layer.

Records exchanged with the content service, the query key taxonomy and the
mutation to invalidation table. Nothing here performs I/O.
"""

from .invalidation import INVALIDATION_RULES, MutationTag, affected_keys
from .query_keys import OperationTag, QueryKey, key_matches

__all__ = [
    "INVALIDATION_RULES",
    "MutationTag",
    "OperationTag",
    "QueryKey",
    "affected_keys",
    "key_matches",
]
