"""
Mutation to invalidation mapping.

Each write operation is paired with the set of cache keys it makes stale.
The table is plain data; ``affected_keys`` evaluates it against the
mutation's parameters and the acknowledgment the content service returned,
so entity ids that are only known after the write (a saved record's post,
the user a follow edge landed on) come from the acknowledgment.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .query_keys import OperationTag, QueryKey, make_key

IdSource = Callable[[Any, Any], Optional[str]]


class MutationTag(str, Enum):
    """Closed set of write operations."""

    CREATE_ACCOUNT = "create_account"
    SIGN_IN = "sign_in"
    SIGN_OUT = "sign_out"
    CREATE_POST = "create_post"
    UPDATE_POST = "update_post"
    LIKE_POST = "like_post"
    SAVE_POST = "save_post"
    UNSAVE_POST = "unsave_post"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"


def ack_id(params: Any, ack: Any) -> Optional[str]:
    return getattr(ack, "id", None)


def ack_post(params: Any, ack: Any) -> Optional[str]:
    """Bookmarked post, from the acknowledgment or else the parameters."""
    return getattr(ack, "post", None) or getattr(params, "post_id", None)


def ack_user(params: Any, ack: Any) -> Optional[str]:
    """Bookmark owner, from the acknowledgment or else the parameters."""
    return getattr(ack, "user", None) or getattr(params, "user_id", None)


def ack_creator(params: Any, ack: Any) -> Optional[str]:
    return getattr(ack, "creator", None)


@dataclass(frozen=True)
class InvalidationRule:
    """One entry of an AffectedKeySet.

    Without ``id_from`` the rule targets every key of ``tag``; with it, the
    single key ``(tag, id)``. A rule whose id cannot be resolved is skipped.
    """

    tag: OperationTag
    id_from: Optional[IdSource] = None

    def resolve(self, params: Any, ack: Any) -> Optional[QueryKey]:
        if self.id_from is None:
            return make_key(self.tag)
        entity_id = self.id_from(params, ack)
        if not entity_id:
            return None
        return make_key(self.tag, entity_id)


_FEEDS = (
    InvalidationRule(OperationTag.RECENT_POSTS),
    InvalidationRule(OperationTag.POSTS),
)

_BOOKMARK = (
    InvalidationRule(OperationTag.POST_BY_ID, ack_post),
    *_FEEDS,
    InvalidationRule(OperationTag.CURRENT_USER),
    InvalidationRule(OperationTag.SAVED_POSTS, ack_user),
)

_FOLLOW_EDGE = (
    InvalidationRule(OperationTag.USER_BY_ID, ack_id),
    InvalidationRule(OperationTag.USERS),
)

INVALIDATION_RULES: Dict[MutationTag, Tuple[InvalidationRule, ...]] = {
    MutationTag.CREATE_ACCOUNT: (),
    MutationTag.SIGN_IN: (
        InvalidationRule(OperationTag.CURRENT_USER),
    ),
    MutationTag.SIGN_OUT: (),
    MutationTag.CREATE_POST: (
        *_FEEDS,
        InvalidationRule(OperationTag.USER_POSTS, ack_creator),
    ),
    MutationTag.UPDATE_POST: (
        InvalidationRule(OperationTag.POST_BY_ID, ack_id),
    ),
    MutationTag.LIKE_POST: (
        InvalidationRule(OperationTag.POST_BY_ID, ack_id),
        *_FEEDS,
        InvalidationRule(OperationTag.CURRENT_USER),
    ),
    MutationTag.SAVE_POST: _BOOKMARK,
    MutationTag.UNSAVE_POST: _BOOKMARK,
    MutationTag.FOLLOW: _FOLLOW_EDGE,
    MutationTag.UNFOLLOW: _FOLLOW_EDGE,
}

# Mutations after which nothing cached may be trusted
CLEARS_CACHE = frozenset({MutationTag.SIGN_OUT})


def affected_keys(mutation: MutationTag, params: Any, ack: Any) -> List[QueryKey]:
    """Resolve the AffectedKeySet of ``mutation`` for one completed call."""
    keys: List[QueryKey] = []
    for rule in INVALIDATION_RULES[MutationTag(mutation)]:
        key = rule.resolve(params, ack)
        if key is not None and key not in keys:
            keys.append(key)
    return keys
