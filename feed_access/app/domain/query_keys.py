"""Query key builders. Single place for key shape.

A key is a plain tuple ``(OperationTag, *params)``; two keys address the
same cache slot iff they compare equal. Params must be scalars so keys stay
hashable and structurally comparable.
"""

from enum import Enum
from typing import Callable, Iterable, List, Tuple, Union

QueryKey = Tuple

Scalar = Union[str, int]


class OperationTag(str, Enum):
    """Closed set of read operations that own cache slots."""

    CURRENT_USER = "current_user"
    USER_BY_ID = "user_by_id"
    POST_BY_ID = "post_by_id"
    SEARCH_POSTS = "search_posts"
    RECENT_POSTS = "recent_posts"
    POSTS = "posts"
    USER_POSTS = "user_posts"
    SAVED_POSTS = "saved_posts"
    USERS = "users"
    USER_SEARCH = "user_search"


def _validate_key_params(params: Iterable[object]) -> None:
    """Raise ValueError if any key parameter is not a scalar."""
    for value in params:
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValueError(f"Query key parameter must be str or int, got {value!r}")


def make_key(tag: OperationTag, *params: Scalar) -> QueryKey:
    """Build a key for ``tag`` with ``params``."""
    _validate_key_params(params)
    return (OperationTag(tag), *params)


def current_user_key() -> QueryKey:
    return make_key(OperationTag.CURRENT_USER)


def user_by_id_key(user_id: str) -> QueryKey:
    return make_key(OperationTag.USER_BY_ID, user_id)


def post_by_id_key(post_id: str) -> QueryKey:
    return make_key(OperationTag.POST_BY_ID, post_id)


def search_posts_key(term: str) -> QueryKey:
    return make_key(OperationTag.SEARCH_POSTS, term)


def recent_posts_key() -> QueryKey:
    return make_key(OperationTag.RECENT_POSTS)


def posts_key() -> QueryKey:
    return make_key(OperationTag.POSTS)


def user_posts_key(user_id: str) -> QueryKey:
    return make_key(OperationTag.USER_POSTS, user_id)


def saved_posts_key(user_id: str) -> QueryKey:
    return make_key(OperationTag.SAVED_POSTS, user_id)


def users_key() -> QueryKey:
    return make_key(OperationTag.USERS)


def user_search_key(user_id: str, term: str) -> QueryKey:
    return make_key(OperationTag.USER_SEARCH, user_id, term)


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """Return True if ``prefix`` is a leading slice of ``key``.

    ``(OperationTag.POST_BY_ID,)`` matches every single-post key;
    a full key matches only itself.
    """
    if len(prefix) > len(key):
        return False
    return tuple(key[:len(prefix)]) == tuple(prefix)


def references(entity_id: Scalar) -> Callable[[QueryKey], bool]:
    """Predicate selecting keys whose params mention ``entity_id``, any tag."""
    def _predicate(key: QueryKey) -> bool:
        return entity_id in key[1:]
    return _predicate


def keys_referencing(keys: Iterable[QueryKey], entity_id: Scalar) -> List[QueryKey]:
    """Every key in ``keys`` whose params contain ``entity_id``."""
    predicate = references(entity_id)
    return [key for key in keys if predicate(key)]


def operation_name(key: QueryKey) -> str:
    """Metric/log label for a key."""
    tag = key[0] if key else None
    return tag.value if isinstance(tag, OperationTag) else str(tag)
