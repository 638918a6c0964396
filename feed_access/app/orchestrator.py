"""
Query and mutation orchestration for the content feed.

Each read operation is a cache key plus a fetch (or page fetch) against the
content service; each write is a remote call plus the AffectedKeySet from
``invalidation.INVALIDATION_RULES``, applied only after the call succeeds.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from shared.errors import ValidationGap
from shared.logging import clear_context, get_logger, set_user_context

from .adapters.content_service import ContentService
from .caching.observers import InfiniteQueryObserver, MutationObserver, QueryObserver
from .caching.query_cache import QueryCache
from .domain import query_keys
from .domain.invalidation import CLEARS_CACHE, MutationTag, affected_keys

RemoteCall = Callable[[Any], Awaitable[Any]]


def _present(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return value is not None


class FeedOrchestrator:
    """Builds query observers and mutation triggers over one shared cache."""

    def __init__(self, cache: QueryCache, content: ContentService):
        self.cache = cache
        self.content = content
        self.logger = get_logger("feed.orchestrator")

        # mutation -> (remote call, parameters that must be present)
        self._mutations: Dict[MutationTag, Tuple[RemoteCall, Tuple[str, ...]]] = {
            MutationTag.CREATE_ACCOUNT: (content.create_account, ()),
            MutationTag.SIGN_IN: (content.sign_in, ()),
            MutationTag.SIGN_OUT: (lambda _params: content.sign_out(), ()),
            MutationTag.CREATE_POST: (content.create_post, ("creator",)),
            MutationTag.UPDATE_POST: (content.update_post, ("post_id",)),
            MutationTag.LIKE_POST: (
                lambda params: content.like_post(params.post_id, params.likes),
                ("post_id",),
            ),
            MutationTag.SAVE_POST: (
                lambda params: content.save_post(params.post_id, params.user_id),
                ("post_id", "user_id"),
            ),
            MutationTag.UNSAVE_POST: (
                lambda params: content.unsave_post(params.saved_record_id),
                ("saved_record_id",),
            ),
            MutationTag.FOLLOW: (content.add_follow, ("user_id",)),
            MutationTag.UNFOLLOW: (content.remove_follow, ("user_id",)),
        }

    # Queries

    def current_user(self) -> QueryObserver:
        return QueryObserver(self.cache, query_keys.current_user_key(), self.content.get_current_user)

    def user_by_id(self, user_id: Optional[str]) -> QueryObserver:
        key = query_keys.user_by_id_key(user_id) if _present(user_id) else None
        return QueryObserver(self.cache, key, lambda: self.content.get_user_by_id(user_id))

    def post_by_id(self, post_id: Optional[str]) -> QueryObserver:
        key = query_keys.post_by_id_key(post_id) if _present(post_id) else None
        return QueryObserver(self.cache, key, lambda: self.content.get_post_by_id(post_id))

    def search_posts(self, term: Optional[str]) -> QueryObserver:
        key = query_keys.search_posts_key(term) if _present(term) else None
        return QueryObserver(self.cache, key, lambda: self.content.search_posts(term))

    def recent_posts(self) -> InfiniteQueryObserver:
        return InfiniteQueryObserver(self.cache, query_keys.recent_posts_key(), self.content.get_posts_page)

    def posts(self) -> InfiniteQueryObserver:
        return InfiniteQueryObserver(self.cache, query_keys.posts_key(), self.content.get_posts_page)

    def user_posts(self, user_id: Optional[str]) -> InfiniteQueryObserver:
        key = query_keys.user_posts_key(user_id) if _present(user_id) else None
        return InfiniteQueryObserver(
            self.cache, key, lambda cursor: self.content.get_user_posts_page(user_id, cursor)
        )

    def saved_posts(self, user_id: Optional[str]) -> InfiniteQueryObserver:
        key = query_keys.saved_posts_key(user_id) if _present(user_id) else None
        return InfiniteQueryObserver(
            self.cache, key, lambda cursor: self.content.get_saved_posts_page(user_id, cursor)
        )

    def users(self) -> InfiniteQueryObserver:
        return InfiniteQueryObserver(self.cache, query_keys.users_key(), self.content.get_users_page)

    def user_search(self, user_id: Optional[str], term: Optional[str]) -> InfiniteQueryObserver:
        key = None
        if _present(user_id) and _present(term):
            key = query_keys.user_search_key(user_id, term)
        return InfiniteQueryObserver(
            self.cache, key, lambda cursor: self.content.search_users_page(user_id, term, cursor)
        )

    # Mutations

    def mutation(self, tag: MutationTag) -> MutationObserver:
        tag = MutationTag(tag)
        return MutationObserver(tag.value, lambda params: self.execute(tag, params))

    def create_account(self) -> MutationObserver:
        return self.mutation(MutationTag.CREATE_ACCOUNT)

    def sign_in(self) -> MutationObserver:
        return self.mutation(MutationTag.SIGN_IN)

    def sign_out(self) -> MutationObserver:
        return self.mutation(MutationTag.SIGN_OUT)

    def create_post(self) -> MutationObserver:
        return self.mutation(MutationTag.CREATE_POST)

    def update_post(self) -> MutationObserver:
        return self.mutation(MutationTag.UPDATE_POST)

    def like_post(self) -> MutationObserver:
        return self.mutation(MutationTag.LIKE_POST)

    def save_post(self) -> MutationObserver:
        return self.mutation(MutationTag.SAVE_POST)

    def unsave_post(self) -> MutationObserver:
        return self.mutation(MutationTag.UNSAVE_POST)

    def follow(self) -> MutationObserver:
        return self.mutation(MutationTag.FOLLOW)

    def unfollow(self) -> MutationObserver:
        return self.mutation(MutationTag.UNFOLLOW)

    async def execute(self, tag: MutationTag, params: Any = None) -> Any:
        """Run a write, then invalidate what it affected.

        Nothing is invalidated when the remote call raises.
        """
        call, required = self._mutations[tag]
        for name in required:
            if not _present(getattr(params, name, None)):
                raise ValidationGap(name, tag.value)

        ack = await call(params)

        if tag in CLEARS_CACHE:
            self.cache.clear()
            clear_context()
        else:
            keys = affected_keys(tag, params, ack)
            for key in keys:
                self.cache.invalidate(key)
            self.logger.info("Mutation applied", mutation=tag.value, affected=[repr(key) for key in keys])

        if tag is MutationTag.SIGN_IN:
            set_user_context(ack.user_id)
        return ack
