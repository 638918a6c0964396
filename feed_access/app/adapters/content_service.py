"""Remote content service protocol (DIP). HTTP implementation in content_client."""

from typing import Any, Dict, List, Optional, Protocol

from ..domain.records import (
    Credentials,
    FollowUpdate,
    NewPost,
    NewUser,
    Page,
    Post,
    SavedPost,
    Session,
    UpdatePost,
    User,
)


class ContentService(Protocol):
    """Async operations the access layer consumes. Each resolves or raises."""

    async def create_account(self, user: NewUser) -> User:
        ...

    async def sign_in(self, credentials: Credentials) -> Session:
        ...

    async def sign_out(self) -> Dict[str, Any]:
        ...

    async def create_post(self, post: NewPost) -> Post:
        ...

    async def update_post(self, post: UpdatePost) -> Post:
        ...

    async def get_post_by_id(self, post_id: str) -> Optional[Post]:
        ...

    async def get_posts_page(self, cursor: Optional[str] = None) -> Page[Post]:
        ...

    async def get_user_posts_page(self, user_id: str, cursor: Optional[str] = None) -> Page[Post]:
        ...

    async def get_saved_posts_page(self, user_id: str, cursor: Optional[str] = None) -> Page[SavedPost]:
        ...

    async def like_post(self, post_id: str, likes: List[str]) -> Post:
        ...

    async def save_post(self, post_id: str, user_id: str) -> SavedPost:
        ...

    async def unsave_post(self, saved_record_id: str) -> Optional[SavedPost]:
        ...

    async def search_posts(self, term: str) -> Page[Post]:
        ...

    async def get_current_user(self) -> Optional[User]:
        ...

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    async def get_users_page(self, cursor: Optional[str] = None) -> Page[User]:
        ...

    async def search_users_page(self, user_id: str, term: str, cursor: Optional[str] = None) -> Page[User]:
        ...

    async def add_follow(self, update: FollowUpdate) -> User:
        ...

    async def remove_follow(self, update: FollowUpdate) -> User:
        ...
