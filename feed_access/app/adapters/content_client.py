"""
Content service client for the feed access layer.
"""

import time
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from shared.errors import RemoteCallFailure
from shared.logging import get_logger
from shared.metrics import MetricsCollector

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

ModelT = TypeVar("ModelT", bound=BaseModel)


class ContentServiceClient:
    """HTTP client for the remote content service.

    Every call is issued once; failures surface as ``RemoteCallFailure``.
    """

    def __init__(
        self,
        content_service_url: str,
        *,
        page_size: int = 10,
        timeout: float = 10.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.base_url = content_service_url.rstrip('/')
        self.page_size = page_size
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("feed.content_client")
        self._transport = transport
        self._headers = {"Accept": "application/json"}
        if api_key:
            self._headers["X-API-Key"] = api_key

    # Account

    async def create_account(self, user: NewUser) -> User:
        payload = {
            "name": user.name,
            "username": user.username,
            "email": user.email,
            "password": user.password.get_secret_value(),
        }
        data = await self._request("create_account", "POST", "/account", json=payload)
        return self._parse("create_account", User, data)

    async def sign_in(self, credentials: Credentials) -> Session:
        payload = {
            "email": credentials.email,
            "password": credentials.password.get_secret_value(),
        }
        data = await self._request("sign_in", "POST", "/account/sessions", json=payload)
        return self._parse("sign_in", Session, data)

    async def sign_out(self) -> Dict[str, Any]:
        data = await self._request("sign_out", "DELETE", "/account/sessions/current")
        return data or {}

    async def get_current_user(self) -> Optional[User]:
        data = await self._request("get_current_user", "GET", "/account", allow_not_found=True)
        return None if data is None else self._parse("get_current_user", User, data)

    # Posts

    async def create_post(self, post: NewPost) -> Post:
        data = await self._request("create_post", "POST", "/posts", json=post.model_dump())
        return self._parse("create_post", Post, data)

    async def update_post(self, post: UpdatePost) -> Post:
        payload = post.model_dump(exclude={"post_id"})
        data = await self._request("update_post", "PATCH", f"/posts/{post.post_id}", json=payload)
        return self._parse("update_post", Post, data)

    async def get_post_by_id(self, post_id: str) -> Optional[Post]:
        data = await self._request("get_post_by_id", "GET", f"/posts/{post_id}", allow_not_found=True)
        return None if data is None else self._parse("get_post_by_id", Post, data)

    async def get_posts_page(self, cursor: Optional[str] = None) -> Page[Post]:
        data = await self._request("get_posts_page", "GET", "/posts", params=self._page_params(cursor))
        return self._parse("get_posts_page", Page[Post], data)

    async def get_user_posts_page(self, user_id: str, cursor: Optional[str] = None) -> Page[Post]:
        data = await self._request(
            "get_user_posts_page", "GET", f"/users/{user_id}/posts", params=self._page_params(cursor)
        )
        return self._parse("get_user_posts_page", Page[Post], data)

    async def search_posts(self, term: str) -> Page[Post]:
        data = await self._request("search_posts", "GET", "/posts/search", params={"term": term})
        return self._parse("search_posts", Page[Post], data)

    async def like_post(self, post_id: str, likes: List[str]) -> Post:
        data = await self._request("like_post", "PUT", f"/posts/{post_id}/likes", json={"likes": likes})
        return self._parse("like_post", Post, data)

    # Saves

    async def get_saved_posts_page(self, user_id: str, cursor: Optional[str] = None) -> Page[SavedPost]:
        data = await self._request(
            "get_saved_posts_page", "GET", f"/users/{user_id}/saves", params=self._page_params(cursor)
        )
        return self._parse("get_saved_posts_page", Page[SavedPost], data)

    async def save_post(self, post_id: str, user_id: str) -> SavedPost:
        data = await self._request("save_post", "POST", "/saves", json={"post": post_id, "user": user_id})
        return self._parse("save_post", SavedPost, data)

    async def unsave_post(self, saved_record_id: str) -> Optional[SavedPost]:
        data = await self._request("unsave_post", "DELETE", f"/saves/{saved_record_id}")
        return None if data is None else self._parse("unsave_post", SavedPost, data)

    # Users

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        data = await self._request("get_user_by_id", "GET", f"/users/{user_id}", allow_not_found=True)
        return None if data is None else self._parse("get_user_by_id", User, data)

    async def get_users_page(self, cursor: Optional[str] = None) -> Page[User]:
        data = await self._request("get_users_page", "GET", "/users", params=self._page_params(cursor))
        return self._parse("get_users_page", Page[User], data)

    async def search_users_page(self, user_id: str, term: str, cursor: Optional[str] = None) -> Page[User]:
        params = self._page_params(cursor)
        params["term"] = term
        data = await self._request("search_users_page", "GET", f"/users/{user_id}/search", params=params)
        return self._parse("search_users_page", Page[User], data)

    async def add_follow(self, update: FollowUpdate) -> User:
        return await self._update_follow("add_follow", "add", update)

    async def remove_follow(self, update: FollowUpdate) -> User:
        return await self._update_follow("remove_follow", "remove", update)

    async def _update_follow(self, operation: str, action: str, update: FollowUpdate) -> User:
        path = f"/users/{update.user_id}/{update.direction.value}/{action}"
        data = await self._request(operation, "POST", path, json={"ids": update.ids, "count": update.count})
        return self._parse(operation, User, data)

    # Transport

    def _page_params(self, cursor: Optional[str]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": self.page_size}
        if cursor:
            params["cursor"] = cursor
        return params

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Any]:
        """Execute one request and return its decoded JSON body."""
        url = f"{self.base_url}{path}"
        start = time.perf_counter()
        outcome = "error"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, params=params, json=json)

            if response.status_code == 404 and allow_not_found:
                outcome = "not_found"
                self.logger.info("Content record not found", operation=operation, url=url)
                return None

            if response.is_success:
                body = response.json() if response.content else None
                outcome = "success"
                self.logger.debug("Content service call succeeded", operation=operation, url=url)
                return body

            self.logger.error(
                "Content service request failed",
                operation=operation,
                url=url,
                status_code=response.status_code,
                response=response.text,
            )
            raise RemoteCallFailure(
                operation,
                f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text},
            )
        except httpx.HTTPError as exc:
            self.logger.error("Content service unavailable", operation=operation, url=url, error=str(exc))
            raise RemoteCallFailure(operation, str(exc), details={"url": url}) from exc
        except ValueError as exc:
            self.logger.error("Content service returned invalid JSON", operation=operation, url=url)
            raise RemoteCallFailure(operation, "Invalid JSON response", details={"url": url}) from exc
        finally:
            if self.metrics:
                self.metrics.record_remote_call(operation, outcome, time.perf_counter() - start)

    def _parse(self, operation: str, model: Type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            self.logger.error("Malformed content service response", operation=operation, error=str(exc))
            raise RemoteCallFailure(
                operation,
                "Malformed response",
                details={"errors": exc.errors(include_url=False)},
            ) from exc
