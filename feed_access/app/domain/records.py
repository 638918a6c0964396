"""
Domain records and typed parameter records for the content service.

Records are opaque to the cache layer: the only field it ever reads is
``id``, used as the pagination cursor. The remote service names that field
``$id``; models accept both spellings.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Record(BaseModel):
    """Base for every record returned by the content service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="$id")
    created_at: Optional[datetime] = Field(default=None, alias="$createdAt")


class User(Record):
    name: str = ""
    username: str = ""
    email: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    bio: Optional[str] = None
    followers: List[str] = Field(default_factory=list)
    following: List[str] = Field(default_factory=list)
    follower_count: int = Field(default=0, alias="followerCount")
    following_count: int = Field(default=0, alias="followingCount")


class Post(Record):
    creator: str
    caption: str = ""
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    likes: List[str] = Field(default_factory=list)


class SavedPost(Record):
    """A user's bookmark of a post."""

    user: str
    post: Optional[str] = None


RecordT = TypeVar("RecordT", bound=Record)


class Page(BaseModel, Generic[RecordT]):
    """One page of an ordered collection.

    An empty page is the terminal page: no further pages exist.
    """

    documents: List[RecordT] = Field(default_factory=list)
    total: int = 0

    @property
    def is_exhausted(self) -> bool:
        return not self.documents


class Session(BaseModel):
    """Acknowledgment of a sign-in."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="$id")
    user_id: str = Field(alias="userId")


# Parameter records


class NewUser(BaseModel):
    name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: SecretStr


class Credentials(BaseModel):
    email: str = Field(min_length=3)
    password: SecretStr


class NewPost(BaseModel):
    creator: str = Field(min_length=1)
    caption: str = ""
    image_url: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class UpdatePost(BaseModel):
    post_id: str = Field(min_length=1)
    caption: str = ""
    image_url: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class LikePost(BaseModel):
    """Replace a post's liker list."""

    post_id: str
    likes: List[str] = Field(default_factory=list)


class SavePost(BaseModel):
    post_id: str
    user_id: str


class UnsavePost(BaseModel):
    """Remove a bookmark.

    ``post_id`` and ``user_id`` name the bookmarked post and its owner; they
    are used for invalidation when the service acknowledges without a body.
    """

    saved_record_id: str
    post_id: Optional[str] = None
    user_id: Optional[str] = None


class FollowDirection(str, Enum):
    FOLLOWING = "following"
    FOLLOWERS = "followers"


class FollowUpdate(BaseModel):
    """One side of a follow edge update.

    ``user_id`` is the user whose ``direction`` list is rewritten to ``ids``;
    ``count`` is the new length shown on the profile.
    """

    user_id: str
    direction: FollowDirection
    ids: List[str] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)
