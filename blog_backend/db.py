"""
Persistence for users and blog posts: MongoDB stores and in-memory test doubles.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Iterator, Mapping, Optional, Protocol

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from blog_backend.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
POSTS_COLLECTION = "blogposts"

DUPLICATE_USERNAME_MESSAGE = "that username already exists, try another."
UPDATABLE_POST_FIELDS = frozenset({"title", "content"})


def _utcnow() -> datetime:
    # BSON datetimes carry millisecond precision.
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


@dataclass
class UserRecord:
    username: str
    password_hash: str
    first_name: str = ""
    last_name: str = ""
    id: Optional[str] = None

    def api_repr(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }


@dataclass(frozen=True)
class AuthorSnapshot:
    """Display name copied into a post at write time."""

    first_name: str = ""
    last_name: str = ""

    @classmethod
    def from_user(cls, user: UserRecord) -> "AuthorSnapshot":
        return cls(first_name=user.first_name or "", last_name=user.last_name or "")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class PostRecord:
    author: AuthorSnapshot
    title: str
    content: Optional[str] = None
    created: datetime = field(default_factory=_utcnow)
    id: Optional[str] = None

    @property
    def author_name(self) -> str:
        return self.author.full_name

    def api_repr(self) -> dict:
        return {
            "id": self.id,
            "author": self.author_name,
            "title": self.title,
            "content": self.content,
            "created": self.created,
        }


class UserStore(Protocol):
    """Interface for user persistence."""

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        ...

    def count_by_username(self, username: str) -> int:
        ...

    def create(self, user: UserRecord) -> UserRecord:
        ...

    def list_all(self) -> list[UserRecord]:
        ...


class PostStore(Protocol):
    """Interface for blog post persistence."""

    def create(
        self, author: AuthorSnapshot, title: str, content: Optional[str] = None
    ) -> PostRecord:
        ...

    def find_all(self) -> list[PostRecord]:
        ...

    def find_by_id(self, post_id: str) -> Optional[PostRecord]:
        ...

    def update(
        self, post_id: str, changes: Mapping[str, Optional[str]]
    ) -> Optional[PostRecord]:
        """Apply ``changes`` (keys ``title`` and/or ``content``) to a post."""
        ...

    def delete(self, post_id: str) -> bool:
        ...


def _check_required_user_fields(user: UserRecord) -> None:
    if not user.username:
        raise ValidationError("Missing field: username")
    if not user.password_hash:
        raise ValidationError("Missing field: password")


def _check_post_changes(changes: Mapping[str, Optional[str]]) -> dict:
    unknown = set(changes) - UPDATABLE_POST_FIELDS
    if unknown:
        raise ValidationError(f"Unknown post fields: {', '.join(sorted(unknown))}")
    if "title" in changes and not changes["title"]:
        raise ValidationError("Missing field: title")
    return dict(changes)


class InMemoryUserStore:
    """Simple in-memory user store for development and tests.

    Username uniqueness is only as strong as the caller's check-then-insert;
    nothing here rejects a duplicate that slips in between the two.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}

    def reset(self) -> None:
        self.users.clear()

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.username == username:
                return replace(user)
        return None

    def count_by_username(self, username: str) -> int:
        return sum(1 for user in self.users.values() if user.username == username)

    def create(self, user: UserRecord) -> UserRecord:
        _check_required_user_fields(user)
        stored = replace(user, id=uuid.uuid4().hex)
        self.users[stored.id] = stored
        return replace(stored)

    def list_all(self) -> list[UserRecord]:
        return [replace(user) for user in self.users.values()]


class InMemoryPostStore:
    """Simple in-memory post store for development and tests."""

    def __init__(self):
        self.posts: Dict[str, PostRecord] = {}

    def reset(self) -> None:
        self.posts.clear()

    def create(
        self, author: AuthorSnapshot, title: str, content: Optional[str] = None
    ) -> PostRecord:
        if not title:
            raise ValidationError("Missing field: title")
        post = PostRecord(
            id=uuid.uuid4().hex, author=author, title=title, content=content
        )
        self.posts[post.id] = post
        return replace(post)

    def find_all(self) -> list[PostRecord]:
        return [replace(post) for post in self.posts.values()]

    def find_by_id(self, post_id: str) -> Optional[PostRecord]:
        post = self.posts.get(post_id)
        return replace(post) if post else None

    def update(
        self, post_id: str, changes: Mapping[str, Optional[str]]
    ) -> Optional[PostRecord]:
        changes = _check_post_changes(changes)
        post = self.posts.get(post_id)
        if not post:
            return None
        for name, value in changes.items():
            setattr(post, name, value)
        return replace(post)

    def delete(self, post_id: str) -> bool:
        return self.posts.pop(post_id, None) is not None


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        raise StorageError(f"{operation} failed: {exc}") from exc


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _object_id(value: str) -> Optional[ObjectId]:
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


class MongoUserStore:
    """
    pymongo-backed user store. A unique index on ``username`` backs up the
    route's existence check against concurrent registrations.
    """

    def __init__(self, database: Database):
        self.collection = database[USERS_COLLECTION]
        with _storage_errors("create users index"):
            self.collection.create_index([("username", ASCENDING)], unique=True)
        logger.debug("Ensured unique index on %s.username", USERS_COLLECTION)

    def _to_user_record(self, doc: dict) -> UserRecord:
        return UserRecord(
            id=str(doc["_id"]),
            username=doc["username"],
            password_hash=doc["password"],
            first_name=doc.get("firstName") or "",
            last_name=doc.get("lastName") or "",
        )

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        with _storage_errors("find user"):
            doc = self.collection.find_one({"username": username})
        if not doc:
            return None
        return self._to_user_record(doc)

    def count_by_username(self, username: str) -> int:
        with _storage_errors("count users"):
            return self.collection.count_documents({"username": username})

    def create(self, user: UserRecord) -> UserRecord:
        _check_required_user_fields(user)
        doc = {
            "username": user.username,
            "password": user.password_hash,
            "firstName": user.first_name,
            "lastName": user.last_name,
        }
        with _storage_errors("insert user"):
            try:
                result = self.collection.insert_one(doc)
            except DuplicateKeyError as exc:
                raise ValidationError(DUPLICATE_USERNAME_MESSAGE) from exc
        return replace(user, id=str(result.inserted_id))

    def list_all(self) -> list[UserRecord]:
        with _storage_errors("list users"):
            docs = list(self.collection.find())
        return [self._to_user_record(doc) for doc in docs]


class MongoPostStore:
    """pymongo-backed blog post store."""

    def __init__(self, database: Database):
        self.collection = database[POSTS_COLLECTION]

    def _to_post_record(self, doc: dict) -> PostRecord:
        author = doc.get("author") or {}
        return PostRecord(
            id=str(doc["_id"]),
            author=AuthorSnapshot(
                first_name=author.get("firstName") or "",
                last_name=author.get("lastName") or "",
            ),
            title=doc["title"],
            content=doc.get("content"),
            created=_as_utc(doc["created"]),
        )

    def create(
        self, author: AuthorSnapshot, title: str, content: Optional[str] = None
    ) -> PostRecord:
        if not title:
            raise ValidationError("Missing field: title")
        post = PostRecord(author=author, title=title, content=content)
        doc = {
            "author": {"firstName": author.first_name, "lastName": author.last_name},
            "title": post.title,
            "content": post.content,
            "created": post.created,
        }
        with _storage_errors("insert post"):
            result = self.collection.insert_one(doc)
        post.id = str(result.inserted_id)
        return post

    def find_all(self) -> list[PostRecord]:
        with _storage_errors("list posts"):
            docs = list(self.collection.find())
        return [self._to_post_record(doc) for doc in docs]

    def find_by_id(self, post_id: str) -> Optional[PostRecord]:
        oid = _object_id(post_id)
        if oid is None:
            return None
        with _storage_errors("find post"):
            doc = self.collection.find_one({"_id": oid})
        return self._to_post_record(doc) if doc else None

    def update(
        self, post_id: str, changes: Mapping[str, Optional[str]]
    ) -> Optional[PostRecord]:
        changes = _check_post_changes(changes)
        oid = _object_id(post_id)
        if oid is None:
            return None
        if not changes:
            return self.find_by_id(post_id)
        with _storage_errors("update post"):
            doc = self.collection.find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        return self._to_post_record(doc) if doc else None

    def delete(self, post_id: str) -> bool:
        oid = _object_id(post_id)
        if oid is None:
            return False
        with _storage_errors("delete post"):
            result = self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0
