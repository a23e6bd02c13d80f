"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends
from pymongo import MongoClient
from pymongo.database import Database

from blog_backend.config import get_settings
from blog_backend.db import (
    InMemoryPostStore,
    InMemoryUserStore,
    MongoPostStore,
    MongoUserStore,
    PostStore,
    UserStore,
)
from blog_backend.security import CredentialVerifier, StoreCredentialVerifier

logger = logging.getLogger(__name__)

_mongo_client: MongoClient | None = None
_user_store: UserStore | None = None
_post_store: PostStore | None = None


def _use_in_memory() -> bool:
    settings = get_settings()
    return settings.use_in_memory_backends or not settings.database_url


def get_database() -> Database:
    """
    Return the configured MongoDB database, sharing one client per process.
    """
    global _mongo_client
    settings = get_settings()
    if _mongo_client is None:
        _mongo_client = MongoClient(settings.database_url, tz_aware=True)
        logger.info("Connected MongoDB client for database %s", settings.database_name)
    return _mongo_client[settings.database_name]


def get_user_store() -> UserStore:
    """
    Return a singleton user store so in-memory state persists across requests.
    """
    global _user_store
    if _user_store:
        return _user_store

    if _use_in_memory():
        _user_store = InMemoryUserStore()
    else:
        _user_store = MongoUserStore(get_database())
    return _user_store


def get_post_store() -> PostStore:
    global _post_store
    if _post_store:
        return _post_store

    if _use_in_memory():
        _post_store = InMemoryPostStore()
    else:
        _post_store = MongoPostStore(get_database())
    return _post_store


def get_credential_verifier(
    users: UserStore = Depends(get_user_store),
) -> CredentialVerifier:
    return StoreCredentialVerifier(users)
