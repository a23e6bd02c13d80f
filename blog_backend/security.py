"""Password hashing and credential verification.

Thin wrappers around :class:`passlib.context.CryptContext` configured for
bcrypt. The cost factor comes from ``Settings.bcrypt_rounds``. Library
failures surface as :class:`~blog_backend.errors.HashingError`; a wrong
password is never an error, only a ``False`` result.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Protocol

from passlib.context import CryptContext

from blog_backend.config import get_settings
from blog_backend.db import UserRecord, UserStore
from blog_backend.errors import HashingError

BCRYPT_MAX_LENGTH = 72


@lru_cache(maxsize=1)
def get_password_context() -> CryptContext:
    """Return the cached bcrypt context."""
    settings = get_settings()
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=settings.bcrypt_rounds,
    )


def _normalize_password(password: str) -> str:
    """Strip whitespace and truncate to the bcrypt input limit."""
    return password.strip()[:BCRYPT_MAX_LENGTH]


def hash_password(password: str) -> str:
    """Return a salted bcrypt hash for ``password``.

    The same normalization is applied here and in :func:`verify_password`,
    so a password registered with surrounding whitespace still verifies.
    """
    try:
        return get_password_context().hash(_normalize_password(password))
    except (TypeError, ValueError) as exc:
        raise HashingError(f"Could not hash password: {exc}") from exc


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check ``plain_password`` against ``hashed_password``.

    Raises :class:`HashingError` only when ``hashed_password`` is not a hash
    the context recognises.
    """
    try:
        return get_password_context().verify(
            _normalize_password(plain_password), hashed_password
        )
    except (TypeError, ValueError) as exc:
        raise HashingError(f"Could not verify password: {exc}") from exc


class CredentialVerifier(Protocol):
    """Resolves a username/password pair to a user, or ``None``."""

    def verify_credentials(
        self, username: str, password: str
    ) -> Optional[UserRecord]:
        ...


class StoreCredentialVerifier:
    """Checks credentials against the bcrypt hashes in a user store."""

    def __init__(self, users: UserStore):
        self.users = users

    def verify_credentials(
        self, username: str, password: str
    ) -> Optional[UserRecord]:
        user = self.users.find_by_username(username)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user
