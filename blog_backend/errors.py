"""
Error types for the blog backend and the FastAPI handlers that render them.

Every error carries the HTTP status it maps to and a message that is safe to
show to clients. Anything internal (driver errors, hashing failures) is
logged here and replaced by a generic message before it leaves the service.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "Internal server error."


class BlogBackendError(Exception):
    """Base class for errors raised by the blog backend."""

    status_code: int = 500
    default_message: str = GENERIC_SERVER_ERROR

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BlogBackendError):
    """Malformed, missing or duplicate input."""

    status_code = 422
    default_message = "Invalid request."


class AuthenticationError(BlogBackendError):
    """Absent or invalid credentials."""

    status_code = 401
    default_message = "Unauthorized"


class NotFoundError(BlogBackendError):
    """A referenced post or user does not exist."""

    status_code = 404
    default_message = "Not found"


class StorageError(BlogBackendError):
    """The database failed underneath a store operation."""


class HashingError(BlogBackendError):
    """The password hashing library failed or was handed a malformed hash."""


async def blog_backend_error_handler(
    request: Request, exc: BlogBackendError
) -> JSONResponse:
    headers = None
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            exc.__class__.__name__,
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
        message = GENERIC_SERVER_ERROR
    else:
        logger.warning(
            "%s on %s %s: %s",
            exc.__class__.__name__,
            request.method,
            request.url.path,
            exc.message,
        )
        message = exc.message
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Basic"}
    return JSONResponse(
        status_code=exc.status_code, content={"detail": message}, headers=headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogBackendError, blog_backend_error_handler)
