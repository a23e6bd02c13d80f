"""
HTTP Basic authentication dependency for protected routes.

Header parsing is an ``HTTPBasic`` scheme that decodes credentials as UTF-8;
the credential check itself is a ``CredentialVerifier`` from the dependency
wiring, so another scheme can replace either without touching the route
handlers.
"""

import base64
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.security.utils import get_authorization_scheme_param

from blog_backend.db import UserRecord
from blog_backend.dependencies import get_credential_verifier
from blog_backend.errors import AuthenticationError
from blog_backend.security import CredentialVerifier

logger = logging.getLogger(__name__)


class Utf8HTTPBasic(HTTPBasic):
    """
    ``HTTPBasic`` that decodes the credentials as UTF-8 and reports every
    malformed header as an :class:`AuthenticationError`.

    Returns ``None`` when no ``Authorization`` header is sent.
    """

    async def __call__(self, request: Request) -> Optional[HTTPBasicCredentials]:
        authorization = request.headers.get("Authorization")
        if not authorization:
            return None
        scheme, param = get_authorization_scheme_param(authorization)
        if scheme.lower() != "basic" or not param:
            raise AuthenticationError()
        try:
            decoded = base64.b64decode(param, validate=True).decode("utf-8")
        except ValueError:
            raise AuthenticationError() from None
        username, separator, password = decoded.partition(":")
        if not separator:
            raise AuthenticationError()
        return HTTPBasicCredentials(username=username, password=password)


security = Utf8HTTPBasic(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> UserRecord:
    """
    Resolve the caller from the Basic auth header or raise a 401.

    Unknown usernames and wrong passwords produce the same error.
    """
    if credentials is None:
        raise AuthenticationError()
    user = verifier.verify_credentials(credentials.username, credentials.password)
    if user is None:
        logger.info("Rejected credentials for a Basic auth request")
        raise AuthenticationError()
    return user
