"""
Pydantic schemas for the blog API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, StringConstraints, field_validator

NonEmptyStr = Annotated[
    str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)
]

# Basic auth splits on the first colon, so usernames may not contain one.
Username = Annotated[
    str,
    StringConstraints(
        strict=True, strip_whitespace=True, min_length=1, pattern=r"^[^:]+$"
    ),
]


class UserCreateRequest(BaseModel):
    username: Username
    password: NonEmptyStr
    firstName: str = ""
    lastName: str = ""


class UserResponse(BaseModel):
    id: str
    username: str
    firstName: str
    lastName: str


class CurrentUserResponse(BaseModel):
    user: UserResponse


class PostCreateRequest(BaseModel):
    title: NonEmptyStr
    content: Optional[str] = None


class PostUpdateRequest(BaseModel):
    """Partial update; fields left out keep their stored values.

    ``title`` may be omitted but not nulled; an explicit ``"content": null``
    clears the content.
    """

    title: Optional[NonEmptyStr] = None
    content: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("title may not be null")
        return value


class PostResponse(BaseModel):
    id: str
    author: str
    title: str
    content: Optional[str] = None
    created: datetime


class HealthResponse(BaseModel):
    status: Literal["ok"]
