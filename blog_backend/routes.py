"""
HTTP routes for the blog API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from blog_backend.auth import get_current_user
from blog_backend.db import (
    DUPLICATE_USERNAME_MESSAGE,
    AuthorSnapshot,
    PostStore,
    UserRecord,
    UserStore,
)
from blog_backend.dependencies import get_post_store, get_user_store
from blog_backend.errors import NotFoundError, ValidationError
from blog_backend.schemas import (
    CurrentUserResponse,
    HealthResponse,
    PostCreateRequest,
    PostResponse,
    PostUpdateRequest,
    UserCreateRequest,
    UserResponse,
)
from blog_backend.security import hash_password

logger = logging.getLogger(__name__)

router = APIRouter()

POST_NOT_FOUND = "Post not found"


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# -------------------------------
# Users
# -------------------------------


@router.post("/users", response_model=UserResponse, status_code=201)
def register_user(
    payload: UserCreateRequest, users: UserStore = Depends(get_user_store)
):
    """
    Register a new user. The username must not be taken; the password is
    stored only as a bcrypt hash.
    """
    if users.count_by_username(payload.username) > 0:
        raise ValidationError(DUPLICATE_USERNAME_MESSAGE)
    user = users.create(
        UserRecord(
            username=payload.username,
            password_hash=hash_password(payload.password),
            first_name=payload.firstName,
            last_name=payload.lastName,
        )
    )
    logger.info("Registered user %s", user.id)
    return user.api_repr()


@router.get("/users", response_model=list[UserResponse])
def list_users(
    _: UserRecord = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
):
    return [user.api_repr() for user in users.list_all()]


@router.get("/users/me", response_model=CurrentUserResponse)
def read_current_user(current_user: UserRecord = Depends(get_current_user)):
    return {"user": current_user.api_repr()}


# -------------------------------
# Posts
# -------------------------------


@router.get("/posts", response_model=list[PostResponse])
def list_posts(posts: PostStore = Depends(get_post_store)):
    return [post.api_repr() for post in posts.find_all()]


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(post_id: str, posts: PostStore = Depends(get_post_store)):
    post = posts.find_by_id(post_id)
    if not post:
        raise NotFoundError(POST_NOT_FOUND)
    return post.api_repr()


@router.post("/posts", response_model=PostResponse, status_code=201)
def create_post(
    payload: PostCreateRequest,
    current_user: UserRecord = Depends(get_current_user),
    posts: PostStore = Depends(get_post_store),
):
    """
    Create a post authored by the caller. The author's name is copied into
    the post, so later changes to the user do not reach it.
    """
    post = posts.create(
        AuthorSnapshot.from_user(current_user), payload.title, payload.content
    )
    logger.info("User %s created post %s", current_user.id, post.id)
    return post.api_repr()


@router.put("/posts/{post_id}", response_model=PostResponse, status_code=201)
def update_post(
    post_id: str,
    payload: PostUpdateRequest,
    current_user: UserRecord = Depends(get_current_user),
    posts: PostStore = Depends(get_post_store),
):
    post = posts.update(post_id, payload.model_dump(exclude_unset=True))
    if not post:
        raise NotFoundError(POST_NOT_FOUND)
    logger.info("User %s updated post %s", current_user.id, post_id)
    return post.api_repr()


@router.delete("/posts/{post_id}", status_code=204)
def delete_post(
    post_id: str,
    current_user: UserRecord = Depends(get_current_user),
    posts: PostStore = Depends(get_post_store),
):
    if not posts.delete(post_id):
        raise NotFoundError(POST_NOT_FOUND)
    logger.info("User %s deleted post %s", current_user.id, post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
