"""
Configuration and settings for the blog backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")

    # Database (MongoDB expected)
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    database_name: str = Field(default="blog", validation_alias="DATABASE_NAME")

    # Password hashing
    bcrypt_rounds: int = Field(default=10, ge=4, le=31, validation_alias="BCRYPT_ROUNDS")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="BLOG_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
