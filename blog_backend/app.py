"""
FastAPI application entry point for the blog backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from blog_backend.config import get_settings
from blog_backend.errors import register_exception_handlers
from blog_backend.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Blog Backend (FastAPI)", version="0.1.0")
    register_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
