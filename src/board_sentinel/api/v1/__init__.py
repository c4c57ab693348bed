# src/board_sentinel/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import keywords_router, moderation_router, posts_router

__all__ = [
    "posts_router",
    "moderation_router",
    "keywords_router",
]
