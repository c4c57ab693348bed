# src/board_sentinel/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .keywords import router as keywords_router
from .moderation import router as moderation_router
from .posts import router as posts_router

__all__ = [
    "posts_router",
    "moderation_router",
    "keywords_router",
]
