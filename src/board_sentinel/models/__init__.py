# src/board_sentinel/models/__init__.py
"""SQLAlchemy models for the Board Sentinel application."""

from .keyword import Homophone, Keyword, KeywordCategory
from .moderation import ModerationLog, Report
from .post import Post

__all__ = [
    "Homophone", "Keyword", "KeywordCategory",
    "ModerationLog", "Report",
    "Post",
]
