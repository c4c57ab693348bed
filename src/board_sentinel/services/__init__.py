# src/board_sentinel/services/__init__.py
"""Business logic services for the Board Sentinel application."""

from .keyword_config import KeywordConfigResolver, KeywordStore
from .link_preview import LinkPreviewFetcher
from .moderation import ModerationService
from .submission_guard import SubmissionGuard

__all__ = [
    "KeywordConfigResolver",
    "KeywordStore",
    "LinkPreviewFetcher",
    "ModerationService",
    "SubmissionGuard",
]
