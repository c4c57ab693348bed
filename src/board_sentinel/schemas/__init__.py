# src/board_sentinel/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .keyword import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    HomophoneCreate,
    ImportResponse,
    KeywordCreate,
    KeywordImport,
    KeywordListResponse,
    KeywordResponse,
    KeywordUpdate,
)
from .moderation import (
    ActionResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    DeleteRequest,
    ModerationStatsResponse,
    QueueItemResponse,
    QueueResponse,
    RejectRequest,
    ScanResponse,
)
from .post import PostCreate, PostResponse, ReplyCreate, ReportCreate, ReportResponse

__all__ = [
    "CategoryCreate", "CategoryResponse", "CategoryUpdate",
    "HomophoneCreate", "ImportResponse",
    "KeywordCreate", "KeywordImport", "KeywordListResponse", "KeywordResponse", "KeywordUpdate",
    "ActionResponse", "BulkDeleteRequest", "BulkDeleteResponse", "DeleteRequest",
    "ModerationStatsResponse",
    "QueueItemResponse", "QueueResponse", "RejectRequest", "ScanResponse",
    "PostCreate", "PostResponse", "ReplyCreate", "ReportCreate", "ReportResponse",
]
