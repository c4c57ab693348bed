# src/board_sentinel/schemas/post.py
"""Post-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PostCreate(BaseModel):
    """Schema for creating a new thread."""

    # Length and emptiness are enforced by the submission guard.
    content: str = Field(..., description="Post text")
    board_slug: str | None = Field(None, max_length=64, description="Board the thread belongs to")


class ReplyCreate(BaseModel):
    """Schema for replying to a thread."""

    content: str = Field(..., description="Reply text, may reference earlier floors as >>N")


class LinkPreviewResponse(BaseModel):
    url: str
    title: str
    description: str | None = None
    image: str | None = None
    site_name: str | None = None


class PostResponse(BaseModel):
    """Schema for post information returned by the API."""

    id: int
    parent_id: int | None
    board_slug: str | None
    content: str
    content_hash: str
    created_at: datetime
    moderation_status: str
    is_locked: bool = False
    link_preview: LinkPreviewResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class ReportCreate(BaseModel):
    """Schema for a reader's report against a post."""

    category: Literal["hate_speech", "spam", "nsfw", "personal_attack", "illegal", "other"]
    text: str | None = Field(None, max_length=500, description="Optional free-text detail")


class ReportResponse(BaseModel):
    id: int
    post_id: int
    category: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
