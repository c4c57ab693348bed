# src/board_sentinel/schemas/moderation.py
"""Moderation-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QueueItemResponse(BaseModel):
    """A post awaiting review, as shown in the admin queue."""

    id: int
    content: str
    board_slug: str | None
    parent_id: int | None
    created_at: datetime
    moderation_score: float | None
    flagged_categories: list[str] | None
    flagged_by: str | None
    flagged_at: datetime | None
    report_count: int

    model_config = ConfigDict(from_attributes=True)


class QueueResponse(BaseModel):
    items: list[QueueItemResponse]
    total: int


class ModerationStatsResponse(BaseModel):
    counts: dict[str, int]
    total_reports: int
    today_reports: int

    model_config = ConfigDict(from_attributes=True)


class ScanResponse(BaseModel):
    scanned: int
    flagged: int
    clean: int
    errors: int

    model_config = ConfigDict(from_attributes=True)


class RejectRequest(BaseModel):
    """Body of a reject request; the reason only lands in the audit log."""

    reason: str | None = Field(None, description="Optional note for the audit log")


class DeleteRequest(BaseModel):
    reason: str = Field(..., description="Why the post is being removed")


class ActionResponse(BaseModel):
    post_id: int
    status: str


class BulkDeleteRequest(BaseModel):
    """Remove every visible post left by one submitter fingerprint."""

    author_fingerprint: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(..., description="Why the posts are being removed")


class BulkDeleteResponse(BaseModel):
    author_fingerprint: str
    affected_count: int
