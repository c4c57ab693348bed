# src/board_sentinel/models/post.py
"""SQLAlchemy models for posts and the moderation fields the pipeline owns."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from board_sentinel.db.session import Base
from board_sentinel.db.time import utcnow

POST_STATUS_VISIBLE = 0
POST_STATUS_DELETED = 2


class Post(Base):
    """Anonymous thread or reply.

    Threads have ``parent_id = NULL``; replies point at their thread. The
    moderation columns are written only by the moderation workflow.
    """

    __tablename__ = "post"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("post.id"),
        nullable=True,
        index=True,
    )
    # Only used to select classifier overrides.
    board_slug: Mapped[str | None] = mapped_column(String(64), nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    author_fingerprint: Mapped[str] = mapped_column(String(128), nullable=False)
    link_preview: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # 0 = visible, 2 = soft-deleted.
    status: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=POST_STATUS_VISIBLE)
    # Locked threads accept no replies.
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # unscanned -> clean | pending_review -> approved | rejected
    moderation_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default="unscanned",
        index=True,
    )
    moderation_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    flagged_categories: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    flagged_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    flagged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.status == POST_STATUS_DELETED
