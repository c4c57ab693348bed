# src/board_sentinel/models/moderation.py
"""Models tracking user reports and the moderation audit trail."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from board_sentinel.db.session import Base
from board_sentinel.db.time import utcnow

MODERATION_STATUS_UNSCANNED = "unscanned"
MODERATION_STATUS_CLEAN = "clean"
MODERATION_STATUS_PENDING = "pending_review"
MODERATION_STATUS_APPROVED = "approved"
MODERATION_STATUS_REJECTED = "rejected"

MODERATION_STATUSES = (
    MODERATION_STATUS_UNSCANNED,
    MODERATION_STATUS_CLEAN,
    MODERATION_STATUS_PENDING,
    MODERATION_STATUS_APPROVED,
    MODERATION_STATUS_REJECTED,
)

FLAG_SOURCE_SYSTEM_SCAN = "system_scan"
FLAG_SOURCE_USER_REPORT = "user_report"

REPORT_CATEGORIES = (
    "hate_speech",
    "spam",
    "nsfw",
    "personal_attack",
    "illegal",
    "other",
)


class Report(Base):
    """A reader's report against a post; one per reporter per post."""

    __tablename__ = "post_report"
    __table_args__ = (
        UniqueConstraint("post_id", "reporter_fingerprint", name="uq_post_report_reporter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("post.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reporter_fingerprint: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )


class ModerationLog(Base):
    """Append-only audit record of an administrative action."""

    __tablename__ = "moderation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    admin_fingerprint: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )


class ImmutableLogError(RuntimeError):
    """Raised when code attempts to modify or delete an audit record."""


@event.listens_for(ModerationLog, "before_update")
def _reject_log_update(mapper, connection, target) -> None:
    raise ImmutableLogError("moderation log entries are append-only")


@event.listens_for(ModerationLog, "before_delete")
def _reject_log_delete(mapper, connection, target) -> None:
    raise ImmutableLogError("moderation log entries are append-only")
