# src/board_sentinel/services/moderation.py
"""Moderation services: classifier sweeps, flagging, review queue and reports."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from board_sentinel.core.settings import settings
from board_sentinel.db.time import start_of_utc_day, utcnow
from board_sentinel.models import ModerationLog, Post, Report
from board_sentinel.models.moderation import (
    FLAG_SOURCE_SYSTEM_SCAN,
    FLAG_SOURCE_USER_REPORT,
    MODERATION_STATUS_APPROVED,
    MODERATION_STATUS_CLEAN,
    MODERATION_STATUS_PENDING,
    MODERATION_STATUS_REJECTED,
    MODERATION_STATUS_UNSCANNED,
    MODERATION_STATUSES,
)
from board_sentinel.models.post import POST_STATUS_DELETED, POST_STATUS_VISIBLE
from board_sentinel.services.content_filter import ContentCheckResult, classify
from board_sentinel.services.keyword_config import KeywordConfigResolver, get_keyword_resolver

logger = logging.getLogger(__name__)


class ModerationError(RuntimeError):
    """Base exception for moderation workflow failures."""


class PostNotFoundError(ModerationError):
    """Raised when the target post does not exist or was soft-deleted."""


class AlreadyReportedError(ModerationError):
    """Raised when a reporter reports the same post twice."""


@dataclass
class ScanResult:
    scanned: int = 0
    flagged: int = 0
    clean: int = 0
    errors: int = 0


@dataclass
class QueueItem:
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


@dataclass
class ModerationStats:
    counts: dict[str, int] = field(default_factory=dict)
    total_reports: int = 0
    today_reports: int = 0


class ModerationService:
    """Service handling moderation logic and state transitions."""

    def __init__(self, db: Session, resolver: KeywordConfigResolver | None = None) -> None:
        self.db = db
        self.resolver = resolver or get_keyword_resolver()

    # --- Classification --------------------------------------------------------------
    def scan_post(self, post: Post) -> ContentCheckResult:
        """Classify a single post and move it to ``clean`` or ``pending_review``.

        The caller owns the transaction.
        """
        result = classify(post.content, self.resolver.get(), post.board_slug)
        if result.flagged:
            post.moderation_status = MODERATION_STATUS_PENDING
            post.moderation_score = result.score
            post.flagged_categories = list(result.categories)
            post.flagged_by = FLAG_SOURCE_SYSTEM_SCAN
            post.flagged_at = utcnow()
        else:
            post.moderation_status = MODERATION_STATUS_CLEAN
            post.moderation_score = 0.0
        return result

    def scan_unscanned(self, limit: int = 100) -> ScanResult:
        """Classify up to ``limit`` unscanned posts, newest first.

        A failure on one post is logged and counted; it never stops the sweep.
        """
        result = ScanResult()
        post_ids = list(
            self.db.scalars(
                select(Post.id)
                .where(Post.moderation_status == MODERATION_STATUS_UNSCANNED)
                .order_by(Post.created_at.desc(), Post.id.desc())
                .limit(limit)
            )
        )

        for post_id in post_ids:
            try:
                post = self.db.get(Post, post_id)
                if post is None or post.moderation_status != MODERATION_STATUS_UNSCANNED:
                    continue
                verdict = self.scan_post(post)
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Error scanning post %s", post_id)
                result.errors += 1
                continue

            result.scanned += 1
            if verdict.flagged:
                result.flagged += 1
            else:
                result.clean += 1

        logger.info(
            "Moderation sweep scanned=%d flagged=%d clean=%d errors=%d",
            result.scanned,
            result.flagged,
            result.clean,
            result.errors,
        )
        return result

    # --- Flagging --------------------------------------------------------------------
    def flag_post(
        self,
        post_id: int,
        score: float,
        categories: Iterable[str],
        source: str,
    ) -> bool:
        """Push a post into the review queue.

        The stored score only ever rises and categories are merged. The first
        flagger keeps the attribution. Posts already rejected stay rejected.
        """
        post = self.db.get(Post, post_id, with_for_update=True)
        if post is None or post.moderation_status == MODERATION_STATUS_REJECTED:
            return False

        post.moderation_score = max(post.moderation_score or 0.0, score)
        merged = list(post.flagged_categories or [])
        for category in categories:
            if category not in merged:
                merged.append(category)
        post.flagged_categories = merged
        if post.flagged_by is None:
            post.flagged_by = source
        if post.flagged_at is None:
            post.flagged_at = utcnow()
        post.moderation_status = MODERATION_STATUS_PENDING
        self.db.commit()
        return True

    # --- Review queue ----------------------------------------------------------------
    def get_queue(self, limit: int = 20, offset: int = 0) -> list[QueueItem]:
        """Return pending posts, highest score first, with live report counts."""
        report_count = (
            select(func.count(Report.id))
            .where(Report.post_id == Post.id)
            .correlate(Post)
            .scalar_subquery()
        )
        rows = self.db.execute(
            select(Post, report_count)
            .where(Post.moderation_status == MODERATION_STATUS_PENDING)
            .order_by(
                Post.moderation_score.desc().nulls_last(),
                Post.flagged_at.desc().nulls_last(),
                Post.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        ).all()
        return [
            QueueItem(
                id=post.id,
                content=post.content,
                board_slug=post.board_slug,
                parent_id=post.parent_id,
                created_at=post.created_at,
                moderation_score=post.moderation_score,
                flagged_categories=post.flagged_categories,
                flagged_by=post.flagged_by,
                flagged_at=post.flagged_at,
                report_count=int(count or 0),
            )
            for post, count in rows
        ]

    def get_queue_count(self) -> int:
        return (
            self.db.query(func.count(Post.id))
            .filter(Post.moderation_status == MODERATION_STATUS_PENDING)
            .scalar()
            or 0
        )

    # --- Resolution ------------------------------------------------------------------
    def approve(self, post_id: int, admin_fingerprint: str) -> bool:
        """Resolve a pending post as acceptable."""
        if not self._resolve(post_id, {"moderation_status": MODERATION_STATUS_APPROVED}):
            return False
        self._log("approve", "post", post_id, admin_fingerprint)
        self.db.commit()
        return True

    def reject(self, post_id: int, admin_fingerprint: str, reason: str | None = None) -> bool:
        """Resolve a pending post as unacceptable and soft-delete it."""
        values = {"moderation_status": MODERATION_STATUS_REJECTED, "status": POST_STATUS_DELETED}
        if not self._resolve(post_id, values):
            return False
        self._log("reject", "post", post_id, admin_fingerprint, reason)
        self.db.commit()
        return True

    def _resolve(self, post_id: int, values: dict[str, object]) -> bool:
        # Conditional update: only a post still pending review can be resolved.
        outcome = self.db.execute(
            update(Post)
            .where(Post.id == post_id, Post.moderation_status == MODERATION_STATUS_PENDING)
            .values(**values)
        )
        if outcome.rowcount == 0:
            self.db.rollback()
            return False
        return True

    def delete_post(self, post_id: int, admin_fingerprint: str, reason: str) -> bool:
        """Soft-delete a visible post outside the review queue."""
        outcome = self.db.execute(
            update(Post)
            .where(Post.id == post_id, Post.status != POST_STATUS_DELETED)
            .values(status=POST_STATUS_DELETED)
        )
        if outcome.rowcount == 0:
            self.db.rollback()
            return False
        self._log("delete", "post", post_id, admin_fingerprint, reason)
        self.db.commit()
        return True

    def delete_posts_by_fingerprint(
        self, author_fingerprint: str, admin_fingerprint: str, reason: str
    ) -> int:
        """Soft-delete every visible post by one submitter; returns how many changed."""
        outcome = self.db.execute(
            update(Post)
            .where(
                Post.author_fingerprint == author_fingerprint,
                Post.status != POST_STATUS_DELETED,
            )
            .values(status=POST_STATUS_DELETED)
        )
        count = outcome.rowcount or 0
        if count == 0:
            self.db.rollback()
            return 0
        self._log(
            "delete_by_author",
            "author",
            author_fingerprint,
            admin_fingerprint,
            reason,
            {"affected_count": count},
        )
        self.db.commit()
        logger.info(
            "%d posts by %s deleted by admin %s", count, author_fingerprint, admin_fingerprint
        )
        return count

    # --- Threads ---------------------------------------------------------------------
    def lock_thread(self, post_id: int, admin_fingerprint: str) -> bool:
        """Stop a visible thread from accepting replies."""
        return self._set_locked(post_id, admin_fingerprint, locked=True)

    def unlock_thread(self, post_id: int, admin_fingerprint: str) -> bool:
        return self._set_locked(post_id, admin_fingerprint, locked=False)

    def _set_locked(self, post_id: int, admin_fingerprint: str, *, locked: bool) -> bool:
        # Only thread roots that are visible and not already in the target state.
        outcome = self.db.execute(
            update(Post)
            .where(
                Post.id == post_id,
                Post.parent_id.is_(None),
                Post.status != POST_STATUS_DELETED,
                Post.is_locked == (not locked),
            )
            .values(is_locked=locked)
        )
        if outcome.rowcount == 0:
            self.db.rollback()
            return False
        action = "lock" if locked else "unlock"
        self._log(action, "post", post_id, admin_fingerprint, f"Thread {action}ed")
        self.db.commit()
        return True

    def _log(
        self,
        action: str,
        target_type: str,
        target_id: int | str,
        admin_fingerprint: str,
        reason: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        self.db.add(
            ModerationLog(
                action=action,
                target_type=target_type,
                target_id=str(target_id),
                admin_fingerprint=admin_fingerprint,
                reason=reason,
                details=details,
            )
        )

    # --- Reports ---------------------------------------------------------------------
    def create_report(
        self,
        post_id: int,
        reporter_fingerprint: str,
        category: str,
        text: str | None = None,
    ) -> Report:
        """Record a reader's report and queue the post for review.

        Raises:
            PostNotFoundError: If the post is missing or soft-deleted.
            AlreadyReportedError: If this reporter already reported the post.
        """
        post = self.db.get(Post, post_id)
        if post is None or post.status != POST_STATUS_VISIBLE:
            raise PostNotFoundError(f"post {post_id} not found")

        report = Report(
            post_id=post_id,
            reporter_fingerprint=reporter_fingerprint,
            category=category,
            text=text or None,
        )
        self.db.add(report)
        try:
            # The unique constraint is the duplicate check; no pre-read race.
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            raise AlreadyReportedError(f"post {post_id} already reported") from err

        self.db.refresh(post)
        if post.moderation_status != MODERATION_STATUS_PENDING:
            self.flag_post(post_id, settings.report_flag_score, [category], FLAG_SOURCE_USER_REPORT)
        return report

    def get_report_count(self, post_id: int) -> int:
        return (
            self.db.query(func.count(Report.id)).filter(Report.post_id == post_id).scalar() or 0
        )

    # --- Statistics ------------------------------------------------------------------
    def get_stats(self) -> ModerationStats:
        """Aggregate counts per moderation status plus report totals."""
        counts = {status: 0 for status in MODERATION_STATUSES}
        rows = (
            self.db.query(Post.moderation_status, func.count(Post.id))
            .group_by(Post.moderation_status)
            .all()
        )
        for status, count in rows:
            counts[status] = int(count)

        total_reports = self.db.query(func.count(Report.id)).scalar() or 0
        today_reports = (
            self.db.query(func.count(Report.id))
            .filter(Report.created_at >= start_of_utc_day())
            .scalar()
            or 0
        )
        return ModerationStats(
            counts=counts,
            total_reports=int(total_reports),
            today_reports=int(today_reports),
        )
