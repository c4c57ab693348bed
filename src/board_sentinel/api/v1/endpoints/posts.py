# src/board_sentinel/api/v1/endpoints/posts.py
"""Post-related endpoints: threads, replies and reader reports."""

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from board_sentinel.api.v1.dependencies import (
    FingerprintDep,
    KeywordResolverDep,
    LinkPreviewFetcherDep,
    SessionDep,
    SubmissionGuardDep,
)
from board_sentinel.core.settings import settings
from board_sentinel.models import Post
from board_sentinel.models.post import POST_STATUS_VISIBLE
from board_sentinel.schemas.post import (
    PostCreate,
    PostResponse,
    ReplyCreate,
    ReportCreate,
    ReportResponse,
)
from board_sentinel.services.keyword_config import KeywordConfigResolver
from board_sentinel.services.link_preview import LinkPreviewFetcher
from board_sentinel.services.moderation import (
    AlreadyReportedError,
    ModerationService,
    PostNotFoundError,
)
from board_sentinel.services.submission_guard import SubmissionResult, content_digest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])


def _raise_for_rejection(result: SubmissionResult) -> None:
    if result.error is not None:
        raise HTTPException(status_code=result.error.status_code, detail=result.error.value)


def _get_visible_thread(db: Session, thread_id: int) -> Post:
    thread = db.get(Post, thread_id)
    if thread is None or thread.parent_id is not None or thread.status != POST_STATUS_VISIBLE:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    return thread


async def _store_post(
    db: Session,
    *,
    content: str,
    fingerprint: str,
    board_slug: str | None,
    parent_id: int | None,
    fetcher: LinkPreviewFetcher,
    resolver: KeywordConfigResolver,
) -> Post:
    preview = None
    if settings.link_preview_enabled:
        preview = await fetcher.fetch_preview(content)

    post = Post(
        parent_id=parent_id,
        board_slug=board_slug,
        content=content,
        content_hash=content_digest(content),
        author_fingerprint=fingerprint,
        link_preview=preview.to_dict() if preview else None,
    )
    verdict = None
    if settings.scan_on_submit:
        verdict = ModerationService(db, resolver).scan_post(post)
    db.add(post)
    db.commit()
    db.refresh(post)
    if verdict is not None and verdict.flagged:
        logger.info(
            "Post %s queued for review (score=%.2f categories=%s)",
            post.id,
            verdict.score,
            ",".join(verdict.categories),
        )
    return post


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_thread(
    payload: PostCreate,
    db: SessionDep,
    fingerprint: FingerprintDep,
    guard: SubmissionGuardDep,
    fetcher: LinkPreviewFetcherDep,
    resolver: KeywordResolverDep,
) -> Post:
    """Create a new thread after it passes the submission guard."""
    result = guard.evaluate_submission(payload.content, fingerprint)
    _raise_for_rejection(result)
    return await _store_post(
        db,
        content=result.sanitized_content or "",
        fingerprint=fingerprint,
        board_slug=payload.board_slug,
        parent_id=None,
        fetcher=fetcher,
        resolver=resolver,
    )


@router.post(
    "/{thread_id}/replies",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reply(
    thread_id: int,
    payload: ReplyCreate,
    db: SessionDep,
    fingerprint: FingerprintDep,
    guard: SubmissionGuardDep,
    fetcher: LinkPreviewFetcherDep,
    resolver: KeywordResolverDep,
) -> Post:
    """Reply to a thread; ``>>N`` references must point at existing floors."""
    thread = _get_visible_thread(db, thread_id)
    reply_count = (
        db.query(func.count(Post.id)).filter(Post.parent_id == thread.id).scalar() or 0
    )
    if reply_count >= settings.max_thread_replies:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Thread has reached the reply limit and is archived",
        )
    if thread.is_locked:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Thread is locked")

    result = guard.evaluate_submission(payload.content, fingerprint, max_floor=reply_count)
    _raise_for_rejection(result)
    return await _store_post(
        db,
        content=result.sanitized_content or "",
        fingerprint=fingerprint,
        board_slug=thread.board_slug,
        parent_id=thread.id,
        fetcher=fetcher,
        resolver=resolver,
    )


@router.post("/{post_id}/report", response_model=ReportResponse)
async def report_post(
    post_id: int,
    payload: ReportCreate,
    db: SessionDep,
    fingerprint: FingerprintDep,
    guard: SubmissionGuardDep,
    resolver: KeywordResolverDep,
) -> ReportResponse:
    """File a reader report; the post is queued for admin review."""
    if guard.report_cooldown_active(fingerprint):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Reporting too quickly; please wait",
        )

    text = payload.text.strip() if payload.text else None
    service = ModerationService(db, resolver)
    try:
        report = service.create_report(post_id, fingerprint, payload.category, text)
    except PostNotFoundError as err:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found") from err
    except AlreadyReportedError as err:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You have already reported this post",
        ) from err

    guard.record_report(fingerprint)
    return ReportResponse.model_validate(report)
