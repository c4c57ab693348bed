"""Admin moderation endpoints: review queue, resolutions and removals."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from board_sentinel.api.v1.dependencies import AdminDep, KeywordResolverDep, SessionDep
from board_sentinel.core.security import validate_reason
from board_sentinel.core.settings import settings
from board_sentinel.schemas.moderation import (
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
from board_sentinel.services.moderation import ModerationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["moderation"])


def _not_pending(post_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Post {post_id} is not awaiting review",
    )


@router.get("/moderation/queue", response_model=QueueResponse)
async def get_moderation_queue(
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> QueueResponse:
    """Return posts awaiting review, highest score first."""
    service = ModerationService(db, resolver)
    items = service.get_queue(limit=limit, offset=offset)
    return QueueResponse(
        items=[QueueItemResponse.model_validate(item) for item in items],
        total=service.get_queue_count(),
    )


@router.get("/moderation/stats", response_model=ModerationStatsResponse)
async def get_moderation_stats(
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> ModerationStatsResponse:
    stats = ModerationService(db, resolver).get_stats()
    return ModerationStatsResponse.model_validate(stats)


@router.post("/moderation/scan", response_model=ScanResponse)
async def scan_posts(
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
    limit: int | None = Query(None, ge=1, le=1000),
) -> ScanResponse:
    """Classify posts that have not been scanned yet."""
    result = ModerationService(db, resolver).scan_unscanned(limit or settings.scan_batch_limit)
    return ScanResponse.model_validate(result)


@router.post("/moderation/{post_id}/approve", response_model=ActionResponse)
async def approve_post(
    post_id: int,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> ActionResponse:
    if not ModerationService(db, resolver).approve(post_id, admin):
        raise _not_pending(post_id)
    logger.info("Post %s approved", post_id)
    return ActionResponse(post_id=post_id, status="approved")


@router.post("/moderation/{post_id}/reject", response_model=ActionResponse)
async def reject_post(
    post_id: int,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
    payload: RejectRequest | None = None,
) -> ActionResponse:
    """Reject a pending post; it is soft-deleted and the reason is logged."""
    reason = payload.reason.strip() if payload and payload.reason else None
    if reason is not None:
        check = validate_reason(reason)
        if not check.ok:
            raise HTTPException(status_code=check.status_code or 400, detail=check.error)

    if not ModerationService(db, resolver).reject(post_id, admin, reason):
        raise _not_pending(post_id)
    logger.info("Post %s rejected", post_id)
    return ActionResponse(post_id=post_id, status="rejected")


@router.post("/posts/{post_id}/delete", response_model=ActionResponse)
async def delete_post(
    post_id: int,
    payload: DeleteRequest,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> ActionResponse:
    """Soft-delete any visible post; a reason is mandatory."""
    check = validate_reason(payload.reason)
    if not check.ok:
        raise HTTPException(status_code=check.status_code or 400, detail=check.error)

    if not ModerationService(db, resolver).delete_post(post_id, admin, payload.reason.strip()):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    logger.info("Post %s deleted by admin", post_id)
    return ActionResponse(post_id=post_id, status="deleted")


@router.post("/moderation/by-author", response_model=BulkDeleteResponse)
async def delete_posts_by_author(
    payload: BulkDeleteRequest,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> BulkDeleteResponse:
    """Soft-delete every visible post by one submitter fingerprint."""
    check = validate_reason(payload.reason)
    if not check.ok:
        raise HTTPException(status_code=check.status_code or 400, detail=check.error)

    count = ModerationService(db, resolver).delete_posts_by_fingerprint(
        payload.author_fingerprint, admin, payload.reason.strip()
    )
    return BulkDeleteResponse(author_fingerprint=payload.author_fingerprint, affected_count=count)


@router.post("/posts/{post_id}/lock", response_model=ActionResponse)
async def lock_thread(
    post_id: int,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> ActionResponse:
    if not ModerationService(db, resolver).lock_thread(post_id, admin):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found or already locked"
        )
    logger.info("Thread %s locked", post_id)
    return ActionResponse(post_id=post_id, status="locked")


@router.post("/posts/{post_id}/unlock", response_model=ActionResponse)
async def unlock_thread(
    post_id: int,
    db: SessionDep,
    admin: AdminDep,
    resolver: KeywordResolverDep,
) -> ActionResponse:
    if not ModerationService(db, resolver).unlock_thread(post_id, admin):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found or not locked"
        )
    logger.info("Thread %s unlocked", post_id)
    return ActionResponse(post_id=post_id, status="unlocked")
