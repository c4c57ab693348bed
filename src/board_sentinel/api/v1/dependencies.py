"""Shared API dependencies for admin authentication and common services."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from board_sentinel.core.security import authenticate_admin, fingerprint_for
from board_sentinel.core.settings import settings
from board_sentinel.db.session import get_db
from board_sentinel.services.keyword_config import KeywordConfigResolver, get_keyword_resolver
from board_sentinel.services.link_preview import LinkPreviewFetcher, get_link_preview_fetcher
from board_sentinel.services.submission_guard import SubmissionGuard, get_submission_guard

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_client_fingerprint(request: Request) -> str:
    """Derive the opaque fingerprint of the calling client.

    The raw address never leaves this function.
    """
    address = request.client.host if request.client else "unknown"
    return fingerprint_for(address, settings.app_secret)


def require_admin(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Authenticate an admin request and return the admin's fingerprint.

    Raises:
        HTTPException: 503 when the admin system is not configured, 403 otherwise.
    """
    result = authenticate_admin(authorization, settings)
    if not result.ok:
        raise HTTPException(status_code=result.status_code or 403, detail=result.error)
    return get_client_fingerprint(request)


def get_submission_guard_dep() -> SubmissionGuard:
    """Return the shared submission guard."""
    return get_submission_guard()


def get_link_preview_fetcher_dep() -> LinkPreviewFetcher:
    """Return the shared link preview fetcher."""
    return get_link_preview_fetcher()


def get_keyword_resolver_dep() -> KeywordConfigResolver:
    """Return the shared keyword configuration resolver."""
    return get_keyword_resolver()


FingerprintDep = Annotated[str, Depends(get_client_fingerprint)]
AdminDep = Annotated[str, Depends(require_admin)]
SubmissionGuardDep = Annotated[SubmissionGuard, Depends(get_submission_guard_dep)]
LinkPreviewFetcherDep = Annotated[LinkPreviewFetcher, Depends(get_link_preview_fetcher_dep)]
KeywordResolverDep = Annotated[KeywordConfigResolver, Depends(get_keyword_resolver_dep)]
