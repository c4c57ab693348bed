"""Admin authentication and submitter fingerprint utilities."""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass

from board_sentinel.core.settings import Settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
MAX_REASON_LENGTH = 200

ADMIN_NOT_CONFIGURED = "admin system not configured"
INVALID_TOKEN = "invalid token"


@dataclass(frozen=True)
class AdminAuthResult:
    """Outcome of an admin check; ``status_code``/``error`` are set on failure."""

    ok: bool
    status_code: int | None = None
    error: str | None = None

    @classmethod
    def success(cls) -> AdminAuthResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, status_code: int, error: str) -> AdminAuthResult:
        return cls(ok=False, status_code=status_code, error=error)


def authenticate_admin(authorization: str | None, settings: Settings) -> AdminAuthResult:
    """Check an ``Authorization: Bearer <token>`` header against ``ADMIN_TOKEN``.

    Args:
        authorization: Raw header value, or None when absent.
        settings: Application settings providing the shared admin token.

    Returns:
        503 when no token is configured, whatever the credential; 403 for a
        missing, malformed or wrong token. The exact reason only reaches logs.
    """
    expected = settings.admin_token
    if not expected:
        logger.warning("Admin request rejected: ADMIN_TOKEN is not configured")
        return AdminAuthResult.failure(503, ADMIN_NOT_CONFIGURED)

    if not authorization:
        logger.info("Admin request rejected: missing authorization header")
        return AdminAuthResult.failure(403, INVALID_TOKEN)
    if not authorization.startswith(BEARER_PREFIX):
        logger.info("Admin request rejected: unsupported authorization scheme")
        return AdminAuthResult.failure(403, INVALID_TOKEN)

    provided = authorization[len(BEARER_PREFIX):].strip().encode("utf-8")
    if len(provided) != len(expected.encode("utf-8")):
        logger.info("Admin request rejected: token length mismatch")
        return AdminAuthResult.failure(403, INVALID_TOKEN)
    if not hmac.compare_digest(provided, expected.encode("utf-8")):
        logger.info("Admin request rejected: token mismatch")
        return AdminAuthResult.failure(403, INVALID_TOKEN)
    return AdminAuthResult.success()


def authenticate_legacy_fingerprint(fingerprint: str | None, settings: Settings) -> AdminAuthResult:
    """Deprecated fingerprint allowlist check.

    Only callers that opt in explicitly reach this; :func:`authenticate_admin`
    never consults it.
    """
    allowlist = settings.admin_fingerprint_allowlist
    if not allowlist:
        return AdminAuthResult.failure(503, ADMIN_NOT_CONFIGURED)
    if not fingerprint:
        return AdminAuthResult.failure(403, INVALID_TOKEN)
    for allowed in allowlist:
        if hmac.compare_digest(fingerprint.encode("utf-8"), allowed.encode("utf-8")):
            logger.warning("Admin authenticated through the legacy fingerprint allowlist")
            return AdminAuthResult.success()
    return AdminAuthResult.failure(403, INVALID_TOKEN)


def validate_reason(reason: object) -> AdminAuthResult:
    """Require a non-empty reason of at most 200 characters."""
    if not isinstance(reason, str) or not reason.strip():
        return AdminAuthResult.failure(400, "reason is required")
    if len(reason.strip()) > MAX_REASON_LENGTH:
        return AdminAuthResult.failure(400, f"reason must be at most {MAX_REASON_LENGTH} characters")
    return AdminAuthResult.success()


def fingerprint_for(address: str, secret: str) -> str:
    """Return the opaque submitter fingerprint for a client address."""
    return hmac.new(secret.encode("utf-8"), address.encode("utf-8"), hashlib.sha256).hexdigest()
