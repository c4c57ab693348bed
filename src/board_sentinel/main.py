# src/board_sentinel/main.py
"""Main entry point for the Board Sentinel application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from board_sentinel.api.v1 import keywords_router, moderation_router, posts_router
from board_sentinel.core.settings import settings

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Abuse prevention and moderation pipeline for an anonymous board",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(posts_router, prefix="/api/v1")
app.include_router(moderation_router, prefix="/api/v1")
app.include_router(keywords_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    if not settings.admin_token:
        logger.warning("ADMIN_TOKEN is not set; admin endpoints will answer 503")
    if settings.admin_fingerprint_allowlist:
        logger.warning("ADMIN_FINGERPRINTS is deprecated and ignored by the admin API")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("board_sentinel.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
