"""Application settings and configuration.

This module defines all configuration options for the Board Sentinel service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the moderation pipeline.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Board Sentinel", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./board.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Secret used to derive submitter fingerprints from client addresses
    app_secret: str = Field(default="change-me", alias="APP_SECRET")

    # Admin authentication. An empty token means the admin API is closed.
    admin_token: str | None = Field(default=None, alias="ADMIN_TOKEN")
    # Deprecated fingerprint allowlist (comma separated), explicit legacy path only
    admin_fingerprints: str | None = Field(default=None, alias="ADMIN_FINGERPRINTS")

    # Redis configuration for shared submission state
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    # "memory" keeps throttling state in-process, "redis" shares it across instances
    submission_state_backend: str = Field(default="memory", alias="SUBMISSION_STATE_BACKEND")

    # Submission guard limits
    submission_max_length: int = Field(default=10_000, alias="SUBMISSION_MAX_LENGTH")
    submission_interval_seconds: float = Field(default=3.0, alias="SUBMISSION_INTERVAL_SECONDS")
    duplicate_window_seconds: float = Field(default=30.0, alias="DUPLICATE_WINDOW_SECONDS")
    report_cooldown_seconds: float = Field(default=12.0, alias="REPORT_COOLDOWN_SECONDS")
    max_thread_replies: int = Field(default=999, alias="MAX_THREAD_REPLIES")

    # Content classification and moderation
    keyword_cache_ttl_seconds: float = Field(default=60.0, alias="KEYWORD_CACHE_TTL_SECONDS")
    scan_on_submit: bool = Field(default=True, alias="SCAN_ON_SUBMIT")
    report_flag_score: float = Field(default=0.5, alias="REPORT_FLAG_SCORE")
    scan_batch_limit: int = Field(default=100, alias="SCAN_BATCH_LIMIT")

    # Link preview fetching
    link_preview_enabled: bool = Field(default=True, alias="LINK_PREVIEW_ENABLED")
    link_preview_timeout_seconds: float = Field(default=5.0, alias="LINK_PREVIEW_TIMEOUT_SECONDS")
    link_preview_max_bytes: int = Field(default=512 * 1024, alias="LINK_PREVIEW_MAX_BYTES")
    link_preview_max_redirects: int = Field(default=5, alias="LINK_PREVIEW_MAX_REDIRECTS")
    link_preview_skip_domains: list[str] = Field(
        default=[
            "instagram.com",
            "facebook.com",
            "fb.com",
            "twitter.com",
            "x.com",
            "threads.net",
        ],
        alias="LINK_PREVIEW_SKIP_DOMAINS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def admin_fingerprint_allowlist(self) -> list[str]:
        """Return the legacy admin fingerprint allowlist as a list."""
        if not self.admin_fingerprints:
            return []
        return [item.strip() for item in self.admin_fingerprints.split(",") if item.strip()]


settings = Settings()
