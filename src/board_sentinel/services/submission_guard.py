"""Per-submission gatekeeping for anonymous posts.

The guard validates length, reply references and embedded media tags, then
throttles each submitter fingerprint (one accepted post per interval) and
suppresses repeated identical content inside a sliding window.

Throttling state sits behind :class:`SubmissionStateStore`. The in-process
store is the default; :class:`RedisSubmissionStore` shares state between
service instances and degrades to the in-process store if Redis fails.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Protocol
from urllib.parse import urlsplit

import redis

from board_sentinel.core.settings import settings

logger = logging.getLogger(__name__)

EMBED_TAG_PATTERN = re.compile(
    r"\[(video-embed|image-embed)\](.*?)\[/\1\]",
    re.IGNORECASE | re.DOTALL,
)
INVALID_EMBED_PLACEHOLDER = "about:invalid"
_FORBIDDEN_URL_CHARS = re.compile(r"[<>\"'`\s\[\]]")

REFERENCE_PATTERN = re.compile(r">>(\d+)")
MAX_REFERENCES = 10
MAX_SAME_REFERENCE = 2
MIN_SUBSTANTIVE_LENGTH = 2

SWEEP_EVERY = 256
SWEEP_INTERVAL_SECONDS = 60.0


class SubmissionError(str, Enum):
    """Reasons a submission is rejected."""

    EMPTY = "EMPTY"
    TOO_LONG = "TOO_LONG"
    RATE_LIMITED = "RATE_LIMITED"
    DUPLICATE_CONTENT = "DUPLICATE_CONTENT"
    TOO_MANY_REFERENCES = "TOO_MANY_REFERENCES"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    EXCESSIVE_DUPLICATE_REFERENCE = "EXCESSIVE_DUPLICATE_REFERENCE"
    NO_SUBSTANTIVE_CONTENT = "NO_SUBSTANTIVE_CONTENT"

    @property
    def status_code(self) -> int:
        if self in (SubmissionError.RATE_LIMITED, SubmissionError.DUPLICATE_CONTENT):
            return 429
        return 400


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of :meth:`SubmissionGuard.evaluate_submission`."""

    accepted: bool
    sanitized_content: str | None = None
    error: SubmissionError | None = None

    @classmethod
    def accept(cls, content: str) -> SubmissionResult:
        return cls(accepted=True, sanitized_content=content)

    @classmethod
    def reject(cls, error: SubmissionError) -> SubmissionResult:
        return cls(accepted=False, error=error)


def content_digest(content: str) -> str:
    """Return the content-addressed hash used for duplicate suppression."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def is_safe_embed_url(url: str) -> bool:
    """Return True if ``url`` may be stored inside an embed tag."""
    if not url.startswith("https://") or _FORBIDDEN_URL_CHARS.search(url):
        return False
    try:
        parts = urlsplit(url)
        # Accessing .port validates it.
        parts.port  # noqa: B018
    except ValueError:
        return False
    return parts.scheme == "https" and bool(parts.hostname)


def sanitize_embeds(content: str) -> str:
    """Replace unsafe URLs inside ``[video-embed]``/``[image-embed]`` tags."""

    def _replace(match: re.Match[str]) -> str:
        tag, url = match.group(1).lower(), match.group(2).strip()
        if not is_safe_embed_url(url):
            url = INVALID_EMBED_PLACEHOLDER
        return f"[{tag}]{url}[/{tag}]"

    return EMBED_TAG_PATTERN.sub(_replace, content)


def validate_reply_references(content: str, max_floor: int) -> SubmissionError | None:
    """Check ``>>N`` back-references against the thread's current floor."""
    references = [int(value) for value in REFERENCE_PATTERN.findall(content)]
    if len(references) > MAX_REFERENCES:
        return SubmissionError.TOO_MANY_REFERENCES
    if any(ref < 1 or ref > max_floor for ref in references):
        return SubmissionError.INVALID_REFERENCE
    if any(count > MAX_SAME_REFERENCE for count in Counter(references).values()):
        return SubmissionError.EXCESSIVE_DUPLICATE_REFERENCE
    remaining = REFERENCE_PATTERN.sub("", content).strip()
    if len(remaining) < MIN_SUBSTANTIVE_LENGTH:
        return SubmissionError.NO_SUBSTANTIVE_CONTENT
    return None


class SubmissionStateStore(Protocol):
    """Backend holding per-fingerprint throttling state."""

    def is_rate_limited(self, key: str, now: float, interval: float) -> bool: ...

    def is_duplicate(self, key: str, digest: str, now: float, window: float) -> bool: ...

    def record(
        self, key: str, digest: str | None, now: float, interval: float, window: float
    ) -> None: ...


class InMemorySubmissionStore:
    """Process-local store; not shared between service instances.

    Every key remembers when its longest interval or window runs out. Expired
    keys are swept every :data:`SWEEP_EVERY` writes and at least once per
    :data:`SWEEP_INTERVAL_SECONDS`.
    """

    def __init__(self) -> None:
        self._last_seen: dict[str, float] = {}
        self._recent: dict[str, list[tuple[float, str]]] = defaultdict(list)
        self._expires: dict[str, float] = {}
        self._writes = 0
        self._next_sweep: float | None = None
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._expires)

    def is_rate_limited(self, key: str, now: float, interval: float) -> bool:
        with self._lock:
            last = self._last_seen.get(key)
        return last is not None and now - last < interval

    def is_duplicate(self, key: str, digest: str, now: float, window: float) -> bool:
        with self._lock:
            entries = [entry for entry in self._recent.get(key, ()) if now - entry[0] < window]
            if entries:
                self._recent[key] = entries
            else:
                self._recent.pop(key, None)
            return any(entry[1] == digest for entry in entries)

    def record(
        self, key: str, digest: str | None, now: float, interval: float, window: float
    ) -> None:
        with self._lock:
            self._last_seen[key] = now
            if digest is not None:
                entries = [entry for entry in self._recent.get(key, ()) if now - entry[0] < window]
                entries.append((now, digest))
                self._recent[key] = entries
            self._expires[key] = max(self._expires.get(key, now), now + max(interval, window))
            self._writes += 1
            if self._next_sweep is None:
                self._next_sweep = now + SWEEP_INTERVAL_SECONDS
            if self._writes >= SWEEP_EVERY or now >= self._next_sweep:
                self._sweep(now)

    def _sweep(self, now: float) -> None:
        expired = [key for key, deadline in self._expires.items() if deadline <= now]
        for key in expired:
            del self._expires[key]
            self._last_seen.pop(key, None)
            self._recent.pop(key, None)
        self._writes = 0
        self._next_sweep = now + SWEEP_INTERVAL_SECONDS
        if expired:
            logger.debug("Swept %d expired submission keys", len(expired))


class RedisSubmissionStore:
    """Store backed by expiring Redis keys, for multi-instance deployments.

    Redis enforces the interval and window through key TTLs. When Redis fails
    the in-process fallback takes over for ``retry_after`` seconds of the
    caller's clock, after which Redis is tried again.
    """

    def __init__(
        self,
        client: Any,
        fallback: InMemorySubmissionStore | None = None,
        *,
        retry_after: float = 30.0,
    ) -> None:
        self._redis = client
        self._fallback = fallback or InMemorySubmissionStore()
        self._retry_after = retry_after
        self._retry_at: float | None = None

    def _available(self, now: float) -> bool:
        if self._retry_at is None:
            return True
        if now < self._retry_at:
            return False
        logger.info("Retrying Redis submission store")
        self._retry_at = None
        return True

    def _degrade(self, exc: Exception, now: float) -> None:
        logger.warning("Redis submission store unavailable, using in-process state: %s", exc)
        self._retry_at = now + self._retry_after

    def is_rate_limited(self, key: str, now: float, interval: float) -> bool:
        if self._available(now):
            try:
                return bool(self._redis.exists(f"sub:last:{key}"))
            except redis.RedisError as exc:
                self._degrade(exc, now)
        return self._fallback.is_rate_limited(key, now, interval)

    def is_duplicate(self, key: str, digest: str, now: float, window: float) -> bool:
        if self._available(now):
            try:
                return bool(self._redis.exists(f"sub:hash:{key}:{digest}"))
            except redis.RedisError as exc:
                self._degrade(exc, now)
        return self._fallback.is_duplicate(key, digest, now, window)

    def record(
        self, key: str, digest: str | None, now: float, interval: float, window: float
    ) -> None:
        if self._available(now):
            try:
                pipe = self._redis.pipeline()
                pipe.set(f"sub:last:{key}", "1", px=max(1, int(interval * 1000)))
                if digest is not None:
                    pipe.set(f"sub:hash:{key}:{digest}", "1", px=max(1, int(window * 1000)))
                pipe.execute()
                return
            except redis.RedisError as exc:
                self._degrade(exc, now)
        self._fallback.record(key, digest, now, interval, window)


class SubmissionGuard:
    """Gatekeeper applied to every anonymous submission."""

    def __init__(
        self,
        store: SubmissionStateStore | None = None,
        *,
        max_length: int = 10_000,
        interval_seconds: float = 3.0,
        duplicate_window_seconds: float = 30.0,
        report_cooldown_seconds: float = 12.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store or InMemorySubmissionStore()
        self.max_length = max_length
        self.interval_seconds = interval_seconds
        self.duplicate_window_seconds = duplicate_window_seconds
        self.report_cooldown_seconds = report_cooldown_seconds
        self._clock = clock

    def evaluate_submission(
        self,
        content: object,
        fingerprint: str,
        max_floor: int | None = None,
    ) -> SubmissionResult:
        """Accept or reject a submission, recording it when accepted.

        Args:
            content: Raw submitted text.
            fingerprint: Opaque submitter identifier.
            max_floor: The thread's current highest reply number; enables
                ``>>N`` reference validation when given.
        """
        if not isinstance(content, str):
            return SubmissionResult.reject(SubmissionError.EMPTY)
        text = content.strip()
        if not text:
            return SubmissionResult.reject(SubmissionError.EMPTY)
        if len(text) > self.max_length:
            return SubmissionResult.reject(SubmissionError.TOO_LONG)

        if max_floor is not None:
            reference_error = validate_reply_references(text, max_floor)
            if reference_error is not None:
                return SubmissionResult.reject(reference_error)

        sanitized = sanitize_embeds(text)
        digest = content_digest(sanitized)
        now = self._clock()
        key = f"post:{fingerprint}"

        if self.store.is_duplicate(key, digest, now, self.duplicate_window_seconds):
            return SubmissionResult.reject(SubmissionError.DUPLICATE_CONTENT)
        if self.store.is_rate_limited(key, now, self.interval_seconds):
            return SubmissionResult.reject(SubmissionError.RATE_LIMITED)

        self.store.record(
            key, digest, now, self.interval_seconds, self.duplicate_window_seconds
        )
        return SubmissionResult.accept(sanitized)

    # --- Report cooldown -----------------------------------------------------------
    def report_cooldown_active(self, fingerprint: str) -> bool:
        """Return True if the reporter filed a report too recently."""
        return self.store.is_rate_limited(
            f"report:{fingerprint}", self._clock(), self.report_cooldown_seconds
        )

    def record_report(self, fingerprint: str) -> None:
        self.store.record(
            f"report:{fingerprint}",
            None,
            self._clock(),
            self.report_cooldown_seconds,
            self.report_cooldown_seconds,
        )


def build_state_store() -> SubmissionStateStore:
    """Create the store selected by ``SUBMISSION_STATE_BACKEND``."""
    if settings.submission_state_backend == "redis":
        return RedisSubmissionStore(redis.from_url(settings.redis_url))
    return InMemorySubmissionStore()


_guard: SubmissionGuard | None = None


def get_submission_guard() -> SubmissionGuard:
    """Return the process-wide submission guard."""
    global _guard
    if _guard is None:
        _guard = SubmissionGuard(
            build_state_store(),
            max_length=settings.submission_max_length,
            interval_seconds=settings.submission_interval_seconds,
            duplicate_window_seconds=settings.duplicate_window_seconds,
            report_cooldown_seconds=settings.report_cooldown_seconds,
        )
    return _guard
