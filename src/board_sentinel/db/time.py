# src/board_sentinel/db/time.py
"""Time utilities for database models."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def start_of_utc_day(moment: datetime | None = None) -> datetime:
    """Return midnight (UTC) of the day containing ``moment``."""
    moment = moment or utcnow()
    return moment.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
