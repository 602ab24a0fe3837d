"""UTC time helpers.

SQLite drops tzinfo from ``DateTime(timezone=True)`` columns, so stored
timestamps are normalized before they are compared with ``utcnow()``.
"""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    """Expiry predicate: True once ``now`` has reached ``expires_at``."""
    return as_utc(now or utcnow()) >= as_utc(expires_at)
