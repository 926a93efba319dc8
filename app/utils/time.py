"""Time utilities."""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from SQLite; convert aware ones."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_expired(expires_at: datetime | None, *, now: datetime | None = None) -> bool:
    expires_at = as_utc(expires_at)
    if expires_at is None:
        return False
    return expires_at <= (now or utcnow())


__all__ = ["as_utc", "is_expired", "utcnow"]
