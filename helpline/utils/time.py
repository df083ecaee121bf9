"""Time utilities."""
import math
from datetime import UTC, datetime, timezone


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from SQLite; convert aware ones."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_utc(value: str) -> datetime:
    """Parse an ISO 8601 string and normalize it to UTC."""

    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return ensure_utc(dt)


def seconds_until(end: datetime | None, now: datetime) -> int:
    """Whole seconds left before ``end``, rounded up and never negative."""

    end = ensure_utc(end)
    if end is None:
        return 0
    return max(0, math.ceil((end - now).total_seconds()))


def isoformat_z(value: datetime | None) -> str | None:
    """Render a UTC timestamp as ISO 8601 with a ``Z`` suffix."""

    value = ensure_utc(value)
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = ["utcnow", "ensure_utc", "parse_iso_utc", "seconds_until", "isoformat_z"]
