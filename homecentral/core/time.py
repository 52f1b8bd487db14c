"""Time helpers."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Naive UTC now, matching the naive DateTime columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
    """Serialize a naive UTC timestamp with an explicit Z suffix."""
    if value is None:
        return None
    return value.isoformat() + "Z"
