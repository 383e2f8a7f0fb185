"""Time and response formatting helpers."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current time as naive UTC.

    All timestamp columns are stored without tzinfo, so comparisons
    against loaded values must use naive datetimes as well.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def format_utc_datetime(dt: datetime | None) -> str | None:
    """Format datetime to ISO string with Z suffix for UTC.

    Timestamps are stored as naive UTC, and isoformat() does not add
    timezone info. The Z suffix lets clients parse them as UTC.

    Args:
        dt: datetime object (assumed UTC) or None

    Returns:
        ISO format string with Z suffix (e.g., "2026-01-10T10:30:00Z") or None
    """
    if dt is None:
        return None
    return f"{dt.isoformat()}Z"
