"""Date helpers for the date encodings the vendors use.

Vendors send ISO-8601 strings (with and without ``Z``), SQL-style
``YYYY-MM-DD HH:MM:SS`` strings, unix timestamps in seconds, and the
MySQL zero-date sentinel. Everything is normalized to aware UTC datetimes.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

ZERO_DATE_SENTINELS = {"0000-00-00 00:00:00", "0000-00-00"}


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """Return the instant ``days`` days before ``now``."""
    return (now or utcnow()) - timedelta(days=days)


def convert_unix_to_datetime(timestamp: float, unit: str = "s") -> datetime:
    """
    Convert Unix timestamp to an aware UTC datetime.

    Args:
        timestamp: Unix timestamp
        unit: "ms" for milliseconds, "s" for seconds
    """
    divisor = 1000 if unit == "ms" else 1
    return datetime.fromtimestamp(timestamp / divisor, tz=timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse any vendor date encoding, returning None for empty or unparseable input."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        # Millisecond timestamps are 13 digits
        unit = "ms" if value > 10_000_000_000 else "s"
        return convert_unix_to_datetime(value, unit=unit)

    text = str(value).strip()
    if not text or text in ZERO_DATE_SENTINELS:
        return None
    if text.isdigit():
        return parse_datetime(int(text))
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_iso(value: datetime) -> str:
    """Format as ISO-8601 in UTC with a trailing ``Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_sql_datetime(value: datetime) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
