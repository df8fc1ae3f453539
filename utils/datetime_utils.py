"""
Timezone-aware datetime helpers.

Every function returns timezone-aware UTC datetimes. Values read back from
SQLite come out naive, so anything that does arithmetic on stored timestamps
should pass them through ensure_utc first.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional, Union


def utc_now() -> datetime:
    """Current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: Union[int, float]) -> datetime:
    """Convert Unix seconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Make a datetime timezone-aware in UTC.

    Naive values are assumed to already be UTC; aware values in another
    zone are converted. None passes through.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """UTC datetime `days` before `now` (defaults to the current time)."""
    reference = ensure_utc(now) if now else utc_now()
    return reference - timedelta(days=days)


def start_of_utc_day(dt: datetime) -> datetime:
    """Midnight UTC of the day containing `dt`."""
    return ensure_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_utc_day(dt: datetime) -> datetime:
    """Last representable microsecond of the UTC day containing `dt`."""
    return ensure_utc(dt).replace(hour=23, minute=59, second=59, microsecond=999999)


def format_utc_iso(dt: Optional[datetime] = None) -> str:
    """
    Format a datetime as an ISO 8601 string in UTC.

    Example:
        >>> format_utc_iso(datetime(2025, 1, 1, 12, tzinfo=timezone.utc))
        '2025-01-01T12:00:00+00:00'
    """
    utc_dt = ensure_utc(dt) if dt else utc_now()
    return utc_dt.isoformat()


def format_utc_date(dt: datetime) -> str:
    """YYYY-MM-DD of the UTC calendar day."""
    return ensure_utc(dt).strftime('%Y-%m-%d')


def parse_utc_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string (date or datetime, 'Z' suffix allowed) to an
    aware UTC datetime.

    Raises:
        ValueError: If the string is not ISO 8601
    """
    if iso_string.endswith('Z'):
        iso_string = iso_string[:-1] + '+00:00'

    dt = datetime.fromisoformat(iso_string)
    return ensure_utc(dt)
