"""
Time Utilities

UTC helpers shared by the stateful gates:
- Timezone-aware "now"
- Calendar-day keys used for daily counters and drawdown windows
- Millisecond timestamp conversions for exchange candles/trades
"""

from datetime import datetime, timezone
from typing import Callable, Optional


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def utc_day_key(dt: Optional[datetime] = None) -> str:
    """
    UTC calendar-day key (``YYYY-MM-DD``).

    Args:
        dt: Moment to key (defaults to now). Naive datetimes are treated as UTC.

    Returns:
        Day key string
    """
    dt = dt or utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d")


def from_millis(timestamp_ms: float) -> datetime:
    """Convert an exchange millisecond timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)


def to_millis(dt: datetime) -> int:
    """Convert a datetime to milliseconds since epoch."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
