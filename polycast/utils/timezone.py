"""
Timezone Utility Module
All analytics day boundaries are UTC; timestamps are stored as epoch milliseconds.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

UTC_TZ = timezone.utc

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_utc() -> datetime:
    """Get current datetime in UTC timezone."""
    return datetime.now(UTC_TZ)


def now_ms() -> int:
    """Current instant as epoch milliseconds."""
    return to_ms(now_utc())


def to_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are treated as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC_TZ)
    return int(dt.timestamp() * 1000)


def utc_day_start(dt: datetime) -> datetime:
    """Midnight (00:00:00 UTC) of the day containing dt."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC_TZ)
    dt = dt.astimezone(UTC_TZ)
    return datetime(dt.year, dt.month, dt.day, tzinfo=UTC_TZ)


def utc_day_windows(days: int, now: Optional[datetime] = None) -> List[Tuple[str, int, int]]:
    """
    Calendar-day windows for the last `days` days, oldest first.

    Returns:
        [(date_label, start_ms, end_ms), ...] where end is exclusive and the
        final window is today (UTC).
    """
    today_start = utc_day_start(now or now_utc())
    windows = []
    for i in range(days - 1, -1, -1):
        day_start = today_start - timedelta(days=i)
        day_end = day_start + timedelta(days=1)
        windows.append((day_start.date().isoformat(), to_ms(day_start), to_ms(day_end)))
    return windows
