"""
Time-range labels and bucket arithmetic.

Chart ranges (``hour``, ``day``, ``week``, ``month``) map to a fixed lookback
window and bucket width. Anything else behaves like ``day``.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

DEFAULT_RANGE = "day"


@dataclass(frozen=True)
class TimeWindow:
    label: str
    start: datetime
    end: datetime
    bucket: timedelta


def resolve_time_range(label: Optional[str], now: datetime) -> TimeWindow:
    label = (label or DEFAULT_RANGE).lower()

    if label == "hour":
        return TimeWindow(label, now - HOUR, now, MINUTE)
    if label == "week":
        return TimeWindow(label, now - timedelta(days=7), now, HOUR)
    if label == "month":
        return TimeWindow(label, now - timedelta(days=30), now, DAY)

    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return TimeWindow(DEFAULT_RANGE, start_of_day, now, MINUTE)


def truncate(ts: datetime, bucket: timedelta) -> datetime:
    """Floor ``ts`` to the start of its bucket (minute, hour or day)."""
    ts = ts.replace(second=0, microsecond=0)
    if bucket >= HOUR:
        ts = ts.replace(minute=0)
    if bucket >= DAY:
        ts = ts.replace(hour=0)
    return ts


# lookbacks accepted by widget data queries
WIDGET_RANGES: Dict[str, timedelta] = {
    "1h": HOUR,
    "6h": timedelta(hours=6),
    "24h": DAY,
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "hour": HOUR,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


def widget_range_start(label: Optional[str], now: datetime) -> Optional[datetime]:
    """Lower bound for a widget query; ``None`` means unbounded."""
    if label == "day":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    lookback = WIDGET_RANGES.get(label or "24h")
    return now - lookback if lookback else None
