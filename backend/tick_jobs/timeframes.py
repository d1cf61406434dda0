"""
Timeframe registry.
Maps each bar timeframe to its truncation unit and destination table.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, NamedTuple


class Timeframe(str, Enum):
    """Bar timeframes accepted on the command line."""

    MINUTE = "minute"
    HOUR = "hour"
    DAILY = "daily"


class TimeframeSpec(NamedTuple):
    unit: str
    table_name: str


_REGISTRY: Dict[Timeframe, TimeframeSpec] = {
    Timeframe.MINUTE: TimeframeSpec("minute", "minute_ohlc_data"),
    Timeframe.HOUR: TimeframeSpec("hour", "hour_ohlc_data"),
    Timeframe.DAILY: TimeframeSpec("day", "daily_ohlc_data"),
}


def resolve(timeframe: Timeframe) -> TimeframeSpec:
    """
    Get truncation unit and table name for a timeframe.

    Examples:
        Timeframe.HOUR -> ("hour", "hour_ohlc_data")
        Timeframe.DAILY -> ("day", "daily_ohlc_data")
    """
    return _REGISTRY[Timeframe(timeframe)]


def truncate(dt: datetime, unit: str) -> datetime:
    """
    Floor datetime to the start of its bucket.

    Examples:
        minute: 10:30:45.120 -> 10:30:00
        hour:   10:30:45     -> 10:00:00
        day:    10:30:45     -> 00:00:00 (same date)

    Buckets follow dt's own clock. asyncpg returns timestamptz values in
    UTC, so stored bars are UTC buckets, matching date_trunc on a UTC
    session (the engine pins asyncpg sessions to UTC).

    Args:
        dt: Datetime to floor (tzinfo is preserved)
        unit: "minute", "hour" or "day"

    Returns:
        Floored datetime
    """
    if unit == "minute":
        return dt.replace(second=0, microsecond=0)
    if unit == "hour":
        return dt.replace(minute=0, second=0, microsecond=0)
    if unit == "day":
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unknown truncation unit: {unit}")


def start_of_day(dt: datetime) -> datetime:
    """Midnight of dt's calendar date."""
    return truncate(dt, "day")
