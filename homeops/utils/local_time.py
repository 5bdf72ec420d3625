"""
homeops/utils/local_time.py
Time-window oracle. Maps a message timestamp to the household's local
calendar day and a quiet-hours flag.

Always evaluated against the message's own timestamp, never the wall
clock of the worker, so a delayed batch sees the same window the sender did.
"""

from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from homeops.models.record import LocalWindow

DEFAULT_TIMEZONE    = 'Europe/Stockholm'
QUIET_START_HOUR    = 22
QUIET_END_HOUR      = 7


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def to_local(ts: int, tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc).astimezone(_zone(tz_name))


def local_calendar_day(ts: int, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """YYYY-MM-DD in the household's zone."""
    return to_local(ts, tz_name).strftime('%Y-%m-%d')


def is_quiet_hours(
    ts:          int,
    tz_name:     str = DEFAULT_TIMEZONE,
    start_hour:  int = QUIET_START_HOUR,
    end_hour:    int = QUIET_END_HOUR,
) -> bool:
    """
    True inside [start_hour, end_hour) local time.
    Windows that wrap midnight (22 → 7) and ones that don't (1 → 5) both work.
    """
    hour = to_local(ts, tz_name).hour
    if start_hour == end_hour:
        return False
    if start_hour > end_hour:
        return hour >= start_hour or hour < end_hour
    return start_hour <= hour < end_hour


def local_window(
    ts:          int,
    tz_name:     str = DEFAULT_TIMEZONE,
    start_hour:  int = QUIET_START_HOUR,
    end_hour:    int = QUIET_END_HOUR,
) -> LocalWindow:
    local = to_local(ts, tz_name)
    return LocalWindow(
        calendar_day = local.strftime('%Y-%m-%d'),
        hour         = local.hour,
        quiet_hours  = is_quiet_hours(ts, tz_name, start_hour, end_hour),
    )
