"""
Time Window Utilities
User-local day boundaries, time-of-day parsing and quiet-hours arithmetic
"""

import logging
import re
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import engine_config


logger = logging.getLogger(__name__)

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})$")
_EPOCH = datetime(1970, 1, 1)


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to the default zone"""
    name = tz_name or engine_config.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {engine_config.DEFAULT_TIMEZONE}")
        return ZoneInfo(engine_config.DEFAULT_TIMEZONE)


def parse_time_of_day(value: Union[str, time, None]) -> time:
    """
    Parse an "HH:MM" time-of-day.

    Raises ValueError for anything that is not a syntactically valid
    0-23:0-59 value.
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported time-of-day value: {value!r}")

    match = _TIME_OF_DAY.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time-of-day format: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Time-of-day out of range: {value!r}")
    return time(hours, minutes)


def to_local(moment: datetime, zone: ZoneInfo) -> datetime:
    """Naive UTC -> aware local"""
    return moment.replace(tzinfo=timezone.utc).astimezone(zone)


def to_utc(local_moment: datetime) -> datetime:
    """Aware local -> naive UTC"""
    return local_moment.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(zone: ZoneInfo, now: Optional[datetime] = None) -> date:
    """The calendar date the user is currently living in"""
    return to_local(now or utcnow(), zone).date()


def local_to_utc(day: date, time_of_day: time, zone: ZoneInfo) -> datetime:
    """Absolute (naive UTC) timestamp of a local time-of-day on a local date"""
    return to_utc(datetime.combine(day, time_of_day, tzinfo=zone))


def day_bounds_utc(day: date, zone: ZoneInfo) -> Tuple[datetime, datetime]:
    """[start, end) of a local calendar day, in naive UTC"""
    start = local_to_utc(day, time.min, zone)
    end = local_to_utc(day + timedelta(days=1), time.min, zone)
    return start, end


def week_bounds(day: date, week_start_day: Optional[int] = None) -> Tuple[date, date]:
    """[first, next-first) dates of the calendar week containing `day`"""
    first_weekday = engine_config.WEEK_START_DAY if week_start_day is None else week_start_day
    offset = (day.weekday() - first_weekday) % 7
    start = day - timedelta(days=offset)
    return start, start + timedelta(days=7)


def month_bounds(day: date) -> Tuple[date, date]:
    """[first, next-first) dates of the calendar month containing `day`"""
    start = day.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def scheduled_bucket(moment: datetime, bucket_seconds: Optional[int] = None) -> int:
    """Tolerance bucket used by the dose uniqueness constraint"""
    size = bucket_seconds or engine_config.DEDUP_TOLERANCE_SECONDS
    return int((moment - _EPOCH).total_seconds() // size)


def is_within_quiet_hours(
    current: time,
    quiet_start: Optional[time],
    quiet_end: Optional[time]
) -> bool:
    """
    Whether `current` falls in [quiet_start, quiet_end).

    Handles overnight quiet hours (e.g., 22:00 to 07:00) by wrapping across
    midnight. An unset or zero-length window never matches.
    """
    if quiet_start is None or quiet_end is None or quiet_start == quiet_end:
        return False

    current = current.replace(tzinfo=None)
    if quiet_start < quiet_end:
        return quiet_start <= current < quiet_end
    return current >= quiet_start or current < quiet_end
