# app/core/timeutil.py
"""UTC time helpers shared by the quota, session and analytics services."""
import datetime as dt
from typing import Callable

Clock = Callable[[], dt.datetime]


def utc_now() -> dt.datetime:
    """
    Get current UTC datetime with timezone information.
    """
    return dt.datetime.now(dt.timezone.utc)


def next_utc_midnight(now: dt.datetime) -> dt.datetime:
    """Start of the next UTC calendar day after `now`."""
    now = now.astimezone(dt.timezone.utc)
    tomorrow = now.date() + dt.timedelta(days=1)
    return dt.datetime.combine(tomorrow, dt.time.min, tzinfo=dt.timezone.utc)


def isoformat_z(value: dt.datetime) -> str:
    """ISO-8601 in UTC with a Z suffix, e.g. 2024-05-01T00:00:00.000Z."""
    value = value.astimezone(dt.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
