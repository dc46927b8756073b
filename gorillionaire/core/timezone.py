"""
Centralized time helpers.

Everything the backend stores or compares is in UTC: weekly leaderboards
start on Monday 00:00 UTC and the daily jobs fire on UTC wall-clock time.
"""

import pytz
from datetime import datetime, timedelta


UTC = pytz.utc


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def start_of_week(now: datetime = None) -> datetime:
    """Monday 00:00 UTC of the week containing ``now``."""
    now = now or utc_now()
    monday = now - timedelta(days=now.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_week(now: datetime = None) -> datetime:
    """Last millisecond of the week containing ``now``."""
    return start_of_week(now) + timedelta(days=7) - timedelta(milliseconds=1)


def seconds_until(hhmm: str, now: datetime = None, weekday: int = None) -> float:
    """
    Seconds from ``now`` until the next UTC wall-clock time ``HH:MM``,
    optionally only on ``weekday`` (Monday is 0).
    """
    now = now or utc_now()
    hour, minute = (int(part) for part in hhmm.split(":", 1))
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if weekday is not None:
        target += timedelta(days=(weekday - now.weekday()) % 7)
    if target <= now:
        target += timedelta(days=1 if weekday is None else 7)
    return (target - now).total_seconds()


def iso_week(when: datetime) -> tuple:
    """``(week_number, year)`` of the ISO week containing ``when``."""
    year, week, _ = when.isocalendar()
    return week, year
