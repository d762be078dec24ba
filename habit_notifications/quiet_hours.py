"""Time-window predicates and ``HH:MM`` helpers shared by every strategy.

Strategies work on naive wall-clock times in the user's zone. That zone
comes from ``NOTIFY_TIMEZONE`` (an IANA name) and defaults to the system
zone; ``localize`` attaches it before a time leaves the process.
"""
from __future__ import annotations

import os
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from .models import NotificationSettings

RECAP_DAY_INDEX = {"sunday": 0, "monday": 1}


def parse_hhmm(value: str) -> Tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def minutes_since_midnight(value: str) -> int:
    hours, minutes = parse_hhmm(value)
    return hours * 60 + minutes


def sunday_weekday(moment: datetime) -> int:
    """Weekday index with Sunday as 0."""
    return (moment.weekday() + 1) % 7


def is_in_quiet_hours(settings: NotificationSettings, now: Optional[datetime] = None) -> bool:
    quiet = settings.general.quiet_hours
    if not quiet.enabled:
        return False

    now = now or datetime.now()
    current = now.hour * 60 + now.minute
    start = minutes_since_midnight(quiet.start)
    end = minutes_since_midnight(quiet.end)

    # Overnight window, e.g. 22:00 to 08:00
    if start > end:
        return current >= start or current < end
    return start <= current < end


def should_apply_weekend_mode(settings: NotificationSettings, is_weekend: bool) -> bool:
    """True when weekend mode suppresses the notification.

    ``reduced`` is accepted but does not suppress anything yet.
    """
    if not is_weekend:
        return False
    return settings.general.weekend_mode == "off"


def next_daily_occurrence(time_value: str, now: Optional[datetime] = None) -> datetime:
    """Today at ``time_value``, or tomorrow if that instant is not in the future."""
    now = now or datetime.now()
    hours, minutes = parse_hhmm(time_value)
    scheduled = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if scheduled <= now:
        scheduled += timedelta(days=1)
    return scheduled


def next_weekly_occurrence(weekday: int, time_value: str, now: Optional[datetime] = None) -> datetime:
    """Next ``weekday`` (0=Sunday) at ``time_value``, strictly after ``now``."""
    now = now or datetime.now()
    hours, minutes = parse_hhmm(time_value)
    days_ahead = (weekday - sunday_weekday(now)) % 7
    scheduled = (now + timedelta(days=days_ahead)).replace(
        hour=hours, minute=minutes, second=0, microsecond=0
    )
    if scheduled <= now:
        scheduled += timedelta(days=7)
    return scheduled


def hours_until_midnight(now: Optional[datetime] = None) -> float:
    now = now or datetime.now()
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (midnight - now).total_seconds() / 3600


def user_timezone() -> Optional[tzinfo]:
    name = os.getenv("NOTIFY_TIMEZONE")
    return ZoneInfo(name) if name else None


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Naive wall-clock time in ``tz``, or in the system zone when ``tz`` is None."""
    if tz is None:
        return datetime.now()
    return datetime.now(tz).replace(tzinfo=None)


def localize(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Attach ``tz`` (the system zone when None) to a naive wall-clock time."""
    if moment.tzinfo is not None:
        return moment
    if tz is None:
        return moment.astimezone()
    return moment.replace(tzinfo=tz)
