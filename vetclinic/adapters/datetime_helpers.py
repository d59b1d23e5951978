import datetime as dt
from zoneinfo import ZoneInfo

from loguru import logger

MINUTES_PER_DAY = 24 * 60


def to_minutes(time: dt.time) -> int:
    """Convert ``time(9, 30)`` → ``570`` minutes after midnight."""
    return time.hour * 60 + time.minute


def from_minutes(minutes: int) -> dt.time:
    """Convert minutes after midnight back to a ``dt.time``.

    ``1440`` (end of day) is clamped to ``23:59`` since ``dt.time`` cannot
    represent midnight of the following day.
    """
    if minutes >= MINUTES_PER_DAY:
        return dt.time(23, 59)
    return dt.time(minutes // 60, minutes % 60)


def add_minutes(time: dt.time, minutes: int) -> dt.time:
    return from_minutes(to_minutes(time) + minutes)


def date_to_long(date: dt.date) -> str:
    """Convert ``date(2026, 3, 22)`` → ``Sunday, March 22, 2026`` for message bodies."""
    return f"{date.strftime('%A')}, {date.strftime('%B')} {date.day}, {date.year}"


def time_to_12h(time: dt.time) -> str:
    """Convert ``time(14, 30)`` → ``2:30 PM``, without a leading zero on the hour."""
    hour = time.hour % 12 or 12
    period = "AM" if time.hour < 12 else "PM"
    return f"{hour}:{time.strftime('%M')} {period}"


def resolve_timezone(name: str) -> dt.tzinfo:
    """Resolve a timezone name, falling back to UTC if invalid."""
    try:
        return ZoneInfo(name)
    except Exception:
        logger.warning("Invalid clinic timezone '{}'; defaulting to UTC", name)
        return dt.timezone.utc


def combine_local(date: dt.date, time: dt.time, tz: dt.tzinfo) -> dt.datetime:
    """Attach the clinic timezone to a wall-clock date and time."""
    return dt.datetime.combine(date, time, tzinfo=tz)


class SystemClock:
    """Wall clock in the clinic's timezone."""

    def __init__(self, tz: dt.tzinfo) -> None:
        self._tz = tz

    def now(self) -> dt.datetime:
        return dt.datetime.now(self._tz)
