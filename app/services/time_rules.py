"""
Time rules.
Timestamps are stored as naive UTC; calendar questions (what is "today", which
ISO week a log falls in) are answered in the business timezone.
"""
from datetime import datetime, date, timedelta, timezone
from typing import Optional, Tuple
import pytz
from ..config import settings


def utc_now() -> datetime:
    """Current time as naive UTC, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize an incoming datetime for storage/comparison.

    Aware values are converted to UTC and stripped; naive values are assumed
    to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)


def local_today(timezone_str: Optional[str] = None) -> date:
    """
    Calendar date right now in the business timezone.

    Args:
        timezone_str: Timezone string (defaults to TZ_DEFAULT)
    """
    try:
        tz = pytz.timezone(timezone_str or settings.tz_default)
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC
    return datetime.now(pytz.UTC).astimezone(tz).date()


def utc_to_local_date(utc_datetime: datetime, timezone_str: Optional[str] = None) -> date:
    """Calendar date of a stored (naive UTC) timestamp in the business timezone."""
    tz = pytz.timezone(timezone_str or settings.tz_default)
    if utc_datetime.tzinfo is None:
        utc_datetime = utc_datetime.replace(tzinfo=pytz.UTC)
    return utc_datetime.astimezone(tz).date()


def iso_week(day: date) -> Tuple[int, int]:
    """(iso_year, iso_week) for a date; the year is the ISO year, not the calendar year."""
    iso = day.isocalendar()
    return iso[0], iso[1]


def week_bounds(iso_year: int, week: int) -> Tuple[date, date]:
    """Monday and Sunday of an ISO week."""
    monday = date.fromisocalendar(iso_year, week, 1)
    return monday, monday + timedelta(days=6)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last calendar day of a month."""
    first = date(year, month, 1)
    if month == 12:
        nxt = date(year + 1, 1, 1)
    else:
        nxt = date(year, month + 1, 1)
    return first, nxt - timedelta(days=1)


def in_reminder_window(due: Optional[date], reminder_days: int, today: date, upper_bound: bool = True) -> bool:
    """
    True when ``today`` falls inside the reminder window of a due date.

    The window opens ``reminder_days`` before the due date. With
    ``upper_bound`` it closes on the due date itself; without it overdue
    items stay in the window.
    """
    if due is None:
        return False
    opens = due - timedelta(days=max(reminder_days or 0, 0))
    if today < opens:
        return False
    return today <= due if upper_bound else True
