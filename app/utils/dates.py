"""
Date and time helpers shared by the ledger and analytics.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    Stored timestamps are naive UTC so they compare the same way on SQLite and Postgres.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def week_start(day: date) -> date:
    """Monday of the ISO week containing the given day."""
    return day - timedelta(days=day.weekday())


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole calendar days from earlier to later."""
    return (as_naive_utc(later).date() - as_naive_utc(earlier).date()).days


def study_streak(activity_dates: Iterable[date], today: date) -> int:
    """
    Calculate current study streak (consecutive days with activity ending today).

    Args:
        activity_dates: Days on which the student was active
        today: Reference day

    Returns:
        Number of consecutive active days
    """
    active = set(activity_dates)
    streak = 0
    current_date = today

    while current_date in active:
        streak += 1
        current_date -= timedelta(days=1)

    return streak
