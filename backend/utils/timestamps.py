"""Naive-UTC timestamp helpers shared by models, services and reports."""

from datetime import datetime, timedelta, timezone
from typing import Optional

REPORT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    """Current UTC time without tzinfo (SQLite stores naive datetimes)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def advance(previous: Optional[datetime]) -> datetime:
    """
    Return a timestamp strictly later than ``previous``.

    Two upserts of the same row inside one clock tick would otherwise
    leave ``updated_at`` unchanged.
    """
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_report_timestamp(value: Optional[datetime]) -> str:
    return value.strftime(REPORT_TIMESTAMP_FORMAT) if value else ""
