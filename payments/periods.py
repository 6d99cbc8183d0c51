# payments/periods.py
"""
Billing period arithmetic.

All times are naive UTC datetimes (``datetime.utcnow()``), matching the
DateTime columns. A billing period is identified by the first calendar day
of its month; freshness is a fixed rolling window, not a calendar month.
"""
import math
from datetime import date, datetime, timedelta, timezone

WINDOW_DAYS = 30


def utcnow():
    return datetime.utcnow()


def as_utc_naive(moment):
    """Aware datetimes are converted to UTC and stripped of tzinfo; naive ones pass through."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def current_period_key(now=None):
    """First day of the month containing ``now``."""
    now = now or utcnow()
    return date(now.year, now.month, 1)


def lookback_boundary(now=None, days=WINDOW_DAYS):
    """Oldest ``paid_at`` that still counts as a current payment."""
    now = now or utcnow()
    return now - timedelta(days=days)


def normalize_period(value):
    """
    Coerce a date, datetime or ISO string ("2026-10", "2026-10-17",
    "2026-10-17T08:00:00") to the first day of its month.
    Returns None for empty input, raises ValueError on garbage.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return date(value.year, value.month, 1)
    if isinstance(value, date):
        return date(value.year, value.month, 1)

    text = str(value).strip()
    if len(text) == 7:
        text = f"{text}-01"
    parsed = datetime.fromisoformat(text[:10])
    return date(parsed.year, parsed.month, 1)


def block_date_for(paid_at, days=WINDOW_DAYS):
    if paid_at is None:
        return None
    return paid_at + timedelta(days=days)


def start_of_day(moment):
    return datetime(moment.year, moment.month, moment.day)


def days_until_block(block_date, now=None):
    """
    Whole days between today (midnight) and the block date, rounded up and
    floored at 0. Returns 0 when there is no block date.
    """
    if block_date is None:
        return 0
    today = start_of_day(now or utcnow())
    remaining = (block_date - today) / timedelta(days=1)
    return max(0, math.ceil(remaining))
