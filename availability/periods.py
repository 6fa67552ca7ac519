"""
Calendar-month helpers for availability windows.

All instants are UTC. A month window is ``[start, end]`` where ``end`` is
the last representable instant of the month; ``end_exclusive`` is the
first instant of the following month.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from utils.errors import InvalidPeriod

MINUTES_PER_DAY = 24 * 60
ONE_TICK = timedelta(microseconds=1)


@dataclass(frozen=True)
class MonthWindow:
    start: datetime
    end: datetime
    end_exclusive: datetime

    @property
    def label(self) -> str:
        return self.start.strftime("%Y-%m")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def total_minutes(self) -> int:
        return self.days * MINUTES_PER_DAY


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_month(value: date | datetime | str | None = None) -> date:
    """Return the first day of the month ``value`` falls in.

    Accepts ``None`` (current UTC month), a ``date``/``datetime``, or a
    ``YYYY-MM`` / ``YYYY-MM-DD`` string.
    """
    if value is None:
        now = datetime.now(tz=timezone.utc)
        return date(now.year, now.month, 1)
    if isinstance(value, datetime):
        try:
            value = ensure_utc(value)
        except OverflowError:
            raise InvalidPeriod(f"month out of range: {value!r}") from None
        return date(value.year, value.month, 1)
    if isinstance(value, date):
        return date(value.year, value.month, 1)
    if isinstance(value, str):
        text = value.strip()
        for fmt in ("%Y-%m", "%Y-%m-%d"):
            try:
                parsed = datetime.strptime(text, fmt)
            except ValueError:
                continue
            return date(parsed.year, parsed.month, 1)
        raise InvalidPeriod(f"malformed month: {value!r} (expected YYYY-MM)")
    raise InvalidPeriod(f"unsupported month value: {value!r}")


def next_month(month: date) -> date:
    if month.month < 12:
        return date(month.year, month.month + 1, 1)
    try:
        return date(month.year + 1, 1, 1)
    except ValueError:
        raise InvalidPeriod(f"no month after {month.year:04d}-12") from None


def previous_month(month: date) -> date:
    month = parse_month(month)
    if month.month > 1:
        return date(month.year, month.month - 1, 1)
    try:
        return date(month.year - 1, 12, 1)
    except ValueError:
        raise InvalidPeriod(f"no month before {month.year:04d}-01") from None


def month_window(target: date | datetime | str | None = None) -> MonthWindow:
    month = parse_month(target)
    start = datetime(month.year, month.month, 1, tzinfo=timezone.utc)
    following = next_month(month)
    end_exclusive = datetime(following.year, following.month, 1, tzinfo=timezone.utc)
    return MonthWindow(start=start, end=end_exclusive - ONE_TICK, end_exclusive=end_exclusive)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end``, truncated; never negative."""
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)
