"""Named period tokens ("this week", "next Hebrew month", ...) resolved to date ranges."""
from dataclasses import dataclass
from datetime import date, timedelta

from backend.errors import InvalidPeriod, OutOfRange
from backend.hebrew_dates import (
    HebrewDate,
    format_hebrew_date,
    month_length,
    next_month,
    to_gregorian,
    to_hebrew,
)

THIS_WEEK = 'this_week'
NEXT_WEEK = 'next_week'
THIS_MONTH = 'this_month'
NEXT_MONTH = 'next_month'
THIS_HEBREW_MONTH = 'this_hebrew_month'
NEXT_HEBREW_MONTH = 'next_hebrew_month'
CUSTOM = 'custom'

PERIOD_TOKENS = (
    THIS_WEEK, NEXT_WEEK, THIS_MONTH, NEXT_MONTH, THIS_HEBREW_MONTH, NEXT_HEBREW_MONTH, CUSTOM,
)


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date
    hebrew_start: str = None
    hebrew_end: str = None

    def contains(self, day):
        return self.start <= day <= self.end

    def to_dict(self):
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'hebrew_start': self.hebrew_start,
            'hebrew_end': self.hebrew_end,
        }


def _with_hebrew(start, end):
    return DateRange(
        start=start,
        end=end,
        hebrew_start=format_hebrew_date(to_hebrew(start)),
        hebrew_end=format_hebrew_date(to_hebrew(end)),
    )


def week_bounds(today):
    """Sunday through Saturday containing `today`."""
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def month_bounds(year, month):
    start = date(year, month, 1)
    following = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start, following - timedelta(days=1)


def hebrew_month_bounds(year, month):
    start = to_gregorian(HebrewDate(year, month, 1))
    end = to_gregorian(HebrewDate(year, month, month_length(year, month)))
    return start, end


def resolve_period(token, today, start=None, end=None):
    """
    Map a period token to an inclusive Gregorian DateRange.

    Raises InvalidPeriod for unknown tokens or bad custom bounds, and
    OutOfRange when the period would end past the last representable date.
    """
    token = (token or '').strip().lower()
    try:
        return _resolve_period(token, today, start, end)
    except (InvalidPeriod, OutOfRange):
        raise
    except (ValueError, OverflowError) as exc:
        raise OutOfRange(f"Period '{token}' from {today.isoformat()} is outside the supported range") from exc


def _resolve_period(token, today, start, end):
    if token == THIS_WEEK:
        return _with_hebrew(*week_bounds(today))
    if token == NEXT_WEEK:
        return _with_hebrew(*week_bounds(today + timedelta(days=7)))
    if token == THIS_MONTH:
        return _with_hebrew(*month_bounds(today.year, today.month))
    if token == NEXT_MONTH:
        if today.month == 12:
            return _with_hebrew(*month_bounds(today.year + 1, 1))
        return _with_hebrew(*month_bounds(today.year, today.month + 1))
    if token == THIS_HEBREW_MONTH:
        current = to_hebrew(today)
        return _with_hebrew(*hebrew_month_bounds(current.year, current.month))
    if token == NEXT_HEBREW_MONTH:
        current = to_hebrew(today)
        return _with_hebrew(*hebrew_month_bounds(*next_month(current.year, current.month)))
    if token == CUSTOM:
        if start is None or end is None:
            raise InvalidPeriod("Custom period requires both start and end")
        if start > end:
            raise InvalidPeriod("Custom period start must be on/before end")
        return _with_hebrew(start, end)

    raise InvalidPeriod(f"Unknown period '{token}'")
