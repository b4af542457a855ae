"""
Next-occurrence lookup for recurring Hebrew-calendar events.

An event recurs on its Hebrew month/day. Which day is *observed* in a given
year depends on the kind of event: yahrzeits follow the customary rules for
deaths on a 30th or in Adar, everything else only needs Adar II and missing
30ths mapped onto days that exist.
"""
from dataclasses import dataclass
from datetime import date

from backend.hebrew_dates import (
    ADAR,
    ADAR_I,
    ADAR_II,
    CHESHVAN,
    KISLEV,
    SHEVAT,
    HebrewDate,
    apply_sunset_boundary,
    format_hebrew_date,
    hebrew_year_of,
    is_leap_year,
    month_length,
    next_month,
    to_gregorian,
    to_hebrew,
)

BIRTHDAY = 'birthday'
YAHRZEIT = 'yahrzeit'
ANNIVERSARY = 'anniversary'
BAR_BAT_MITZVAH = 'bar_bat_mitzvah'
ALIYAH = 'aliyah'
OTHER = 'other'

CUSTOM_EVENT_TYPES = (ANNIVERSARY, BAR_BAT_MITZVAH, ALIYAH, YAHRZEIT, OTHER)
EVENT_TYPES = (BIRTHDAY,) + CUSTOM_EVENT_TYPES
YAHRZEIT_KINDS = {YAHRZEIT}

EVENT_TYPE_LABELS = {
    BIRTHDAY: 'Birthday',
    YAHRZEIT: 'Yahrzeit',
    ANNIVERSARY: 'Anniversary',
    BAR_BAT_MITZVAH: 'Bar/Bat Mitzvah',
    ALIYAH: 'Aliyah',
    OTHER: 'Event',
}


@dataclass(frozen=True)
class Occurrence:
    gregorian_date: date
    hebrew_date: HebrewDate
    years: int

    @property
    def hebrew_date_display(self):
        return format_hebrew_date(self.hebrew_date)

    def to_dict(self):
        return {
            'gregorian_date': self.gregorian_date.isoformat(),
            'hebrew_date': self.hebrew_date_display,
            'years': self.years,
        }


def _yahrzeit_override(original: HebrewDate, candidate_year: int):
    """Observed day for the yahrzeit special cases, or None when the general rule applies."""
    if original.day == 30 and original.month in (CHESHVAN, KISLEV):
        # Fixed by the first anniversary: if it lacked the 30th, the 29th is kept for good.
        if month_length(original.year + 1, original.month) < 30:
            return HebrewDate(candidate_year, original.month, 29)
        return None
    if original.day == 30 and original.month == ADAR_I and is_leap_year(original.year):
        if not is_leap_year(candidate_year):
            return HebrewDate(candidate_year, SHEVAT, 30)
    return None


def observed_date(original: HebrewDate, candidate_year: int, yahrzeit: bool = False) -> HebrewDate:
    """Hebrew date on which `original` is observed during `candidate_year`."""
    if candidate_year == original.year:
        return original
    if yahrzeit:
        override = _yahrzeit_override(original, candidate_year)
        if override is not None:
            return override

    month = original.month
    if month == ADAR_II and not is_leap_year(candidate_year):
        month = ADAR
    if original.day > month_length(candidate_year, month):
        year, month = next_month(candidate_year, month)
        return HebrewDate(year, month, 1)
    return HebrewDate(candidate_year, month, original.day)


def original_hebrew_date(original_date: date, after_sunset: bool) -> HebrewDate:
    return apply_sunset_boundary(to_hebrew(original_date), after_sunset)


def next_occurrence(original_date, after_sunset, event_kind, reference_date, window_end):
    """
    Earliest observance of an event within [reference_date, window_end].

    Only this Hebrew year and the next are considered. A candidate in the
    original event's own Hebrew year is the event itself and comes back with
    years=0; earlier years are skipped. Returns None when nothing falls inside
    the window, including when the window is empty.
    """
    if window_end < reference_date:
        return None

    original = original_hebrew_date(original_date, after_sunset)
    reference_year = hebrew_year_of(reference_date)
    is_yahrzeit = event_kind in YAHRZEIT_KINDS

    for year_offset in (0, 1):
        candidate_year = reference_year + year_offset
        years = candidate_year - original.year
        if years < 0:
            continue
        candidate = observed_date(original, candidate_year, yahrzeit=is_yahrzeit)
        gregorian = to_gregorian(candidate)
        if reference_date <= gregorian <= window_end:
            return Occurrence(gregorian_date=gregorian, hebrew_date=candidate, years=years)
    return None
