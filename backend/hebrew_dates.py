"""
Hebrew <-> Gregorian date conversion.

Months use the traditional numbering: Nisan = 1 ... Elul = 6, Tishrei = 7 ...
Adar = 12 (Adar I in a leap year), Adar II = 13. The year number changes on
1 Tishrei, so a Hebrew year runs 7, 8, ..., 12, (13), 1, ..., 6.

Calendar arithmetic comes from `convertdate.hebrew`; this module adds the
value type, range checks, the sunset boundary and display formatting.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from convertdate import hebrew as _hebrew

from backend.errors import OutOfRange

NISAN = 1
IYYAR = 2
SIVAN = 3
TAMMUZ = 4
AV = 5
ELUL = 6
TISHREI = 7
CHESHVAN = 8
KISLEV = 9
TEVET = 10
SHEVAT = 11
ADAR = 12
ADAR_I = 12
ADAR_II = 13

# Hebrew years containing date.min and date.max.
MIN_YEAR = 3761
MAX_YEAR = 13760

MONTH_NAMES = {
    NISAN: 'Nisan', IYYAR: 'Iyyar', SIVAN: 'Sivan', TAMMUZ: 'Tammuz', AV: 'Av', ELUL: 'Elul',
    TISHREI: 'Tishrei', CHESHVAN: 'Cheshvan', KISLEV: 'Kislev', TEVET: 'Tevet', SHEVAT: 'Shevat',
    ADAR: 'Adar', ADAR_II: 'Adar II',
}

MONTH_NAMES_HE = {
    NISAN: 'ניסן', IYYAR: 'אייר', SIVAN: 'סיון', TAMMUZ: 'תמוז', AV: 'אב', ELUL: 'אלול',
    TISHREI: 'תשרי', CHESHVAN: 'חשון', KISLEV: 'כסלו', TEVET: 'טבת', SHEVAT: 'שבט',
    ADAR: 'אדר', ADAR_II: 'אדר ב׳',
}

YEAR_TYPES = {3: 'deficient', 4: 'regular', 5: 'complete'}

GERESH = '׳'
GERSHAYIM = '״'
_UNITS = ['', 'א', 'ב', 'ג', 'ד', 'ה', 'ו', 'ז', 'ח', 'ט']
_TENS = ['', 'י', 'כ', 'ל', 'מ', 'נ', 'ס', 'ע', 'פ', 'צ']
_HUNDREDS = ['', 'ק', 'ר', 'ש', 'ת']


def is_leap_year(year: int) -> bool:
    """7 of every 19 years carry Adar II."""
    return (7 * year + 1) % 19 < 7


def months_in_year(year: int) -> int:
    return 13 if is_leap_year(year) else 12


def year_length(year: int) -> int:
    return int(_hebrew.year_days(year))


def year_type(year: int) -> str:
    """'deficient', 'regular' or 'complete' (Cheshvan/Kislev 29/29, 29/30, 30/30)."""
    return YEAR_TYPES[year_length(year) % 10]


def month_length(year: int, month: int) -> int:
    if month < 1 or month > months_in_year(year):
        raise ValueError(f"Month {month} does not exist in Hebrew year {year}")
    return int(_hebrew.month_length(year, month))


def months_of_year(year: int):
    """Month numbers of `year` in calendar order, starting at Tishrei."""
    return list(range(TISHREI, months_in_year(year) + 1)) + list(range(NISAN, TISHREI))


def next_month(year: int, month: int):
    """(year, month) of the month following `month`."""
    if month == ELUL:
        return year + 1, TISHREI
    if month == ADAR:
        return (year, ADAR_II) if is_leap_year(year) else (year, NISAN)
    if month == ADAR_II:
        return year, NISAN
    return year, month + 1


def month_name(year: int, month: int, style: str = 'en') -> str:
    names = MONTH_NAMES_HE if style == 'he' else MONTH_NAMES
    if month == ADAR and is_leap_year(year):
        return 'אדר א׳' if style == 'he' else 'Adar I'
    return names[month]


@dataclass(frozen=True)
class HebrewDate:
    year: int
    month: int
    day: int

    def __post_init__(self):
        if not MIN_YEAR <= self.year <= MAX_YEAR:
            raise OutOfRange(f"Hebrew year {self.year} is outside {MIN_YEAR}-{MAX_YEAR}")
        length = month_length(self.year, self.month)
        if not 1 <= self.day <= length:
            raise ValueError(
                f"Day {self.day} is invalid for {month_name(self.year, self.month)} {self.year}"
            )

    @property
    def sort_key(self):
        position = self.month - TISHREI if self.month >= TISHREI else self.month + 6
        return (self.year, position, self.day)

    def __lt__(self, other):
        return self.sort_key < other.sort_key

    def __le__(self, other):
        return self.sort_key <= other.sort_key

    def __gt__(self, other):
        return self.sort_key > other.sort_key

    def __ge__(self, other):
        return self.sort_key >= other.sort_key

    def is_last_day_of_month(self) -> bool:
        return self.day == month_length(self.year, self.month)

    def to_dict(self):
        return {'year': self.year, 'month': self.month, 'day': self.day}

    def __str__(self):
        return format_hebrew_date(self)


def to_hebrew(value) -> HebrewDate:
    """Convert a Gregorian `date` to its Hebrew date (daytime of that civil day)."""
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise TypeError(f"Expected a date, got {type(value).__name__}")
    year, month, day = _hebrew.from_gregorian(value.year, value.month, value.day)
    return HebrewDate(int(year), int(month), int(day))


def to_gregorian(hd: HebrewDate) -> date:
    try:
        year, month, day = _hebrew.to_gregorian(hd.year, hd.month, hd.day)
        return date(int(year), int(month), int(day))
    except (ValueError, OverflowError) as exc:
        raise OutOfRange(f"{format_hebrew_date(hd)} has no representable Gregorian date") from exc


def hebrew_year_of(value) -> int:
    return to_hebrew(value).year


def add_days(hd: HebrewDate, days: int) -> HebrewDate:
    try:
        return to_hebrew(to_gregorian(hd) + timedelta(days=days))
    except OverflowError as exc:
        raise OutOfRange(f"{format_hebrew_date(hd)} + {days} days is out of range") from exc


def following_day(hd: HebrewDate) -> HebrewDate:
    """Next Hebrew day, rolling over month and year boundaries."""
    if not hd.is_last_day_of_month():
        return HebrewDate(hd.year, hd.month, hd.day + 1)
    year, month = next_month(hd.year, hd.month)
    return HebrewDate(year, month, 1)


def apply_sunset_boundary(hd: HebrewDate, after_sunset: bool) -> HebrewDate:
    """An event recorded after sunset belongs to the following Hebrew day."""
    if not after_sunset:
        return hd
    return following_day(hd)


def hebrew_numeral(number: int) -> str:
    """Render 1-999 in Hebrew letters with geresh/gershayim, e.g. 784 -> תשפ״ד."""
    if number <= 0 or number >= 1000:
        raise ValueError(f"Cannot render {number} as a Hebrew numeral")
    letters = []
    remainder = number
    while remainder >= 400:
        letters.append(_HUNDREDS[4])
        remainder -= 400
    if remainder >= 100:
        letters.append(_HUNDREDS[remainder // 100])
        remainder %= 100
    # 15 and 16 avoid spelling the divine name
    if remainder in (15, 16):
        letters.extend(['ט', _UNITS[remainder - 9]])
    else:
        if remainder >= 10:
            letters.append(_TENS[remainder // 10])
        if remainder % 10:
            letters.append(_UNITS[remainder % 10])
    text = ''.join(letters)
    if len(text) == 1:
        return text + GERESH
    return text[:-1] + GERSHAYIM + text[-1]


def format_hebrew_date(hd: HebrewDate, style: str = 'en') -> str:
    """'10 Av 5784' or, with style='he', 'י׳ אב תשפ״ד'."""
    if style == 'he':
        year_part = hd.year % 1000
        year_text = hebrew_numeral(year_part) if year_part else str(hd.year)
        return f"{hebrew_numeral(hd.day)} {month_name(hd.year, hd.month, 'he')} {year_text}"
    return f"{hd.day} {month_name(hd.year, hd.month)} {hd.year}"
