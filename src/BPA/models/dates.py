"""
Calendar helpers shared by the analytics calculators and the intent classifier.

Benefit months are stored as lower-case Spanish month names and choice dates
as DD/MM/YYYY strings. Everything here is pure and never raises on bad input.
"""

import calendar
import re
import unicodedata
from datetime import date
from typing import Any, Optional

SPANISH_MONTHS = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

MONTH_ORDER = {name: index for index, name in enumerate(SPANISH_MONTHS, 1)}

# Common variants accepted when normalizing user or model supplied months
_MONTH_ALIASES = {
    "setiembre": "septiembre",
    "sept": "septiembre",
    "dic": "diciembre",
}

_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def strip_accents(text: str) -> str:
    """Lower-case text and drop diacritics ("Inversión" -> "inversion")."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def month_name(day: date) -> str:
    """Spanish month name for a date."""
    return SPANISH_MONTHS[day.month - 1]


def previous_month_name(day: date) -> str:
    """Spanish name of the month before the one containing ``day``."""
    return SPANISH_MONTHS[(day.month - 2) % 12]


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def normalize_month(value: Any) -> Optional[str]:
    """
    Normalize a month reference to its canonical Spanish name.

    Accepts names in any case, with or without accents, a few short aliases
    and month numbers 1-12 (as int or numeric string).

    Returns:
        Canonical month name, or None if the value is not a month
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = int(value)
        if number == value and 1 <= number <= 12:
            return SPANISH_MONTHS[number - 1]
        return None

    text = strip_accents(str(value)).strip()
    if text.isdigit():
        return normalize_month(int(text))
    if text in MONTH_ORDER:
        return text
    return _MONTH_ALIASES.get(text)


def month_sort_key(month: str) -> int:
    """Canonical order; unknown labels sort after diciembre."""
    return MONTH_ORDER.get(strip_accents(month).strip(), 999)


def parse_date(value: Any) -> Optional[date]:
    """
    Parse a strict DD/MM/YYYY date.

    Args:
        value: Raw field value

    Returns:
        datetime.date, or None for anything that is not a valid DD/MM/YYYY date

    Example:
        >>> parse_date("05/12/2024")
        datetime.date(2024, 12, 5)
        >>> parse_date("2024-12-05") is None
        True
    """
    if not isinstance(value, str):
        return None

    match = _DATE_RE.match(value.strip())
    if not match:
        return None

    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_date(day: date) -> str:
    """Render a date as DD/MM/YYYY."""
    return day.strftime("%d/%m/%Y")
