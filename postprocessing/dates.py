"""MRZ date helpers (``YYMMDD`` ↔ ISO ``YYYY-MM-DD``)."""

import re
from datetime import date
from typing import Literal

DateKind = Literal["birth", "expiry"]

MRZ_DATE_PATTERN = re.compile(r'^[0-9]{6}$')

# Birth years above this two-digit value belong to the 1900s
BIRTH_CENTURY_PIVOT = 29


def is_valid_mrz_date(value: str) -> bool:
    """Loose plausibility check: six digits, month 1-12, day 1-31."""
    if not value or not MRZ_DATE_PATTERN.match(value):
        return False
    month = int(value[2:4])
    day = int(value[4:6])
    return 1 <= month <= 12 and 1 <= day <= 31


def expand_year(two_digit_year: int, kind: DateKind) -> int:
    """Expand a two-digit MRZ year.

    Birth dates pivot on 29 (``30`` → 1930, ``29`` → 2029); expiry dates are
    always in the 2000s.
    """
    if kind == "birth" and two_digit_year > BIRTH_CENTURY_PIVOT:
        return 1900 + two_digit_year
    return 2000 + two_digit_year


def mrz_date_to_iso(value: str, kind: DateKind) -> str:
    """Convert ``YYMMDD`` to ``YYYY-MM-DD``.

    Returns:
        str: ISO date, or ``""`` when the value is not a real calendar day
    """
    if not value or not MRZ_DATE_PATTERN.match(value):
        return ""

    year = expand_year(int(value[0:2]), kind)
    try:
        return date(year, int(value[2:4]), int(value[4:6])).isoformat()
    except ValueError:
        return ""


def iso_to_mrz_date(value: str) -> str:
    """Convert ``YYYY-MM-DD`` back to ``YYMMDD``."""
    parsed = date.fromisoformat(value)
    return parsed.strftime("%y%m%d")
