"""Heuristic field extraction straight from cleaned OCR text.

Runs independently of the grammar parser and fills the gaps it leaves when
lines are misaligned, truncated or garbled.

Date sources, most to least trustworthy:
    mrz_offsets      fixed positions 13-19 / 21-27 of line two
    gender_anchor    regex anchored on the sex marker between the dates
    first_date_runs  the first two plausible 6-digit runs anywhere (may swap dates)
"""

import re
from dataclasses import dataclass
from typing import List, Tuple
from core.logging import log
from postprocessing.dates import is_valid_mrz_date
from postprocessing.mrz_text import clean_text, candidate_lines
from postprocessing.countries import PLACEHOLDER_CODE

PASSPORT_NUMBER_PATTERN = re.compile(r'([A-Z]{1,3}[0-9]{6,9})')
PASSPORT_NUMBER_BEFORE_CODE = re.compile(r'([A-Z0-9]{6,9})[A-Z]{3}')
NATIONALITY_PATTERN = re.compile(r'P[A-Z<]([A-Z]{3})')
GENDER_ANCHORED_DATES = re.compile(r'([0-9]{6})[0-9][MF<]([0-9]{6})[0-9]')
SIX_DIGITS = re.compile(r'[0-9]{6}')

HAS_LETTER = re.compile(r'[A-Z]')
HAS_DIGIT = re.compile(r'[0-9]')

MIN_PASSPORT_NUMBER_LENGTH = 6


@dataclass(frozen=True)
class HeuristicFields:
    passport_number: str = ""
    nationality: str = ""  # 3-letter code
    birth_date: str = ""  # YYMMDD
    expiry_date: str = ""  # YYMMDD
    date_source: str = ""


def _is_alphanumeric_mix(value: str) -> bool:
    return bool(HAS_LETTER.search(value) and HAS_DIGIT.search(value))


def passport_number_from_line(lines: List[str]) -> str:
    """Read the document number field at its fixed position on line two."""
    if len(lines) < 2 or len(lines[1]) < 10:
        return ""

    line = lines[1]
    field = line[1:10] if line[0] == "<" else line[0:9]
    number = field.rstrip("<")

    if len(number) >= MIN_PASSPORT_NUMBER_LENGTH and _is_alphanumeric_mix(number):
        return number
    return ""


def passport_number_from_patterns(text: str) -> str:
    """Search for letter-prefixed digit runs, then for a run followed by a country code."""
    for match in PASSPORT_NUMBER_PATTERN.findall(text):
        if MIN_PASSPORT_NUMBER_LENGTH <= len(match) <= 9 and _is_alphanumeric_mix(match):
            return match

    match = PASSPORT_NUMBER_BEFORE_CODE.search(text)
    if match and _is_alphanumeric_mix(match.group(1)):
        return match.group(1).strip()
    return ""


def extract_nationality(text: str) -> str:
    match = NATIONALITY_PATTERN.search(text)
    if match and match.group(1) != PLACEHOLDER_CODE:
        return match.group(1)
    return ""


def _dates_from_offsets(lines: List[str]) -> Tuple[str, str]:
    if len(lines) < 2 or len(lines[1]) < 27:
        return "", ""
    birth, expiry = lines[1][13:19], lines[1][21:27]
    return (
        birth if is_valid_mrz_date(birth) else "",
        expiry if is_valid_mrz_date(expiry) else "",
    )


def _dates_from_gender_anchor(text: str) -> Tuple[str, str]:
    match = GENDER_ANCHORED_DATES.search(text)
    if not match:
        return "", ""
    birth, expiry = match.group(1), match.group(2)
    return (
        birth if is_valid_mrz_date(birth) else "",
        expiry if is_valid_mrz_date(expiry) else "",
    )


def _dates_from_runs(text: str) -> Tuple[str, str]:
    runs = [run for run in SIX_DIGITS.findall(text) if is_valid_mrz_date(run)]
    if len(runs) < 2:
        return "", ""
    return runs[0], runs[1]


def extract_dates(text: str, lines: List[str]) -> Tuple[str, str, str]:
    """Find birth and expiry dates, falling through the three sources.

    Returns:
        tuple: (birth YYMMDD, expiry YYMMDD, source of the last date filled)
    """
    birth, expiry = _dates_from_offsets(lines)
    source = "mrz_offsets" if (birth or expiry) else ""

    for name, finder in (("gender_anchor", _dates_from_gender_anchor),
                         ("first_date_runs", _dates_from_runs)):
        if birth and expiry:
            break
        found_birth, found_expiry = finder(text)
        if (not birth and found_birth) or (not expiry and found_expiry):
            source = name
        birth = birth or found_birth
        expiry = expiry or found_expiry

    if source == "first_date_runs":
        log.warning("MRZ dates taken from the first 6-digit runs in the text; birth and expiry may be swapped")

    return birth, expiry, source


def extract_heuristic_fields(raw_text: str) -> HeuristicFields:
    """Pattern-based extraction on the cleaned OCR text."""
    text = clean_text(raw_text)
    lines = candidate_lines(text)

    passport_number = passport_number_from_line(lines) or passport_number_from_patterns(text)
    birth, expiry, source = extract_dates(text, lines)

    return HeuristicFields(
        passport_number=passport_number,
        nationality=extract_nationality(text),
        birth_date=birth,
        expiry_date=expiry,
        date_source=source,
    )
