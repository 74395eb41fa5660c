"""TD3 grammar adapter around the ``mrz`` package.

Exposes ``parse_td3(line1, line2, autocorrect) -> GrammarResult(valid, fields, details)``.
``mrz.checker.td3.TD3CodeChecker`` gives the verdict, the fields and the
per-field check digit report; a failing read is explained in the logs with the
expected digit from ``mrz.base.functions.hash_string``.

TD3 line 2 layout:
    0-8   document number      9  check digit
    10-12 nationality
    13-18 birth date (YYMMDD)  19 check digit
    20    sex
    21-26 expiry date (YYMMDD) 27 check digit
    28-41 personal number      42 check digit
    43    composite check digit
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple
from mrz.base.functions import hash_string
from mrz.checker.td3 import TD3CodeChecker
from core.logging import log

# Check digit entries of the TD3 checker report
HASH_FIELDS: Dict[str, str] = {
    "document number hash": "document_number",
    "birth date hash": "birth_date",
    "expiry date hash": "expiry_date",
    "optional data hash": "personal_number",
    "final hash": "composite",
}

# Look-alike glyphs in positions that must hold digits
TO_DIGIT: Dict[str, str] = {
    'O': '0', 'Q': '0', 'D': '0', 'U': '0',
    'I': '1', 'L': '1',
    'Z': '2',
    'S': '5',
    'G': '6',
    'B': '8',
}
# ...and in positions that must hold letters
TO_LETTER: Dict[str, str] = {
    '0': 'O',
    '1': 'I',
    '2': 'Z',
    '5': 'S',
    '6': 'G',
    '8': 'B',
}

LINE2_NUMERIC_POSITIONS = (9, *range(13, 20), *range(21, 28), 42, 43)
LINE2_ALPHA_POSITIONS = tuple(range(10, 13))


@dataclass(frozen=True)
class FieldCheck:
    """Outcome of one check digit."""
    field: str
    valid: bool
    error: str = ""


@dataclass(frozen=True)
class GrammarFields:
    """Raw TD3 fields (MRZ alphabet, dates as YYMMDD, fillers stripped)."""
    document_number: str = ""
    nationality: str = ""
    country: str = ""
    birth_date: str = ""
    expiry_date: str = ""
    sex: str = ""
    surname: str = ""
    given_names: str = ""

    def is_empty(self) -> bool:
        return not any((self.document_number, self.nationality, self.birth_date, self.expiry_date))


@dataclass(frozen=True)
class GrammarResult:
    valid: bool
    fields: GrammarFields
    details: Tuple[FieldCheck, ...] = field(default_factory=tuple)
    lines: Tuple[str, str] = ("", "")


def _replace_at(chars: list, positions, table: Dict[str, str]) -> None:
    for pos in positions:
        if pos < len(chars):
            chars[pos] = table.get(chars[pos], chars[pos])


def autocorrect_td3(line1: str, line2: str) -> Tuple[str, str]:
    """Swap look-alike glyphs according to the field type of each position.

    Document numbers and the personal number are alphanumeric and left alone.
    """
    first = list(line1)
    _replace_at(first, range(2, len(first)), TO_LETTER)  # issuing state and names

    second = list(line2)
    _replace_at(second, LINE2_NUMERIC_POSITIONS, TO_DIGIT)
    _replace_at(second, LINE2_ALPHA_POSITIONS, TO_LETTER)

    corrected = "".join(first), "".join(second)
    if corrected != (line1, line2):
        log.debug("MRZ autocorrect replaced look-alike characters")
    return corrected


def _check_data(line2: str) -> Dict[str, Tuple[str, str]]:
    """Field name → (checked data, check digit) for TD3 line 2."""
    return {
        "document_number": (line2[0:9], line2[9]),
        "birth_date": (line2[13:19], line2[19]),
        "expiry_date": (line2[21:27], line2[27]),
        "personal_number": (line2[28:42], line2[42]),
        "composite": (line2[0:10] + line2[13:20] + line2[21:43], line2[43]),
    }


def _failure(data: str, digit: str) -> str:
    try:
        expected = hash_string(data)
    except ValueError:
        return f"unreadable data {data!r}"
    return f"expected check digit {expected}, found {digit!r}"


def report_details(report_fields, line2: str) -> Tuple[FieldCheck, ...]:
    """Turn the checker's ``(description, ok)`` report into per-field checks."""
    data = _check_data(line2)
    details = []
    for description, ok in report_fields:
        name = HASH_FIELDS.get(description)
        if name is None:
            continue
        details.append(FieldCheck(name, True) if ok else FieldCheck(name, False, _failure(*data[name])))
    return tuple(details)


def check_digits(line2: str) -> Tuple[FieldCheck, ...]:
    """Validate every check digit of TD3 line 2 when the checker cannot run."""
    details = []
    for name, (data, digit) in _check_data(line2).items():
        try:
            ok = hash_string(data) == digit or (name == "personal_number" and digit == "<"
                                                 and not data.strip("<"))
        except ValueError:
            ok = False
        details.append(FieldCheck(name, True) if ok else FieldCheck(name, False, _failure(data, digit)))
    return tuple(details)


def _strip_filler(value) -> str:
    return str(value or "").replace("<", "").strip()


def _yymmdd(value, fallback: str) -> str:
    value = str(value or "")
    return value if len(value) == 6 and value.isdigit() else fallback


def _names(line1: str) -> Tuple[str, str]:
    surname, _, given = line1[5:].partition("<<")
    return surname.replace("<", " ").strip(), given.replace("<", " ").strip()


def slice_fields(line1: str, line2: str) -> GrammarFields:
    """Read fields at their fixed TD3 positions."""
    surname, given_names = _names(line1)
    return GrammarFields(
        document_number=_strip_filler(line2[0:9]),
        nationality=_strip_filler(line2[10:13]),
        country=_strip_filler(line1[2:5]),
        birth_date=line2[13:19],
        expiry_date=line2[21:27],
        sex=line2[20] if line2[20] in "MF" else "",
        surname=surname,
        given_names=given_names,
    )


def parse_td3(line1: str, line2: str, autocorrect: bool = True) -> GrammarResult:
    """Parse two 44-character TD3 lines.

    Args:
        line1: First MRZ line
        line2: Second MRZ line
        autocorrect: Fix look-alike characters before checking

    Returns:
        GrammarResult: verdict, fields and per-check details
    """
    if autocorrect:
        line1, line2 = autocorrect_td3(line1, line2)

    fields = slice_fields(line1, line2)

    try:
        checker = TD3CodeChecker(f"{line1}\n{line2}")
        valid = bool(checker)
        details = report_details(checker.report.fields, line2)
        parsed = checker.fields()
        fields = GrammarFields(
            document_number=_strip_filler(getattr(parsed, 'document_number', '')) or fields.document_number,
            nationality=_strip_filler(getattr(parsed, 'nationality', '')) or fields.nationality,
            country=_strip_filler(getattr(parsed, 'country', '')) or fields.country,
            birth_date=_yymmdd(getattr(parsed, 'birth_date', ''), fields.birth_date),
            expiry_date=_yymmdd(getattr(parsed, 'expiry_date', ''), fields.expiry_date),
            sex=fields.sex,
            surname=fields.surname,
            given_names=fields.given_names,
        )
    except Exception as e:
        log.debug(f"TD3 checker rejected input: {e}")
        details = check_digits(line2)
        valid = all(check.valid for check in details)

    failed = [check.field for check in details if not check.valid]
    if failed:
        log.info(f"MRZ check digits failed: {', '.join(failed)}")
    log.debug(f"TD3 grammar verdict: valid={valid}")

    return GrammarResult(valid=valid, fields=fields, details=details, lines=(line1, line2))
