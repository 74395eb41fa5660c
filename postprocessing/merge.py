"""Merge grammar-parser fields with heuristic fields.

Grammar fields win when present and well-formed; heuristic fields fill the
gaps. The one override is ``resolve_passport_number``: the grammar parser
sometimes over-truncates document numbers.
"""

import re
from dataclasses import dataclass
from postprocessing.dates import DateKind, is_valid_mrz_date, mrz_date_to_iso
from postprocessing.grammar import GrammarFields
from postprocessing.heuristics import HeuristicFields
from postprocessing.countries import PLACEHOLDER_CODE

DOCUMENT_NUMBER_PATTERN = re.compile(r'^[A-Z0-9]+$')
NATIONALITY_CODE_PATTERN = re.compile(r'^[A-Z]{1,3}$')

# Grammar numbers shorter than this may be truncated
FULL_DOCUMENT_NUMBER_LENGTH = 9


@dataclass(frozen=True)
class MergedFields:
    passport_number: str = ""
    nationality_code: str = ""
    birth_date: str = ""  # ISO
    expiry_date: str = ""  # ISO
    date_source: str = ""

    def is_empty(self) -> bool:
        return not any((self.passport_number, self.nationality_code, self.birth_date, self.expiry_date))


def resolve_passport_number(grammar_number: str, heuristic_number: str) -> str:
    """Pick the passport number.

    The grammar number wins unless it is shorter than 9 characters and the
    heuristic number is longer, in which case the heuristic one is used.
    """
    grammar_number = (grammar_number or "").strip()
    heuristic_number = (heuristic_number or "").strip()

    passport_number = grammar_number or heuristic_number
    if (len(passport_number) < FULL_DOCUMENT_NUMBER_LENGTH
            and len(heuristic_number) > len(passport_number)):
        return heuristic_number
    return passport_number


def resolve_date(grammar_date: str, heuristic_date: str, kind: DateKind) -> str:
    """ISO date from the grammar field, else from the heuristic field, else ``""``."""
    if is_valid_mrz_date(grammar_date):
        iso = mrz_date_to_iso(grammar_date, kind)
        if iso:
            return iso
    return mrz_date_to_iso(heuristic_date, kind) if heuristic_date else ""


def _well_formed_number(value: str) -> str:
    return value if value and DOCUMENT_NUMBER_PATTERN.match(value) else ""


def _well_formed_code(value: str) -> str:
    if value and NATIONALITY_CODE_PATTERN.match(value) and value != PLACEHOLDER_CODE:
        return value
    return ""


def merge_fields(grammar: GrammarFields, heuristics: HeuristicFields) -> MergedFields:
    """Combine both tiers into one set of fields (dates converted to ISO)."""
    birth = resolve_date(grammar.birth_date, heuristics.birth_date, "birth")
    expiry = resolve_date(grammar.expiry_date, heuristics.expiry_date, "expiry")

    grammar_dates = (bool(mrz_date_to_iso(grammar.birth_date, "birth"))
                     and bool(mrz_date_to_iso(grammar.expiry_date, "expiry")))

    return MergedFields(
        passport_number=resolve_passport_number(
            _well_formed_number(grammar.document_number), heuristics.passport_number
        ),
        nationality_code=_well_formed_code(grammar.nationality) or heuristics.nationality,
        birth_date=birth,
        expiry_date=expiry,
        date_source="grammar" if grammar_dates else heuristics.date_source,
    )
