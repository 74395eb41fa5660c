"""MRZ parser - grammar tier plus heuristic tier, merged into an MrzResult.

Pipeline:
1. Normalize raw OCR text to two 44-char lines (NO_MRZ_DETECTED if none)
2. Grammar parse with autocorrect (``mrz`` TD3 checker)
3. Heuristic extraction on the cleaned text
4. Merge, convert dates to ISO and nationality code to a country name
"""

from dataclasses import dataclass
from core.logging import log
from core.errors import ErrorCode, OcrError
from core.utils import mask_value
from postprocessing.models import MrzResult
from postprocessing.mrz_text import normalize_mrz_lines
from postprocessing.grammar import GrammarResult, parse_td3
from postprocessing.heuristics import HeuristicFields, extract_heuristic_fields
from postprocessing.merge import MergedFields, merge_fields
from postprocessing.countries import country_name


@dataclass(frozen=True)
class ParsedMrz:
    """Pre-validation parse output."""
    result: MrzResult
    nationality_code: str
    grammar: GrammarResult
    heuristics: HeuristicFields
    merged: MergedFields
    degraded: bool = False


class MrzParser:
    """Turns recognized text into passport fields."""

    def __init__(self, autocorrect: bool = True):
        self.autocorrect = autocorrect

    def parse(self, raw_text: str) -> ParsedMrz:
        """Parse recognized MRZ text.

        Args:
            raw_text: Text returned by the recognizer

        Returns:
            ParsedMrz: result plus the intermediate tiers

        Raises:
            OcrError: NO_MRZ_DETECTED when nothing can be reconstructed,
                      INVALID_CHECKSUM when the grammar parser rejects the
                      check digits and no field is recoverable
        """
        lines = normalize_mrz_lines(raw_text)
        grammar = parse_td3(lines.line1, lines.line2, autocorrect=self.autocorrect)
        heuristics = extract_heuristic_fields(raw_text)
        merged = merge_fields(grammar.fields, heuristics)

        if merged.is_empty():
            if lines.degraded:
                raise OcrError(ErrorCode.NO_MRZ_DETECTED, "Degraded MRZ read recovered no fields")
            if not grammar.valid:
                raise OcrError(ErrorCode.INVALID_CHECKSUM, "MRZ validation failed")
            raise OcrError(ErrorCode.NO_MRZ_DETECTED, "MRZ lines contained no usable fields")

        result = MrzResult(
            passport_number=merged.passport_number,
            nationality=country_name(merged.nationality_code),
            birth_date=merged.birth_date,
            expiry_date=merged.expiry_date,
        )

        log.info(
            f"MRZ parsed: grammar_valid={grammar.valid}, degraded={lines.degraded}, "
            f"date_source={merged.date_source or 'none'}"
        )
        log.debug(
            f"MRZ fields: number={mask_value(result.passport_number)}, "
            f"nationality={merged.nationality_code or '-'}"
        )

        return ParsedMrz(
            result=result,
            nationality_code=merged.nationality_code,
            grammar=grammar,
            heuristics=heuristics,
            merged=merged,
            degraded=lines.degraded,
        )
