"""Clean raw OCR output and rebuild the two 44-character TD3 MRZ lines.

Rules:
- Only ``A-Z``, ``0-9``, ``<`` and line breaks survive cleaning
- Lines shorter than 20 characters are noise
- One line of 88+ characters is two MRZ lines the engine glued together
- A single usable line becomes line two under a placeholder line one (degraded)
"""

import re
from dataclasses import dataclass
from typing import List
from core.logging import log
from core.errors import ErrorCode, OcrError

MRZ_LINE_LENGTH = 44
MIN_LINE_LENGTH = 20
FILLER = "<"

PLACEHOLDER_LINE1 = "P<XXXUNKNOWN<<UNKNOWN".ljust(MRZ_LINE_LENGTH, FILLER)

DISALLOWED_CHARS = re.compile(r'[^A-Z0-9<\s]')
WHITESPACE = re.compile(r'\s')
# filler run followed by trailing check digits
TRAILING_FILLER = re.compile(r'(<{2,})(\d*)$')


@dataclass(frozen=True)
class MrzLines:
    """Two normalized MRZ lines."""
    line1: str
    line2: str
    degraded: bool = False  # line1 is the placeholder


def clean_text(raw_text: str) -> str:
    """Uppercase and drop every character outside the MRZ alphabet (line breaks kept)."""
    text = (raw_text or "").upper().replace("\r", "\n")
    return DISALLOWED_CHARS.sub("", text).strip()


def candidate_lines(cleaned: str) -> List[str]:
    """Split cleaned text into whitespace-free lines of at least 20 characters."""
    lines = (WHITESPACE.sub("", line) for line in cleaned.split("\n"))
    return [line for line in lines if len(line) >= MIN_LINE_LENGTH]


def fit_line(line: str) -> str:
    """Pad or truncate a line to exactly 44 characters.

    A 45-character line ending in a filler run (optionally followed by check
    digits) drops one filler from that run so the digits keep their position.
    """
    if len(line) == MRZ_LINE_LENGTH:
        return line
    if len(line) < MRZ_LINE_LENGTH:
        return line.ljust(MRZ_LINE_LENGTH, FILLER)

    if len(line) == MRZ_LINE_LENGTH + 1:
        match = TRAILING_FILLER.search(line)
        if match:
            filler, digits = match.groups()
            return line[:match.start()] + filler[1:] + digits

    return line[:MRZ_LINE_LENGTH]


def normalize_mrz_lines(raw_text: str) -> MrzLines:
    """Rebuild the two MRZ lines from raw OCR text.

    Raises:
        OcrError: NO_MRZ_DETECTED when no line is long enough
    """
    lines = candidate_lines(clean_text(raw_text))
    if not lines:
        raise OcrError(ErrorCode.NO_MRZ_DETECTED, "No valid MRZ lines found")

    degraded = False
    if len(lines) == 1 and len(lines[0]) >= 2 * MRZ_LINE_LENGTH:
        selected = [lines[0][:MRZ_LINE_LENGTH], lines[0][MRZ_LINE_LENGTH:2 * MRZ_LINE_LENGTH]]
        log.debug("Split a single long OCR line into two MRZ lines")
    elif len(lines) >= 2:
        selected = lines[:2]
    else:
        selected = [PLACEHOLDER_LINE1, lines[0]]
        degraded = True
        log.warning("Only one MRZ line recognized, parsing in degraded mode")

    line1, line2 = (fit_line(line) for line in selected)
    return MrzLines(line1=line1, line2=line2, degraded=degraded)
