"""Plausibility checks on a parsed MrzResult.

One violation is noise and is only logged; two or more mean the whole read
is unreliable and the result is rejected with POOR_IMAGE_QUALITY.
"""

import re
from datetime import date
from typing import List, Optional
from core.logging import log
from core.errors import ErrorCode, OcrError
from core.utils import mask_value
from postprocessing.models import MrzResult
from postprocessing.countries import is_valid_country_code

MIN_PASSPORT_NUMBER_LENGTH = 6
MAX_PASSPORT_NUMBER_LENGTH = 12

SUSPICIOUS_PATTERNS = [
    re.compile(r'^[A-Z]{3,}$'),  # letters only
    re.compile(r'^[0-9]{3,}$'),  # digits only
    re.compile(r'^[<]{3,}$'),  # filler only
    re.compile(r'^.{1,3}$'),  # too short
]

MIN_BIRTH_YEAR = 1900
MIN_AGE_YEARS = 10
EXPIRY_WINDOW_YEARS = 20

REJECT_THRESHOLD = 2


class ResultValidator:
    """Cross-checks extracted fields and decides accept/reject."""

    def __init__(self, today: Optional[date] = None):
        """
        Args:
            today: Reference date for year ranges (default: date.today() per call)
        """
        self.today = today

    def collect_violations(self, result: MrzResult, nationality_code: str = "") -> List[str]:
        """Run every check and return the list of violations."""
        violations = []
        number = result.passport_number
        current_year = (self.today or date.today()).year

        if not MIN_PASSPORT_NUMBER_LENGTH <= len(number) <= MAX_PASSPORT_NUMBER_LENGTH:
            violations.append(
                f"Passport number length {len(number)} is outside expected range "
                f"{MIN_PASSPORT_NUMBER_LENGTH}-{MAX_PASSPORT_NUMBER_LENGTH}"
            )

        if any(pattern.match(number) for pattern in SUSPICIOUS_PATTERNS):
            violations.append("Passport number appears malformed")

        if not re.search(r'[0-9]', number) or not re.search(r'[A-Z]', number):
            violations.append("Passport number should contain both letters and numbers")

        if nationality_code and not is_valid_country_code(nationality_code):
            violations.append(f"Invalid country code detected: {nationality_code!r}")

        if not result.birth_date or not result.expiry_date:
            violations.append("Missing required date information")

        if result.birth_date:
            birth_year = int(result.birth_date[:4])
            if birth_year < MIN_BIRTH_YEAR or birth_year > current_year - MIN_AGE_YEARS:
                violations.append(f"Birth year {birth_year} appears invalid")

        if result.expiry_date:
            expiry_year = int(result.expiry_date[:4])
            if not current_year - EXPIRY_WINDOW_YEARS <= expiry_year <= current_year + EXPIRY_WINDOW_YEARS:
                violations.append(f"Expiry year {expiry_year} appears invalid")

        return violations

    def validate(self, result: MrzResult, nationality_code: str = "") -> List[str]:
        """Validate a result.

        Args:
            result: Parsed result
            nationality_code: Original 3-letter code (before name conversion)

        Returns:
            List[str]: Tolerated violations (empty or a single entry)

        Raises:
            OcrError: POOR_IMAGE_QUALITY on two or more violations
        """
        violations = self.collect_violations(result, nationality_code)

        if len(violations) >= REJECT_THRESHOLD:
            log.warning(
                f"🚨 Poor image quality detected ({len(violations)} issues) "
                f"for passport {mask_value(result.passport_number)}"
            )
            raise OcrError(
                ErrorCode.POOR_IMAGE_QUALITY,
                f"Multiple data quality issues detected: {'; '.join(violations)}",
            )

        if violations:
            log.warning(f"⚠️  Data quality warning: {violations[0]}")

        return violations
