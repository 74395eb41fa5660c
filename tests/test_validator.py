"""Tests for result plausibility validation."""

import pytest

from core.errors import ErrorCode, OcrError
from postprocessing.models import MrzResult
from postprocessing.validator import ResultValidator
from conftest import TODAY


@pytest.fixture
def validator():
    return ResultValidator(today=TODAY)


def _result(**overrides) -> MrzResult:
    fields = dict(passport_number="L898902C3", nationality="Utopia",
                  birth_date="1974-08-12", expiry_date="2030-04-15")
    fields.update(overrides)
    return MrzResult(**fields)


class TestResultValidator:
    """One violation is tolerated, two reject the read."""

    def test_clean_result(self, validator):
        assert validator.validate(_result(), "UTO") == []

    def test_single_violation_accepted(self, validator):
        """A missing expiry date alone is only a warning."""
        violations = validator.validate(_result(expiry_date=""), "UTO")
        assert len(violations) == 1
        assert "date" in violations[0]

    def test_digits_only_number_rejected(self, validator):
        """Digits only is both malformed and missing letters."""
        with pytest.raises(OcrError) as exc_info:
            validator.validate(_result(passport_number="123456789"), "UTO")
        assert exc_info.value.code == ErrorCode.POOR_IMAGE_QUALITY

    def test_bad_country_and_birth_year_rejected(self, validator):
        with pytest.raises(OcrError) as exc_info:
            validator.validate(_result(birth_date="2020-01-01"), "QQQ")
        assert exc_info.value.code == ErrorCode.POOR_IMAGE_QUALITY
        assert "QQQ" in exc_info.value.technical_message

    def test_expiry_window(self, validator):
        violations = validator.collect_violations(_result(expiry_date="2099-12-31"), "UTO")
        assert violations == ["Expiry year 2099 appears invalid"]

    def test_empty_code_not_checked(self, validator):
        assert validator.collect_violations(_result(), "") == []
