"""Tests for MRZ date conversion."""

from postprocessing.dates import expand_year, is_valid_mrz_date, iso_to_mrz_date, mrz_date_to_iso


class TestMrzDates:
    """Two-digit years, calendar checks and ISO conversion."""

    def test_birth_century_pivot(self):
        assert mrz_date_to_iso("300101", "birth") == "1930-01-01"
        assert mrz_date_to_iso("290101", "birth") == "2029-01-01"

    def test_expiry_always_2000s(self):
        assert mrz_date_to_iso("991231", "expiry") == "2099-12-31"
        assert expand_year(45, "expiry") == 2045

    def test_impossible_day_is_empty(self):
        """Feb 30 passes the loose check but is not a calendar day."""
        assert is_valid_mrz_date("990230")
        assert mrz_date_to_iso("990230", "birth") == ""

    def test_malformed_values(self):
        assert not is_valid_mrz_date("741312")
        assert not is_valid_mrz_date("74O812")
        assert mrz_date_to_iso("<<<<<<", "expiry") == ""
        assert mrz_date_to_iso("", "birth") == ""

    def test_iso_back_to_mrz(self):
        assert iso_to_mrz_date("1974-08-12") == "740812"
        assert mrz_date_to_iso(iso_to_mrz_date("2012-04-15"), "expiry") == "2012-04-15"
