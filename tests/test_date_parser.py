"""Tests for payer date parsing."""

from datetime import date

from clearverify.utils import parse_date_range, parse_flexible_date


class TestParseFlexibleDate:
    """Test cases for parse_flexible_date function."""

    def test_iso_format(self):
        assert parse_flexible_date("2024-01-15") == date(2024, 1, 15)

    def test_iso_datetime(self):
        """Should drop the time part of ISO timestamps."""
        assert parse_flexible_date("2024-01-15T08:30:00Z") == date(2024, 1, 15)

    def test_us_format(self):
        assert parse_flexible_date("01/15/2024") == date(2024, 1, 15)

    def test_compact_format(self):
        """Should parse X12 D8 dates."""
        assert parse_flexible_date("20240115") == date(2024, 1, 15)

    def test_whitespace(self):
        assert parse_flexible_date("  2024-01-15 ") == date(2024, 1, 15)

    def test_invalid_calendar_date(self):
        assert parse_flexible_date("2024-02-30") is None

    def test_year_out_of_range(self):
        assert parse_flexible_date("1800-01-01") is None
        assert parse_flexible_date("2200-01-01") is None

    def test_empty_input(self):
        assert parse_flexible_date(None) is None
        assert parse_flexible_date("") is None

    def test_garbage(self):
        assert parse_flexible_date("next tuesday") is None


class TestParseDateRange:
    """Test cases for X12 RD8 ranges."""

    def test_range(self):
        assert parse_date_range("20240101-20241231") == (date(2024, 1, 1), date(2024, 12, 31))

    def test_open_end(self):
        assert parse_date_range("20240101-") == (date(2024, 1, 1), None)

    def test_empty(self):
        assert parse_date_range(None) == (None, None)
