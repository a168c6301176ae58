"""Tests for log sanitization utilities."""

from clearverify.utils import mask_identifier, sanitize_log_value


class TestSanitizeLogValue:
    """Test cases for sanitize_log_value function."""

    def test_plain_text(self):
        """Should pass through ordinary text unchanged."""
        assert sanitize_log_value("Payer offline") == "Payer offline"

    def test_none_input(self):
        """Should return an empty string for None."""
        assert sanitize_log_value(None) == ""

    def test_non_string_input(self):
        """Should stringify other values."""
        assert sanitize_log_value(503) == "503"

    def test_control_characters(self):
        """Should replace control characters to prevent log injection."""
        assert sanitize_log_value("line1\nline2") == "line1 line2"
        assert sanitize_log_value("a\r\nb") == "a  b"
        assert sanitize_log_value("null\x00byte") == "null byte"
        assert "\x1b" not in sanitize_log_value("\x1b[31mred")

    def test_truncation(self):
        """Should truncate long vendor payload excerpts."""
        result = sanitize_log_value("x" * 500)
        assert len(result) == 200
        assert result.endswith("...")

    def test_custom_max_length(self):
        assert sanitize_log_value("abcdefghij", max_length=8) == "abcde..."


class TestMaskIdentifier:
    """Test cases for mask_identifier function."""

    def test_member_id(self):
        """Should keep only the last four characters."""
        assert mask_identifier("W123456789") == "******6789"

    def test_short_identifier(self):
        """Should fully mask identifiers no longer than the visible tail."""
        assert mask_identifier("12") == "**"
        assert mask_identifier("1234") == "****"

    def test_empty_input(self):
        """Should return 'unknown' for None or empty input."""
        assert mask_identifier(None) == "unknown"
        assert mask_identifier("") == "unknown"

    def test_custom_visible(self):
        assert mask_identifier("W123456789", visible=2) == "********89"

    def test_control_characters_removed(self):
        """Should not let an identifier inject log lines."""
        assert "\n" not in mask_identifier("W1234\n5678")
