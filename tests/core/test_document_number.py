import pytest

from src.core.exceptions import InvalidStartingNumberError, ValidationError
from src.core.sequences import format_document_number
from src.core.sequences.lock import normalize_prefix, validate_starting_number


class TestDocumentNumberFormat:
    """Tests for document number display formatting."""

    def test_format_without_prefix(self):
        assert format_document_number(None, 42) == "000042"

    def test_format_with_prefix(self):
        assert format_document_number("RC-", 1001) == "RC-001001"

    def test_format_with_leading_zeros(self):
        """Test that numbers are padded with leading zeros."""
        assert format_document_number("INV-", 100, digits=4) == "INV-0100"

    def test_numbers_wider_than_padding_are_not_truncated(self):
        assert format_document_number(None, 12345678) == "12345678"


class TestStartingNumberValidation:
    """Tests for starting number and prefix validation."""

    @pytest.mark.parametrize("value", [1, 1001, 2**31 - 1])
    def test_valid_starting_numbers(self, value):
        assert validate_starting_number(value) == value

    @pytest.mark.parametrize("value", [0, -1, 1.0, "1", True, False, None, 2**31, 2**63])
    def test_invalid_starting_numbers(self, value):
        with pytest.raises(InvalidStartingNumberError) as exc_info:
            validate_starting_number(value)
        assert exc_info.value.details["code"] == "invalid_starting_number"

    def test_normalize_prefix(self):
        assert normalize_prefix(None) is None
        assert normalize_prefix("") is None
        assert normalize_prefix("  ") is None
        assert normalize_prefix(" RC- ") == "RC-"
        assert normalize_prefix("X" * 20) == "X" * 20

    def test_prefix_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_prefix("X" * 21)
        assert exc_info.value.details["field"] == "prefix"
