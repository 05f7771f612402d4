"""
Tests for the rupee/paise currency codec.

These pin down the exact-arithmetic guarantees: every stored amount
must survive a trip through the display string unchanged.
"""

import pytest

from spendly.currency import (
    InvalidFormatError,
    format_paise,
    is_valid_rupee_string,
    paise_to_rupee_string,
    paise_to_rupees,
    parse_rupees_to_paise,
)


class TestParseRupeesToPaise:
    """Tests for parsing typed rupee strings."""

    def test_whole_rupees(self):
        """A number without a decimal point is whole rupees."""
        assert parse_rupees_to_paise("123") == 12300
        assert parse_rupees_to_paise("0") == 0

    def test_two_decimal_places(self):
        """Standard rupees.paise input."""
        assert parse_rupees_to_paise("123.45") == 12345
        assert parse_rupees_to_paise("0.99") == 99
        assert parse_rupees_to_paise("0.01") == 1

    def test_single_fraction_digit_is_padded(self):
        """One fractional digit means tens of paise."""
        assert parse_rupees_to_paise("0.5") == 50
        assert parse_rupees_to_paise("12.5") == 1250

    def test_extra_fraction_digits_are_truncated(self):
        """Digits beyond two are dropped, never rounded."""
        assert parse_rupees_to_paise("123.456") == 12345
        assert parse_rupees_to_paise("123.999") == 12399
        assert parse_rupees_to_paise("0.009") == 0

    def test_trailing_decimal_point(self):
        """'12.' reads as 12 rupees."""
        assert parse_rupees_to_paise("12.") == 1200

    def test_symbol_commas_and_whitespace_are_ignored(self):
        """Pasted or formatted input parses."""
        assert parse_rupees_to_paise("₹ 1,234,567.89") == 123456789
        assert parse_rupees_to_paise("  ₹120.50  ") == 12050
        assert parse_rupees_to_paise("1 000") == 100000
        assert parse_rupees_to_paise("123,456,789.00") == 12345678900

    def test_large_amounts_are_exact(self):
        """No float rounding for large values."""
        assert parse_rupees_to_paise("92233720368547758.07") == 9223372036854775807
        assert parse_rupees_to_paise("99999999999999999999.99") == 9999999999999999999999

    @pytest.mark.parametrize("text", ["", "abc", "12.34.56", "₹", "   ", ".5", "-5", "1e5", "12a"])
    def test_invalid_input_raises(self, text):
        """Anything but digits and one decimal point is rejected."""
        with pytest.raises(InvalidFormatError):
            parse_rupees_to_paise(text)

    def test_invalid_format_is_a_value_error(self):
        """Callers catching ValueError still see codec failures."""
        with pytest.raises(ValueError):
            parse_rupees_to_paise("abc")

    def test_error_carries_input_and_reason(self):
        """The error says what was typed and what is wrong with it."""
        with pytest.raises(InvalidFormatError) as exc_info:
            parse_rupees_to_paise("12.34.56")
        assert exc_info.value.text == "12.34.56"
        assert "decimal point" in exc_info.value.reason

    def test_non_ascii_digits_are_rejected(self):
        """Devanagari digits are not accepted as amounts."""
        with pytest.raises(InvalidFormatError):
            parse_rupees_to_paise("१२३")


class TestFormatPaise:
    """Tests for formatting paise for display."""

    def test_exact_formats(self):
        """Formatting is exact with two paise digits."""
        assert format_paise(0) == "₹0.00"
        assert format_paise(1) == "₹0.01"
        assert format_paise(5) == "₹0.05"
        assert format_paise(100) == "₹1.00"
        assert format_paise(12345) == "₹123.45"
        assert format_paise(123456789) == "₹1234567.89"

    def test_no_thousands_separators(self):
        """Large values print as plain digits."""
        assert format_paise(10000000) == "₹100000.00"

    def test_negative_amount(self):
        """Negative values carry a leading minus."""
        assert format_paise(-150) == "-₹1.50"

    def test_plain_rupee_string(self):
        """Form prefill has no symbol."""
        assert paise_to_rupee_string(12345) == "123.45"
        assert paise_to_rupee_string(99) == "0.99"
        assert paise_to_rupee_string(10000000) == "100000.00"

    def test_paise_to_rupees_for_display(self):
        """Float conversion is only for charts."""
        assert paise_to_rupees(12345) == pytest.approx(123.45)
        assert paise_to_rupees(0) == 0.0


class TestRoundTrip:
    """Format then parse gives back the same paise."""

    def test_round_trip_small_values(self):
        """Every value from 0 to 999 paise."""
        for value in range(1000):
            assert parse_rupees_to_paise(format_paise(value)) == value

    @pytest.mark.parametrize("value", [
        1000,
        99999,
        100000,
        123456789,
        12345678900,
        9223372036854775807 // 100 * 100,
        9223372036854775807,
        10 ** 30 + 7,
    ])
    def test_round_trip_large_values(self, value):
        """Spot checks well past 64-bit range."""
        assert parse_rupees_to_paise(format_paise(value)) == value

    def test_round_trip_through_plain_string(self):
        """Edit-form prefill parses back to the stored value."""
        for value in (0, 7, 50, 12345, 10000000):
            assert parse_rupees_to_paise(paise_to_rupee_string(value)) == value


class TestIsValidRupeeString:
    """Tests for the validity predicate."""

    @pytest.mark.parametrize("text", ["123", "123.45", "₹ 1,234.5", "0", "12."])
    def test_valid(self, text):
        """Accepted strings."""
        assert is_valid_rupee_string(text) is True

    @pytest.mark.parametrize("text", ["", "abc", "12.34.56", "₹", "   "])
    def test_invalid(self, text):
        """Rejected strings."""
        assert is_valid_rupee_string(text) is False
