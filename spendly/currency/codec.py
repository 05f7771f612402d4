"""
Rupee/Paise Currency Codec

Every amount in Spendly is stored as an integer number of paise
(₹1.00 = 100 paise). This module is the single place where decimal
strings typed by the user cross into that integer domain, and the
single place where they cross back out for display.

DESIGN DECISION: No floating-point arithmetic is used for anything that
is stored or compared. Strings are split on the decimal point and each
half is read as an integer. Python ints are unbounded, so parsing stays
exact for any amount.

The fractional part is TRUNCATED to two digits, never rounded:
"123.456" and "123.459" both become 12345 paise.
"""

import re

PAISE_PER_RUPEE = 100
RUPEE_SYMBOL = "₹"

# Sign-free digits, optionally followed by a dot and more digits ("12", "12.", "12.5")
_AMOUNT_PATTERN = re.compile(r"([0-9]+)(?:\.([0-9]*))?", re.ASCII)


class InvalidFormatError(ValueError):
    """The text cannot be read as a non-negative rupee amount."""

    def __init__(self, text: str, reason: str):
        self.text = text
        self.reason = reason
        super().__init__(f"Invalid rupee amount {text!r}: {reason}")


def _normalize(text: str) -> str:
    """Drop the rupee symbol, thousands separators and every whitespace character."""
    cleaned = text.replace(RUPEE_SYMBOL, "").replace(",", "")
    return "".join(cleaned.split())


def parse_rupees_to_paise(text: str) -> int:
    """
    Convert a rupee string to paise with zero precision loss.

    Examples:
        "123.45"          -> 12345
        "123"             -> 12300
        "0.5"             -> 50      (one fractional digit is padded)
        "123.456"         -> 12345   (extra digits are truncated)
        "₹ 1,234,567.89"  -> 123456789

    Raises:
        InvalidFormatError: if nothing is left after normalisation, if any
            character other than digits and one dot remains, or if there is
            more than one dot.
    """
    cleaned = _normalize(text)

    if not cleaned:
        raise InvalidFormatError(text, "no digits found")

    if cleaned.count(".") > 1:
        raise InvalidFormatError(text, "more than one decimal point")

    match = _AMOUNT_PATTERN.fullmatch(cleaned)
    if match is None:
        raise InvalidFormatError(text, "only digits and a single decimal point are allowed")

    rupee_digits, paise_digits = match.group(1), match.group(2) or ""

    # "5" -> "50", "456" -> "45"
    paise_digits = paise_digits[:2].ljust(2, "0")

    return int(rupee_digits) * PAISE_PER_RUPEE + int(paise_digits)


def format_paise(amount: int) -> str:
    """
    Format paise as a rupee display string.

    12345 -> "₹123.45", 5 -> "₹0.05", 0 -> "₹0.00".
    No thousands separators, so the output always parses back to the same value.
    Negative amounts (which never occur in stored data) are rendered as "-₹1.50".
    """
    if amount < 0:
        return "-" + format_paise(-amount)
    rupees, paise = divmod(amount, PAISE_PER_RUPEE)
    return f"{RUPEE_SYMBOL}{rupees}.{paise:02d}"


def paise_to_rupee_string(amount: int) -> str:
    """Plain decimal string for prefilling an edit form: 12345 -> "123.45"."""
    return format_paise(amount).replace(RUPEE_SYMBOL, "")


def is_valid_rupee_string(text: str) -> bool:
    """Whether parse_rupees_to_paise would accept the text."""
    try:
        parse_rupees_to_paise(text)
    except InvalidFormatError:
        return False
    return True


def paise_to_rupees(amount: int) -> float:
    """
    Paise as a float number of rupees.

    WARNING: display only (charts, percentages). Never store or compare the result.
    """
    return amount / PAISE_PER_RUPEE
