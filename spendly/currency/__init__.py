"""Currency codec package."""

from spendly.currency.codec import (
    PAISE_PER_RUPEE,
    RUPEE_SYMBOL,
    InvalidFormatError,
    format_paise,
    is_valid_rupee_string,
    paise_to_rupee_string,
    paise_to_rupees,
    parse_rupees_to_paise,
)

__all__ = [
    "PAISE_PER_RUPEE",
    "RUPEE_SYMBOL",
    "InvalidFormatError",
    "format_paise",
    "is_valid_rupee_string",
    "paise_to_rupee_string",
    "paise_to_rupees",
    "parse_rupees_to_paise",
]
