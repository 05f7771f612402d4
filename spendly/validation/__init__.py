"""Input validation package."""

from spendly.validation.validator import AmountValidator

__all__ = ["AmountValidator"]
