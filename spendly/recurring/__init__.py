"""Recurring transactions package."""

from spendly.recurring.processor import (
    RecurringRunResult,
    RecurringTransactionProcessor,
    add_months,
    calculate_next_date,
)

__all__ = [
    "RecurringRunResult",
    "RecurringTransactionProcessor",
    "add_months",
    "calculate_next_date",
]
