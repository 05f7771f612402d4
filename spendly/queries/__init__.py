"""Spending queries package."""

from spendly.queries.executor import (
    CategorySpending,
    MonthlySummary,
    QueryExecutionError,
    SpendingQueries,
)

__all__ = [
    "CategorySpending",
    "MonthlySummary",
    "QueryExecutionError",
    "SpendingQueries",
]
