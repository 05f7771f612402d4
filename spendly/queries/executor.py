"""
Spending Queries

DESIGN DECISION: Every figure here is summed from stored integer paise.
Nothing is estimated or rounded until it is formatted for display.

GUARANTEES:
- Only returns real data from storage
- Empty months report zero totals, not an error
"""

from typing import Optional

from pydantic import BaseModel, Field

from spendly.budgets.monitor import month_bounds
from spendly.currency import format_paise
from spendly.services.storage import (
    CategoryStorageInterface,
    ExpenseStorageInterface,
    IncomeStorageInterface,
    StorageError,
)


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class MonthlySummary(BaseModel):
    """Totals for one calendar month. Amounts in paise."""

    month: int = Field(..., ge=1, le=12)
    year: int
    total_expenses: int = 0
    total_income: int = 0
    expense_count: int = 0

    @property
    def net(self) -> int:
        """Income minus expenses; negative when overspent."""
        return self.total_income - self.total_expenses

    def display_net(self) -> str:
        return format_paise(self.net)


class CategorySpending(BaseModel):
    """How much went to one category in a month."""

    category_id: Optional[int] = None
    category_name: str
    total: int = Field(..., ge=0, description="Paise")
    share_percent: float = Field(..., ge=0, le=100)


class SpendingQueries:
    """Read-only reporting over expenses and income."""

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        income_storage: IncomeStorageInterface,
        category_storage: Optional[CategoryStorageInterface] = None,
    ):
        self._expenses = expense_storage
        self._income = income_storage
        self._categories = category_storage

    def _bounds(self, month: int, year: int):
        if not 1 <= month <= 12:
            raise QueryExecutionError(f"Invalid month: {month}")
        return month_bounds(month, year)

    async def monthly_summary(self, month: int, year: int) -> MonthlySummary:
        date_from, date_to = self._bounds(month, year)
        try:
            return MonthlySummary(
                month=month,
                year=year,
                total_expenses=await self._expenses.get_total_spent(date_from, date_to),
                total_income=await self._income.get_total_income(date_from, date_to),
                expense_count=await self._expenses.count_expenses(date_from, date_to),
            )
        except StorageError as e:
            raise QueryExecutionError(f"Could not summarise {year}-{month:02d}: {e}") from e

    async def top_categories(
        self,
        month: int,
        year: int,
        limit: int = 5,
    ) -> list[CategorySpending]:
        """Categories with the highest spending, largest first."""
        date_from, date_to = self._bounds(month, year)
        try:
            totals = await self._expenses.get_totals_by_category(date_from, date_to)
        except StorageError as e:
            raise QueryExecutionError(f"Could not group spending for {year}-{month:02d}: {e}") from e

        grand_total = sum(totals.values())
        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0] or 0))

        results = []
        for category_id, total in ranked[:limit]:
            results.append(CategorySpending(
                category_id=category_id,
                category_name=await self._category_name(category_id),
                total=total,
                share_percent=round(total * 100 / grand_total, 2) if grand_total else 0.0,
            ))
        return results

    async def _category_name(self, category_id: Optional[int]) -> str:
        if category_id is None:
            return "Uncategorised"
        if self._categories:
            category = await self._categories.get_category_by_id(category_id)
            if category:
                return category.name
        return f"Category {category_id}"
