"""
Storage contracts for Spendly.

One ABC per table. The SQLite and in-memory backends both implement
every method here, and the flows only ever see these interfaces.
All amounts cross this boundary as integer paise.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from spendly.models.finance import (
    Account,
    Budget,
    Category,
    CategoryType,
    Expense,
    Income,
    RecurringTransaction,
)
from spendly.models.audit import AuditEvent


class CategoryStorageInterface(ABC):
    """Category storage. Deleting a category also deletes its budgets."""

    @abstractmethod
    async def insert_category(self, category: Category) -> int:
        """
        Insert a category and return its ID.

        Predefined categories keep the ID they carry.
        """
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> None:
        """
        Raises:
            NotFoundError: If the category doesn't exist
        """
        pass

    @abstractmethod
    async def delete_category(self, category_id: int) -> bool:
        """Delete a category and cascade to its budgets. Returns False if absent."""
        pass

    @abstractmethod
    async def get_category_by_id(self, category_id: int) -> Optional[Category]:
        pass

    @abstractmethod
    async def list_categories(
        self,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        """Categories ordered by type, then sort_order."""
        pass

    @abstractmethod
    async def is_predefined_seeded(self) -> bool:
        """Whether any predefined (non-custom) category exists."""
        pass


class AccountStorageInterface(ABC):
    """Account storage."""

    @abstractmethod
    async def insert_account(self, account: Account) -> int:
        pass

    @abstractmethod
    async def get_account_by_id(self, account_id: int) -> Optional[Account]:
        pass

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        pass


class ExpenseStorageInterface(ABC):
    """Expense storage and the aggregates budgets need."""

    @abstractmethod
    async def insert_expense(self, expense: Expense) -> int:
        """
        Save an expense.

        Returns:
            The new expense ID

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> None:
        """
        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: int) -> bool:
        pass

    @abstractmethod
    async def get_expense_by_id(self, expense_id: int) -> Optional[Expense]:
        pass

    @abstractmethod
    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Expense]:
        """
        List expenses, newest first.

        Args:
            date_from: Expenses on or after this date
            date_to: Expenses on or before this date
            category_id: Filter by category
            account_id: Filter by account
            limit: Maximum number of results
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def get_total_spent(
        self,
        date_from: date,
        date_to: date,
        category_id: Optional[int] = None,
    ) -> int:
        """
        Sum of expense amounts in paise between two dates (inclusive).

        category_id=None sums every category (the overall budget).
        """
        pass

    @abstractmethod
    async def get_totals_by_category(
        self,
        date_from: date,
        date_to: date,
    ) -> dict[Optional[int], int]:
        """Expense totals in paise keyed by category ID."""
        pass

    @abstractmethod
    async def count_expenses(self, date_from: date, date_to: date) -> int:
        """Number of expenses between two dates (inclusive)."""
        pass


class IncomeStorageInterface(ABC):
    """Income storage."""

    @abstractmethod
    async def insert_income(self, income: Income) -> int:
        pass

    @abstractmethod
    async def update_income(self, income: Income) -> None:
        """
        Raises:
            NotFoundError: If the income doesn't exist
        """
        pass

    @abstractmethod
    async def delete_income(self, income_id: int) -> bool:
        pass

    @abstractmethod
    async def get_income_by_id(self, income_id: int) -> Optional[Income]:
        pass

    @abstractmethod
    async def list_income(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Income]:
        pass

    @abstractmethod
    async def get_total_income(self, date_from: date, date_to: date) -> int:
        pass


class BudgetStorageInterface(ABC):
    """
    Budget storage.

    At most one budget per (category_id, month, year); the overall
    budget (category_id=None) counts as its own slot.
    """

    @abstractmethod
    async def insert_budget(self, budget: Budget) -> int:
        """
        Raises:
            DuplicateError: If a budget already exists for the same slot
        """
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> None:
        """
        Latches already set in storage stay set, whatever the
        incoming model says.

        Raises:
            NotFoundError: If the budget doesn't exist
            DuplicateError: If the update moves it onto an occupied slot
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: int) -> bool:
        pass

    @abstractmethod
    async def get_budget_by_id(self, budget_id: int) -> Optional[Budget]:
        pass

    @abstractmethod
    async def list_budgets(self) -> list[Budget]:
        """All budgets, newest month first."""
        pass

    @abstractmethod
    async def get_budgets_for_month(self, month: int, year: int) -> list[Budget]:
        pass

    @abstractmethod
    async def get_overall_budget(self, month: int, year: int) -> Optional[Budget]:
        pass

    @abstractmethod
    async def get_category_budget(
        self,
        category_id: int,
        month: int,
        year: int,
    ) -> Optional[Budget]:
        pass

    @abstractmethod
    async def mark_notification_sent(self, budget_id: int, threshold: int) -> None:
        """
        Flip the latch for a threshold (75 or 100) to True.

        Latches are never reset.

        Raises:
            NotFoundError: If the budget doesn't exist
            ValueError: If the threshold is not 75 or 100
        """
        pass


class RecurringTransactionStorageInterface(ABC):
    """Recurring transaction template storage."""

    @abstractmethod
    async def insert_recurring(self, recurring: RecurringTransaction) -> int:
        pass

    @abstractmethod
    async def update_recurring(self, recurring: RecurringTransaction) -> None:
        """
        Raises:
            NotFoundError: If the template doesn't exist
        """
        pass

    @abstractmethod
    async def delete_recurring(self, recurring_id: int) -> bool:
        pass

    @abstractmethod
    async def list_recurring(self) -> list[RecurringTransaction]:
        """All templates ordered by next_date."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        """Events about one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
