"""
In-Memory Storage Implementation

Keeps everything in dicts. Used by the test suite and by hosts that
manage persistence themselves. Behaves like the SQLite backend:
same ordering, same uniqueness rule for budgets, same cascade from
categories to budgets.
"""

from datetime import date
from itertools import count
from typing import Optional
from uuid import UUID

from spendly.budgets import latch_field
from spendly.models.finance import (
    Account,
    Budget,
    Category,
    CategoryType,
    Expense,
    Income,
    RecurringTransaction,
    utcnow,
)
from spendly.models.audit import AuditEvent
from spendly.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    CategoryStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    IncomeStorageInterface,
    NotFoundError,
    RecurringTransactionStorageInterface,
)


class InMemoryDatabase:
    """Shared tables for the in-memory storages."""

    def __init__(self):
        self.categories: dict[int, Category] = {}
        self.accounts: dict[int, Account] = {}
        self.expenses: dict[int, Expense] = {}
        self.income: dict[int, Income] = {}
        self.budgets: dict[int, Budget] = {}
        self.recurring: dict[int, RecurringTransaction] = {}
        self.audit_events: list[AuditEvent] = []
        self._ids: dict[str, count] = {}

    def next_id(self, table: str, requested: Optional[int] = None) -> int:
        rows = getattr(self, table)
        if requested is not None:
            if requested in rows:
                raise DuplicateError(f"{table} row {requested} already exists")
            return requested
        counter = self._ids.setdefault(table, count(1))
        new_id = next(counter)
        while new_id in rows:
            new_id = next(counter)
        return new_id


def _in_range(day: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True


class InMemoryCategoryStorage(CategoryStorageInterface):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def insert_category(self, category: Category) -> int:
        category_id = self._db.next_id("categories", category.id)
        self._db.categories[category_id] = category.model_copy(update={"id": category_id})
        return category_id

    async def update_category(self, category: Category) -> None:
        if category.id not in self._db.categories:
            raise NotFoundError(f"Category not found: {category.id}")
        self._db.categories[category.id] = category.model_copy()

    async def delete_category(self, category_id: int) -> bool:
        if self._db.categories.pop(category_id, None) is None:
            return False
        for budget_id in [
            b.id for b in self._db.budgets.values() if b.category_id == category_id
        ]:
            del self._db.budgets[budget_id]
        return True

    async def get_category_by_id(self, category_id: int) -> Optional[Category]:
        return self._db.categories.get(category_id)

    async def list_categories(
        self,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        categories = [
            c for c in self._db.categories.values()
            if category_type is None or c.type == category_type
        ]
        categories.sort(key=lambda c: (c.type.value, c.sort_order, c.id))
        return categories

    async def is_predefined_seeded(self) -> bool:
        return any(not c.is_custom for c in self._db.categories.values())


class InMemoryAccountStorage(AccountStorageInterface):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def insert_account(self, account: Account) -> int:
        account_id = self._db.next_id("accounts", account.id)
        self._db.accounts[account_id] = account.model_copy(update={"id": account_id})
        return account_id

    async def get_account_by_id(self, account_id: int) -> Optional[Account]:
        return self._db.accounts.get(account_id)

    async def list_accounts(self) -> list[Account]:
        return sorted(self._db.accounts.values(), key=lambda a: (a.sort_order, a.id))


class InMemoryExpenseStorage(ExpenseStorageInterface):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def insert_expense(self, expense: Expense) -> int:
        expense_id = self._db.next_id("expenses", expense.id)
        self._db.expenses[expense_id] = expense.model_copy(update={"id": expense_id})
        return expense_id

    async def update_expense(self, expense: Expense) -> None:
        if expense.id not in self._db.expenses:
            raise NotFoundError(f"Expense not found: {expense.id}")
        self._db.expenses[expense.id] = expense.model_copy(update={"modified_at": utcnow()})

    async def delete_expense(self, expense_id: int) -> bool:
        return self._db.expenses.pop(expense_id, None) is not None

    async def get_expense_by_id(self, expense_id: int) -> Optional[Expense]:
        return self._db.expenses.get(expense_id)

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Expense]:
        expenses = []
        for expense in self._db.expenses.values():
            if not _in_range(expense.date, date_from, date_to):
                continue
            if category_id is not None and expense.category_id != category_id:
                continue
            if account_id is not None and expense.account_id != account_id:
                continue
            expenses.append(expense)

        # Newest first
        expenses.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return expenses[offset:offset + limit]

    async def get_total_spent(
        self,
        date_from: date,
        date_to: date,
        category_id: Optional[int] = None,
    ) -> int:
        return sum(
            e.amount for e in self._db.expenses.values()
            if _in_range(e.date, date_from, date_to)
            and (category_id is None or e.category_id == category_id)
        )

    async def get_totals_by_category(
        self,
        date_from: date,
        date_to: date,
    ) -> dict[Optional[int], int]:
        totals: dict[Optional[int], int] = {}
        for e in self._db.expenses.values():
            if _in_range(e.date, date_from, date_to):
                totals[e.category_id] = totals.get(e.category_id, 0) + e.amount
        return totals

    async def count_expenses(self, date_from: date, date_to: date) -> int:
        return sum(1 for e in self._db.expenses.values() if _in_range(e.date, date_from, date_to))


class InMemoryIncomeStorage(IncomeStorageInterface):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def insert_income(self, income: Income) -> int:
        income_id = self._db.next_id("income", income.id)
        self._db.income[income_id] = income.model_copy(update={"id": income_id})
        return income_id

    async def update_income(self, income: Income) -> None:
        if income.id not in self._db.income:
            raise NotFoundError(f"Income not found: {income.id}")
        self._db.income[income.id] = income.model_copy(update={"modified_at": utcnow()})

    async def delete_income(self, income_id: int) -> bool:
        return self._db.income.pop(income_id, None) is not None

    async def get_income_by_id(self, income_id: int) -> Optional[Income]:
        return self._db.income.get(income_id)

    async def list_income(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Income]:
        entries = [
            i for i in self._db.income.values()
            if _in_range(i.date, date_from, date_to)
        ]
        entries.sort(key=lambda i: (i.date, i.created_at), reverse=True)
        return entries[offset:offset + limit]

    async def get_total_income(self, date_from: date, date_to: date) -> int:
        return sum(
            i.amount for i in self._db.income.values()
            if _in_range(i.date, date_from, date_to)
        )


class InMemoryBudgetStorage(BudgetStorageInterface):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    def _check_slot_free(self, budget: Budget) -> None:
        for existing in self._db.budgets.values():
            if existing.id == budget.id:
                continue
            if (
                existing.category_id == budget.category_id
                and existing.month == budget.month
                and existing.year == budget.year
            ):
                raise DuplicateError(
                    f"A budget already exists for category {budget.category_id} "
                    f"in {budget.year}-{budget.month:02d}"
                )

    async def insert_budget(self, budget: Budget) -> int:
        self._check_slot_free(budget.model_copy(update={"id": None}))
        budget_id = self._db.next_id("budgets", budget.id)
        self._db.budgets[budget_id] = budget.model_copy(update={"id": budget_id})
        return budget_id

    async def update_budget(self, budget: Budget) -> None:
        if budget.id not in self._db.budgets:
            raise NotFoundError(f"Budget not found: {budget.id}")
        self._check_slot_free(budget)
        stored = self._db.budgets[budget.id]
        self._db.budgets[budget.id] = budget.model_copy(update={
            "notification_75_sent": stored.notification_75_sent or budget.notification_75_sent,
            "notification_100_sent": stored.notification_100_sent or budget.notification_100_sent,
            "modified_at": utcnow(),
        })

    async def delete_budget(self, budget_id: int) -> bool:
        return self._db.budgets.pop(budget_id, None) is not None

    async def get_budget_by_id(self, budget_id: int) -> Optional[Budget]:
        return self._db.budgets.get(budget_id)

    async def list_budgets(self) -> list[Budget]:
        return sorted(
            self._db.budgets.values(),
            key=lambda b: (b.year, b.month),
            reverse=True,
        )

    async def get_budgets_for_month(self, month: int, year: int) -> list[Budget]:
        budgets = [
            b for b in self._db.budgets.values()
            if b.month == month and b.year == year
        ]
        # Overall budget first, then by category
        budgets.sort(key=lambda b: (b.category_id is not None, b.category_id or 0))
        return budgets

    async def get_overall_budget(self, month: int, year: int) -> Optional[Budget]:
        for b in self._db.budgets.values():
            if b.category_id is None and b.month == month and b.year == year:
                return b
        return None

    async def get_category_budget(
        self,
        category_id: int,
        month: int,
        year: int,
    ) -> Optional[Budget]:
        for b in self._db.budgets.values():
            if b.category_id == category_id and b.month == month and b.year == year:
                return b
        return None

    async def mark_notification_sent(self, budget_id: int, threshold: int) -> None:
        field = latch_field(threshold)
        budget = self._db.budgets.get(budget_id)
        if budget is None:
            raise NotFoundError(f"Budget not found: {budget_id}")
        self._db.budgets[budget_id] = budget.model_copy(
            update={field: True, "modified_at": utcnow()}
        )


class InMemoryRecurringTransactionStorage(RecurringTransactionStorageInterface):

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def insert_recurring(self, recurring: RecurringTransaction) -> int:
        recurring_id = self._db.next_id("recurring", recurring.id)
        self._db.recurring[recurring_id] = recurring.model_copy(update={"id": recurring_id})
        return recurring_id

    async def update_recurring(self, recurring: RecurringTransaction) -> None:
        if recurring.id not in self._db.recurring:
            raise NotFoundError(f"Recurring transaction not found: {recurring.id}")
        self._db.recurring[recurring.id] = recurring.model_copy(update={"modified_at": utcnow()})

    async def delete_recurring(self, recurring_id: int) -> bool:
        return self._db.recurring.pop(recurring_id, None) is not None

    async def list_recurring(self) -> list[RecurringTransaction]:
        return sorted(self._db.recurring.values(), key=lambda r: (r.next_date, r.id))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self, db: InMemoryDatabase):
        self._db = db

    async def append_event(self, event: AuditEvent) -> bool:
        self._db.audit_events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._db.audit_events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._db.audit_events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._db.audit_events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
