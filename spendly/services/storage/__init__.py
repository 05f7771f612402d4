"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLite is the on-disk backend; the in-memory backend serves tests and
hosts that persist data themselves.
"""

from spendly.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    CategoryStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    IncomeStorageInterface,
    NotFoundError,
    RecurringTransactionStorageInterface,
    StorageError,
)
from spendly.services.storage.memory import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryCategoryStorage,
    InMemoryDatabase,
    InMemoryExpenseStorage,
    InMemoryIncomeStorage,
    InMemoryRecurringTransactionStorage,
)
from spendly.services.storage.sqlite import (
    SQLiteAccountStorage,
    SQLiteAuditStorage,
    SQLiteBudgetStorage,
    SQLiteCategoryStorage,
    SQLiteClient,
    SQLiteExpenseStorage,
    SQLiteIncomeStorage,
    SQLiteRecurringTransactionStorage,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "CategoryStorageInterface",
    "ExpenseStorageInterface",
    "IncomeStorageInterface",
    "RecurringTransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryCategoryStorage",
    "InMemoryDatabase",
    "InMemoryExpenseStorage",
    "InMemoryIncomeStorage",
    "InMemoryRecurringTransactionStorage",
    # SQLite implementation
    "SQLiteAccountStorage",
    "SQLiteAuditStorage",
    "SQLiteBudgetStorage",
    "SQLiteCategoryStorage",
    "SQLiteClient",
    "SQLiteExpenseStorage",
    "SQLiteIncomeStorage",
    "SQLiteRecurringTransactionStorage",
]
