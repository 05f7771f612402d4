"""
Data Models Package

This package contains all Pydantic models used in Spendly.
All data flowing through the system must conform to these schemas.
"""

from spendly.models.finance import (
    DEFAULT_ACCOUNT_ID,
    MISC_EXPENSE_CATEGORY_ID,
    OTHER_INCOME_CATEGORY_ID,
    PREDEFINED_ACCOUNTS,
    PREDEFINED_CATEGORIES,
    PREDEFINED_EXPENSE_CATEGORIES,
    PREDEFINED_INCOME_CATEGORIES,
    Account,
    AccountType,
    Budget,
    Category,
    CategoryType,
    Expense,
    Income,
    IncomeSource,
    Paise,
    PaymentMethod,
    RecurringFrequency,
    RecurringTransaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from spendly.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "DEFAULT_ACCOUNT_ID",
    "MISC_EXPENSE_CATEGORY_ID",
    "OTHER_INCOME_CATEGORY_ID",
    "PREDEFINED_ACCOUNTS",
    "PREDEFINED_CATEGORIES",
    "PREDEFINED_EXPENSE_CATEGORIES",
    "PREDEFINED_INCOME_CATEGORIES",
    "Account",
    "AccountType",
    "Budget",
    "Category",
    "CategoryType",
    "Expense",
    "Income",
    "IncomeSource",
    "Paise",
    "PaymentMethod",
    "RecurringFrequency",
    "RecurringTransaction",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
