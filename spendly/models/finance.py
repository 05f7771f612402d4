"""
Core Data Models for Spendly

These models define the schemas for everything Spendly stores:
categories, accounts, expenses, income, budgets and recurring
transaction templates.

DESIGN DECISION: Every amount is an integer number of paise.
There is no float or Decimal money anywhere in the models; conversion
to and from rupee strings goes through spendly.currency only.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Optional

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from spendly.budgets.evaluator import (
    ALERT_THRESHOLD_75,
    ALERT_THRESHOLD_100,
    ThresholdState,
    compute_progress_percent,
    should_notify,
    threshold_state,
)
from spendly.currency import format_paise, parse_rupees_to_paise

logger = structlog.get_logger(__name__)

# Integer count of paise. Never negative in stored data.
Paise = Annotated[int, Field(ge=0, strict=True, description="Amount in paise")]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LookupEnum(str, Enum):
    """
    String enum with lenient lookup for values read back from storage.

    Accepts either the value ("debit_card") or the member name
    ("DEBIT_CARD"), case-insensitively.
    """

    @classmethod
    def from_string(cls, value: Optional[str]):
        if value is None:
            return None
        key = value.strip().lower()
        for member in cls:
            if member.value == key or member.name.lower() == key:
                return member
        return None

    @classmethod
    def from_string_or_default(cls, value: Optional[str], default):
        """Like from_string, but logs and falls back instead of returning None."""
        member = cls.from_string(value)
        if member is None:
            logger.warning(
                "unknown_enum_value",
                enum=cls.__name__,
                value=value,
                default=default.value,
            )
            return default
        return member


class CategoryType(LookupEnum):
    """Whether a category groups expenses or income."""
    EXPENSE = "expense"
    INCOME = "income"


class PaymentMethod(LookupEnum):
    """How an expense was paid."""
    CASH = "cash"
    UPI = "upi"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    NET_BANKING = "net_banking"
    WALLET = "wallet"

    @property
    def display_name(self) -> str:
        if self is PaymentMethod.UPI:
            return "UPI"
        return self.value.replace("_", " ").title()


class IncomeSource(LookupEnum):
    """Where income came from."""
    SALARY = "salary"
    FREELANCE = "freelance"
    INVESTMENT = "investment"
    GIFTS = "gifts"
    REFUND = "refund"
    BUSINESS = "business"
    RENTAL = "rental"
    INTEREST = "interest"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class RecurringFrequency(LookupEnum):
    """How often a recurring transaction repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TransactionType(LookupEnum):
    """Expense or income."""
    EXPENSE = "expense"
    INCOME = "income"


class AccountType(LookupEnum):
    """
    Kinds of financial account.

    BANK: savings/checking, CARD: credit/debit cards,
    WALLET: digital wallets, CASH: physical cash,
    LOAN: borrowed money, INVESTMENT: brokerage accounts.
    """
    BANK = "bank"
    CARD = "card"
    WALLET = "wallet"
    CASH = "cash"
    LOAN = "loan"
    INVESTMENT = "investment"

    @property
    def display_name(self) -> str:
        return self.value.title()

    @property
    def default_icon(self) -> str:
        return _ACCOUNT_ICONS[self]


_ACCOUNT_ICONS = {
    AccountType.BANK: "bank",
    AccountType.CARD: "creditcard",
    AccountType.WALLET: "wallet",
    AccountType.CASH: "money",
    AccountType.LOAN: "receipt",
    AccountType.INVESTMENT: "trendingup",
}


# =============================================================================
# CATEGORIES AND ACCOUNTS
# =============================================================================

class Category(BaseModel):
    """
    An expense or income category.

    Predefined categories are seeded on first start; users can add
    custom ones (is_custom=True).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name"
    )
    icon: str = Field(
        default="category",
        description="Icon name"
    )
    color: int = Field(
        default=0xFF9E9E9E,
        ge=0,
        le=0xFFFFFFFF,
        description="ARGB colour"
    )
    is_custom: bool = True
    sort_order: int = 0
    type: CategoryType = CategoryType.EXPENSE


# Expense fallback for transactions without a category
MISC_EXPENSE_CATEGORY_ID = 13
# Income fallback for transactions without a category
OTHER_INCOME_CATEGORY_ID = 110


def _predefined(id, name, icon, color, sort_order, type) -> Category:
    return Category(
        id=id,
        name=name,
        icon=icon,
        color=color,
        is_custom=False,
        sort_order=sort_order,
        type=type,
    )


PREDEFINED_EXPENSE_CATEGORIES = [
    _predefined(1, "Food & Dining", "restaurant", 0xFFFF6B6B, 1, CategoryType.EXPENSE),
    _predefined(2, "Travel", "flight", 0xFF4ECDC4, 2, CategoryType.EXPENSE),
    _predefined(3, "Rent", "home", 0xFF95E1D3, 3, CategoryType.EXPENSE),
    _predefined(4, "Utilities", "lightbulb", 0xFFFECA57, 4, CategoryType.EXPENSE),
    _predefined(5, "Services", "build", 0xFF48DBFB, 5, CategoryType.EXPENSE),
    _predefined(6, "Shopping", "shopping_cart", 0xFFFF9FF3, 6, CategoryType.EXPENSE),
    _predefined(7, "Media", "movie", 0xFF54A0FF, 7, CategoryType.EXPENSE),
    _predefined(8, "Healthcare", "local_hospital", 0xFFEE5A6F, 8, CategoryType.EXPENSE),
    _predefined(9, "Gifts", "card_giftcard", 0xFFC44569, 9, CategoryType.EXPENSE),
    _predefined(10, "Education", "school", 0xFF00D2D3, 10, CategoryType.EXPENSE),
    _predefined(11, "Investments", "trending_up", 0xFF1DD1A1, 11, CategoryType.EXPENSE),
    _predefined(12, "Groceries", "local_grocery_store", 0xFF10AC84, 12, CategoryType.EXPENSE),
    _predefined(MISC_EXPENSE_CATEGORY_ID, "Misc", "category", 0xFF9E9E9E, 13, CategoryType.EXPENSE),
]

PREDEFINED_INCOME_CATEGORIES = [
    _predefined(101, "Salary", "briefcase", 0xFF2E7D32, 1, CategoryType.INCOME),
    _predefined(102, "Freelance", "laptop", 0xFF00897B, 2, CategoryType.INCOME),
    _predefined(103, "Business", "storefront", 0xFF1976D2, 3, CategoryType.INCOME),
    _predefined(104, "Investments", "trending_up", 0xFF1DD1A1, 4, CategoryType.INCOME),
    _predefined(105, "Rental", "home", 0xFF7B1FA2, 5, CategoryType.INCOME),
    _predefined(106, "Interest", "bank", 0xFFE65100, 6, CategoryType.INCOME),
    _predefined(107, "Gifts", "card_giftcard", 0xFFC44569, 7, CategoryType.INCOME),
    _predefined(108, "Refund", "receipt", 0xFF00ACC1, 8, CategoryType.INCOME),
    _predefined(109, "Bonus", "gift", 0xFFF57C00, 9, CategoryType.INCOME),
    _predefined(OTHER_INCOME_CATEGORY_ID, "Other", "category", 0xFF9E9E9E, 10, CategoryType.INCOME),
]

PREDEFINED_CATEGORIES = PREDEFINED_EXPENSE_CATEGORIES + PREDEFINED_INCOME_CATEGORIES


class Account(BaseModel):
    """
    Where money comes from (income) or goes to (expenses).

    E.g. "HDFC Credit Card", "Cash Wallet".
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.BANK
    icon: Optional[str] = None
    color: int = Field(default=0xFF00BFA5, ge=0, le=0xFFFFFFFF)
    is_custom: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def default_icon_for_type(self) -> 'Account':
        if not self.icon:
            self.icon = self.type.default_icon
        return self


# The default account for every transaction. It cannot be deleted.
DEFAULT_ACCOUNT_ID = 1

PREDEFINED_ACCOUNTS = [
    Account(
        id=DEFAULT_ACCOUNT_ID,
        name="My Account",
        type=AccountType.BANK,
        icon="bank",
        color=0xFF00BFA5,
        is_custom=False,
        sort_order=1,
    ),
]


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Expense(BaseModel):
    """An expense. The amount is in paise."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    amount: Paise
    category_id: Optional[int] = Field(
        default=None,
        description="None falls back to Misc when saved"
    )
    account_id: int = DEFAULT_ACCOUNT_ID
    date: date
    description: str = Field(default="", max_length=500)
    payment_method: PaymentMethod = PaymentMethod.CASH
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    def display_amount(self) -> str:
        return format_paise(self.amount)

    @staticmethod
    def to_paise(rupee_string: str) -> int:
        return parse_rupees_to_paise(rupee_string)


class Income(BaseModel):
    """An income entry. A refund links back to the expense it refunds."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    amount: Paise
    category_id: Optional[int] = Field(
        default=None,
        description="None falls back to Other when saved"
    )
    source: IncomeSource = IncomeSource.OTHER
    account_id: int = DEFAULT_ACCOUNT_ID
    date: date
    description: str = Field(default="", max_length=500)
    is_recurring: bool = False
    linked_expense_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    @property
    def is_refund(self) -> bool:
        return self.linked_expense_id is not None

    def display_amount(self) -> str:
        return format_paise(self.amount)

    @staticmethod
    def to_paise(rupee_string: str) -> int:
        return parse_rupees_to_paise(rupee_string)


# =============================================================================
# BUDGETS
# =============================================================================

class Budget(BaseModel):
    """
    A monthly spending cap, overall (category_id=None) or per category.

    CRITICAL: At most one budget exists per (category, month, year),
    the overall budget included. Storage enforces this.

    The two notification flags are one-shot latches: each goes from
    False to True the first time its threshold is crossed and never
    goes back. Next month is a new record with fresh latches.
    """

    id: Optional[int] = None
    category_id: Optional[int] = None
    amount: Paise = Field(..., description="Budget limit in paise")
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=9999)
    notification_75_sent: bool = False
    notification_100_sent: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    @property
    def is_overall_budget(self) -> bool:
        return self.category_id is None

    def display_amount(self) -> str:
        return format_paise(self.amount)

    def calculate_progress(self, spent: int) -> float:
        """Percent of the budget spent (0.0 for a zero budget; may exceed 100)."""
        return compute_progress_percent(self.amount, spent)

    def is_notified(self, threshold: int) -> bool:
        return threshold_state(self, threshold) is ThresholdState.NOTIFIED

    def should_notify_75(self, spent: int) -> bool:
        return should_notify(ALERT_THRESHOLD_75, spent, self.amount, self.notification_75_sent)

    def should_notify_100(self, spent: int) -> bool:
        return should_notify(ALERT_THRESHOLD_100, spent, self.amount, self.notification_100_sent)


# =============================================================================
# RECURRING TRANSACTIONS
# =============================================================================

class RecurringTransaction(BaseModel):
    """
    Template for automatically created expenses or income.

    payment_method names a PaymentMethod for expenses or an
    IncomeSource for income; unknown values fall back to CASH / OTHER.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    transaction_type: TransactionType
    amount: Paise
    category_id: Optional[int] = None
    account_id: int = DEFAULT_ACCOUNT_ID
    description: str = Field(default="", max_length=500)
    frequency: RecurringFrequency = RecurringFrequency.MONTHLY
    next_date: date = Field(..., description="Date of the next occurrence")
    last_processed: Optional[date] = Field(
        default=None,
        description="When occurrences were last created (None = never)"
    )
    payment_method: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)

    def display_amount(self) -> str:
        return format_paise(self.amount)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem with user input."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of validating an amount typed by the user.

    Errors block saving. Warnings are shown but the user may go ahead.
    """

    raw_input: str = Field(
        ...,
        description="Exactly what the user typed"
    )
    amount: Optional[int] = Field(
        default=None,
        description="Parsed amount in paise, when parsing succeeded"
    )
    validated_at: datetime = Field(default_factory=utcnow)

    is_valid: bool = Field(
        ...,
        description="No error-level issues"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
