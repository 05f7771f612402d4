"""
SQLAlchemy table definitions for the SQLite backend.

Amounts are INTEGER paise. Enum-like columns hold the enum value as a
string and are parsed leniently on the way out, so an unknown value
left by an older version falls back to a default instead of failing.
"""

from datetime import timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from spendly.models.finance import utcnow

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    icon = Column(String, nullable=False)
    color = Column(Integer, nullable=False)
    is_custom = Column(Boolean, nullable=False)
    sort_order = Column(Integer, nullable=False)
    type = Column(String, nullable=False)


class AccountRow(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    icon = Column(String, nullable=False)
    color = Column(Integer, nullable=False)
    is_custom = Column(Boolean, nullable=False)
    sort_order = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    modified_at = Column(UTCDateTime, nullable=False, default=utcnow)


class ExpenseRow(Base):
    __tablename__ = "expenses"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_expenses_amount"),)

    id = Column(Integer, primary_key=True)
    amount = Column(Integer, nullable=False)
    category_id = Column(Integer, index=True)
    account_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False, default="")
    payment_method = Column(String, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    modified_at = Column(UTCDateTime, nullable=False, default=utcnow)


class IncomeRow(Base):
    __tablename__ = "income"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_income_amount"),)

    id = Column(Integer, primary_key=True)
    amount = Column(Integer, nullable=False)
    category_id = Column(Integer)
    source = Column(String, nullable=False)
    account_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False, index=True)
    description = Column(String, nullable=False, default="")
    is_recurring = Column(Boolean, nullable=False, default=False)
    linked_expense_id = Column(Integer)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    modified_at = Column(UTCDateTime, nullable=False, default=utcnow)


class BudgetRow(Base):
    __tablename__ = "budgets"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_budgets_amount"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_budgets_month"),
    )

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"))
    amount = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    notification_75_sent = Column(Boolean, nullable=False, default=False)
    notification_100_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    modified_at = Column(UTCDateTime, nullable=False, default=utcnow)


# The overall budget has a NULL category, so the slot is unique on COALESCE
Index(
    "idx_budgets_slot",
    func.coalesce(BudgetRow.category_id, 0),
    BudgetRow.month,
    BudgetRow.year,
    unique=True,
)


class RecurringTransactionRow(Base):
    __tablename__ = "recurring_transactions"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_recurring_amount"),)

    id = Column(Integer, primary_key=True)
    transaction_type = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    category_id = Column(Integer)
    account_id = Column(Integer, nullable=False)
    description = Column(String, nullable=False, default="")
    frequency = Column(String, nullable=False)
    next_date = Column(Date, nullable=False)
    last_processed = Column(Date)
    payment_method = Column(String)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    modified_at = Column(UTCDateTime, nullable=False, default=utcnow)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(36), nullable=False, unique=True)
    timestamp = Column(UTCDateTime, nullable=False)
    event_type = Column(String, nullable=False)
    severity = Column(String, nullable=False)
    entity_type = Column(String)
    entity_id = Column(Integer)
    correlation_id = Column(String(36), index=True)
    description = Column(String, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    error_message = Column(String)
    is_user_action = Column(Boolean, nullable=False, default=False)

