"""
SQLite Storage Implementation

DESIGN DECISION: Spendly keeps its data in a single local SQLite file because:
1. The app is offline and single-user
2. No database server to set up
3. Backups are a file copy

TRADEOFFS:
- One writer at a time (we retry writes that hit a locked database)
- Sync engine behind an async interface (queries are small and local)

Tables are declared in spendly.services.storage.tables. Every write runs
in its own session transaction; business logic never sees a session.
"""

from datetime import date
from typing import Callable, Optional, TypeVar
from uuid import UUID

import structlog
from sqlalchemy import create_engine, delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.event import listen
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from spendly.budgets import latch_field
from spendly.config import get_settings
from spendly.config.settings import StorageSettings
from spendly.models.finance import (
    Account,
    AccountType,
    Budget,
    Category,
    CategoryType,
    Expense,
    Income,
    IncomeSource,
    PaymentMethod,
    RecurringFrequency,
    RecurringTransaction,
    TransactionType,
    utcnow,
)
from spendly.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
from spendly.services.storage.tables import (
    AccountRow,
    AuditEventRow,
    Base,
    BudgetRow,
    CategoryRow,
    ExpenseRow,
    IncomeRow,
    RecurringTransactionRow,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_locked(exc: BaseException) -> bool:
    return isinstance(exc, OperationalError) and "locked" in str(exc).lower()


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless this is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLiteClient:
    """
    Owns the engine and session factory.

    Creates the engine and tables lazily on first use and retries
    writes that hit a locked database.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self._settings = settings or get_settings().storage
        self._engine: Optional[Engine] = None
        self._sessions: Optional[sessionmaker] = None

    def connect(self) -> sessionmaker:
        if self._sessions is None:
            try:
                engine = create_engine(
                    f"sqlite:///{self._settings.path}",
                    connect_args={
                        "check_same_thread": False,
                        "timeout": self._settings.timeout_seconds,
                    },
                )
                listen(engine, "connect", _enable_foreign_keys)
                Base.metadata.create_all(engine)
            except SQLAlchemyError as e:
                raise ConnectionError(
                    f"Failed to open database {self._settings.path}: {e}"
                ) from e
            self._engine = engine
            self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
            logger.debug("database_opened", path=self._settings.path)
        return self._sessions

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessions = None

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception(_is_locked),
            reraise=True,
        )

    def _execute_write(self, operation: Callable[[Session], T]) -> T:
        sessions = self.connect()
        with sessions.begin() as session:
            return operation(session)

    def write(self, operation: Callable[[Session], T]) -> T:
        """Run operation in its own transaction; commit on success."""
        try:
            return self._retrying()(self._execute_write, operation)
        except IntegrityError as e:
            if "UNIQUE" in str(e.orig):
                raise DuplicateError(str(e.orig)) from e
            raise StorageError(f"Integrity error: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Database write failed: {e}") from e

    def query(self, operation: Callable[[Session], T]) -> T:
        sessions = self.connect()
        try:
            with sessions() as session:
                return operation(session)
        except SQLAlchemyError as e:
            raise StorageError(f"Database query failed: {e}") from e


def _in_range(column, date_from: Optional[date], date_to: Optional[date]) -> list:
    conditions = []
    if date_from:
        conditions.append(column >= date_from)
    if date_to:
        conditions.append(column <= date_to)
    return conditions


def _delete_by_id(model, row_id: int) -> Callable[[Session], bool]:
    def operation(session: Session) -> bool:
        return session.execute(delete(model).where(model.id == row_id)).rowcount > 0
    return operation


def _require(session: Session, model, row_id: Optional[int], label: str):
    row = session.get(model, row_id) if row_id is not None else None
    if row is None:
        raise NotFoundError(f"{label} not found: {row_id}")
    return row


def _insert(row) -> Callable[[Session], int]:
    def operation(session: Session) -> int:
        session.add(row)
        session.flush()
        return row.id
    return operation


class SQLiteCategoryStorage(CategoryStorageInterface):

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_category(row: CategoryRow) -> Category:
        return Category(
            id=row.id,
            name=row.name,
            icon=row.icon,
            color=row.color,
            is_custom=row.is_custom,
            sort_order=row.sort_order,
            type=CategoryType.from_string_or_default(row.type, CategoryType.EXPENSE),
        )

    async def insert_category(self, category: Category) -> int:
        return self._client.write(_insert(CategoryRow(
            id=category.id,
            name=category.name,
            icon=category.icon,
            color=category.color,
            is_custom=category.is_custom,
            sort_order=category.sort_order,
            type=category.type.value,
        )))

    async def update_category(self, category: Category) -> None:
        def operation(session: Session) -> None:
            row = _require(session, CategoryRow, category.id, "Category")
            row.name = category.name
            row.icon = category.icon
            row.color = category.color
            row.is_custom = category.is_custom
            row.sort_order = category.sort_order
            row.type = category.type.value

        self._client.write(operation)

    async def delete_category(self, category_id: int) -> bool:
        # Budgets for the category go with it (ON DELETE CASCADE)
        return self._client.write(_delete_by_id(CategoryRow, category_id))

    async def get_category_by_id(self, category_id: int) -> Optional[Category]:
        def operation(session: Session) -> Optional[Category]:
            row = session.get(CategoryRow, category_id)
            return self._to_category(row) if row else None

        return self._client.query(operation)

    async def list_categories(
        self,
        category_type: Optional[CategoryType] = None,
    ) -> list[Category]:
        stmt = select(CategoryRow).order_by(CategoryRow.type, CategoryRow.sort_order, CategoryRow.id)
        if category_type is not None:
            stmt = stmt.where(CategoryRow.type == category_type.value)
        return self._client.query(
            lambda session: [self._to_category(row) for row in session.scalars(stmt)]
        )

    async def is_predefined_seeded(self) -> bool:
        stmt = select(func.count()).select_from(CategoryRow).where(CategoryRow.is_custom.is_(False))
        return self._client.query(lambda session: session.scalar(stmt)) > 0


class SQLiteAccountStorage(AccountStorageInterface):

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_account(row: AccountRow) -> Account:
        return Account(
            id=row.id,
            name=row.name,
            type=AccountType.from_string_or_default(row.type, AccountType.BANK),
            icon=row.icon,
            color=row.color,
            is_custom=row.is_custom,
            sort_order=row.sort_order,
            created_at=row.created_at,
            modified_at=row.modified_at,
        )

    async def insert_account(self, account: Account) -> int:
        return self._client.write(_insert(AccountRow(
            id=account.id,
            name=account.name,
            type=account.type.value,
            icon=account.icon,
            color=account.color,
            is_custom=account.is_custom,
            sort_order=account.sort_order,
            created_at=account.created_at,
            modified_at=account.modified_at,
        )))

    async def get_account_by_id(self, account_id: int) -> Optional[Account]:
        def operation(session: Session) -> Optional[Account]:
            row = session.get(AccountRow, account_id)
            return self._to_account(row) if row else None

        return self._client.query(operation)

    async def list_accounts(self) -> list[Account]:
        stmt = select(AccountRow).order_by(AccountRow.sort_order, AccountRow.id)
        return self._client.query(
            lambda session: [self._to_account(row) for row in session.scalars(stmt)]
        )


class SQLiteExpenseStorage(ExpenseStorageInterface):

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_expense(row: ExpenseRow) -> Expense:
        return Expense(
            id=row.id,
            amount=row.amount,
            category_id=row.category_id,
            account_id=row.account_id,
            date=row.date,
            description=row.description,
            payment_method=PaymentMethod.from_string_or_default(
                row.payment_method, PaymentMethod.CASH
            ),
            created_at=row.created_at,
            modified_at=row.modified_at,
        )

    async def insert_expense(self, expense: Expense) -> int:
        return self._client.write(_insert(ExpenseRow(
            id=expense.id,
            amount=expense.amount,
            category_id=expense.category_id,
            account_id=expense.account_id,
            date=expense.date,
            description=expense.description,
            payment_method=expense.payment_method.value,
            created_at=expense.created_at,
            modified_at=expense.modified_at,
        )))

    async def update_expense(self, expense: Expense) -> None:
        def operation(session: Session) -> None:
            row = _require(session, ExpenseRow, expense.id, "Expense")
            row.amount = expense.amount
            row.category_id = expense.category_id
            row.account_id = expense.account_id
            row.date = expense.date
            row.description = expense.description
            row.payment_method = expense.payment_method.value
            row.modified_at = utcnow()

        self._client.write(operation)

    async def delete_expense(self, expense_id: int) -> bool:
        return self._client.write(_delete_by_id(ExpenseRow, expense_id))

    async def get_expense_by_id(self, expense_id: int) -> Optional[Expense]:
        def operation(session: Session) -> Optional[Expense]:
            row = session.get(ExpenseRow, expense_id)
            return self._to_expense(row) if row else None

        return self._client.query(operation)

    async def list_expenses(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[int] = None,
        account_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Expense]:
        stmt = select(ExpenseRow).where(*_in_range(ExpenseRow.date, date_from, date_to))
        if category_id is not None:
            stmt = stmt.where(ExpenseRow.category_id == category_id)
        if account_id is not None:
            stmt = stmt.where(ExpenseRow.account_id == account_id)
        stmt = (
            stmt.order_by(ExpenseRow.date.desc(), ExpenseRow.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return self._client.query(
            lambda session: [self._to_expense(row) for row in session.scalars(stmt)]
        )

    async def get_total_spent(
        self,
        date_from: date,
        date_to: date,
        category_id: Optional[int] = None,
    ) -> int:
        stmt = (
            select(func.coalesce(func.sum(ExpenseRow.amount), 0))
            .where(*_in_range(ExpenseRow.date, date_from, date_to))
        )
        if category_id is not None:
            stmt = stmt.where(ExpenseRow.category_id == category_id)
        return self._client.query(lambda session: session.scalar(stmt))

    async def get_totals_by_category(
        self,
        date_from: date,
        date_to: date,
    ) -> dict[Optional[int], int]:
        stmt = (
            select(ExpenseRow.category_id, func.sum(ExpenseRow.amount))
            .where(*_in_range(ExpenseRow.date, date_from, date_to))
            .group_by(ExpenseRow.category_id)
        )
        return self._client.query(
            lambda session: {category_id: total for category_id, total in session.execute(stmt)}
        )

    async def count_expenses(self, date_from: date, date_to: date) -> int:
        stmt = (
            select(func.count())
            .select_from(ExpenseRow)
            .where(*_in_range(ExpenseRow.date, date_from, date_to))
        )
        return self._client.query(lambda session: session.scalar(stmt))


class SQLiteIncomeStorage(IncomeStorageInterface):

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_income(row: IncomeRow) -> Income:
        return Income(
            id=row.id,
            amount=row.amount,
            category_id=row.category_id,
            source=IncomeSource.from_string_or_default(row.source, IncomeSource.OTHER),
            account_id=row.account_id,
            date=row.date,
            description=row.description,
            is_recurring=row.is_recurring,
            linked_expense_id=row.linked_expense_id,
            created_at=row.created_at,
            modified_at=row.modified_at,
        )

    async def insert_income(self, income: Income) -> int:
        return self._client.write(_insert(IncomeRow(
            id=income.id,
            amount=income.amount,
            category_id=income.category_id,
            source=income.source.value,
            account_id=income.account_id,
            date=income.date,
            description=income.description,
            is_recurring=income.is_recurring,
            linked_expense_id=income.linked_expense_id,
            created_at=income.created_at,
            modified_at=income.modified_at,
        )))

    async def update_income(self, income: Income) -> None:
        def operation(session: Session) -> None:
            row = _require(session, IncomeRow, income.id, "Income")
            row.amount = income.amount
            row.category_id = income.category_id
            row.source = income.source.value
            row.account_id = income.account_id
            row.date = income.date
            row.description = income.description
            row.is_recurring = income.is_recurring
            row.linked_expense_id = income.linked_expense_id
            row.modified_at = utcnow()

        self._client.write(operation)

    async def delete_income(self, income_id: int) -> bool:
        return self._client.write(_delete_by_id(IncomeRow, income_id))

    async def get_income_by_id(self, income_id: int) -> Optional[Income]:
        def operation(session: Session) -> Optional[Income]:
            row = session.get(IncomeRow, income_id)
            return self._to_income(row) if row else None

        return self._client.query(operation)

    async def list_income(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Income]:
        stmt = (
            select(IncomeRow)
            .where(*_in_range(IncomeRow.date, date_from, date_to))
            .order_by(IncomeRow.date.desc(), IncomeRow.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return self._client.query(
            lambda session: [self._to_income(row) for row in session.scalars(stmt)]
        )

    async def get_total_income(self, date_from: date, date_to: date) -> int:
        stmt = (
            select(func.coalesce(func.sum(IncomeRow.amount), 0))
            .where(*_in_range(IncomeRow.date, date_from, date_to))
        )
        return self._client.query(lambda session: session.scalar(stmt))


class SQLiteBudgetStorage(BudgetStorageInterface):

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_budget(row: BudgetRow) -> Budget:
        return Budget(
            id=row.id,
            category_id=row.category_id,
            amount=row.amount,
            month=row.month,
            year=row.year,
            notification_75_sent=row.notification_75_sent,
            notification_100_sent=row.notification_100_sent,
            created_at=row.created_at,
            modified_at=row.modified_at,
        )

    def _first(self, stmt) -> Optional[Budget]:
        def operation(session: Session) -> Optional[Budget]:
            row = session.scalars(stmt).first()
            return self._to_budget(row) if row else None

        return self._client.query(operation)

    def _all(self, stmt) -> list[Budget]:
        return self._client.query(
            lambda session: [self._to_budget(row) for row in session.scalars(stmt)]
        )

    async def insert_budget(self, budget: Budget) -> int:
        return self._client.write(_insert(BudgetRow(
            id=budget.id,
            category_id=budget.category_id,
            amount=budget.amount,
            month=budget.month,
            year=budget.year,
            notification_75_sent=budget.notification_75_sent,
            notification_100_sent=budget.notification_100_sent,
            created_at=budget.created_at,
            modified_at=budget.modified_at,
        )))

    async def update_budget(self, budget: Budget) -> None:
        def operation(session: Session) -> None:
            row = _require(session, BudgetRow, budget.id, "Budget")
            row.category_id = budget.category_id
            row.amount = budget.amount
            row.month = budget.month
            row.year = budget.year
            # A stale copy must not clear a latch
            row.notification_75_sent = row.notification_75_sent or budget.notification_75_sent
            row.notification_100_sent = row.notification_100_sent or budget.notification_100_sent
            row.modified_at = utcnow()

        self._client.write(operation)

    async def delete_budget(self, budget_id: int) -> bool:
        return self._client.write(_delete_by_id(BudgetRow, budget_id))

    async def get_budget_by_id(self, budget_id: int) -> Optional[Budget]:
        return self._first(select(BudgetRow).where(BudgetRow.id == budget_id))

    async def list_budgets(self) -> list[Budget]:
        return self._all(select(BudgetRow).order_by(BudgetRow.year.desc(), BudgetRow.month.desc()))

    async def get_budgets_for_month(self, month: int, year: int) -> list[Budget]:
        # Overall budget first, then by category
        return self._all(
            select(BudgetRow)
            .where(BudgetRow.month == month, BudgetRow.year == year)
            .order_by(BudgetRow.category_id.is_not(None), BudgetRow.category_id)
        )

    async def get_overall_budget(self, month: int, year: int) -> Optional[Budget]:
        return self._first(
            select(BudgetRow).where(
                BudgetRow.category_id.is_(None),
                BudgetRow.month == month,
                BudgetRow.year == year,
            )
        )

    async def get_category_budget(
        self,
        category_id: int,
        month: int,
        year: int,
    ) -> Optional[Budget]:
        return self._first(
            select(BudgetRow).where(
                BudgetRow.category_id == category_id,
                BudgetRow.month == month,
                BudgetRow.year == year,
            )
        )

    async def mark_notification_sent(self, budget_id: int, threshold: int) -> None:
        column = latch_field(threshold)

        def operation(session: Session) -> None:
            result = session.execute(
                update(BudgetRow)
                .where(BudgetRow.id == budget_id)
                .values({column: True, "modified_at": utcnow()})
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Budget not found: {budget_id}")

        self._client.write(operation)


class SQLiteRecurringTransactionStorage(RecurringTransactionStorageInterface):

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_recurring(row: RecurringTransactionRow) -> RecurringTransaction:
        return RecurringTransaction(
            id=row.id,
            transaction_type=TransactionType.from_string_or_default(
                row.transaction_type, TransactionType.EXPENSE
            ),
            amount=row.amount,
            category_id=row.category_id,
            account_id=row.account_id,
            description=row.description,
            frequency=RecurringFrequency.from_string_or_default(
                row.frequency, RecurringFrequency.MONTHLY
            ),
            next_date=row.next_date,
            last_processed=row.last_processed,
            payment_method=row.payment_method,
            created_at=row.created_at,
            modified_at=row.modified_at,
        )

    async def insert_recurring(self, recurring: RecurringTransaction) -> int:
        return self._client.write(_insert(RecurringTransactionRow(
            id=recurring.id,
            transaction_type=recurring.transaction_type.value,
            amount=recurring.amount,
            category_id=recurring.category_id,
            account_id=recurring.account_id,
            description=recurring.description,
            frequency=recurring.frequency.value,
            next_date=recurring.next_date,
            last_processed=recurring.last_processed,
            payment_method=recurring.payment_method,
            created_at=recurring.created_at,
            modified_at=recurring.modified_at,
        )))

    async def update_recurring(self, recurring: RecurringTransaction) -> None:
        def operation(session: Session) -> None:
            row = _require(session, RecurringTransactionRow, recurring.id, "Recurring transaction")
            row.transaction_type = recurring.transaction_type.value
            row.amount = recurring.amount
            row.category_id = recurring.category_id
            row.account_id = recurring.account_id
            row.description = recurring.description
            row.frequency = recurring.frequency.value
            row.next_date = recurring.next_date
            row.last_processed = recurring.last_processed
            row.payment_method = recurring.payment_method
            row.modified_at = utcnow()

        self._client.write(operation)

    async def delete_recurring(self, recurring_id: int) -> bool:
        return self._client.write(_delete_by_id(RecurringTransactionRow, recurring_id))

    async def list_recurring(self) -> list[RecurringTransaction]:
        stmt = select(RecurringTransactionRow).order_by(
            RecurringTransactionRow.next_date, RecurringTransactionRow.id
        )
        return self._client.query(
            lambda session: [self._to_recurring(row) for row in session.scalars(stmt)]
        )


class SQLiteAuditStorage(AuditStorageInterface):
    """
    SQLite implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @staticmethod
    def _to_event(row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description,
            details=row.details or {},
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    def _events(self, stmt) -> list[AuditEvent]:
        return self._client.query(
            lambda session: [self._to_event(row) for row in session.scalars(stmt)]
        )

    async def append_event(self, event: AuditEvent) -> bool:
        row = AuditEventRow(
            event_id=str(event.event_id),
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=str(event.correlation_id) if event.correlation_id else None,
            description=event.description,
            details=event.details,
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )
        try:
            self._client.write(_insert(row))
            return True
        except StorageError as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._events(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == str(correlation_id))
            .order_by(AuditEventRow.timestamp, AuditEventRow.id)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        return self._events(
            select(AuditEventRow)
            .where(AuditEventRow.entity_type == entity_type, AuditEventRow.entity_id == entity_id)
            .order_by(AuditEventRow.timestamp, AuditEventRow.id)
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return self._events(
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc(), AuditEventRow.id.desc())
            .limit(limit)
        )
