"""
Main Orchestrator for Spendly

This module ties together all the components and defines the
end-to-end flows for:
1. Transaction entry (typed amount -> validate -> save -> budget check)
2. Budget setup (typed limit -> validate -> save -> budget check)
3. Startup (seed predefined data -> process recurring -> budget check)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is stored unless its amount parsed exactly
- Every saved expense is followed by a budget evaluation
- Every step is audited

This is the "glue" that hosts (a UI, a CLI, a sync job) call into.
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from spendly.audit import AuditLogger, create_correlation_id
from spendly.budgets import BudgetAlert
from spendly.budgets.monitor import BudgetMonitor
from spendly.config import get_settings
from spendly.config.settings import AppSettings, StorageSettings
from spendly.currency import InvalidFormatError
from spendly.models.audit import AuditEventType
from spendly.models.finance import (
    DEFAULT_ACCOUNT_ID,
    MISC_EXPENSE_CATEGORY_ID,
    OTHER_INCOME_CATEGORY_ID,
    PREDEFINED_ACCOUNTS,
    PREDEFINED_CATEGORIES,
    Budget,
    Expense,
    Income,
    IncomeSource,
    PaymentMethod,
    ValidationResult,
)
from spendly.queries import SpendingQueries
from spendly.recurring import RecurringRunResult, RecurringTransactionProcessor
from spendly.services.notifications import NotificationSender
from spendly.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetStorageInterface,
    CategoryStorageInterface,
    ExpenseStorageInterface,
    IncomeStorageInterface,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryCategoryStorage,
    InMemoryDatabase,
    InMemoryExpenseStorage,
    InMemoryIncomeStorage,
    InMemoryRecurringTransactionStorage,
    RecurringTransactionStorageInterface,
    SQLiteAccountStorage,
    SQLiteAuditStorage,
    SQLiteBudgetStorage,
    SQLiteCategoryStorage,
    SQLiteClient,
    SQLiteExpenseStorage,
    SQLiteIncomeStorage,
    SQLiteRecurringTransactionStorage,
)
from spendly.validation import AmountValidator

logger = structlog.get_logger(__name__)


class TransactionEntryError(Exception):
    """An entry could not be saved. Carries the validation result."""

    def __init__(self, message: str, validation: Optional[ValidationResult] = None):
        super().__init__(message)
        self.validation = validation


class ExpenseEntryResult(BaseModel):
    """A saved expense and the budget alerts it triggered."""

    expense: Expense
    alerts: list[BudgetAlert] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    correlation_id: UUID


class TransactionEntryFlow:
    """
    Orchestrates expense and income entry.

    Flow:
    1. Validate → typed amount through the currency codec
    2. Reject → InvalidFormatError / TransactionEntryError, nothing stored
    3. Save → fallback category and account applied
    4. Check → budgets of the expense's month re-evaluated

    Suspicious amounts (above the configured maximum) are saved and
    reported back as warnings; the form decides whether to ask again.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        income_storage: IncomeStorageInterface,
        budget_monitor: Optional[BudgetMonitor] = None,
        validator: Optional[AmountValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._expenses = expense_storage
        self._income = income_storage
        self._monitor = budget_monitor
        self._validator = validator or AmountValidator()
        self._audit_logger = audit_logger

    async def parse_amount(
        self,
        amount_text: str,
        correlation_id: UUID,
    ) -> ValidationResult:
        """
        Validate a typed amount.

        Raises:
            InvalidFormatError: If the text is not a rupee amount
            TransactionEntryError: If it parses but cannot be saved (zero)
        """
        result = self._validator.validate(amount_text)
        if result.is_valid:
            return result

        reason = "; ".join(issue.message for issue in result.issues if issue.severity == "error")
        if self._audit_logger:
            await self._audit_logger.log_invalid_amount(
                raw_input=amount_text or "",
                reason=reason,
                correlation_id=correlation_id,
            )

        if result.amount is None:
            raise InvalidFormatError(amount_text or "", reason)
        raise TransactionEntryError(reason, validation=result)

    async def _check_budgets(self, day: date, correlation_id: UUID) -> list[BudgetAlert]:
        if self._monitor is None:
            return []
        return await self._monitor.evaluate_for_date(day, correlation_id)

    async def add_expense(
        self,
        amount_text: str,
        expense_date: date,
        category_id: Optional[int] = None,
        account_id: int = DEFAULT_ACCOUNT_ID,
        description: str = "",
        payment_method: PaymentMethod = PaymentMethod.CASH,
        correlation_id: Optional[UUID] = None,
    ) -> ExpenseEntryResult:
        """
        Save an expense typed by the user.

        Returns:
            The stored expense (with its ID) and any budget alerts sent
        """
        correlation_id = correlation_id or create_correlation_id()
        validation = await self.parse_amount(amount_text, correlation_id)

        expense = Expense(
            amount=validation.amount,
            category_id=(
                category_id if category_id is not None else MISC_EXPENSE_CATEGORY_ID
            ),
            account_id=account_id,
            date=expense_date,
            description=description,
            payment_method=payment_method,
        )
        expense_id = await self._expenses.insert_expense(expense)
        expense = expense.model_copy(update={"id": expense_id})

        if self._audit_logger:
            await self._audit_logger.log_expense_saved(
                expense_id=expense_id,
                amount=expense.display_amount(),
                category_id=expense.category_id,
                correlation_id=correlation_id,
            )

        alerts = await self._check_budgets(expense_date, correlation_id)

        return ExpenseEntryResult(
            expense=expense,
            alerts=alerts,
            warnings=validation.warnings,
            correlation_id=correlation_id,
        )

    async def add_income(
        self,
        amount_text: str,
        income_date: date,
        source: IncomeSource = IncomeSource.OTHER,
        category_id: Optional[int] = None,
        account_id: int = DEFAULT_ACCOUNT_ID,
        description: str = "",
        linked_expense_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Income:
        """Save an income entry. Pass linked_expense_id to record a refund."""
        correlation_id = correlation_id or create_correlation_id()
        validation = await self.parse_amount(amount_text, correlation_id)

        income = Income(
            amount=validation.amount,
            category_id=(
                category_id if category_id is not None else OTHER_INCOME_CATEGORY_ID
            ),
            source=source,
            account_id=account_id,
            date=income_date,
            description=description,
            linked_expense_id=linked_expense_id,
        )
        income_id = await self._income.insert_income(income)
        income = income.model_copy(update={"id": income_id})

        if self._audit_logger:
            await self._audit_logger.log_income_saved(
                income_id=income_id,
                amount=income.display_amount(),
                source=source.value,
                correlation_id=correlation_id,
            )
        return income

    async def update_expense(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetAlert]:
        """
        Save an edited expense and re-check its month's budgets.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._expenses.update_expense(expense)

        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                event_type=AuditEventType.EXPENSE_UPDATED,
                entity_type="expense",
                entity_id=expense.id,
                correlation_id=correlation_id,
            )
        return await self._check_budgets(expense.date, correlation_id)

    async def delete_expense(
        self,
        expense_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete an expense. Latches already set stay set."""
        deleted = await self._expenses.delete_expense(expense_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                event_type=AuditEventType.EXPENSE_DELETED,
                entity_type="expense",
                entity_id=expense_id,
                correlation_id=correlation_id or create_correlation_id(),
            )
        return deleted

    async def update_income(
        self,
        income: Income,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Raises:
            NotFoundError: If the income doesn't exist
        """
        await self._income.update_income(income)
        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                event_type=AuditEventType.INCOME_UPDATED,
                entity_type="income",
                entity_id=income.id,
                correlation_id=correlation_id or create_correlation_id(),
            )

    async def delete_income(
        self,
        income_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        deleted = await self._income.delete_income(income_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                event_type=AuditEventType.INCOME_DELETED,
                entity_type="income",
                entity_id=income_id,
                correlation_id=correlation_id or create_correlation_id(),
            )
        return deleted


class StartupReport(BaseModel):
    """What startup did. failed_steps is empty on a clean start."""

    categories_seeded: int = 0
    accounts_seeded: int = 0
    recurring: Optional[RecurringRunResult] = None
    alerts: list[BudgetAlert] = Field(default_factory=list)
    failed_steps: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_steps


class SpendlyApp:
    """
    The assembled application.

    Owns one BudgetMonitor so that every flow shares its lock.
    """

    def __init__(
        self,
        category_storage: CategoryStorageInterface,
        account_storage: AccountStorageInterface,
        expense_storage: ExpenseStorageInterface,
        income_storage: IncomeStorageInterface,
        budget_storage: BudgetStorageInterface,
        recurring_storage: RecurringTransactionStorageInterface,
        audit_storage: Optional[AuditStorageInterface] = None,
        sender: Optional[NotificationSender] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().app
        self.categories = category_storage
        self.accounts = account_storage
        self.expenses = expense_storage
        self.income = income_storage
        self.budgets = budget_storage
        self.recurring = recurring_storage

        self.audit_logger = AuditLogger(audit_storage)
        self.monitor = BudgetMonitor(
            budget_storage=budget_storage,
            expense_storage=expense_storage,
            category_storage=category_storage,
            sender=sender,
            audit_logger=self.audit_logger,
        )
        self.validator = AmountValidator(self._settings)
        self.entry = TransactionEntryFlow(
            expense_storage=expense_storage,
            income_storage=income_storage,
            budget_monitor=self.monitor,
            validator=self.validator,
            audit_logger=self.audit_logger,
        )
        self.recurring_processor = RecurringTransactionProcessor(
            recurring_storage=recurring_storage,
            expense_storage=expense_storage,
            income_storage=income_storage,
            audit_logger=self.audit_logger,
            settings=self._settings,
        )
        self.queries = SpendingQueries(
            expense_storage=expense_storage,
            income_storage=income_storage,
            category_storage=category_storage,
        )

    async def seed_predefined(self) -> tuple[int, int]:
        """
        Insert predefined categories and the default account if missing.

        Returns:
            (categories_inserted, accounts_inserted)
        """
        category_count = 0
        if not await self.categories.is_predefined_seeded():
            for category in PREDEFINED_CATEGORIES:
                if await self.categories.get_category_by_id(category.id) is None:
                    await self.categories.insert_category(category)
                    category_count += 1

        account_count = 0
        for account in PREDEFINED_ACCOUNTS:
            if await self.accounts.get_account_by_id(account.id) is None:
                await self.accounts.insert_account(account)
                account_count += 1

        if category_count or account_count:
            await self.audit_logger.log_categories_seeded(category_count, account_count)
        return category_count, account_count

    async def create_budget(
        self,
        amount_text: str,
        month: int,
        year: int,
        category_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Set a monthly budget from a typed limit.

        Spending already recorded for the month is checked right away.

        Raises:
            InvalidFormatError: If the limit is not a rupee amount
            TransactionEntryError: If the limit is zero
            DuplicateError: If the month already has this budget
        """
        correlation_id = correlation_id or create_correlation_id()
        validation = await self.entry.parse_amount(amount_text, correlation_id)
        budget = await self.monitor.create_budget(
            amount=validation.amount,
            month=month,
            year=year,
            category_id=category_id,
        )
        await self.monitor.evaluate_month(month, year, correlation_id)
        return await self.budgets.get_budget_by_id(budget.id) or budget

    async def _step_failed(
        self,
        report: StartupReport,
        step: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        report.failed_steps.append(step)
        logger.error(
            "startup_step_failed",
            step=step,
            error_type=type(error).__name__,
            error=str(error),
            exc_info=error,
        )
        await self.audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={"step": step},
            correlation_id=correlation_id,
        )

    async def startup(self, today: Optional[date] = None) -> StartupReport:
        """
        Run startup work.

        Steps are independent: a failing step is logged, audited and
        listed in the report, and the remaining steps still run.
        Nothing is re-raised.
        """
        today = today or date.today()
        correlation_id = create_correlation_id()
        report = StartupReport()

        if self._settings.seed_predefined_on_startup:
            try:
                report.categories_seeded, report.accounts_seeded = await self.seed_predefined()
            except Exception as e:
                await self._step_failed(report, "seed", e, correlation_id)

        try:
            report.recurring = await self.recurring_processor.process(today, correlation_id)
        except Exception as e:
            await self._step_failed(report, "recurring", e, correlation_id)

        months = {(today.month, today.year)}
        if report.recurring:
            months.update((d.month, d.year) for d in report.recurring.expense_dates)
        try:
            for month, year in sorted(months, key=lambda m: (m[1], m[0])):
                report.alerts.extend(
                    await self.monitor.evaluate_month(month, year, correlation_id)
                )
        except Exception as e:
            await self._step_failed(report, "budgets", e, correlation_id)

        logger.info(
            "startup_complete",
            categories_seeded=report.categories_seeded,
            accounts_seeded=report.accounts_seeded,
            alerts=len(report.alerts),
            failed_steps=report.failed_steps,
        )
        return report


def create_app(
    use_sqlite: bool = True,
    storage_settings: Optional[StorageSettings] = None,
    sender: Optional[NotificationSender] = None,
    settings: Optional[AppSettings] = None,
) -> SpendlyApp:
    """
    Factory function to create the application.

    Args:
        use_sqlite: Persist to the SQLite file from StorageSettings.
                    Set to False for an in-memory app (tests, demos).
        storage_settings: Overrides the database settings
        sender: Where budget alerts go; defaults to the log
        settings: Overrides the application settings
    """
    if use_sqlite:
        client = SQLiteClient(storage_settings)
        return SpendlyApp(
            category_storage=SQLiteCategoryStorage(client),
            account_storage=SQLiteAccountStorage(client),
            expense_storage=SQLiteExpenseStorage(client),
            income_storage=SQLiteIncomeStorage(client),
            budget_storage=SQLiteBudgetStorage(client),
            recurring_storage=SQLiteRecurringTransactionStorage(client),
            audit_storage=SQLiteAuditStorage(client),
            sender=sender,
            settings=settings,
        )

    db = InMemoryDatabase()
    return SpendlyApp(
        category_storage=InMemoryCategoryStorage(db),
        account_storage=InMemoryAccountStorage(db),
        expense_storage=InMemoryExpenseStorage(db),
        income_storage=InMemoryIncomeStorage(db),
        budget_storage=InMemoryBudgetStorage(db),
        recurring_storage=InMemoryRecurringTransactionStorage(db),
        audit_storage=InMemoryAuditStorage(db),
        sender=sender,
        settings=settings,
    )
