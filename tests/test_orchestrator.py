"""
Tests for the end-to-end flows: entry, budgets, startup and queries.

All flows run on in-memory storage; one startup test uses SQLite.
"""

from datetime import date

import pytest

from spendly.config.settings import AppSettings, StorageSettings
from spendly.currency import InvalidFormatError
from spendly.models.audit import AuditEventType
from spendly.models.finance import (
    MISC_EXPENSE_CATEGORY_ID,
    OTHER_INCOME_CATEGORY_ID,
    PREDEFINED_CATEGORIES,
    IncomeSource,
    RecurringTransaction,
    TransactionType,
)
from spendly.orchestrator import SpendlyApp, TransactionEntryError, create_app
from spendly.queries import QueryExecutionError
from spendly.services.notifications import NotificationSender
from spendly.services.storage import (
    DuplicateError,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryCategoryStorage,
    InMemoryDatabase,
    InMemoryExpenseStorage,
    InMemoryIncomeStorage,
    InMemoryRecurringTransactionStorage,
    StorageError,
)


class RecordingSender(NotificationSender):
    """Keeps every alert message."""

    def __init__(self):
        self.messages = []

    async def send(self, alert, message):
        self.messages.append(message)
        return True


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def app(sender):
    return create_app(use_sqlite=False, sender=sender, settings=AppSettings())


async def _audit_types(app):
    return [e.event_type for e in await app.audit_logger._storage.get_recent_events()]


class TestTransactionEntryFlow:
    """Tests for adding, editing and deleting entries."""

    @pytest.mark.asyncio
    async def test_add_expense(self, app):
        """A typed amount is stored as exact paise with fallbacks applied."""
        result = await app.entry.add_expense("₹ 1,234.56", date(2025, 3, 10), description="TV stand")

        assert result.expense.id is not None
        assert result.expense.amount == 123456
        assert result.expense.category_id == MISC_EXPENSE_CATEGORY_ID
        assert result.alerts == []

        stored = await app.expenses.get_expense_by_id(result.expense.id)
        assert stored.amount == 123456
        assert AuditEventType.EXPENSE_SAVED in await _audit_types(app)

    @pytest.mark.asyncio
    async def test_invalid_amount_stores_nothing(self, app):
        """Unparseable input raises before anything is saved."""
        with pytest.raises(InvalidFormatError):
            await app.entry.add_expense("12.34.56", date(2025, 3, 10))

        assert await app.expenses.list_expenses() == []
        assert AuditEventType.INVALID_AMOUNT_REJECTED in await _audit_types(app)

    @pytest.mark.asyncio
    async def test_empty_amount_is_invalid_format(self, app):
        """An empty field is an InvalidFormatError like any other bad input."""
        with pytest.raises(InvalidFormatError):
            await app.entry.add_expense("   ", date(2025, 3, 10))

    @pytest.mark.asyncio
    async def test_zero_amount_rejected(self, app):
        """Zero parses but is refused with the validation attached."""
        with pytest.raises(TransactionEntryError) as exc_info:
            await app.entry.add_expense("0", date(2025, 3, 10))

        assert exc_info.value.validation.issues[0].issue_type == "invalid_value"
        assert await app.expenses.list_expenses() == []

    @pytest.mark.asyncio
    async def test_large_amount_saved_with_warning(self, sender):
        """Suspiciously large amounts are saved and flagged."""
        app = create_app(
            use_sqlite=False,
            sender=sender,
            settings=AppSettings(max_transaction_amount_paise=100000),
        )
        result = await app.entry.add_expense("5000", date(2025, 3, 10))
        assert result.expense.amount == 500000
        assert result.warnings

    @pytest.mark.asyncio
    async def test_expense_triggers_budget_alerts(self, app, sender):
        """The ₹1000 scenario driven through expense entry."""
        await app.create_budget("1000", month=3, year=2025)

        first = await app.entry.add_expense("750", date(2025, 3, 5))
        assert [a.threshold for a in first.alerts] == [75]

        again = await app.entry.add_expense("0.01", date(2025, 3, 6))
        assert again.alerts == []

        second = await app.entry.add_expense("249.99", date(2025, 3, 7))
        assert [a.threshold for a in second.alerts] == [100]

        third = await app.entry.add_expense("100", date(2025, 3, 8))
        assert third.alerts == []
        assert sender.messages == [
            "You've used 75% of your overall budget (₹750.00 of ₹1000.00)",
            "You've used 100% of your overall budget (₹1000.00 of ₹1000.00)",
        ]

    @pytest.mark.asyncio
    async def test_alerts_share_the_expense_correlation_id(self, app):
        """The alert is traceable to the expense that caused it."""
        await app.create_budget("1000", month=3, year=2025)
        result = await app.entry.add_expense("800", date(2025, 3, 5))

        events = await app.audit_logger._storage.get_events_by_correlation_id(result.correlation_id)
        types = [e.event_type for e in events]
        assert types == [AuditEventType.EXPENSE_SAVED, AuditEventType.BUDGET_THRESHOLD_REACHED]

    @pytest.mark.asyncio
    async def test_add_income(self, app):
        """Income falls back to the Other category."""
        income = await app.entry.add_income("50,000", date(2025, 3, 1), source=IncomeSource.SALARY)
        assert income.amount == 5000000
        assert income.category_id == OTHER_INCOME_CATEGORY_ID

    @pytest.mark.asyncio
    async def test_category_zero_is_kept(self, app):
        """An explicit category 0 is stored as given, not replaced by a fallback."""
        result = await app.entry.add_expense("10", date(2025, 3, 1), category_id=0)
        income = await app.entry.add_income("10", date(2025, 3, 1), category_id=0)

        assert result.expense.category_id == 0
        assert income.category_id == 0

    @pytest.mark.asyncio
    async def test_update_expense_rechecks_budget(self, app):
        """Raising an expense's amount can cross a threshold."""
        await app.create_budget("1000", month=3, year=2025)
        result = await app.entry.add_expense("100", date(2025, 3, 5))

        alerts = await app.entry.update_expense(result.expense.model_copy(update={"amount": 80000}))
        assert [a.threshold for a in alerts] == [75]
        assert AuditEventType.EXPENSE_UPDATED in await _audit_types(app)

    @pytest.mark.asyncio
    async def test_delete_keeps_latches(self, app):
        """Deleting spending does not re-arm an alert."""
        budget = await app.create_budget("1000", month=3, year=2025)
        result = await app.entry.add_expense("800", date(2025, 3, 5))

        assert await app.entry.delete_expense(result.expense.id) is True
        assert await app.entry.delete_expense(result.expense.id) is False

        again = await app.entry.add_expense("800", date(2025, 3, 6))
        assert again.alerts == []
        stored = await app.budgets.get_budget_by_id(budget.id)
        assert stored.notification_75_sent is True

    @pytest.mark.asyncio
    async def test_update_and_delete_income(self, app):
        """Income edits are audited."""
        income = await app.entry.add_income("100", date(2025, 3, 1))
        await app.entry.update_income(income.model_copy(update={"amount": 20000}))
        assert (await app.income.get_income_by_id(income.id)).amount == 20000

        assert await app.entry.delete_income(income.id) is True
        types = await _audit_types(app)
        assert AuditEventType.INCOME_UPDATED in types
        assert AuditEventType.INCOME_DELETED in types


class TestBudgetSetup:
    """Tests for SpendlyApp.create_budget."""

    @pytest.mark.asyncio
    async def test_existing_spending_is_checked(self, app, sender):
        """A budget set after the spending fires straight away."""
        await app.entry.add_expense("900", date(2025, 3, 5))
        budget = await app.create_budget("1000", month=3, year=2025)

        assert budget.notification_75_sent is True
        assert len(sender.messages) == 1

    @pytest.mark.asyncio
    async def test_duplicate_budget(self, app):
        """The same month cannot get two overall budgets."""
        await app.create_budget("1000", month=3, year=2025)
        with pytest.raises(DuplicateError):
            await app.create_budget("2000", month=3, year=2025)

    @pytest.mark.asyncio
    async def test_invalid_limit(self, app):
        """Budget limits go through the same codec."""
        with pytest.raises(InvalidFormatError):
            await app.create_budget("one thousand", month=3, year=2025)


class TestStartup:
    """Tests for SpendlyApp.startup."""

    @pytest.mark.asyncio
    async def test_seeds_once(self, app):
        """Predefined data is inserted on first start only."""
        report = await app.startup(today=date(2025, 3, 1))
        assert report.ok
        assert report.categories_seeded == len(PREDEFINED_CATEGORIES)
        assert report.accounts_seeded == 1

        report = await app.startup(today=date(2025, 3, 1))
        assert report.categories_seeded == 0
        assert report.accounts_seeded == 0
        assert len(await app.categories.list_categories()) == len(PREDEFINED_CATEGORIES)

    @pytest.mark.asyncio
    async def test_processes_recurring_and_checks_budgets(self, app, sender):
        """Recurring rent counts toward the month's budget."""
        await app.startup(today=date(2025, 2, 1))
        await app.create_budget("1000", month=3, year=2025)
        await app.recurring.insert_recurring(RecurringTransaction(
            transaction_type=TransactionType.EXPENSE,
            amount=80000,
            description="Rent",
            next_date=date(2025, 3, 1),
        ))

        report = await app.startup(today=date(2025, 3, 2))

        assert report.recurring.created_count == 1
        assert [a.threshold for a in report.alerts] == [75]
        assert len(sender.messages) == 1

    @pytest.mark.asyncio
    async def test_seeding_can_be_disabled(self, sender):
        """seed_predefined_on_startup=False skips seeding."""
        app = create_app(
            use_sqlite=False,
            sender=sender,
            settings=AppSettings(seed_predefined_on_startup=False),
        )
        report = await app.startup(today=date(2025, 3, 1))
        assert report.categories_seeded == 0
        assert await app.categories.list_categories() == []

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self):
        """A failing step is logged, audited and listed; the rest still runs."""

        class BrokenCategories(InMemoryCategoryStorage):
            async def is_predefined_seeded(self):
                raise StorageError("disk full")

        db = InMemoryDatabase()
        audit = InMemoryAuditStorage(db)
        app = SpendlyApp(
            category_storage=BrokenCategories(db),
            account_storage=InMemoryAccountStorage(db),
            expense_storage=InMemoryExpenseStorage(db),
            income_storage=InMemoryIncomeStorage(db),
            budget_storage=InMemoryBudgetStorage(db),
            recurring_storage=InMemoryRecurringTransactionStorage(db),
            audit_storage=audit,
            settings=AppSettings(),
        )

        report = await app.startup(today=date(2025, 3, 1))

        assert report.ok is False
        assert report.failed_steps == ["seed"]
        assert report.recurring is not None
        errors = [e for e in await audit.get_recent_events() if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert errors[0].error_message == "disk full"
        assert errors[0].details == {"step": "seed"}

    @pytest.mark.asyncio
    async def test_startup_on_sqlite(self, tmp_path, sender):
        """The SQLite-backed app seeds and persists."""
        storage = StorageSettings(path=str(tmp_path / "spendly.db"))
        app = create_app(storage_settings=storage, sender=sender, settings=AppSettings())

        report = await app.startup(today=date(2025, 3, 1))
        assert report.ok
        assert (await app.categories.get_category_by_id(13)).name == "Misc"

        await app.create_budget("500", month=3, year=2025, category_id=1)
        result = await app.entry.add_expense("500", date(2025, 3, 2), category_id=1)
        assert [a.threshold for a in result.alerts] == [75, 100]
        assert sender.messages[-1] == (
            "You've used 100% of your Food & Dining budget (₹500.00 of ₹500.00)"
        )


class TestSpendingQueries:
    """Tests for monthly reporting."""

    @pytest.mark.asyncio
    async def test_monthly_summary(self, app):
        """Totals, net and count for a month."""
        await app.entry.add_expense("100", date(2025, 3, 1))
        await app.entry.add_expense("250.50", date(2025, 3, 31))
        await app.entry.add_expense("999", date(2025, 4, 1))
        await app.entry.add_income("1000", date(2025, 3, 15))

        summary = await app.queries.monthly_summary(3, 2025)
        assert summary.total_expenses == 35050
        assert summary.total_income == 100000
        assert summary.net == 64950
        assert summary.expense_count == 2
        assert summary.display_net() == "₹649.50"

    @pytest.mark.asyncio
    async def test_empty_month(self, app):
        """A month without data reports zeros."""
        summary = await app.queries.monthly_summary(2, 2025)
        assert summary.total_expenses == 0
        assert summary.net == 0

    @pytest.mark.asyncio
    async def test_top_categories(self, app):
        """Categories ranked by spending with names and shares."""
        await app.startup(today=date(2025, 3, 1))
        await app.entry.add_expense("300", date(2025, 3, 1), category_id=1)
        await app.entry.add_expense("100", date(2025, 3, 2), category_id=3)
        await app.entry.add_expense("600", date(2025, 3, 3), category_id=3)

        top = await app.queries.top_categories(3, 2025, limit=1)
        assert len(top) == 1
        assert top[0].category_name == "Rent"
        assert top[0].total == 70000
        assert top[0].share_percent == 70.0

    @pytest.mark.asyncio
    async def test_invalid_month(self, app):
        """Months outside 1-12 are a query error."""
        with pytest.raises(QueryExecutionError):
            await app.queries.monthly_summary(13, 2025)
