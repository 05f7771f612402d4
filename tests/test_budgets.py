"""
Tests for budget threshold evaluation and the budget monitor.

The evaluator is pure and tested directly. The monitor is tested
against in-memory storage with a sender that records what it was given.
"""

import asyncio
import math
from datetime import date

import pytest

from spendly.budgets import (
    ALERT_THRESHOLD_75,
    ALERT_THRESHOLD_100,
    ThresholdState,
    compute_progress_percent,
    evaluate_budget,
    latch_field,
    mark_notified,
    should_notify,
    threshold_state,
)
from spendly.budgets.monitor import BudgetMonitor, month_bounds
from spendly.models.audit import AuditEventType
from spendly.models.finance import Budget, Category, CategoryType, Expense
from spendly.audit import AuditLogger
from spendly.services.notifications import NotificationSender
from spendly.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryCategoryStorage,
    InMemoryDatabase,
    InMemoryExpenseStorage,
    NotFoundError,
)


class RecordingSender(NotificationSender):
    """Keeps every alert it is asked to send."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.sent = []
        self.fail = fail
        self.raise_error = raise_error

    async def send(self, alert, message):
        if self.raise_error:
            raise RuntimeError("notification channel closed")
        if self.fail:
            return False
        self.sent.append((alert, message))
        return True


class TestComputeProgressPercent:
    """Tests for progress calculation."""

    def test_zero_limit_is_zero_progress(self):
        """No division by zero for an empty budget."""
        assert compute_progress_percent(limit=0, spent=0) == 0.0
        assert compute_progress_percent(limit=0, spent=50000) == 0.0

    def test_three_quarters(self):
        """7500 of 10000 is 75%."""
        assert compute_progress_percent(limit=10000, spent=7500) == 75.0

    def test_can_exceed_hundred(self):
        """Overspending is reported, not capped."""
        assert compute_progress_percent(limit=10000, spent=15000) == 150.0

    def test_ratio_beyond_float_range_is_inf(self):
        """A ratio too large for a float saturates instead of raising."""
        assert compute_progress_percent(limit=1, spent=10**400) == math.inf

    def test_huge_limit_is_near_zero(self):
        assert compute_progress_percent(limit=10**400, spent=1) == 0.0


class TestShouldNotify:
    """Tests for the one-shot latch decision."""

    def test_fires_at_threshold(self):
        """Reaching the threshold exactly fires."""
        assert should_notify(75, spent=7500, limit=10000, already_notified=False) is True

    def test_latched_threshold_never_fires(self):
        """Once notified, the same inputs do not fire again."""
        assert should_notify(75, spent=7500, limit=10000, already_notified=True) is False

    def test_below_threshold(self):
        """One paisa short does not fire."""
        assert should_notify(75, spent=7499, limit=10000, already_notified=False) is False

    def test_boundary_is_exact(self):
        """Limits that do not divide evenly are compared exactly."""
        # 75% of 3 paise is 2.25 paise
        assert should_notify(75, spent=2, limit=3, already_notified=False) is False
        assert should_notify(75, spent=3, limit=3, already_notified=False) is True
        # 75% of 33333 is 24999.75
        assert should_notify(75, spent=24999, limit=33333, already_notified=False) is False
        assert should_notify(75, spent=25000, limit=33333, already_notified=False) is True

    def test_zero_limit_never_fires(self):
        """Progress on an empty budget is 0, below any threshold."""
        assert should_notify(75, spent=100, limit=0, already_notified=False) is False
        assert should_notify(100, spent=100, limit=0, already_notified=False) is False


class TestLatchState:
    """Tests for reading and setting latches on a Budget."""

    def test_new_budget_is_pending(self):
        """Fresh budgets have both latches pending."""
        budget = Budget(amount=100000, month=3, year=2025)
        assert threshold_state(budget, 75) is ThresholdState.PENDING
        assert threshold_state(budget, 100) is ThresholdState.PENDING

    def test_mark_notified_sets_one_latch(self):
        """Setting the 75% latch leaves the 100% latch alone."""
        budget = Budget(amount=100000, month=3, year=2025)
        updated = mark_notified(budget, 75)
        assert updated.notification_75_sent is True
        assert updated.notification_100_sent is False
        # original is unchanged
        assert budget.notification_75_sent is False

    def test_unsupported_threshold(self):
        """Only 75 and 100 have latches."""
        with pytest.raises(ValueError):
            latch_field(50)


class TestEvaluateBudget:
    """Tests for evaluating one budget."""

    def test_nothing_below_75(self):
        """No alerts at 50%."""
        budget = Budget(amount=100000, month=3, year=2025)
        assert evaluate_budget(budget, 50000) == []

    def test_jump_past_100_fires_both(self):
        """Going from 0 to 120% in one expense sends both alerts."""
        budget = Budget(id=1, amount=100000, month=3, year=2025)
        alerts = evaluate_budget(budget, 120000)
        assert [a.threshold for a in alerts] == [75, 100]
        assert alerts[1].progress_percent == 120.0

    def test_end_to_end_scenario(self):
        """₹1000 budget: 75% fires once, 100% fires once, then silence."""
        budget = Budget(id=1, amount=100000, month=3, year=2025)

        alerts = evaluate_budget(budget, 75000)
        assert [a.threshold for a in alerts] == [ALERT_THRESHOLD_75]
        budget = mark_notified(budget, ALERT_THRESHOLD_75)

        assert evaluate_budget(budget, 75000) == []

        alerts = evaluate_budget(budget, 100000)
        assert [a.threshold for a in alerts] == [ALERT_THRESHOLD_100]
        budget = mark_notified(budget, ALERT_THRESHOLD_100)

        assert evaluate_budget(budget, 100000) == []
        assert evaluate_budget(budget, 500000) == []


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def monitor(db, sender):
    return BudgetMonitor(
        budget_storage=InMemoryBudgetStorage(db),
        expense_storage=InMemoryExpenseStorage(db),
        category_storage=InMemoryCategoryStorage(db),
        sender=sender,
        audit_logger=AuditLogger(InMemoryAuditStorage(db)),
    )


async def _spend(db, amount, day=date(2025, 3, 10), category_id=None):
    await InMemoryExpenseStorage(db).insert_expense(
        Expense(amount=amount, date=day, category_id=category_id)
    )


class TestBudgetMonitor:
    """Tests for the monitor against in-memory storage."""

    def test_month_bounds(self):
        """Month bounds include leap days."""
        assert month_bounds(2, 2024) == (date(2024, 2, 1), date(2024, 2, 29))
        assert month_bounds(12, 2025) == (date(2025, 12, 1), date(2025, 12, 31))

    @pytest.mark.asyncio
    async def test_end_to_end_with_storage(self, db, monitor, sender):
        """Alerts are sent once and latched in storage."""
        budget = await monitor.create_budget(amount=100000, month=3, year=2025)

        await _spend(db, 75000)
        fired = await monitor.evaluate_month(3, 2025)
        assert [a.threshold for a in fired] == [75]

        stored = await InMemoryBudgetStorage(db).get_budget_by_id(budget.id)
        assert stored.notification_75_sent is True
        assert stored.notification_100_sent is False

        assert await monitor.evaluate_month(3, 2025) == []

        await _spend(db, 25000)
        fired = await monitor.evaluate_month(3, 2025)
        assert [a.threshold for a in fired] == [100]

        assert await monitor.evaluate_month(3, 2025) == []
        assert len(sender.sent) == 2
        assert sender.sent[0][1] == "You've used 75% of your overall budget (₹750.00 of ₹1000.00)"

    @pytest.mark.asyncio
    async def test_category_budget_counts_only_its_category(self, db, monitor, sender):
        """Spending in other categories does not move a category budget."""
        await InMemoryCategoryStorage(db).insert_category(
            Category(id=1, name="Food & Dining", icon="restaurant", color=0xFFFF5722,
                     is_custom=False, sort_order=1, type=CategoryType.EXPENSE)
        )
        await monitor.create_budget(amount=100000, month=3, year=2025, category_id=1)

        await _spend(db, 90000, category_id=2)
        assert await monitor.evaluate_month(3, 2025) == []

        await _spend(db, 75000, category_id=1)
        fired = await monitor.evaluate_month(3, 2025)
        assert [a.threshold for a in fired] == [75]
        assert sender.sent[0][1] == (
            "You've used 75% of your Food & Dining budget (₹750.00 of ₹1000.00)"
        )

    @pytest.mark.asyncio
    async def test_other_months_are_ignored(self, db, monitor):
        """Spending in April does not count against March."""
        await monitor.create_budget(amount=100000, month=3, year=2025)
        await _spend(db, 100000, day=date(2025, 4, 1))
        assert await monitor.evaluate_month(3, 2025) == []

    @pytest.mark.asyncio
    async def test_failed_send_leaves_latch_unset(self, db):
        """A failed delivery is retried on the next pass."""
        failing = RecordingSender(fail=True)
        audit = InMemoryAuditStorage(db)
        monitor = BudgetMonitor(
            budget_storage=InMemoryBudgetStorage(db),
            expense_storage=InMemoryExpenseStorage(db),
            sender=failing,
            audit_logger=AuditLogger(audit),
        )
        budget = await monitor.create_budget(amount=100000, month=3, year=2025)
        await _spend(db, 80000)

        assert await monitor.evaluate_month(3, 2025) == []
        stored = await InMemoryBudgetStorage(db).get_budget_by_id(budget.id)
        assert stored.notification_75_sent is False

        events = await audit.get_recent_events()
        assert any(e.event_type == AuditEventType.NOTIFICATION_FAILED for e in events)

        failing.fail = False
        fired = await monitor.evaluate_month(3, 2025)
        assert [a.threshold for a in fired] == [75]

    @pytest.mark.asyncio
    async def test_sender_exception_is_contained(self, db):
        """A sender that raises is treated as a failed send."""
        monitor = BudgetMonitor(
            budget_storage=InMemoryBudgetStorage(db),
            expense_storage=InMemoryExpenseStorage(db),
            sender=RecordingSender(raise_error=True),
        )
        budget = await monitor.create_budget(amount=100000, month=3, year=2025)
        await _spend(db, 100000)

        assert await monitor.evaluate_month(3, 2025) == []
        stored = await InMemoryBudgetStorage(db).get_budget_by_id(budget.id)
        assert stored.notification_75_sent is False
        assert stored.notification_100_sent is False

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_fire_once(self, db, monitor, sender):
        """Parallel passes over the same month send each alert once."""
        await monitor.create_budget(amount=100000, month=3, year=2025)
        await _spend(db, 100000)

        results = await asyncio.gather(*[monitor.evaluate_month(3, 2025) for _ in range(5)])

        assert sum(len(r) for r in results) == 2
        assert sorted(a.threshold for a, _ in sender.sent) == [75, 100]

    @pytest.mark.asyncio
    async def test_threshold_alerts_are_audited(self, db, monitor):
        """Each fired alert leaves an audit event."""
        await monitor.create_budget(amount=100000, month=3, year=2025)
        await _spend(db, 100000)
        await monitor.evaluate_month(3, 2025)

        events = await InMemoryAuditStorage(db).get_recent_events()
        reached = [e for e in events if e.event_type == AuditEventType.BUDGET_THRESHOLD_REACHED]
        assert sorted(e.details["threshold"] for e in reached) == [75, 100]

    @pytest.mark.asyncio
    async def test_duplicate_budget_rejected(self, monitor):
        """One overall budget per month."""
        await monitor.create_budget(amount=100000, month=3, year=2025)
        with pytest.raises(DuplicateError):
            await monitor.create_budget(amount=50000, month=3, year=2025)

    @pytest.mark.asyncio
    async def test_budget_progress(self, db, monitor):
        """Progress shows spent, percent and what is left."""
        budget = await monitor.create_budget(amount=100000, month=3, year=2025)
        await _spend(db, 25000)

        progress = await monitor.get_budget_progress(budget.id)
        assert progress.spent == 25000
        assert progress.progress_percent == 25.0
        assert progress.remaining == 75000
        assert progress.is_exceeded is False
        assert progress.display_remaining() == "₹750.00"

    @pytest.mark.asyncio
    async def test_budget_progress_missing(self, monitor):
        """Unknown budget IDs raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await monitor.get_budget_progress(999)

    @pytest.mark.asyncio
    async def test_month_progress_lists_overall_first(self, db, monitor):
        """The overall budget leads the month view."""
        await monitor.create_budget(amount=50000, month=3, year=2025, category_id=4)
        await monitor.create_budget(amount=100000, month=3, year=2025)

        progress = await monitor.get_month_progress(3, 2025)
        assert [p.budget.category_id for p in progress] == [None, 4]
