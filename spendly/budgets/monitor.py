"""
Budget Monitor

Runs the evaluator against stored data and delivers alerts.

Flow for one (month, year):
1. Read every budget for the month
2. Sum expenses (all of them for the overall budget, one category otherwise)
3. Ask the evaluator which thresholds should fire
4. Send each alert
5. Persist the latch only after a successful send

CRITICAL: Steps 1-5 run under one asyncio.Lock. Two concurrent passes
would both read an unset latch and both send; holding the lock across
read, decide and write makes each alert fire once.

A failed send leaves the latch unset, so the alert is retried on the next
pass. A crash between a successful send and the latch write can repeat
one alert; that window is accepted.
"""

import asyncio
import calendar
from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from spendly.audit import AuditLogger, create_correlation_id
from spendly.budgets.evaluator import BudgetAlert, compute_progress_percent, evaluate_budget
from spendly.currency import format_paise
from spendly.models.finance import Budget
from spendly.services.notifications import (
    LogNotificationSender,
    NotificationSender,
    build_budget_alert_message,
)
from spendly.services.storage import (
    BudgetStorageInterface,
    CategoryStorageInterface,
    ExpenseStorageInterface,
    NotFoundError,
)

logger = structlog.get_logger(__name__)


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class BudgetProgress(BaseModel):
    """A budget with how much of it has been used. For display."""

    budget: Budget
    spent: int = Field(..., ge=0, description="Spent this month in paise")
    progress_percent: float = Field(..., ge=0)

    @property
    def remaining(self) -> int:
        """Paise left; negative once the budget is exceeded."""
        return self.budget.amount - self.spent

    @property
    def is_exceeded(self) -> bool:
        return self.spent > self.budget.amount

    def display_remaining(self) -> str:
        return format_paise(self.remaining)


class BudgetMonitor:
    """
    Checks budgets after spending changes and sends threshold alerts.

    One monitor should be shared by everything that writes expenses,
    since the lock it holds is what keeps alerts one-shot.
    """

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        expense_storage: ExpenseStorageInterface,
        category_storage: Optional[CategoryStorageInterface] = None,
        sender: Optional[NotificationSender] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budget_storage
        self._expenses = expense_storage
        self._categories = category_storage
        self._sender = sender or LogNotificationSender()
        self._audit_logger = audit_logger
        self._lock = asyncio.Lock()

    async def _spent_for(self, budget: Budget) -> int:
        date_from, date_to = month_bounds(budget.month, budget.year)
        return await self._expenses.get_total_spent(
            date_from=date_from,
            date_to=date_to,
            category_id=budget.category_id,
        )

    async def _category_name(self, category_id: Optional[int]) -> Optional[str]:
        if category_id is None:
            return None
        if self._categories:
            category = await self._categories.get_category_by_id(category_id)
            if category:
                return category.name
        return f"category {category_id}"

    async def _deliver(self, alert: BudgetAlert, correlation_id: UUID) -> bool:
        message = build_budget_alert_message(alert, await self._category_name(alert.category_id))
        try:
            delivered = await self._sender.send(alert, message)
            error = None if delivered else "sender reported failure"
        except Exception as e:
            delivered = False
            error = str(e)

        if not delivered:
            logger.warning(
                "budget_alert_not_delivered",
                budget_id=alert.budget_id,
                threshold=alert.threshold,
                error=error,
            )
            if self._audit_logger:
                await self._audit_logger.log_notification_failed(
                    budget_id=alert.budget_id,
                    threshold=alert.threshold,
                    error_message=error,
                    correlation_id=correlation_id,
                )
        return delivered

    async def evaluate_month(
        self,
        month: int,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetAlert]:
        """
        Evaluate every budget of a month and send what is due.

        Returns:
            The alerts that were delivered and latched
        """
        correlation_id = correlation_id or create_correlation_id()
        fired = []

        async with self._lock:
            for budget in await self._budgets.get_budgets_for_month(month, year):
                spent = await self._spent_for(budget)
                for alert in evaluate_budget(budget, spent):
                    if not await self._deliver(alert, correlation_id):
                        continue

                    await self._budgets.mark_notification_sent(budget.id, alert.threshold)
                    fired.append(alert)

                    if self._audit_logger:
                        await self._audit_logger.log_budget_threshold_reached(
                            budget_id=budget.id,
                            threshold=alert.threshold,
                            progress_percent=alert.progress_percent,
                            spent=format_paise(alert.spent),
                            limit=format_paise(alert.limit),
                            correlation_id=correlation_id,
                        )

        logger.debug(
            "budgets_evaluated",
            month=month,
            year=year,
            alerts_fired=len(fired),
        )
        return fired

    async def evaluate_for_date(
        self,
        day: date,
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetAlert]:
        """Evaluate the budgets of the month a transaction falls in."""
        return await self.evaluate_month(day.month, day.year, correlation_id)

    async def create_budget(
        self,
        amount: int,
        month: int,
        year: int,
        category_id: Optional[int] = None,
    ) -> Budget:
        """
        Create a budget for a month. category_id=None is the overall budget.

        Raises:
            DuplicateError: If that month already has this budget
        """
        budget = Budget(amount=amount, month=month, year=year, category_id=category_id)
        budget_id = await self._budgets.insert_budget(budget)
        budget = budget.model_copy(update={"id": budget_id})

        if self._audit_logger:
            await self._audit_logger.log_budget_created(
                budget_id=budget_id,
                amount=format_paise(amount),
                category_id=category_id,
                month=month,
                year=year,
            )
        return budget

    async def get_budget_progress(self, budget_id: int) -> BudgetProgress:
        """
        Raises:
            NotFoundError: If the budget doesn't exist
        """
        budget = await self._budgets.get_budget_by_id(budget_id)
        if budget is None:
            raise NotFoundError(f"Budget not found: {budget_id}")
        spent = await self._spent_for(budget)
        return BudgetProgress(
            budget=budget,
            spent=spent,
            progress_percent=compute_progress_percent(budget.amount, spent),
        )

    async def get_month_progress(self, month: int, year: int) -> list[BudgetProgress]:
        """Progress of every budget in a month, overall budget first."""
        progress = []
        for budget in await self._budgets.get_budgets_for_month(month, year):
            spent = await self._spent_for(budget)
            progress.append(BudgetProgress(
                budget=budget,
                spent=spent,
                progress_percent=compute_progress_percent(budget.amount, spent),
            ))
        return progress
