"""
Recurring Transaction Processor

Turns due recurring templates into real expenses and income entries.

Rules:
- A template is due when next_date <= today
- Never processed before: create one entry, at next_date
- Processed before: back-fill every occurrence from next_date up to today,
  but only those inside the lookback window (recurring_lookback_months)
- Afterwards last_processed = today and next_date moves along the
  schedule to the first occurrence after today

Created entries are ordinary expenses and income: no prompt, fully
editable and deletable. Run it once at startup; running it again the
same day creates nothing because next_date is already in the future.
"""

import calendar
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from spendly.audit import AuditLogger, create_correlation_id
from spendly.config import get_settings
from spendly.config.settings import AppSettings
from spendly.currency import format_paise
from spendly.models.finance import (
    MISC_EXPENSE_CATEGORY_ID,
    OTHER_INCOME_CATEGORY_ID,
    Expense,
    Income,
    IncomeSource,
    PaymentMethod,
    RecurringFrequency,
    RecurringTransaction,
    TransactionType,
)
from spendly.services.storage import (
    ExpenseStorageInterface,
    IncomeStorageInterface,
    RecurringTransactionStorageInterface,
)

logger = structlog.get_logger(__name__)


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of the target month."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def calculate_next_date(day: date, frequency: RecurringFrequency) -> date:
    """
    Next occurrence after `day`.

    MONTHLY clamps to the month end (Jan 31 -> Feb 28, or Feb 29 in a
    leap year). The clamped day carries forward: Feb 28 -> Mar 28.
    """
    if frequency == RecurringFrequency.DAILY:
        return day + timedelta(days=1)
    if frequency == RecurringFrequency.WEEKLY:
        return day + timedelta(weeks=1)
    return add_months(day, 1)


class RecurringRunResult(BaseModel):
    """Outcome of one processing run."""

    run_date: date
    processed_count: int = Field(default=0, description="Templates that were due")
    created_count: int = Field(default=0, description="Entries created")
    expense_dates: list[date] = Field(
        default_factory=list,
        description="Dates of created expenses, for budget re-evaluation"
    )


class RecurringTransactionProcessor:
    """Creates entries for due recurring templates."""

    def __init__(
        self,
        recurring_storage: RecurringTransactionStorageInterface,
        expense_storage: ExpenseStorageInterface,
        income_storage: IncomeStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._recurring = recurring_storage
        self._expenses = expense_storage
        self._income = income_storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    def occurrences_due(
        self,
        template: RecurringTransaction,
        today: date,
    ) -> list[date]:
        """Dates that need an entry for this template, oldest first."""
        if template.next_date > today:
            return []

        if template.last_processed is None:
            return [template.next_date]

        window_start = add_months(today, -self._settings.recurring_lookback_months)
        occurrences = []
        day = template.next_date
        while day <= today:
            if day >= window_start:
                occurrences.append(day)
            day = calculate_next_date(day, template.frequency)
        return occurrences

    async def _create_entry(self, template: RecurringTransaction, day: date) -> int:
        if template.transaction_type == TransactionType.EXPENSE:
            payment_method = PaymentMethod.CASH
            if template.payment_method:
                payment_method = PaymentMethod.from_string_or_default(
                    template.payment_method, PaymentMethod.CASH
                )
            return await self._expenses.insert_expense(Expense(
                amount=template.amount,
                category_id=(
                    template.category_id if template.category_id is not None
                    else MISC_EXPENSE_CATEGORY_ID
                ),
                account_id=template.account_id,
                date=day,
                description=template.description,
                payment_method=payment_method,
            ))

        source = IncomeSource.OTHER
        if template.payment_method:
            source = IncomeSource.from_string_or_default(
                template.payment_method, IncomeSource.OTHER
            )
        return await self._income.insert_income(Income(
            amount=template.amount,
            category_id=(
                template.category_id if template.category_id is not None
                else OTHER_INCOME_CATEGORY_ID
            ),
            source=source,
            account_id=template.account_id,
            date=day,
            description=template.description,
            # The created entry is a plain one-off
            is_recurring=False,
        ))

    async def process(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringRunResult:
        """
        Process every due template.

        Raises:
            StorageError: If reading or writing fails. Templates handled
                before the failure keep their updates.
        """
        today = today or date.today()
        correlation_id = correlation_id or create_correlation_id()
        result = RecurringRunResult(run_date=today)

        for template in await self._recurring.list_recurring():
            if template.next_date > today:
                continue

            result.processed_count += 1
            for day in self.occurrences_due(template, today):
                await self._create_entry(template, day)
                result.created_count += 1
                if template.transaction_type == TransactionType.EXPENSE:
                    result.expense_dates.append(day)

                if self._audit_logger:
                    await self._audit_logger.log_recurring_created(
                        recurring_id=template.id,
                        transaction_type=template.transaction_type.value,
                        occurrence_date=day,
                        amount=format_paise(template.amount),
                        correlation_id=correlation_id,
                    )

            next_date = template.next_date
            while next_date <= today:
                next_date = calculate_next_date(next_date, template.frequency)

            await self._recurring.update_recurring(template.model_copy(update={
                "next_date": next_date,
                "last_processed": today,
            }))

        logger.info(
            "recurring_processed",
            run_date=today.isoformat(),
            processed_count=result.processed_count,
            created_count=result.created_count,
        )
        if self._audit_logger:
            await self._audit_logger.log_recurring_processed(
                processed_count=result.processed_count,
                created_count=result.created_count,
                run_date=today,
                correlation_id=correlation_id,
            )
        return result
