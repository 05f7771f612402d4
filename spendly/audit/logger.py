"""
Audit trail writer for Spendly.

Saved amounts, rejected input, budget alerts and startup failures all end
up here, as a JSON log line and, when an audit store is attached, as a row
in audit_events. Events written by one user action share a correlation ID.

A failing audit store never breaks the action being audited: the failure
is logged and log() returns False.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from spendly.config import AppSettings, get_settings
from spendly.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from spendly.services.storage import AuditStorageInterface


def configure_logging(settings: Optional[AppSettings] = None) -> str:
    """
    Apply the configured log level and set up structlog for local logging.

    Returns the level name that was applied.
    """
    settings = settings or get_settings().app
    level = settings.effective_log_level

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("spendly").setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return level


configure_logging()


class AuditLogger:
    """
    Writes audit events to the structured log and, optionally, to storage.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_saved(
        self,
        expense_id: int,
        amount: str,
        category_id: Optional[int],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.expense_saved(
            expense_id=expense_id,
            amount=amount,
            category_id=category_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_income_saved(
        self,
        income_id: int,
        amount: str,
        source: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.income_saved(
            income_id=income_id,
            amount=amount,
            source=source,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: int,
        correlation_id: UUID,
    ) -> None:
        """Log an update or delete of an expense or income entry."""
        event = AuditEventBuilder.transaction_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_invalid_amount(
        self,
        raw_input: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.invalid_amount_rejected(
            raw_input=raw_input,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_created(
        self,
        budget_id: int,
        amount: str,
        category_id: Optional[int],
        month: int,
        year: int,
    ) -> None:
        event = AuditEventBuilder.budget_created(
            budget_id=budget_id,
            amount=amount,
            category_id=category_id,
            month=month,
            year=year,
        )
        await self.log(event)

    async def log_budget_threshold_reached(
        self,
        budget_id: Optional[int],
        threshold: int,
        progress_percent: float,
        spent: str,
        limit: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.budget_threshold_reached(
            budget_id=budget_id,
            threshold=threshold,
            progress_percent=progress_percent,
            spent=spent,
            limit=limit,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_notification_failed(
        self,
        budget_id: Optional[int],
        threshold: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.notification_failed(
            budget_id=budget_id,
            threshold=threshold,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_created(
        self,
        recurring_id: Optional[int],
        transaction_type: str,
        occurrence_date: date,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_transaction_created(
            recurring_id=recurring_id,
            transaction_type=transaction_type,
            occurrence_date=occurrence_date,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_processed(
        self,
        processed_count: int,
        created_count: int,
        run_date: date,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_processed(
            processed_count=processed_count,
            created_count=created_count,
            run_date=run_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_categories_seeded(
        self,
        category_count: int,
        account_count: int,
    ) -> None:
        event = AuditEventBuilder.categories_seeded(
            category_count=category_count,
            account_count=account_count,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving an expense).
    Pass it through all subsequent operations, including any budget
    alerts the action triggers.
    """
    return uuid4()
