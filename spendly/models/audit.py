"""
Audit event models for Spendly.

One AuditEvent per saved or rejected amount, budget change, alert,
recurring run and system error. Rows in audit_events are only ever
appended.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from spendly.models.finance import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    INCOME_SAVED = "income_saved"
    INCOME_UPDATED = "income_updated"
    INCOME_DELETED = "income_deleted"
    INVALID_AMOUNT_REJECTED = "invalid_amount_rejected"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"
    BUDGET_THRESHOLD_REACHED = "budget_threshold_reached"
    NOTIFICATION_FAILED = "notification_failed"

    # Recurring transactions
    RECURRING_TRANSACTION_CREATED = "recurring_transaction_created"
    RECURRING_PROCESSED = "recurring_processed"

    # Startup
    CATEGORIES_SEEDED = "categories_seeded"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'budget')"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="Storage ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., an expense and the alerts it triggered)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_saved(expense_id, "₹120.00", category_id, correlation_id)
        event = AuditEventBuilder.budget_threshold_reached(budget_id, 75, ...)
    """

    @staticmethod
    def expense_saved(
        expense_id: Optional[int],
        amount: str,
        category_id: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense saved: {amount}",
            details={
                "amount": amount,
                "category_id": category_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def income_saved(
        income_id: Optional[int],
        amount: str,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_SAVED,
            entity_type="income",
            entity_id=income_id,
            correlation_id=correlation_id,
            description=f"Income saved: {amount}",
            details={
                "amount": amount,
                "source": source,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        action = event_type.value.rsplit("_", 1)[-1]
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {entity_id} {action}",
            is_user_action=True,
        )

    @staticmethod
    def invalid_amount_rejected(
        raw_input: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVALID_AMOUNT_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description="Amount entry rejected",
            details={
                "input": raw_input,
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_created(
        budget_id: Optional[int],
        amount: str,
        category_id: Optional[int],
        month: int,
        year: int,
    ) -> AuditEvent:
        scope = "overall" if category_id is None else f"category {category_id}"
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget of {amount} set for {scope}, {year}-{month:02d}",
            details={
                "amount": amount,
                "category_id": category_id,
                "month": month,
                "year": year,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_threshold_reached(
        budget_id: Optional[int],
        threshold: int,
        progress_percent: float,
        spent: str,
        limit: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_THRESHOLD_REACHED,
            severity=AuditSeverity.WARNING if threshold >= 100 else AuditSeverity.INFO,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget reached {threshold}% ({spent} of {limit})",
            details={
                "threshold": threshold,
                "progress_percent": round(progress_percent, 2),
                "spent": spent,
                "limit": limit,
            },
        )

    @staticmethod
    def notification_failed(
        budget_id: Optional[int],
        threshold: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Could not deliver {threshold}% budget alert",
            error_message=error_message,
            details={"threshold": threshold},
        )

    @staticmethod
    def recurring_transaction_created(
        recurring_id: Optional[int],
        transaction_type: str,
        occurrence_date: date,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_TRANSACTION_CREATED,
            entity_type="recurring_transaction",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Recurring {transaction_type} of {amount} created for {occurrence_date}",
            details={
                "transaction_type": transaction_type,
                "occurrence_date": occurrence_date.isoformat(),
                "amount": amount,
            },
        )

    @staticmethod
    def recurring_processed(
        processed_count: int,
        created_count: int,
        run_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_PROCESSED,
            correlation_id=correlation_id,
            description=(
                f"Processed {processed_count} recurring transactions, "
                f"created {created_count} entries"
            ),
            details={
                "processed_count": processed_count,
                "created_count": created_count,
                "run_date": run_date.isoformat(),
            },
        )

    @staticmethod
    def categories_seeded(
        category_count: int,
        account_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            description=f"Seeded {category_count} categories and {account_count} accounts",
            details={
                "category_count": category_count,
                "account_count": account_count,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
