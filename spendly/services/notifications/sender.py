"""
Budget Alert Notifications

DESIGN DECISION: Delivery is behind a small interface so that:
1. The budget monitor does not depend on any UI toolkit
2. Tests can record what would have been shown
3. A host app plugs in its own notifier (system tray, push, email)

A sender reports failure by returning False or raising; either way the
monitor leaves the latch unflipped and the alert is retried on the next
evaluation.
"""

from abc import ABC, abstractmethod
from typing import Optional

import structlog

from spendly.budgets import BudgetAlert
from spendly.currency import format_paise

logger = structlog.get_logger(__name__)


def build_budget_alert_message(alert: BudgetAlert, category_name: Optional[str] = None) -> str:
    """
    Text shown to the user for a budget alert.

    Example:
        "You've used 75% of your Food & Dining budget (₹750.00 of ₹1000.00)"
    """
    scope = "overall" if category_name is None else category_name
    return (
        f"You've used {alert.threshold}% of your {scope} budget "
        f"({format_paise(alert.spent)} of {format_paise(alert.limit)})"
    )


class NotificationSender(ABC):
    """Delivers budget alerts to the user."""

    @abstractmethod
    async def send(self, alert: BudgetAlert, message: str) -> bool:
        """
        Deliver one alert.

        Returns:
            True if the user was notified
        """
        pass


class LogNotificationSender(NotificationSender):
    """Writes alerts to the structured log. Default when no UI is attached."""

    async def send(self, alert: BudgetAlert, message: str) -> bool:
        logger.info(
            "budget_alert",
            budget_id=alert.budget_id,
            category_id=alert.category_id,
            threshold=alert.threshold,
            progress_percent=round(alert.progress_percent, 2),
            message=message,
        )
        return True
