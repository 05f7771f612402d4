"""Budget alert delivery."""

from spendly.services.notifications.sender import (
    LogNotificationSender,
    NotificationSender,
    build_budget_alert_message,
)

__all__ = [
    "LogNotificationSender",
    "NotificationSender",
    "build_budget_alert_message",
]
