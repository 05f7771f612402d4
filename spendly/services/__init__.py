"""Services package."""

from spendly.services.notifications import (
    LogNotificationSender,
    NotificationSender,
    build_budget_alert_message,
)
from spendly.services.storage import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Notifications
    "LogNotificationSender",
    "NotificationSender",
    "build_budget_alert_message",
    # Storage errors
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
]
