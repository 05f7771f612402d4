"""
Budget evaluation package.

The monitor lives in spendly.budgets.monitor and is imported from there;
this package only exposes the pure evaluator so that models can use it.
"""

from spendly.budgets.evaluator import (
    ALERT_THRESHOLD_75,
    ALERT_THRESHOLD_100,
    ALERT_THRESHOLDS,
    BudgetAlert,
    ThresholdState,
    compute_progress_percent,
    evaluate_budget,
    latch_field,
    mark_notified,
    should_notify,
    threshold_state,
)

__all__ = [
    "ALERT_THRESHOLD_75",
    "ALERT_THRESHOLD_100",
    "ALERT_THRESHOLDS",
    "BudgetAlert",
    "ThresholdState",
    "compute_progress_percent",
    "evaluate_budget",
    "latch_field",
    "mark_notified",
    "should_notify",
    "threshold_state",
]
