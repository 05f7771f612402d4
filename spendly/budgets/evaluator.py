"""
Budget Threshold Evaluator

Decides when a monthly budget should raise an alert.

Each budget carries two one-shot latches, one for 75% and one for 100%.
A latch goes from PENDING to NOTIFIED exactly once and never resets;
a new month gets a new budget record with fresh latches.

Everything here is pure. The caller reads the latch, asks should_notify,
acts on a True answer and then persists the flipped latch. That
read-decide-write sequence must be serialised by the caller
(see spendly.budgets.monitor.BudgetMonitor).
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from spendly.models.finance import Budget


ALERT_THRESHOLD_75 = 75
ALERT_THRESHOLD_100 = 100
ALERT_THRESHOLDS = (ALERT_THRESHOLD_75, ALERT_THRESHOLD_100)

# Latch attribute on Budget for each supported threshold
_LATCH_FIELDS = {
    ALERT_THRESHOLD_75: "notification_75_sent",
    ALERT_THRESHOLD_100: "notification_100_sent",
}

Threshold = Union[int, float]


class ThresholdState(str, Enum):
    """Per-threshold latch state of a budget."""
    PENDING = "pending"
    NOTIFIED = "notified"


class BudgetAlert(BaseModel):
    """A threshold that should be notified now."""

    budget_id: Optional[int] = None
    category_id: Optional[int] = None
    threshold: int = Field(..., description="Threshold percent that was crossed")
    progress_percent: float = Field(..., ge=0)
    spent: int = Field(..., ge=0, description="Amount spent in paise")
    limit: int = Field(..., ge=0, description="Budget limit in paise")
    month: int = Field(..., ge=1, le=12)
    year: int

    @property
    def is_overall(self) -> bool:
        return self.category_id is None


def compute_progress_percent(limit: int, spent: int) -> float:
    """
    Spent as a percentage of the limit.

    Returns 0.0 for a zero limit instead of dividing by zero.
    The result may exceed 100, and is inf when it is beyond float range.
    """
    if limit <= 0:
        return 0.0
    return float(Decimal(spent) * 100 / Decimal(limit))


def _reached(threshold: Threshold, spent: int, limit: int) -> bool:
    if limit <= 0:
        # progress is defined as 0 for an empty budget
        return 0 >= threshold
    return Decimal(spent) * 100 >= Decimal(str(threshold)) * limit


def should_notify(
    threshold_percent: Threshold,
    spent: int,
    limit: int,
    already_notified: bool,
) -> bool:
    """
    True iff the threshold has not fired yet and progress >= threshold.

    The comparison is exact (spent * 100 >= threshold * limit), so a value
    sitting exactly on the boundary always counts as reached.
    """
    if already_notified:
        return False
    return _reached(threshold_percent, spent, limit)


def latch_field(threshold: int) -> str:
    try:
        return _LATCH_FIELDS[threshold]
    except KeyError:
        raise ValueError(
            f"Unsupported alert threshold: {threshold}. "
            f"Supported: {ALERT_THRESHOLDS}"
        ) from None


def threshold_state(budget: "Budget", threshold: int) -> ThresholdState:
    """Current latch state of one threshold."""
    if getattr(budget, latch_field(threshold)):
        return ThresholdState.NOTIFIED
    return ThresholdState.PENDING


def evaluate_budget(budget: "Budget", spent: int) -> list[BudgetAlert]:
    """
    Alerts that should fire for this budget given the amount spent.

    Jumping straight past 100% fires both thresholds in one pass.
    """
    progress = compute_progress_percent(budget.amount, spent)
    alerts = []
    for threshold in ALERT_THRESHOLDS:
        already = threshold_state(budget, threshold) is ThresholdState.NOTIFIED
        if should_notify(threshold, spent, budget.amount, already):
            alerts.append(BudgetAlert(
                budget_id=budget.id,
                category_id=budget.category_id,
                threshold=threshold,
                progress_percent=max(progress, 0.0),
                spent=spent,
                limit=budget.amount,
                month=budget.month,
                year=budget.year,
            ))
    return alerts


def mark_notified(budget: "Budget", threshold: int) -> "Budget":
    """Copy of the budget with the latch for this threshold set."""
    return budget.model_copy(update={latch_field(threshold): True})
