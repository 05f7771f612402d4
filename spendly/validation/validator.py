"""
Two-Stage Amount Validation

DESIGN DECISION: Validation of a typed amount happens in two stages:

STAGE 1 - FORMAT VALIDATION:
- Something was entered at all
- The text parses as a rupee amount
- This catches typos like "12.3.4" or "abc"

STAGE 2 - SEMANTIC VALIDATION:
- Zero amounts
- Unusually large amounts
- This catches values that parse but are probably wrong

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the form can show them to the user.
"""

from typing import Optional

from spendly.config import get_settings
from spendly.config.settings import AppSettings
from spendly.currency import InvalidFormatError, format_paise, parse_rupees_to_paise
from spendly.models.finance import ValidationIssue, ValidationResult


class AmountValidator:
    """
    Validates rupee amounts typed into the expense, income and budget forms.

    Stage 1: Format validation (uses the currency codec)
    Stage 2: Semantic validation (only if stage 1 passed)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _validate_format(
        self,
        raw_input: Optional[str],
        field: str,
    ) -> tuple[Optional[int], list[ValidationIssue]]:
        """
        Stage 1: Format validation.

        Returns: (amount_in_paise_or_None, list_of_issues)
        """
        if raw_input is None or not raw_input.strip():
            return None, [ValidationIssue(
                field=field,
                issue_type="missing",
                message="Amount is required",
                severity="error",
                suggested_fix="Enter an amount such as 120 or 120.50",
            )]

        try:
            return parse_rupees_to_paise(raw_input), []
        except InvalidFormatError as e:
            return None, [ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"'{raw_input}' is not a valid amount: {e.reason}",
                severity="error",
                suggested_fix="Use digits with at most one decimal point, e.g. 1,250.75",
            )]

    def _validate_semantic(
        self,
        amount: int,
        field: str,
    ) -> list[ValidationIssue]:
        """Stage 2: checks on a successfully parsed amount."""
        issues = []

        if amount == 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Check the amount you entered",
            ))

        max_amount = self._settings.max_transaction_amount_paise
        if amount > max_amount:
            issues.append(ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=(
                    f"Amount ({format_paise(amount)}) is above "
                    f"{format_paise(max_amount)} and seems unusually high"
                ),
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return issues

    def validate(
        self,
        raw_input: Optional[str],
        field: str = "amount",
    ) -> ValidationResult:
        """
        Run both validation stages on what the user typed.

        Args:
            raw_input: The text from the amount field
            field: Form field name reported in issues

        Returns:
            ValidationResult with the parsed amount (if any) and all issues
        """
        amount, issues = self._validate_format(raw_input, field)

        if amount is not None:
            issues.extend(self._validate_semantic(amount, field))

        return ValidationResult(
            raw_input=raw_input or "",
            amount=amount,
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show under the amount field.
        """
        if result.is_valid and not result.warnings:
            return f"✅ {format_paise(result.amount)}"

        lines = []

        if result.has_errors:
            lines.append("❌ This amount can't be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
