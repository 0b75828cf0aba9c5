"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Amount present, numeric and greater than zero
- Category present where the entry kind requires one
- This catches malformed form input

STAGE 2 - SEMANTIC VALIDATION:
- Dates far in the future
- Absurd amounts
- Salary below the month's total budget
- Categories unknown to the user's category list
- This catches suspicious but storable data

Errors block the mutation before it reaches the ledger store.
Warnings are reported back to the caller and never stop the write.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Optional

from budget_engine.config import AppSettings, get_settings
from budget_engine.models.ledger import (
    EntryKind,
    ValidationIssue,
    ValidationResult,
)


# Entry kinds that cannot be stored without a category
CATEGORY_REQUIRED = frozenset({
    EntryKind.EXPENSE,
    EntryKind.CREDIT_CARD_EXPENSE,
    EntryKind.BUDGET,
})


class LedgerValidationError(Exception):
    """A mutation was rejected before reaching the ledger store."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Invalid {result.entry_kind.value}: {messages}")


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


class LedgerValidator:
    """
    Validates ledger mutations through a two-stage pipeline.

    Stage 1: Schema validation
    Stage 2: Semantic validation (only when stage 1 passes)
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: Thresholds for the semantic checks.
            today: Clock used for the future-date check.
        """
        self._settings = settings or get_settings().app
        self._today = today or date.today

    def _validate_schema(
        self,
        kind: EntryKind,
        amount,
        category: Optional[str],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        parsed = _to_decimal(amount)

        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif parsed is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message=f"Amount ({amount!r}) is not a number",
                severity="error",
                suggested_fix="Enter the amount as digits, e.g. 1250.50",
            ))
        elif kind == EntryKind.BUDGET and parsed < 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Budget amount cannot be negative",
                severity="error",
            ))
        elif kind != EntryKind.BUDGET and parsed <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))
        elif parsed != parsed.quantize(Decimal("0.01")):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message="Amount cannot have more than two decimal places",
                severity="error",
            ))

        if kind in CATEGORY_REQUIRED and not (category or "").strip():
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message=f"A category is required for this {kind.value.replace('_', ' ')}",
                severity="error",
                suggested_fix="Pick one of your categories",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        kind: EntryKind,
        amount: Decimal,
        category: Optional[str],
        on: Optional[date],
        known_categories: Optional[Iterable[str]],
        total_budget: Optional[Decimal],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if on is not None:
            max_future_date = self._today() + timedelta(
                days=self._settings.future_date_tolerance_days
            )
            if on > max_future_date:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({on}) is far in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))

        if amount > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (₹{amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if (
            kind == EntryKind.SALARY
            and total_budget is not None
            and total_budget > 0
            and amount < total_budget
        ):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="below_budget",
                message=(
                    f"Salary (₹{amount:,.2f}) is below the month's "
                    f"total budget (₹{total_budget:,.2f})"
                ),
                severity="warning",
                suggested_fix="Lower some budgets or check the salary amount",
            ))

        if category and known_categories is not None:
            names = {name.lower() for name in known_categories}
            if category.strip().lower() not in names:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="unknown_category",
                    message=f"Category '{category}' is not in your category list",
                    severity="warning",
                    suggested_fix="Create the category or fix the spelling",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        kind: EntryKind,
        amount,
        category: Optional[str] = None,
        on: Optional[date] = None,
        known_categories: Optional[Iterable[str]] = None,
        total_budget: Optional[Decimal] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            kind: What is being written
            amount: Raw amount as entered
            category: Category name (None for an unassigned credit)
            on: Date of the entry
            known_categories: The user's category names, for the soft check
            total_budget: Month's total budget, for salary entries

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(kind, amount, category)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                kind,
                _to_decimal(amount),
                category,
                on,
                known_categories,
                total_budget,
            )
            all_issues.extend(semantic_issues)

        warnings = [
            issue.message for issue in all_issues
            if issue.severity == "warning"
        ]

        return ValidationResult(
            entry_kind=kind,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def ensure_valid(self, kind: EntryKind, amount, **kwargs) -> ValidationResult:
        """Validate and raise LedgerValidationError on any error-level issue."""
        result = self.validate(kind, amount, **kwargs)
        if not result.is_valid:
            raise LedgerValidationError(result)
        return result

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """Generate a short summary of validation results for display."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.errors:
            lines.append("❌ This entry cannot be saved:")
            for issue in result.errors:
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
