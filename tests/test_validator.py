"""Tests for the two-stage ledger validator."""

from datetime import date
from decimal import Decimal

import pytest

from budget_engine.config import AppSettings
from budget_engine.models.ledger import EntryKind
from budget_engine.validation import LedgerValidationError, LedgerValidator


TODAY = date(2025, 2, 15)


@pytest.fixture
def validator() -> LedgerValidator:
    return LedgerValidator(
        settings=AppSettings(
            max_transaction_amount=Decimal("100000"),
            future_date_tolerance_days=30,
        ),
        today=lambda: TODAY,
    )


class TestSchemaValidation:
    """Tests for stage 1 (errors)."""
    
    def test_valid_expense(self, validator):
        """A well-formed expense passes both stages."""
        result = validator.validate(EntryKind.EXPENSE, "250.50", category="Food", on=TODAY)
        assert result.is_valid
        assert result.schema_valid and result.semantic_valid
        assert result.issues == []
    
    @pytest.mark.parametrize("amount", [None, "abc", "0", "-5", "1.234", "NaN"])
    def test_bad_amount(self, validator, amount):
        """Missing, non-numeric, non-positive and over-precise amounts fail."""
        result = validator.validate(EntryKind.EXPENSE, amount, category="Food")
        assert not result.is_valid
        assert result.errors[0].field == "amount"
    
    def test_zero_budget_allowed(self, validator):
        """A budget may be zero but not negative."""
        assert validator.validate(EntryKind.BUDGET, "0", category="Food").is_valid
        assert not validator.validate(EntryKind.BUDGET, "-1", category="Food").is_valid
    
    def test_category_required(self, validator):
        """Expenses, charges and budgets need a category; credits do not."""
        for kind in (EntryKind.EXPENSE, EntryKind.CREDIT_CARD_EXPENSE, EntryKind.BUDGET):
            result = validator.validate(kind, "10", category="  ")
            assert [i.field for i in result.errors] == ["category"]
        assert validator.validate(EntryKind.CREDIT, "10").is_valid
    
    def test_semantic_stage_skipped_on_schema_error(self, validator):
        """Stage 2 only runs when stage 1 passes."""
        result = validator.validate(EntryKind.EXPENSE, "-1", category="Food", on=date(2030, 1, 1))
        assert result.semantic_valid is False
        assert result.warnings == []


class TestSemanticValidation:
    """Tests for stage 2 (warnings)."""
    
    def test_future_date_warning(self, validator):
        """Dates beyond the tolerance are flagged, not rejected."""
        result = validator.validate(EntryKind.EXPENSE, "10", category="Food", on=date(2025, 6, 1))
        assert result.is_valid
        assert any("future" in w for w in result.warnings)
    
    def test_high_amount_warning(self, validator):
        """Amounts above the threshold are flagged."""
        result = validator.validate(EntryKind.CREDIT, "250000")
        assert result.is_valid
        assert result.issues[0].issue_type == "suspicious_value"
    
    def test_salary_below_budget_warning(self, validator):
        """A salary below the month's total budget is only a warning."""
        result = validator.validate(EntryKind.SALARY, "3000", total_budget=Decimal("5000"))
        assert result.is_valid
        assert result.issues[0].issue_type == "below_budget"
        
        assert validator.validate(EntryKind.SALARY, "3000", total_budget=Decimal("0")).warnings == []
    
    def test_unknown_category_warning(self, validator):
        """Category names are matched case-insensitively."""
        known = ["Food", "Travel"]
        assert validator.validate(
            EntryKind.EXPENSE, "10", category="food", known_categories=known
        ).warnings == []
        result = validator.validate(
            EntryKind.EXPENSE, "10", category="Fuel", known_categories=known
        )
        assert result.is_valid
        assert result.issues[0].issue_type == "unknown_category"


class TestHelpers:
    """Tests for ensure_valid and the display summary."""
    
    def test_ensure_valid_raises(self, validator):
        """Errors surface as LedgerValidationError carrying the result."""
        with pytest.raises(LedgerValidationError) as excinfo:
            validator.ensure_valid(EntryKind.EXPENSE, "0", category="Food")
        assert excinfo.value.result.error_count == 1
        assert str(excinfo.value).startswith("Invalid expense:")
    
    def test_ensure_valid_returns_result(self, validator):
        """Warnings do not raise."""
        result = validator.ensure_valid(EntryKind.CREDIT, "250000")
        assert result.warnings
    
    def test_summary(self, validator):
        """The summary lists errors with their suggested fixes."""
        ok = validator.validate(EntryKind.CREDIT, "10")
        assert validator.get_user_friendly_summary(ok) == "✅ All checks passed!"
        
        bad = validator.validate(EntryKind.EXPENSE, "abc")
        summary = validator.get_user_friendly_summary(bad)
        assert "cannot be saved" in summary
        assert "A category is required for this expense" in summary
        assert "digits" in summary
