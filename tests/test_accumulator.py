"""Tests for the monthly balance accumulator."""

from datetime import date
from decimal import Decimal

from conftest import budget, expense, make_snapshot

from budget_engine.engine.accumulator import (
    accumulated_balance,
    accumulated_by_category,
    accumulation_window,
    lifetime_accumulated_by_category,
    lifetime_window,
    remaining_for_month,
    remaining_grid,
)
from budget_engine.engine.summary import LedgerIndex
from budget_engine.models.ledger import MonthKey, SalaryMonthFlag


TODAY = date(2025, 2, 15)


def flag(year: int, month: int) -> SalaryMonthFlag:
    return SalaryMonthFlag(year=year, month=month)


class TestAccumulationWindow:
    """Tests for which months participate."""
    
    def test_current_year_through_current_month(self):
        """January through the current month only."""
        window = accumulation_window(2025, TODAY)
        assert [str(m) for m in window] == ["2025-01", "2025-02"]
    
    def test_flagged_future_month_included(self):
        """A salary-flagged future month joins the window."""
        window = accumulation_window(2025, TODAY, {MonthKey(year=2025, month=4)})
        assert [str(m) for m in window] == ["2025-01", "2025-02", "2025-04"]
    
    def test_past_year_is_complete(self):
        """A past year contributes all twelve months."""
        assert len(accumulation_window(2024, TODAY)) == 12
    
    def test_future_year_only_flagged(self):
        """A future year contributes only its flagged months."""
        assert accumulation_window(2026, TODAY) == []
        assert accumulation_window(2026, TODAY, {MonthKey(year=2026, month=1)}) == [
            MonthKey(year=2026, month=1)
        ]
    
    def test_never_sees_unflagged_future(self):
        """No month after today appears unless it is flagged."""
        flagged = {MonthKey(year=2025, month=7)}
        current = MonthKey.of(TODAY)
        for month in accumulation_window(2025, TODAY, flagged):
            assert month <= current or month in flagged
    
    def test_lifetime_window_spans_years(self):
        """Lifetime covers start year through today plus flagged future months."""
        window = lifetime_window(2024, TODAY, {MonthKey(year=2026, month=3)})
        assert len(window) == 12 + 2 + 1
        assert window[0] == MonthKey(year=2024, month=1)
        assert window[-1] == MonthKey(year=2026, month=3)


class TestAccumulatedBalance:
    """Tests for running totals."""
    
    def test_future_expense_excluded(self):
        """An unflagged March is left out when the current month is February."""
        snapshot = make_snapshot(
            budgets=[
                budget("Food", 2025, 1, "1000"),
                budget("Food", 2025, 2, "1000"),
                budget("Food", 2025, 3, "1000"),
            ],
            expenses=[expense("Food", "300", date(2025, 3, 2))],
        )
        index = LedgerIndex(snapshot)
        assert accumulated_balance(index, "Food", 2025, TODAY) == Decimal("2000")
    
    def test_flagged_future_month_counts(self):
        """Once March is flagged its remaining balance is folded in."""
        snapshot = make_snapshot(
            budgets=[
                budget("Food", 2025, 1, "1000"),
                budget("Food", 2025, 2, "1000"),
                budget("Food", 2025, 3, "1000"),
            ],
            expenses=[expense("Food", "300", date(2025, 3, 2))],
            salary_months=[flag(2025, 3)],
        )
        index = LedgerIndex(snapshot)
        assert accumulated_balance(index, "Food", 2025, TODAY) == Decimal("2700")
    
    def test_overspending_carries_forward(self):
        """Running sums can go negative."""
        snapshot = make_snapshot(
            budgets=[budget("Fuel", 2025, 1, "100"), budget("Fuel", 2025, 2, "100")],
            expenses=[expense("Fuel", "350", date(2025, 1, 9))],
        )
        index = LedgerIndex(snapshot)
        assert accumulated_balance(index, "Fuel", 2025, TODAY) == Decimal("-150")
    
    def test_current_month_without_activity_contributes_budget(self):
        """February with a budget but no spending adds its full budget."""
        snapshot = make_snapshot(budgets=[budget("Rent", 2025, 2, "2000")])
        index = LedgerIndex(snapshot)
        assert accumulated_balance(index, "Rent", 2025, TODAY) == Decimal("2000")
    
    def test_inactive_category_absent(self):
        """Categories without rows do not appear."""
        snapshot = make_snapshot(budgets=[budget("Rent", 2025, 6, "2000")])
        index = LedgerIndex(snapshot)
        assert accumulated_by_category(index, 2025, TODAY) == {}
        assert accumulated_balance(index, "Rent", 2025, TODAY) == Decimal("0")
    
    def test_lifetime_includes_previous_years(self):
        """Lifetime accumulation adds whole past years."""
        snapshot = make_snapshot(budgets=[
            budget("Food", 2024, 6, "500"),
            budget("Food", 2025, 1, "100"),
        ])
        index = LedgerIndex(snapshot)
        assert lifetime_accumulated_by_category(index, 2024, TODAY) == {"Food": Decimal("600")}
        assert lifetime_accumulated_by_category(index, 2025, TODAY) == {"Food": Decimal("100")}


class TestRemaining:
    """Tests for per-month passthrough and the analytics grid."""
    
    def test_remaining_for_month(self):
        """Passthrough to the monthly summary."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "5000")],
            expenses=[expense("Food", "3000", date(2025, 1, 10))],
        )
        index = LedgerIndex(snapshot)
        assert remaining_for_month(index, "Food", MonthKey(year=2025, month=1)) == Decimal("2000")
        assert remaining_for_month(index, "Food", MonthKey(year=2025, month=2)) == Decimal("0")
    
    def test_remaining_grid(self):
        """Every listed category gets twelve months, zero where inactive."""
        snapshot = make_snapshot(budgets=[budget("Food", 2025, 3, "10")])
        grid = remaining_grid(LedgerIndex(snapshot), 2025)
        assert list(grid) == ["Food"]
        assert grid["Food"][3] == Decimal("10")
        assert grid["Food"][4] == Decimal("0")
        assert len(grid["Food"]) == 12
