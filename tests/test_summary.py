"""Tests for the category summary calculator."""

from datetime import date
from decimal import Decimal

from conftest import budget, credit, expense, make_snapshot

from budget_engine.engine.summary import (
    LedgerIndex,
    month_totals,
    over_budget_categories,
    summarize,
    total_budget,
)
from budget_engine.models.ledger import CreditCardExpense, MonthKey


JAN = MonthKey(year=2025, month=1)
HIDDEN = frozenset({"Salary"})


class TestSummarize:
    """Tests for per-category monthly summaries."""
    
    def test_budget_minus_spent(self):
        """Budget 5000, expense 3000 on Jan-10 -> remaining 2000."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "5000")],
            expenses=[expense("Food", "3000", date(2025, 1, 10))],
        )
        [food] = summarize(snapshot, JAN)
        assert food.budget == Decimal("5000")
        assert food.spent == Decimal("3000")
        assert food.remaining == Decimal("2000")
    
    def test_missing_budget_is_zero(self):
        """A category with spending but no budget goes negative."""
        snapshot = make_snapshot(expenses=[expense("Fuel", "700", date(2025, 1, 3))])
        [fuel] = summarize(snapshot, JAN)
        assert fuel.budget == Decimal("0")
        assert fuel.remaining == Decimal("-700")
        assert fuel.is_over_budget
    
    def test_expenses_outside_month_ignored(self):
        """Only expenses dated inside the month count."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "100")],
            expenses=[
                expense("Food", "30", date(2024, 12, 31)),
                expense("Food", "40", date(2025, 2, 1)),
            ],
        )
        [food] = summarize(snapshot, JAN)
        assert food.spent == Decimal("0")
    
    def test_unpaid_credit_card_charges_not_spent(self):
        """Unpaid credit-card charges never reduce the budget."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "1000")],
            credit_card_expenses=[CreditCardExpense(
                category="Food",
                amount=Decimal("500"),
                date=date(2025, 1, 5),
            )],
        )
        [food] = summarize(snapshot, JAN)
        assert food.spent == Decimal("0")
        assert food.remaining == Decimal("1000")
    
    def test_categorized_credit_tops_up_budget(self):
        """A categorized credit raises the effective budget."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "1000")],
            credits=[credit("250", date(2025, 1, 20), category="Food")],
        )
        [food] = summarize(snapshot, JAN)
        assert food.budgeted == Decimal("1000")
        assert food.credited == Decimal("250")
        assert food.budget == Decimal("1250")
    
    def test_unassigned_credit_never_counted(self):
        """A credit without category stays out of every summary."""
        snapshot = make_snapshot(credits=[credit("900", date(2025, 1, 4))])
        assert summarize(snapshot, JAN) == []
    
    def test_hidden_categories_skipped(self):
        """Salary rows never appear as summary rows."""
        snapshot = make_snapshot(
            budgets=[budget("Salary", 2025, 1, "100")],
            credits=[credit("5000", date(2025, 1, 1), category="Salary")],
        )
        assert summarize(snapshot, JAN, HIDDEN) == []
    
    def test_budget_without_activity_has_row(self):
        """A budgeted category with no spending still reports its budget."""
        snapshot = make_snapshot(budgets=[budget("Rent", 2025, 1, "2000")])
        [rent] = summarize(snapshot, JAN)
        assert rent.remaining == Decimal("2000")
    
    def test_no_spurious_rows(self):
        """Categories with no budget and no activity produce no row."""
        snapshot = make_snapshot(budgets=[budget("Rent", 2025, 2, "2000")])
        assert summarize(snapshot, JAN) == []
    
    def test_idempotent(self):
        """Summarizing twice without mutation yields identical output."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "5000"), budget("Rent", 2025, 1, "100")],
            expenses=[expense("Food", "3000", date(2025, 1, 10))],
            credits=[credit("20", date(2025, 1, 11), category="Rent")],
        )
        assert summarize(snapshot, JAN) == summarize(snapshot, JAN)
    
    def test_no_penny_drift(self):
        """Many small decimal amounts sum exactly."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "100")],
            expenses=[expense("Food", "0.10", date(2025, 1, 1)) for _ in range(300)],
        )
        [food] = summarize(snapshot, JAN)
        assert food.spent == Decimal("30.00")
        assert food.remaining == Decimal("70.00")
    
    def test_rows_sorted_by_name(self):
        """Rows come back in case-insensitive name order."""
        snapshot = make_snapshot(budgets=[
            budget("travel", 2025, 1, "1"),
            budget("Food", 2025, 1, "1"),
            budget("Bills", 2025, 1, "1"),
        ])
        assert [s.category for s in summarize(snapshot, JAN)] == ["Bills", "Food", "travel"]


class TestMonthTotals:
    """Tests for totals and budget partitions."""
    
    def test_partitions(self):
        """Over, under and exactly on budget are separated."""
        snapshot = make_snapshot(
            budgets=[
                budget("Food", 2025, 1, "100"),
                budget("Rent", 2025, 1, "100"),
                budget("Fuel", 2025, 1, "100"),
            ],
            expenses=[
                expense("Food", "150", date(2025, 1, 2)),
                expense("Rent", "100", date(2025, 1, 2)),
                expense("Fuel", "40", date(2025, 1, 2)),
            ],
        )
        summaries = summarize(snapshot, JAN)
        totals = month_totals(JAN, summaries)
        
        assert totals.total_budget == Decimal("300")
        assert totals.total_spent == Decimal("290")
        assert totals.total_remaining == Decimal("10")
        assert totals.over_budget == ["Food"]
        assert totals.on_budget == ["Rent"]
        assert totals.under_budget == ["Fuel"]
        assert [s.category for s in over_budget_categories(summaries)] == ["Food"]
    
    def test_total_budget_excludes_hidden(self):
        """The month's total budget leaves out the salary category."""
        snapshot = make_snapshot(budgets=[
            budget("Food", 2025, 4, "3000"),
            budget("Rent", 2025, 4, "2000"),
            budget("Salary", 2025, 4, "999"),
            budget("Food", 2025, 5, "10"),
        ])
        april = MonthKey(year=2025, month=4)
        assert total_budget(snapshot, april, HIDDEN) == Decimal("5000")


class TestLedgerIndex:
    """Tests for the month-bucketed index."""
    
    def test_active_months(self):
        """Active months cover budgets, credits and expenses."""
        snapshot = make_snapshot(
            budgets=[budget("Food", 2025, 1, "1")],
            expenses=[expense("Food", "1", date(2025, 3, 1))],
            credits=[credit("1", date(2025, 5, 1), category="Food")],
        )
        index = LedgerIndex(snapshot)
        assert index.active_months() == {
            MonthKey(year=2025, month=1),
            MonthKey(year=2025, month=3),
            MonthKey(year=2025, month=5),
        }
    
    def test_summary_for_absent_category(self):
        """An inactive category has no summary."""
        index = LedgerIndex(make_snapshot())
        assert index.summary_for("Food", JAN) is None
