"""
Category Summary Calculator

Turns the raw ledger facts of one calendar month into per-category
{budget, spent, remaining} rows.

- budgeted: the Budget row for (category, month), 0 when absent
- credited: categorized Credit rows dated in the month
- spent:    paid Expense rows dated in the month (unpaid credit-card
            charges never count)
- remaining = budgeted + credited - spent, and may go negative

Unassigned credits (category is None) never appear here; they live in the
unassigned pool until split. Hidden categories (the salary category and any
configured system names) are skipped.

Everything in this module is a pure read over a LedgerSnapshot: calling it
twice with the same snapshot yields identical output.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from budget_engine.models.ledger import (
    ZERO,
    CategorySummary,
    LedgerSnapshot,
    MonthKey,
)


class MonthTotals(BaseModel):
    """Totals and budget partitions for one month."""

    month: MonthKey
    total_budget: Decimal = ZERO
    total_spent: Decimal = ZERO
    total_remaining: Decimal = ZERO
    over_budget: list[str] = Field(default_factory=list)
    under_budget: list[str] = Field(default_factory=list)
    on_budget: list[str] = Field(default_factory=list)


class LedgerIndex:
    """
    Month-bucketed sums over one snapshot.

    Built once per pipeline run so that summarizing many months does not
    rescan the whole ledger each time.
    """

    def __init__(
        self,
        snapshot: LedgerSnapshot,
        hidden: Iterable[str] = (),
    ):
        self.snapshot = snapshot
        self.hidden = frozenset(hidden)

        self._budgeted: dict[MonthKey, dict[str, Decimal]] = defaultdict(dict)
        self._credited: dict[MonthKey, dict[str, Decimal]] = defaultdict(
            lambda: defaultdict(lambda: ZERO)
        )
        self._spent: dict[MonthKey, dict[str, Decimal]] = defaultdict(
            lambda: defaultdict(lambda: ZERO)
        )

        for budget in snapshot.budgets:
            if budget.category in self.hidden:
                continue
            self._budgeted[budget.month][budget.category] = budget.amount

        for credit in snapshot.credits:
            if credit.is_unassigned or credit.category in self.hidden:
                continue
            self._credited[MonthKey.of(credit.date)][credit.category] += credit.amount

        for expense in snapshot.expenses:
            if expense.category in self.hidden:
                continue
            self._spent[MonthKey.of(expense.date)][expense.category] += expense.amount

    def active_months(self) -> set[MonthKey]:
        """Months with any budget, credit or expense activity."""
        return set(self._budgeted) | set(self._credited) | set(self._spent)

    def categories_in(self, month: MonthKey) -> set[str]:
        return (
            set(self._budgeted.get(month, ()))
            | set(self._credited.get(month, ()))
            | set(self._spent.get(month, ()))
        )

    def summary_for(self, category: str, month: MonthKey) -> Optional[CategorySummary]:
        """Row for one category, or None when it has no budget or activity."""
        if category not in self.categories_in(month):
            return None

        budgeted = self._budgeted.get(month, {}).get(category, ZERO)
        credited = self._credited.get(month, {}).get(category, ZERO)
        spent = self._spent.get(month, {}).get(category, ZERO)
        budget = budgeted + credited

        return CategorySummary(
            category=category,
            month=month,
            budgeted=budgeted,
            credited=credited,
            budget=budget,
            spent=spent,
            remaining=budget - spent,
        )

    def summarize(self, month: MonthKey) -> list[CategorySummary]:
        return [
            self.summary_for(category, month)
            for category in sorted(self.categories_in(month), key=str.lower)
        ]


def summarize(
    snapshot: LedgerSnapshot,
    month: MonthKey,
    hidden: Iterable[str] = (),
) -> list[CategorySummary]:
    """
    Category summaries for one month.

    One entry per category that has a budget or any expense/credit activity
    in that month, ordered by category name.
    """
    return LedgerIndex(snapshot, hidden).summarize(month)


def over_budget_categories(summaries: Iterable[CategorySummary]) -> list[CategorySummary]:
    return [summary for summary in summaries if summary.is_over_budget]


def month_totals(month: MonthKey, summaries: Iterable[CategorySummary]) -> MonthTotals:
    totals = MonthTotals(month=month)
    for summary in summaries:
        totals.total_budget += summary.budget
        totals.total_spent += summary.spent
        totals.total_remaining += summary.remaining
        if summary.remaining < 0:
            totals.over_budget.append(summary.category)
        elif summary.remaining > 0:
            totals.under_budget.append(summary.category)
        else:
            totals.on_budget.append(summary.category)
    return totals


def total_budget(
    snapshot: LedgerSnapshot,
    month: MonthKey,
    hidden: Iterable[str] = (),
) -> Decimal:
    """Sum of declared budgets for the month, hidden categories excluded."""
    hidden = frozenset(hidden)
    return sum(
        (
            budget.amount for budget in snapshot.budgets
            if budget.month == month and budget.category not in hidden
        ),
        ZERO,
    )
