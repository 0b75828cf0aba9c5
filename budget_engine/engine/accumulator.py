"""
Monthly Balance Accumulator

Carries each category's monthly remaining balance forward into a running
total.

The accumulation window of a year holds every month from January through
the current calendar month, plus any later month that carries a
SalaryMonthFlag. A past year contributes all twelve months; a future year
contributes only its flagged months. Months inside the window count even
with no spending (remaining = budget). Running totals may go negative.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from budget_engine.engine.summary import LedgerIndex
from budget_engine.models.ledger import ZERO, MonthKey, months_of_year


def accumulation_window(
    year: int,
    today: date,
    salary_months: Iterable[MonthKey] = (),
) -> list[MonthKey]:
    """Months of `year` that participate in accumulation as of `today`."""
    current = MonthKey.of(today)
    flagged = set(salary_months)
    return [
        month for month in months_of_year(year)
        if month <= current or month in flagged
    ]


def lifetime_window(
    start_year: int,
    today: date,
    salary_months: Iterable[MonthKey] = (),
) -> list[MonthKey]:
    """
    Every month from January of `start_year` through the current month,
    plus flagged months after the current month in any year.
    """
    current = MonthKey.of(today)
    flagged = set(salary_months)
    months = []
    for year in range(start_year, current.year + 1):
        months.extend(m for m in months_of_year(year) if m <= current)
    months.extend(sorted(m for m in flagged if m > current))
    return months


def accumulate(index: LedgerIndex, months: Iterable[MonthKey]) -> dict[str, Decimal]:
    """
    Sum remaining balances per category over the given months.

    Categories with no row in any of the months are absent from the result.
    """
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for month in months:
        for summary in index.summarize(month):
            totals[summary.category] += summary.remaining
    return dict(sorted(totals.items(), key=lambda item: item[0].lower()))


def accumulated_by_category(
    index: LedgerIndex,
    year: int,
    today: date,
) -> dict[str, Decimal]:
    window = accumulation_window(year, today, index.snapshot.salary_month_keys)
    return accumulate(index, window)


def accumulated_balance(
    index: LedgerIndex,
    category: str,
    year: int,
    today: date,
) -> Decimal:
    return accumulated_by_category(index, year, today).get(category, ZERO)


def lifetime_accumulated_by_category(
    index: LedgerIndex,
    start_year: int,
    today: date,
) -> dict[str, Decimal]:
    window = lifetime_window(start_year, today, index.snapshot.salary_month_keys)
    return accumulate(index, window)


def remaining_for_month(index: LedgerIndex, category: str, month: MonthKey) -> Decimal:
    summary = index.summary_for(category, month)
    return summary.remaining if summary else ZERO


def remaining_grid(index: LedgerIndex, year: int) -> dict[str, dict[int, Decimal]]:
    """
    Remaining balance per category per month of `year`, for analytics.

    Every listed category gets all twelve months; months without a row are 0.
    """
    grid: dict[str, dict[int, Decimal]] = {}
    for month in months_of_year(year):
        for summary in index.summarize(month):
            row = grid.setdefault(
                summary.category,
                {m: ZERO for m in range(1, 13)},
            )
            row[month.month] = summary.remaining
    return dict(sorted(grid.items(), key=lambda item: item[0].lower()))
