"""
Credit and Income Analytics

Breaks down the money that came in over a month or a year. Salary credits
count as income; every other credit counts as a credit, with unassigned
ones grouped under one label.
"""

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from budget_engine.models.ledger import (
    CENT,
    UNASSIGNED_LABEL,
    ZERO,
    Credit,
    CreditIncomeAnalytics,
    IncomeShare,
    IncomeTrendPoint,
    MonthKey,
    months_of_year,
)


def period_months(year: int, month: Optional[int] = None) -> list[MonthKey]:
    if month is not None:
        return [MonthKey(year=year, month=month)]
    return months_of_year(year)


def credit_income_analytics(
    credits: Iterable[Credit],
    salary_category: str,
    year: int,
    month: Optional[int] = None,
) -> CreditIncomeAnalytics:
    """
    Totals, per-category shares and a month-by-month trend for the period.

    Credits outside the period are ignored. Shares are sorted by total,
    largest first; percentages are of the period's grand total, to the cent.
    """
    months = period_months(year, month)
    in_period = set(months)

    credited: dict[str, Decimal] = defaultdict(lambda: ZERO)
    income: dict[str, Decimal] = defaultdict(lambda: ZERO)
    trend = {m: IncomeTrendPoint(month=m) for m in months}

    for credit in credits:
        key = MonthKey.of(credit.date)
        if key not in in_period:
            continue
        point = trend[key]
        if credit.category == salary_category:
            income[credit.category] += credit.amount
            point.income += credit.amount
        else:
            credited[credit.category or UNASSIGNED_LABEL] += credit.amount
            point.credits += credit.amount
        point.total += credit.amount

    total_credits = sum(credited.values(), ZERO)
    total_income = sum(income.values(), ZERO)
    grand_total = total_credits + total_income

    shares = []
    for category in set(credited) | set(income):
        total = credited[category] + income[category]
        percentage = ZERO
        if grand_total > 0:
            percentage = (total * 100 / grand_total).quantize(CENT, rounding=ROUND_HALF_UP)
        shares.append(IncomeShare(
            category=category,
            credits=credited[category],
            income=income[category],
            total=total,
            percentage=percentage,
        ))
    shares.sort(key=lambda share: (-share.total, share.category))

    return CreditIncomeAnalytics(
        year=year,
        month=month,
        total_credits=total_credits,
        total_income=total_income,
        category_breakdown=shares,
        monthly_trend=[trend[m] for m in months],
    )
