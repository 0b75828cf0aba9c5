"""
Recurring Expense Schedule

A rule fires once per calendar month on its day of month, from its start
date on, until its occurrences run out or its end date passes. Months the
rule has already produced an expense for are tracked by `last_generated`,
so a missed run catches up on the next one without doubling any month.
"""

from datetime import date

from budget_engine.models.ledger import MonthKey, RecurringExpense


def due_occurrences(rule: RecurringExpense, today: date) -> list[date]:
    """
    Scheduled dates of `rule` that are due on `today` and not yet generated.

    Never returns more dates than the rule has occurrences left.
    """
    if not rule.is_active or rule.remaining_occurrences <= 0:
        return []

    month = rule.last_generated.next() if rule.last_generated else MonthKey.of(rule.start_date)
    current = MonthKey.of(today)

    due = []
    while month <= current and len(due) < rule.remaining_occurrences:
        scheduled = rule.occurrence_in(month)
        month = month.next()
        if scheduled < rule.start_date:
            continue
        if scheduled > today:
            break
        if rule.end_date is not None and scheduled > rule.end_date:
            break
        due.append(scheduled)
    return due


def is_finished(rule: RecurringExpense, today: date) -> bool:
    """True once the rule can never fire again."""
    if rule.remaining_occurrences <= 0:
        return True
    return rule.end_date is not None and rule.end_date < today
