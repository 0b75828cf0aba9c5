"""Tests for recurring expense rules and their generation."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from budget_engine.engine.recurring import due_occurrences, is_finished
from budget_engine.models.audit import AuditEventType
from budget_engine.models.ledger import MonthKey, RecurringExpense
from budget_engine.validation import LedgerValidationError


FEB = MonthKey(year=2025, month=2)


def rule(day=10, total=3, start=date(2025, 1, 1), **overrides) -> RecurringExpense:
    return RecurringExpense(
        category="Rent",
        amount=Decimal("1200"),
        day_of_month=day,
        total_occurrences=total,
        remaining_occurrences=overrides.pop("remaining", total),
        start_date=start,
        **overrides,
    )


class TestRecurringModel:
    """Tests for the rule model."""

    def test_remaining_cannot_exceed_total(self):
        """More remaining than total occurrences is rejected."""
        with pytest.raises(ValidationError):
            rule(total=2, remaining=3)

    def test_end_before_start_rejected(self):
        """An end date before the start date is rejected."""
        with pytest.raises(ValidationError):
            rule(end_date=date(2024, 12, 1))

    def test_time_of_day_format(self):
        """Time of day must be a 24-hour HH:MM value."""
        assert rule(time_of_day="23:30").time_of_day == "23:30"
        with pytest.raises(ValidationError):
            rule(time_of_day="25:00")

    def test_day_clamped_to_short_month(self):
        """Day 31 falls on the last day of February."""
        assert rule(day=31).occurrence_in(FEB) == date(2025, 2, 28)
        assert rule(day=31).occurrence_in(MonthKey(year=2024, month=2)) == date(2024, 2, 29)

    def test_default_description(self):
        """Without a description the expense names the rule's category."""
        assert rule().expense_description == "Recurring: Rent"
        assert rule(description="Flat").expense_description == "Flat"


class TestDueOccurrences:
    """Tests for the schedule."""

    def test_catches_up_missed_months(self):
        """Every month from the start up to today is due."""
        assert due_occurrences(rule(), date(2025, 2, 15)) == [
            date(2025, 1, 10),
            date(2025, 2, 10),
        ]

    def test_day_not_reached_yet(self):
        """This month's occurrence waits for its day."""
        assert due_occurrences(rule(day=20), date(2025, 2, 15)) == [date(2025, 1, 20)]

    def test_start_after_day_skips_first_month(self):
        """A rule started after its day first fires the following month."""
        assert due_occurrences(rule(start=date(2025, 1, 20)), date(2025, 2, 15)) == [
            date(2025, 2, 10),
        ]

    def test_capped_by_remaining(self):
        """No more dates than occurrences left."""
        assert due_occurrences(rule(total=1), date(2025, 6, 30)) == [date(2025, 1, 10)]

    def test_generated_months_skipped(self):
        """Months up to last_generated are not produced again."""
        generated = rule(remaining=2, last_generated=MonthKey(year=2025, month=1))
        assert due_occurrences(generated, date(2025, 2, 15)) == [date(2025, 2, 10)]

    def test_end_date_stops_schedule(self):
        """Nothing after the end date is due."""
        bounded = rule(total=12, end_date=date(2025, 2, 5))
        assert due_occurrences(bounded, date(2025, 6, 30)) == [date(2025, 1, 10)]
        assert is_finished(bounded, date(2025, 6, 30)) is True

    def test_inactive_rule(self):
        """An inactive rule is never due."""
        assert due_occurrences(rule(is_active=False), date(2025, 6, 30)) == []


class TestRecurringFlows:
    """Tests for the LedgerService recurring expense flows."""

    def test_trigger_materializes_expenses(self, engine, store, audit_storage):
        """Due occurrences become dated expenses that count as spent."""
        async def scenario():
            await engine.ledger.set_budget("Rent", 2025, 2, "1500")
            created = await engine.ledger.add_recurring_expense(
                "Rent", "1200", day_of_month=10, total_occurrences=3,
                start_date=date(2025, 1, 1),
            )
            result = await engine.ledger.trigger_recurring_expenses()
            await engine.settle()
            again = await engine.ledger.trigger_recurring_expenses()
            return (
                created,
                result,
                again,
                await store.get_recurring_expense(created.id),
                await engine.queries.get_remaining_for_month("Rent", FEB),
                await audit_storage.get_recent_events(limit=1000),
            )

        created, result, again, stored, feb_remaining, events = asyncio.run(scenario())

        assert created.remaining_occurrences == 3
        assert [e.date for e in result.created] == [date(2025, 1, 10), date(2025, 2, 10)]
        assert all(e.description == "Recurring: Rent" for e in result.created)
        assert result.total_amount == Decimal("2400")
        assert again.created == []

        assert stored.remaining_occurrences == 1
        assert stored.last_generated == FEB
        assert stored.is_active is True
        assert feb_remaining == Decimal("300")
        generated = [e for e in events if e.event_type == AuditEventType.RECURRING_EXPENSE_GENERATED]
        assert len(generated) == 2

    def test_rule_deactivated_when_used_up(self, engine, clock):
        """The last occurrence deactivates the rule."""
        async def scenario():
            created = await engine.ledger.add_recurring_expense(
                "Gym", "50", day_of_month=1, total_occurrences=2,
                start_date=date(2025, 1, 1),
            )
            first = await engine.ledger.trigger_recurring_expenses()
            clock.today = date(2025, 3, 2)
            second = await engine.ledger.trigger_recurring_expenses()
            return created, first, second, await engine.ledger.list_recurring_expenses(active_only=True)

        created, first, second, active = asyncio.run(scenario())
        assert len(first.created) == 2
        assert first.completed_rule_ids == [created.id]
        assert second.created == []
        assert active == []

    def test_next_month_catch_up(self, engine, clock):
        """A later run only adds the months since the previous run."""
        async def scenario():
            await engine.ledger.add_recurring_expense(
                "Rent", "1200", day_of_month=10, total_occurrences=6,
                start_date=date(2025, 1, 1),
            )
            await engine.ledger.trigger_recurring_expenses()
            clock.today = date(2025, 4, 10)
            return await engine.ledger.trigger_recurring_expenses()

        result = asyncio.run(scenario())
        assert [e.date for e in result.created] == [date(2025, 3, 10), date(2025, 4, 10)]

    def test_edit_total_below_generated(self, engine):
        """Lowering the total under what was generated ends the rule."""
        async def scenario():
            created = await engine.ledger.add_recurring_expense(
                "Rent", "1200", day_of_month=10, total_occurrences=5,
                start_date=date(2025, 1, 1),
            )
            await engine.ledger.trigger_recurring_expenses()
            return await engine.ledger.edit_recurring_expense(created.id, total_occurrences=1)

        edited = asyncio.run(scenario())
        assert edited.total_occurrences == 1
        assert edited.remaining_occurrences == 0
        assert edited.is_active is False

    def test_delete_keeps_generated_expenses(self, engine, store):
        """Deleting a rule leaves its expenses in the ledger."""
        async def scenario():
            created = await engine.ledger.add_recurring_expense(
                "Rent", "1200", day_of_month=10, total_occurrences=2,
                start_date=date(2025, 2, 1),
            )
            await engine.ledger.trigger_recurring_expenses()
            deleted = await engine.ledger.delete_recurring_expense(created.id)
            return deleted, await store.list_recurring_expenses(), await store.list_expenses()

        deleted, rules, expenses = asyncio.run(scenario())
        assert deleted is True
        assert rules == []
        assert [e.date for e in expenses] == [date(2025, 2, 10)]

    def test_invalid_amount_rejected(self, engine, store):
        """A rule with a zero amount is never stored."""
        async def scenario():
            with pytest.raises(LedgerValidationError):
                await engine.ledger.add_recurring_expense("Rent", "0", 10, 3)
            return await store.list_recurring_expenses()

        assert asyncio.run(scenario()) == []
