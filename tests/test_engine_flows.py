"""
End-to-end tests for the mutation flows.

Each test drives LedgerService through a wired engine, waits for the
refresh coordinator to settle and reads back through SummaryQueries.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import budget

from budget_engine.models.audit import AuditEventType
from budget_engine.models.ledger import MonthKey, PaymentMethod, SplitAssignment
from budget_engine.orchestrator import build_engine
from budget_engine.services.storage import (
    InMemoryLedgerStore,
    NotFoundError,
    StoreUnavailableError,
)
from budget_engine.validation import LedgerValidationError, LedgerValidator


JAN = MonthKey(year=2025, month=1)
FEB = MonthKey(year=2025, month=2)
MAR = MonthKey(year=2025, month=3)
APR = MonthKey(year=2025, month=4)
MAY = MonthKey(year=2025, month=5)


async def audit_events(audit_storage, event_type):
    return [
        e for e in await audit_storage.get_recent_events(limit=1000)
        if e.event_type == event_type
    ]


class TestScenarios:
    """The reference scenarios of the engine."""
    
    def test_remaining_after_expense(self, engine):
        """Budget 5000 minus a 3000 expense leaves 2000."""
        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 1, "5000")
            await engine.ledger.add_expense("Food", "3000", date(2025, 1, 10))
            await engine.settle()
            return await engine.queries.get_remaining_for_month("Food", JAN)
        
        assert asyncio.run(scenario()) == Decimal("2000")
    
    def test_future_month_excluded_from_accumulation(self, engine):
        """An unflagged future month does not accumulate, even with spending."""
        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 2, "200")
            await engine.ledger.set_budget("Food", 2025, 3, "100")
            await engine.ledger.add_expense("Food", "30", date(2025, 3, 2))
            await engine.settle()
            return (
                await engine.queries.get_accumulated_balance("Food", 2025),
                await engine.queries.get_remaining_for_month("Food", MAR),
            )
        
        accumulated, march_remaining = asyncio.run(scenario())
        assert accumulated == Decimal("200")
        assert march_remaining == Decimal("70")
    
    def test_split_moves_pool_into_categories(self, engine):
        """Splitting 1000 into Food/Travel credits March and empties the pool."""
        async def scenario():
            await engine.ledger.add_credit("1000", date(2025, 2, 5))
            await engine.settle()
            before = await engine.queries.get_unassigned_credits_total()
            
            [entry] = await engine.ledger.list_unassigned()
            await engine.ledger.split_unassigned_credit(entry.id, [
                SplitAssignment(category="Food", amount=Decimal("600"), target_year=2025, target_month=3),
                SplitAssignment(category="Travel", amount=Decimal("400"), target_year=2025, target_month=3),
            ])
            await engine.settle()
            
            return (
                before,
                await engine.queries.get_unassigned_credits_total(),
                await engine.queries.list_unassigned(),
                await engine.queries.get_remaining_for_month("Food", MAR),
                await engine.queries.get_remaining_for_month("Travel", MAR),
            )
        
        before, after, pool, food, travel = asyncio.run(scenario())
        assert before == Decimal("1000")
        assert after == Decimal("0")
        assert pool == []
        assert food == Decimal("600")
        assert travel == Decimal("400")
    
    def test_salary_above_budget_overflows(self, engine, store):
        """8000 against a 5000 budget credits 5000 and pools 3000."""
        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 4, "3000")
            await engine.ledger.set_budget("Rent", 2025, 4, "2000")
            result = await engine.ledger.record_salary(2025, 4, "8000")
            await engine.settle()
            return (
                result,
                await engine.queries.get_unassigned_for_month(2025, 4),
                await store.list_salary_months(),
                await engine.queries.get_accumulated_balance("Food", 2025),
            )
        
        result, pooled, flags, food_accumulated = asyncio.run(scenario())
        assert result.salary_credit.amount == Decimal("5000")
        assert result.salary_credit.category == "Salary"
        assert result.salary_credit.date == date(2025, 4, 1)
        assert result.unassigned_amount == Decimal("3000")
        assert pooled == Decimal("3000")
        assert [flag.month_key for flag in flags] == [APR]
        # April is flagged, so it joins the accumulation window
        assert food_accumulated == Decimal("3000")
    
    def test_credit_card_charge_counts_once_paid(self, engine, store, clock):
        """An unpaid charge is not spent; paying it adds a dated expense."""
        clock.today = date(2025, 5, 10)
        
        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 5, "1000")
            charge = await engine.ledger.add_credit_card_expense(
                "Food", "500", date(2025, 5, 3), description="Groceries"
            )
            await engine.settle()
            [before] = await engine.queries.get_category_summaries(MAY)
            debt = await engine.queries.get_outstanding_debt()
            
            expense = await engine.ledger.pay_credit_card_due(charge.id)
            await engine.settle()
            [after] = await engine.queries.get_category_summaries(MAY)
            return before, debt, expense, after, await store.list_credit_card_expenses(paid=False)
        
        before, debt, expense, after, unpaid = asyncio.run(scenario())
        assert before.spent == Decimal("0")
        assert debt.total == Decimal("500")
        assert debt.charge_count == 1
        assert expense.date == date(2025, 5, 10)
        assert expense.description == "Credit Card Payment: Groceries"
        assert expense.payment_method == PaymentMethod.CREDIT_CARD_DUE_PAYMENT
        assert after.spent == Decimal("500")
        assert after.remaining == Decimal("500")
        assert unpaid == []

    def test_backdated_expense_after_new_year(self, engine, clock):
        """A December expense entered in January lowers the previous year's accumulation."""
        clock.today = date(2025, 12, 20)

        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 12, "1000")
            await engine.settle()
            december = await engine.queries.get_accumulated_balance("Food", 2025)

            clock.today = date(2026, 1, 5)
            await engine.ledger.add_expense("Food", "400", date(2025, 12, 30))
            await engine.settle()
            return december, await engine.queries.get_accumulated_balance("Food", 2025)

        december, january = asyncio.run(scenario())
        assert december == Decimal("1000")
        assert january == Decimal("600")


class TestSalaryFlows:
    """Tests for salary recording and flag housekeeping."""
    
    def test_no_budget_credits_full_salary(self, engine):
        """Without a budget the whole salary goes to the salary category."""
        async def scenario():
            return await engine.ledger.record_salary(2025, 2, "4000")
        
        result = asyncio.run(scenario())
        assert result.salary_credit.amount == Decimal("4000")
        assert result.unassigned_credit is None
        assert result.unassigned_amount == Decimal("0")
    
    def test_salary_date_must_be_in_month(self, engine):
        """A salary dated outside its month is refused."""
        async def scenario():
            await engine.ledger.record_salary(2025, 2, "4000", on=date(2025, 3, 1))
        
        with pytest.raises(ValueError):
            asyncio.run(scenario())
    
    def test_deleting_salary_clears_flag(self, engine, store, audit_storage):
        """Removing the only salary credit of a future month unflags it."""
        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 4, "300")
            result = await engine.ledger.record_salary(2025, 4, "300")
            await engine.settle()
            flagged = await engine.queries.get_accumulated_balance("Food", 2025)
            
            await engine.ledger.delete_credit(result.salary_credit.id)
            await engine.settle()
            return (
                flagged,
                await engine.queries.get_accumulated_balance("Food", 2025),
                await store.list_salary_months(),
                await audit_events(audit_storage, AuditEventType.SALARY_MONTH_CLEARED),
            )
        
        flagged, cleared, flags, events = asyncio.run(scenario())
        assert flagged == Decimal("300")
        assert cleared == Decimal("0")
        assert flags == []
        assert len(events) == 1
        assert events[0].details["month"] == "2025-04"
        assert events[0].details["removed_from_accumulation_window"] is True


class TestBankBalance:
    """Tests for the composed bank balance."""
    
    def test_decomposition(self, engine):
        """Bank balance is accumulated plus unassigned plus the initial balance."""
        async def scenario():
            await engine.ledger.set_initial_bank_balance("-100")
            await engine.ledger.set_budget("Food", 2025, 2, "500")
            await engine.ledger.add_expense("Food", "200", date(2025, 2, 4))
            await engine.ledger.add_credit("1000", date(2025, 2, 1))
            await engine.settle()
            queries = engine.queries
            return (
                await queries.get_bank_balance(),
                await queries.get_total_accumulated_balance(),
                await queries.get_unassigned_credits_total(),
            )
        
        balance, accumulated, unassigned = asyncio.run(scenario())
        assert accumulated == Decimal("300")
        assert unassigned == Decimal("1000")
        assert balance.initial == Decimal("-100")
        assert balance.total == Decimal("1200")
        assert balance.total == accumulated + unassigned + balance.initial
    
    def test_cold_query_derives(self, engine):
        """Queries answer before any refresh has run."""
        async def scenario():
            await engine.store.set_initial_bank_balance(Decimal("25"))
            return await engine.queries.get_bank_balance()
        
        assert asyncio.run(scenario()).total == Decimal("25")
    
    def test_startup_refresh(self, engine, store):
        """A forced refresh warms every cache namespace."""
        async def scenario():
            await store.upsert_budget(budget("Food", 2025, 1, "50"))
            return await engine.refresh()
        
        aggregates = asyncio.run(scenario())
        assert aggregates.bank_balance == Decimal("50")
        assert engine.coordinator.cache.is_warm


class TestCreditCardPayments:
    """Tests for paying credit-card dues."""
    
    def test_bulk_pay_collects_failures(self, engine, audit_storage):
        """A missing charge fails alone; the rest are paid."""
        async def scenario():
            first = await engine.ledger.add_credit_card_expense("Food", "20", date(2025, 2, 1))
            second = await engine.ledger.add_credit_card_expense("Fuel", "30", date(2025, 2, 2))
            missing = uuid4()
            result = await engine.ledger.bulk_pay_credit_card_dues([first.id, missing, second.id])
            await engine.settle()
            return result, missing, await audit_events(
                audit_storage, AuditEventType.CREDIT_CARD_PAYMENT_FAILED
            )
        
        result, missing, failed_events = asyncio.run(scenario())
        assert len(result.paid) == 2
        assert result.total_paid == Decimal("50")
        assert [f.credit_card_expense_id for f in result.failures] == [missing]
        assert len(failed_events) == 1
    
    def test_pay_unknown_charge(self, engine):
        """Paying a missing charge raises NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(engine.ledger.pay_credit_card_due(uuid4()))
    
    def test_failed_delete_rolls_back_expense(
        self, audit_storage, engine_settings, app_settings, clock
    ):
        """If the charge cannot be removed the payment expense is undone."""
        class StuckChargeStore(InMemoryLedgerStore):
            async def delete_credit_card_expense(self, charge_id):
                raise StoreUnavailableError("sheet locked")
        
        store = StuckChargeStore("test-user")
        engine = build_engine(
            store,
            audit_storage,
            settings=engine_settings,
            today=clock,
            validator=LedgerValidator(settings=app_settings, today=clock),
        )
        
        async def scenario():
            charge = await engine.ledger.add_credit_card_expense("Food", "75", date(2025, 2, 1))
            with pytest.raises(StoreUnavailableError):
                await engine.ledger.pay_credit_card_due(charge.id)
            return await store.list_expenses(), await store.list_credit_card_expenses(paid=False)
        
        expenses, unpaid = asyncio.run(scenario())
        assert expenses == []
        assert len(unpaid) == 1


class TestLedgerMutations:
    """Tests for plain ledger writes."""
    
    def test_delete_category_removes_budgets(self, engine, store):
        """Budgets of a deleted category go with it."""
        async def scenario():
            await engine.ledger.add_category("Food")
            await engine.ledger.set_budget("Food", 2025, 1, "100")
            await engine.ledger.set_budget("Food", 2025, 2, "100")
            deleted = await engine.ledger.delete_category("Food")
            await engine.settle()
            return deleted, await store.list_budgets(category="Food"), await store.list_categories()
        
        deleted, budgets, categories = asyncio.run(scenario())
        assert deleted is True
        assert budgets == []
        assert categories == []
    
    def test_invalid_mutation_rejected(self, engine, store, audit_storage):
        """A rejected expense writes nothing and schedules no refresh."""
        async def scenario():
            with pytest.raises(LedgerValidationError):
                await engine.ledger.add_expense("Food", "-5", date(2025, 2, 1))
            return (
                await store.list_expenses(),
                await audit_events(audit_storage, AuditEventType.MUTATION_REJECTED),
            )
        
        expenses, rejected = asyncio.run(scenario())
        assert expenses == []
        assert len(rejected) == 1
        assert engine.coordinator.run_count == 0
    
    def test_unassigned_credits_pool_by_month(self, engine):
        """Null-category credits of one month merge into one pool entry."""
        async def scenario():
            await engine.ledger.add_credit("300", date(2025, 2, 3))
            first = await engine.ledger.list_unassigned()
            await engine.ledger.add_credit("200", date(2025, 2, 20))
            await engine.settle()
            return first, await engine.ledger.list_unassigned()
        
        first, pool = asyncio.run(scenario())
        assert len(pool) == 1
        assert pool[0].id == first[0].id
        assert pool[0].amount == Decimal("500")
    
    def test_edit_credit_into_pool(self, engine):
        """Clearing a credit's category moves it into the pool on refresh."""
        async def scenario():
            credit = await engine.ledger.add_credit("80", date(2025, 2, 3), category="Food")
            await engine.ledger.edit_credit(credit.id, category="")
            await engine.settle()
            return await engine.queries.get_unassigned_for_month(2025, 2)
        
        assert asyncio.run(scenario()) == Decimal("80")
    
    def test_edit_expense_refreshes_both_months(self, engine):
        """Moving an expense between months updates both summaries."""
        async def scenario():
            await engine.ledger.set_budget("Food", 2025, 1, "100")
            await engine.ledger.set_budget("Food", 2025, 2, "100")
            expense = await engine.ledger.add_expense("Food", "40", date(2025, 1, 5))
            await engine.settle()
            await engine.ledger.edit_expense(expense.id, on=date(2025, 2, 5))
            await engine.settle()
            return (
                await engine.queries.get_remaining_for_month("Food", JAN),
                await engine.queries.get_remaining_for_month("Food", FEB),
            )
        
        assert asyncio.run(scenario()) == (Decimal("100"), Decimal("60"))
