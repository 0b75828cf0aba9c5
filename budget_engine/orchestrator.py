"""
Main Orchestrator for Budget Engine

This module ties together all the components and defines the
end-to-end mutation flows:
1. Ledger writes (validate -> write -> publish event)
2. Reconciliation flows (salary recording, unassigned credit split,
   credit-card due payment)
3. Recurring expense generation

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the ledger store without passing validation
- Every committed mutation is published exactly once on the event bus
- Derived values are never written here; the refresh coordinator owns them

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from budget_engine.audit import AuditLogger, create_correlation_id
from budget_engine.config import EngineSettings, get_settings
from budget_engine.engine import (
    DerivedCache,
    PartialSplitError,
    RefreshCoordinator,
    UnassignedCreditReconciler,
    due_occurrences,
    is_finished,
)
from budget_engine.events import LedgerEventBus
from budget_engine.models.events import LedgerEvent, LedgerEventType
from budget_engine.models.ledger import (
    ZERO,
    Budget,
    BulkPaymentResult,
    Category,
    Credit,
    CreditCardExpense,
    EntryKind,
    Expense,
    MonthKey,
    MonthlyUnassignedCredit,
    PaymentFailure,
    PaymentMethod,
    RecurringExpense,
    RecurringRunResult,
    SalaryRecordResult,
    SplitAssignment,
    SplitResult,
    UserProfile,
    ValidationResult,
    today_in,
    utcnow,
)
from budget_engine.queries import SummaryQueries
from budget_engine.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    NotFoundError,
)
from budget_engine.validation import LedgerValidationError, LedgerValidator


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Ledger mutation flows.

    Flow for every write:
    1. Validate → two-stage validation, errors raise LedgerValidationError
    2. Write → ledger store
    3. Publish → one LedgerEvent naming the touched months

    Recompute happens asynchronously in the refresh coordinator.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        bus: LedgerEventBus,
        settings: Optional[EngineSettings] = None,
        validator: Optional[LedgerValidator] = None,
        reconciler: Optional[UnassignedCreditReconciler] = None,
        audit_logger: Optional[AuditLogger] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._bus = bus
        self._settings = settings or get_settings().engine
        self._today = today or (lambda: today_in(self._settings.timezone))
        self._validator = validator or LedgerValidator(today=self._today)
        self._audit = audit_logger or AuditLogger()
        self._reconciler = reconciler or UnassignedCreditReconciler(
            store,
            settings=self._settings,
            audit_logger=self._audit,
        )

    @property
    def reconciler(self) -> UnassignedCreditReconciler:
        return self._reconciler

    async def _publish(
        self,
        event_type: LedgerEventType,
        months: Iterable[MonthKey] = (),
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self._bus.publish(LedgerEvent(
            event_type=event_type,
            months=sorted(set(months)),
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    async def _category_names(self) -> list[str]:
        return [category.name for category in await self._store.list_categories()]

    async def _validate(
        self,
        mutation: str,
        kind: EntryKind,
        amount,
        **kwargs,
    ) -> ValidationResult:
        result = self._validator.validate(kind, amount, **kwargs)
        if not result.is_valid:
            await self._audit.log_mutation_rejected(
                mutation=mutation,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ],
            )
            raise LedgerValidationError(result)
        if result.warnings:
            logger.warning("mutation_warnings", mutation=mutation, warnings=result.warnings)
        return result

    # -------------------------------------------------------------------------
    # Categories and budgets
    # -------------------------------------------------------------------------

    async def add_category(self, name: str, icon: Optional[str] = None) -> Category:
        """
        Raises:
            DuplicateError: If the category already exists
        """
        return await self._store.save_category(Category(name=name, icon=icon))

    async def delete_category(self, name: str) -> bool:
        """Delete a category together with all of its budgets."""
        budgets = await self._store.list_budgets(category=name)
        for budget in budgets:
            await self._store.delete_budget(budget.category, budget.month)
        deleted = await self._store.delete_category(name)
        if deleted or budgets:
            await self._publish(
                LedgerEventType.CATEGORY_DELETED,
                months=[budget.month for budget in budgets],
            )
        return deleted

    async def set_budget(
        self,
        category: str,
        year: int,
        month: int,
        amount,
    ) -> Budget:
        await self._validate(
            "budget_set",
            EntryKind.BUDGET,
            amount,
            category=category,
            known_categories=await self._category_names(),
        )
        budget = await self._store.upsert_budget(Budget(
            category=category,
            month=MonthKey(year=year, month=month),
            amount=Decimal(str(amount)),
        ))
        await self._publish(LedgerEventType.BUDGET_CHANGED, [budget.month], budget.id)
        return budget

    async def delete_budget(self, category: str, year: int, month: int) -> bool:
        key = MonthKey(year=year, month=month)
        deleted = await self._store.delete_budget(category, key)
        if deleted:
            await self._publish(LedgerEventType.BUDGET_CHANGED, [key])
        return deleted

    async def total_budget(self, year: int, month: int) -> Decimal:
        """Month's total declared budget, salary category excluded."""
        budgets = await self._store.list_budgets(month=MonthKey(year=year, month=month))
        return sum(
            (b.amount for b in budgets if b.category not in self._settings.hidden_categories),
            ZERO,
        )

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(
        self,
        category: str,
        amount,
        on: date,
        description: str = "",
    ) -> Expense:
        await self._validate(
            "expense_added",
            EntryKind.EXPENSE,
            amount,
            category=category,
            on=on,
            known_categories=await self._category_names(),
        )
        expense = await self._store.add_expense(Expense(
            category=category,
            amount=Decimal(str(amount)),
            description=description,
            date=on,
        ))
        await self._publish(LedgerEventType.EXPENSE_ADDED, [MonthKey.of(on)], expense.id)
        return expense

    async def edit_expense(
        self,
        expense_id: UUID,
        category: Optional[str] = None,
        amount=None,
        on: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Expense:
        """
        Raises:
            NotFoundError: If the expense doesn't exist
        """
        current = await self._store.get_expense(expense_id)
        if current is None:
            raise NotFoundError(f"Expense not found: {expense_id}")

        category = category if category is not None else current.category
        amount = amount if amount is not None else current.amount
        on = on or current.date

        await self._validate(
            "expense_edited",
            EntryKind.EXPENSE,
            amount,
            category=category,
            on=on,
            known_categories=await self._category_names(),
        )
        updated = await self._store.update_expense(current.model_copy(update={
            "category": category,
            "amount": Decimal(str(amount)),
            "date": on,
            "description": description if description is not None else current.description,
        }))
        await self._publish(
            LedgerEventType.EXPENSE_EDITED,
            [MonthKey.of(current.date), MonthKey.of(on)],
            expense_id,
        )
        return updated

    async def delete_expense(self, expense_id: UUID) -> bool:
        current = await self._store.get_expense(expense_id)
        if current is None:
            return False
        deleted = await self._store.delete_expense(expense_id)
        await self._publish(LedgerEventType.EXPENSE_DELETED, [MonthKey.of(current.date)], expense_id)
        return deleted

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    async def add_credit(
        self,
        amount,
        on: date,
        category: Optional[str] = None,
        description: str = "",
    ) -> Credit:
        """
        Record a credit. Without a category it lands in the unassigned pool
        of its month.
        """
        await self._validate(
            "credit_added",
            EntryKind.CREDIT,
            amount,
            category=category,
            on=on,
            known_categories=await self._category_names() if category else None,
        )
        credit = await self._store.add_credit(Credit(
            category=category,
            amount=Decimal(str(amount)),
            description=description,
            date=on,
        ))
        if credit.is_unassigned:
            await self._reconciler.add_or_merge(on.year, on.month, credit.amount)
        await self._publish(LedgerEventType.CREDIT_ADDED, [MonthKey.of(on)], credit.id)
        return credit

    async def edit_credit(
        self,
        credit_id: UUID,
        category: Optional[str] = None,
        amount=None,
        on: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Credit:
        """
        Edit a credit. Pass category="" to move it into the unassigned pool.

        The pool is re-derived from credit rows by the forced refresh that
        follows.
        """
        current = await self._store.get_credit(credit_id)
        if current is None:
            raise NotFoundError(f"Credit not found: {credit_id}")

        category = category if category is not None else current.category
        amount = amount if amount is not None else current.amount
        on = on or current.date

        await self._validate(
            "credit_edited",
            EntryKind.CREDIT,
            amount,
            category=category,
            on=on,
            known_categories=await self._category_names() if category else None,
        )
        updated = await self._store.update_credit(current.model_copy(update={
            "category": category or None,
            "amount": Decimal(str(amount)),
            "date": on,
            "description": description if description is not None else current.description,
        }))
        await self._publish(
            LedgerEventType.CREDIT_EDITED,
            [MonthKey.of(current.date), MonthKey.of(on)],
            credit_id,
        )
        return updated

    async def delete_credit(self, credit_id: UUID) -> bool:
        current = await self._store.get_credit(credit_id)
        if current is None:
            return False
        deleted = await self._store.delete_credit(credit_id)
        await self._publish(LedgerEventType.CREDIT_DELETED, [MonthKey.of(current.date)], credit_id)
        return deleted

    # -------------------------------------------------------------------------
    # Salary
    # -------------------------------------------------------------------------

    async def record_salary(
        self,
        year: int,
        month: int,
        amount,
        on: Optional[date] = None,
        description: Optional[str] = None,
    ) -> SalaryRecordResult:
        """
        Record a month's salary and flag the month.

        When the month has a positive total budget and the salary exceeds
        it, only the total budget is credited to the salary category; the
        excess becomes an unassigned credit of that month.
        """
        key = MonthKey(year=year, month=month)
        on = on or key.first_day
        if not key.contains(on):
            raise ValueError(f"Salary date {on} is not in {key}")

        correlation_id = create_correlation_id()
        budget_total = await self.total_budget(year, month)
        await self._validate(
            "salary_recorded",
            EntryKind.SALARY,
            amount,
            on=on,
            total_budget=budget_total,
        )

        salary = Decimal(str(amount))
        salary_part = salary
        overflow = ZERO
        if budget_total > 0 and salary > budget_total:
            salary_part = budget_total
            overflow = salary - budget_total

        salary_credit = await self._store.add_credit(Credit(
            category=self._settings.salary_category_name,
            amount=salary_part,
            description=description or f"Salary for {key}",
            date=on,
        ))

        unassigned_credit = None
        if overflow > 0:
            unassigned_credit = await self._store.add_credit(Credit(
                amount=overflow,
                description=f"Salary above budget for {key}",
                date=on,
            ))
            await self._reconciler.add_or_merge(year, month, overflow)

        await self._store.mark_salary_month(year, month)

        await self._audit.log_salary_month_marked(
            month=str(key),
            salary_credit=str(salary_part),
            unassigned_overflow=str(overflow),
            correlation_id=correlation_id,
        )
        await self._publish(
            LedgerEventType.SALARY_RECORDED,
            [key],
            salary_credit.id,
            correlation_id,
        )

        return SalaryRecordResult(
            month=key,
            salary_credit=salary_credit,
            unassigned_credit=unassigned_credit,
        )

    # -------------------------------------------------------------------------
    # Unassigned credit pool
    # -------------------------------------------------------------------------

    async def split_unassigned_credit(
        self,
        pool_entry_id: UUID,
        assignments: list[SplitAssignment],
    ) -> SplitResult:
        """
        Split a pool entry into categorized credits.

        A PartialSplitError is re-raised after the refresh event is
        published, since some credits were already written.
        """
        correlation_id = create_correlation_id()
        entry = await self._store.get_unassigned_by_id(pool_entry_id)
        if entry is None:
            raise NotFoundError(f"Unassigned credit entry not found: {pool_entry_id}")

        months = [entry.month_key] + [a.target for a in assignments if a.is_effective]
        try:
            result = await self._reconciler.split(pool_entry_id, assignments, correlation_id)
        except PartialSplitError as e:
            if e.written:
                await self._publish(
                    LedgerEventType.UNASSIGNED_CREDIT_SPLIT,
                    months,
                    pool_entry_id,
                    correlation_id,
                )
            raise

        await self._publish(
            LedgerEventType.UNASSIGNED_CREDIT_SPLIT,
            months,
            pool_entry_id,
            correlation_id,
        )
        return result

    async def list_unassigned(self) -> list[MonthlyUnassignedCredit]:
        return await self._reconciler.entries()

    # -------------------------------------------------------------------------
    # Credit card charges
    # -------------------------------------------------------------------------

    async def add_credit_card_expense(
        self,
        category: str,
        amount,
        on: date,
        description: str = "",
    ) -> CreditCardExpense:
        await self._validate(
            "credit_card_expense_added",
            EntryKind.CREDIT_CARD_EXPENSE,
            amount,
            category=category,
            on=on,
            known_categories=await self._category_names(),
        )
        charge = await self._store.add_credit_card_expense(CreditCardExpense(
            category=category,
            amount=Decimal(str(amount)),
            description=description,
            date=on,
        ))
        await self._publish(LedgerEventType.CREDIT_CARD_EXPENSE_CHANGED, entity_id=charge.id)
        return charge

    async def edit_credit_card_expense(
        self,
        charge_id: UUID,
        category: Optional[str] = None,
        amount=None,
        on: Optional[date] = None,
        description: Optional[str] = None,
    ) -> CreditCardExpense:
        current = await self._store.get_credit_card_expense(charge_id)
        if current is None:
            raise NotFoundError(f"Credit card expense not found: {charge_id}")

        category = category if category is not None else current.category
        amount = amount if amount is not None else current.amount

        await self._validate(
            "credit_card_expense_edited",
            EntryKind.CREDIT_CARD_EXPENSE,
            amount,
            category=category,
            on=on or current.date,
            known_categories=await self._category_names(),
        )
        updated = await self._store.update_credit_card_expense(current.model_copy(update={
            "category": category,
            "amount": Decimal(str(amount)),
            "date": on or current.date,
            "description": description if description is not None else current.description,
        }))
        await self._publish(LedgerEventType.CREDIT_CARD_EXPENSE_CHANGED, entity_id=charge_id)
        return updated

    async def delete_credit_card_expense(self, charge_id: UUID) -> bool:
        deleted = await self._store.delete_credit_card_expense(charge_id)
        if deleted:
            await self._publish(LedgerEventType.CREDIT_CARD_EXPENSE_CHANGED, entity_id=charge_id)
        return deleted

    async def _settle(self, charge_id: UUID, correlation_id: UUID) -> Expense:
        """Turn one unpaid charge into an expense dated today."""
        charge = await self._store.get_credit_card_expense(charge_id)
        if charge is None:
            raise NotFoundError(f"Credit card expense not found: {charge_id}")

        expense = await self._store.add_expense(Expense(
            category=charge.category,
            amount=charge.amount,
            description=f"Credit Card Payment: {charge.description}",
            date=self._today(),
            payment_method=PaymentMethod.CREDIT_CARD_DUE_PAYMENT,
        ))
        try:
            await self._store.delete_credit_card_expense(charge_id)
        except Exception:
            # The charge is still unpaid; the payment must not count twice
            await self._store.delete_expense(expense.id)
            raise

        await self._audit.log_credit_card_due_paid(
            credit_card_expense_id=charge_id,
            expense_id=expense.id,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense

    async def pay_credit_card_due(self, charge_id: UUID) -> Expense:
        """
        Pay one credit-card charge.

        Raises:
            NotFoundError: If the charge doesn't exist
        """
        correlation_id = create_correlation_id()
        try:
            expense = await self._settle(charge_id, correlation_id)
        except Exception as e:
            await self._audit.log_credit_card_payment_failed(
                credit_card_expense_id=charge_id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        await self._publish(
            LedgerEventType.CREDIT_CARD_DUE_PAID,
            [MonthKey.of(expense.date)],
            charge_id,
            correlation_id,
        )
        return expense

    async def bulk_pay_credit_card_dues(self, charge_ids: list[UUID]) -> BulkPaymentResult:
        """Pay several charges; failures are collected, not raised."""
        correlation_id = create_correlation_id()
        result = BulkPaymentResult()

        for charge_id in charge_ids:
            try:
                result.paid.append(await self._settle(charge_id, correlation_id))
            except Exception as e:
                result.failures.append(PaymentFailure(
                    credit_card_expense_id=charge_id,
                    error_message=str(e),
                ))
                await self._audit.log_credit_card_payment_failed(
                    credit_card_expense_id=charge_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )

        if result.paid:
            await self._publish(
                LedgerEventType.CREDIT_CARD_DUE_PAID,
                [MonthKey.of(expense.date) for expense in result.paid],
                correlation_id=correlation_id,
            )
        return result

    # -------------------------------------------------------------------------
    # Recurring expenses
    # -------------------------------------------------------------------------

    async def add_recurring_expense(
        self,
        category: str,
        amount,
        day_of_month: int,
        total_occurrences: int,
        description: str = "",
        time_of_day: str = "09:00",
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> RecurringExpense:
        """
        Create a rule that spends `amount` on `day_of_month` every month.

        Nothing is spent until `trigger_recurring_expenses` runs.
        """
        start_date = start_date or self._today()
        await self._validate(
            "recurring_expense_added",
            EntryKind.EXPENSE,
            amount,
            category=category,
            on=start_date,
            known_categories=await self._category_names(),
        )
        return await self._store.save_recurring_expense(RecurringExpense(
            category=category,
            amount=Decimal(str(amount)),
            description=description,
            day_of_month=day_of_month,
            time_of_day=time_of_day,
            total_occurrences=total_occurrences,
            remaining_occurrences=total_occurrences,
            start_date=start_date,
            end_date=end_date,
        ))

    async def edit_recurring_expense(
        self,
        rule_id: UUID,
        category: Optional[str] = None,
        amount=None,
        description: Optional[str] = None,
        day_of_month: Optional[int] = None,
        time_of_day: Optional[str] = None,
        total_occurrences: Optional[int] = None,
    ) -> RecurringExpense:
        """
        Change a rule. Occurrences already generated keep counting against a
        new total; a rule whose total is used up is deactivated.

        Raises:
            NotFoundError: If the rule doesn't exist
        """
        current = await self._store.get_recurring_expense(rule_id)
        if current is None:
            raise NotFoundError(f"Recurring expense not found: {rule_id}")

        category = category if category is not None else current.category
        amount = amount if amount is not None else current.amount
        await self._validate(
            "recurring_expense_edited",
            EntryKind.EXPENSE,
            amount,
            category=category,
            known_categories=await self._category_names(),
        )

        total = total_occurrences if total_occurrences is not None else current.total_occurrences
        generated = current.total_occurrences - current.remaining_occurrences
        remaining = max(total - generated, 0)

        updated = RecurringExpense.model_validate({
            **current.model_dump(),
            "category": category,
            "amount": Decimal(str(amount)),
            "description": description if description is not None else current.description,
            "day_of_month": day_of_month or current.day_of_month,
            "time_of_day": time_of_day or current.time_of_day,
            "total_occurrences": total,
            "remaining_occurrences": remaining,
            "is_active": current.is_active and remaining > 0,
            "updated_at": utcnow(),
        })
        return await self._store.update_recurring_expense(updated)

    async def delete_recurring_expense(self, rule_id: UUID) -> bool:
        """Expenses the rule already generated are kept."""
        return await self._store.delete_recurring_expense(rule_id)

    async def list_recurring_expenses(self, active_only: bool = False) -> list[RecurringExpense]:
        return await self._store.list_recurring_expenses(active_only=active_only)

    async def trigger_recurring_expenses(self) -> RecurringRunResult:
        """
        Materialize every due occurrence of every active rule as an Expense.

        Each occurrence is written, counted against its rule and published
        before the next one, so a failure part-way never repeats a month.
        """
        correlation_id = create_correlation_id()
        today = self._today()
        result = RecurringRunResult()

        for rule in await self._store.list_recurring_expenses(active_only=True):
            for scheduled in due_occurrences(rule, today):
                expense = await self._store.add_expense(Expense(
                    category=rule.category,
                    amount=rule.amount,
                    description=rule.expense_description,
                    date=scheduled,
                ))
                rule = await self._store.update_recurring_expense(rule.model_copy(update={
                    "remaining_occurrences": rule.remaining_occurrences - 1,
                    "last_generated": MonthKey.of(scheduled),
                    "updated_at": utcnow(),
                }))
                result.created.append(expense)

                await self._audit.log_recurring_expense_generated(
                    rule_id=rule.id,
                    expense_id=expense.id,
                    scheduled_date=scheduled.isoformat(),
                    remaining_occurrences=rule.remaining_occurrences,
                    correlation_id=correlation_id,
                )
                await self._publish(
                    LedgerEventType.EXPENSE_ADDED,
                    [MonthKey.of(scheduled)],
                    expense.id,
                    correlation_id,
                )

            if is_finished(rule, today):
                await self._store.update_recurring_expense(rule.model_copy(update={
                    "is_active": False,
                    "updated_at": utcnow(),
                }))
                result.completed_rule_ids.append(rule.id)

        if result.created:
            logger.info(
                "recurring_expenses_generated",
                count=len(result.created),
                total=str(result.total_amount),
            )
        return result

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def set_initial_bank_balance(self, amount) -> UserProfile:
        """Any finite amount is accepted, negative included."""
        profile = await self._store.set_initial_bank_balance(Decimal(str(amount)))
        await self._publish(LedgerEventType.INITIAL_BANK_BALANCE_SET)
        return profile


class BudgetEngine:
    """Wired set of components for one user session."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        bus: LedgerEventBus,
        ledger: LedgerService,
        coordinator: RefreshCoordinator,
        queries: SummaryQueries,
        audit_logger: AuditLogger,
    ):
        self.store = store
        self.bus = bus
        self.ledger = ledger
        self.coordinator = coordinator
        self.queries = queries
        self.audit_logger = audit_logger

    async def refresh(self, force: bool = True):
        """Run the pipeline right away (e.g. on start-up) and wait for it."""
        return await self.coordinator.refresh_now(force=force, housekeeping=True)

    async def settle(self) -> None:
        """Wait for every scheduled recompute to finish."""
        await self.coordinator.drain()


def build_engine(
    store: LedgerStoreInterface,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[EngineSettings] = None,
    today: Optional[Callable[[], date]] = None,
    validator: Optional[LedgerValidator] = None,
) -> BudgetEngine:
    """Wire the components around a given store."""
    settings = settings or get_settings().engine
    today = today or (lambda: today_in(settings.timezone))
    audit_logger = AuditLogger(audit_storage)
    bus = LedgerEventBus()
    cache = DerivedCache()

    coordinator = RefreshCoordinator(
        store,
        cache=cache,
        settings=settings,
        audit_logger=audit_logger,
        today=today,
    )
    ledger = LedgerService(
        store,
        bus,
        settings=settings,
        validator=validator or LedgerValidator(today=today),
        audit_logger=audit_logger,
        today=today,
    )
    queries = SummaryQueries(store, cache, settings=settings, today=today)

    bus.subscribe(audit_logger.log_ledger_event)
    bus.subscribe(coordinator.on_event)

    return BudgetEngine(store, bus, ledger, coordinator, queries, audit_logger)


def create_app_components(
    use_storage: bool = True,
    user_id: str = "local-user",
) -> BudgetEngine:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage.
        user_id: Owner of the ledger

    Returns:
        A wired BudgetEngine (in-memory store if Sheets is not configured)
    """
    store: LedgerStoreInterface = InMemoryLedgerStore(user_id)
    audit_storage = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsLedgerStore(user_id, sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            store = InMemoryLedgerStore(user_id)
            audit_storage = None

    return build_engine(store, audit_storage)
