"""
In-Memory Storage Implementation

Keeps one user's ledger in plain dicts. Used by the test-suite and as the
default store when no Google Sheets configuration is present.

Every method is a coroutine so callers see the same suspension points they
would see against a real backend.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from budget_engine.models.audit import AuditEvent
from budget_engine.models.ledger import (
    Budget,
    Category,
    Credit,
    CreditCardExpense,
    Expense,
    MonthKey,
    MonthlyUnassignedCredit,
    RecurringExpense,
    SalaryMonthFlag,
    UserProfile,
    utcnow,
)
from budget_engine.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
)


def _in_range(value: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and value < date_from:
        return False
    if date_to and value > date_to:
        return False
    return True


class InMemoryLedgerStore(LedgerStoreInterface):
    """Dict-backed ledger store for a single user."""

    def __init__(self, user_id: str = "local-user"):
        self._user_id = user_id
        self._categories: dict[str, Category] = {}
        self._budgets: dict[tuple[str, MonthKey], Budget] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._credits: dict[UUID, Credit] = {}
        self._charges: dict[UUID, CreditCardExpense] = {}
        self._unassigned: dict[MonthKey, MonthlyUnassignedCredit] = {}
        self._salary_months: dict[MonthKey, SalaryMonthFlag] = {}
        self._recurring: dict[UUID, RecurringExpense] = {}
        self._profile = UserProfile(user_id=user_id)

    @property
    def user_id(self) -> str:
        return self._user_id

    # Categories

    async def list_categories(self) -> list[Category]:
        return sorted(self._categories.values(), key=lambda c: c.name.lower())

    async def save_category(self, category: Category) -> Category:
        if category.name in self._categories:
            raise DuplicateError(f"Category already exists: {category.name}")
        self._categories[category.name] = category
        return category

    async def delete_category(self, name: str) -> bool:
        return self._categories.pop(name, None) is not None

    # Budgets

    async def upsert_budget(self, budget: Budget) -> Budget:
        key = (budget.category, budget.month)
        existing = self._budgets.get(key)
        if existing:
            budget = budget.model_copy(update={"id": existing.id})
        self._budgets[key] = budget
        return budget

    async def delete_budget(self, category: str, month: MonthKey) -> bool:
        return self._budgets.pop((category, month), None) is not None

    async def list_budgets(
        self,
        month: Optional[MonthKey] = None,
        category: Optional[str] = None,
    ) -> list[Budget]:
        return [
            budget for budget in self._budgets.values()
            if (month is None or budget.month == month)
            and (category is None or budget.category == category)
        ]

    # Expenses

    async def add_expense(self, expense: Expense) -> Expense:
        self._expenses[expense.id] = expense
        return expense

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    async def update_expense(self, expense: Expense) -> Expense:
        if expense.id not in self._expenses:
            raise NotFoundError(f"Expense not found: {expense.id}")
        self._expenses[expense.id] = expense
        return expense

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._expenses.pop(expense_id, None) is not None

    async def list_expenses(
        self,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        expenses = [
            expense for expense in self._expenses.values()
            if (category is None or expense.category == category)
            and _in_range(expense.date, date_from, date_to)
        ]
        expenses.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return expenses

    # Credits

    async def add_credit(self, credit: Credit) -> Credit:
        self._credits[credit.id] = credit
        return credit

    async def get_credit(self, credit_id: UUID) -> Optional[Credit]:
        return self._credits.get(credit_id)

    async def update_credit(self, credit: Credit) -> Credit:
        if credit.id not in self._credits:
            raise NotFoundError(f"Credit not found: {credit.id}")
        self._credits[credit.id] = credit
        return credit

    async def delete_credit(self, credit_id: UUID) -> bool:
        return self._credits.pop(credit_id, None) is not None

    async def list_credits(
        self,
        category: Optional[str] = None,
        unassigned_only: bool = False,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Credit]:
        credits = [
            credit for credit in self._credits.values()
            if (category is None or credit.category == category)
            and (not unassigned_only or credit.is_unassigned)
            and _in_range(credit.date, date_from, date_to)
        ]
        credits.sort(key=lambda c: (c.date, c.created_at), reverse=True)
        return credits

    # Credit card charges

    async def add_credit_card_expense(self, charge: CreditCardExpense) -> CreditCardExpense:
        self._charges[charge.id] = charge
        return charge

    async def get_credit_card_expense(self, charge_id: UUID) -> Optional[CreditCardExpense]:
        return self._charges.get(charge_id)

    async def update_credit_card_expense(self, charge: CreditCardExpense) -> CreditCardExpense:
        if charge.id not in self._charges:
            raise NotFoundError(f"Credit card expense not found: {charge.id}")
        self._charges[charge.id] = charge
        return charge

    async def delete_credit_card_expense(self, charge_id: UUID) -> bool:
        return self._charges.pop(charge_id, None) is not None

    async def list_credit_card_expenses(
        self,
        paid: Optional[bool] = None,
    ) -> list[CreditCardExpense]:
        charges = [
            charge for charge in self._charges.values()
            if paid is None or charge.paid == paid
        ]
        charges.sort(key=lambda c: c.date, reverse=True)
        return charges

    # Unassigned credit pool

    async def get_unassigned(self, year: int, month: int) -> Optional[MonthlyUnassignedCredit]:
        return self._unassigned.get(MonthKey(year=year, month=month))

    async def get_unassigned_by_id(self, entry_id: UUID) -> Optional[MonthlyUnassignedCredit]:
        for entry in self._unassigned.values():
            if entry.id == entry_id:
                return entry
        return None

    async def upsert_unassigned(self, entry: MonthlyUnassignedCredit) -> MonthlyUnassignedCredit:
        self._unassigned[entry.month_key] = entry
        return entry

    async def delete_unassigned(self, entry_id: UUID) -> bool:
        for key, entry in list(self._unassigned.items()):
            if entry.id == entry_id:
                del self._unassigned[key]
                return True
        return False

    async def list_unassigned(self) -> list[MonthlyUnassignedCredit]:
        return sorted(
            self._unassigned.values(),
            key=lambda e: (e.year, e.month),
            reverse=True,
        )

    async def replace_unassigned(self, entries: list[MonthlyUnassignedCredit]) -> None:
        self._unassigned = {entry.month_key: entry for entry in entries}

    # Salary months

    async def list_salary_months(self) -> list[SalaryMonthFlag]:
        return sorted(self._salary_months.values(), key=lambda f: (f.year, f.month))

    async def mark_salary_month(self, year: int, month: int) -> SalaryMonthFlag:
        key = MonthKey(year=year, month=month)
        if key not in self._salary_months:
            self._salary_months[key] = SalaryMonthFlag(year=year, month=month)
        return self._salary_months[key]

    async def unmark_salary_month(self, year: int, month: int) -> bool:
        return self._salary_months.pop(MonthKey(year=year, month=month), None) is not None

    # Recurring expenses

    async def list_recurring_expenses(self, active_only: bool = False) -> list[RecurringExpense]:
        rules = [
            rule for rule in self._recurring.values()
            if not active_only or rule.is_active
        ]
        rules.sort(key=lambda r: r.created_at, reverse=True)
        return rules

    async def get_recurring_expense(self, rule_id: UUID) -> Optional[RecurringExpense]:
        return self._recurring.get(rule_id)

    async def save_recurring_expense(self, rule: RecurringExpense) -> RecurringExpense:
        self._recurring[rule.id] = rule
        return rule

    async def update_recurring_expense(self, rule: RecurringExpense) -> RecurringExpense:
        if rule.id not in self._recurring:
            raise NotFoundError(f"Recurring expense not found: {rule.id}")
        self._recurring[rule.id] = rule
        return rule

    async def delete_recurring_expense(self, rule_id: UUID) -> bool:
        return self._recurring.pop(rule_id, None) is not None

    # Profile

    async def get_profile(self) -> UserProfile:
        return self._profile

    async def set_initial_bank_balance(self, amount: Decimal) -> UserProfile:
        self._profile = self._profile.model_copy(
            update={"initial_bank_balance": amount, "updated_at": utcnow()}
        )
        return self._profile


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
