"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the ledger store.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the accumulation math decoupled from storage technology

The engine only needs point reads/writes by id, range reads by
(category, date range) and a bulk replace for the unassigned pool cache.
Everything else is derived.
"""

from abc import ABC, abstractmethod
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
    LedgerSnapshot,
    MonthKey,
    MonthlyUnassignedCredit,
    RecurringExpense,
    SalaryMonthFlag,
    UserProfile,
    utcnow,
)


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the ledger store of ONE user.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. All amounts are Decimal.
    """

    @property
    @abstractmethod
    def user_id(self) -> str:
        """Owner of every row this store serves."""

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self) -> list[Category]:
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> Category:
        """
        Create a category.

        Raises:
            DuplicateError: If a category with the same name exists
        """
        pass

    @abstractmethod
    async def delete_category(self, name: str) -> bool:
        """Delete a category by name. Returns False if it did not exist."""
        pass

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_budget(self, budget: Budget) -> Budget:
        """Create or replace the budget for (category, month)."""
        pass

    @abstractmethod
    async def delete_budget(self, category: str, month: MonthKey) -> bool:
        pass

    @abstractmethod
    async def list_budgets(
        self,
        month: Optional[MonthKey] = None,
        category: Optional[str] = None,
    ) -> list[Budget]:
        pass

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> Expense:
        """
        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_expenses(
        self,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        """
        List expenses with optional filters.

        Args:
            category: Filter by category name
            date_from: Filter expenses on or after this date
            date_to: Filter expenses on or before this date
        """
        pass

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_credit(self, credit: Credit) -> Credit:
        pass

    @abstractmethod
    async def get_credit(self, credit_id: UUID) -> Optional[Credit]:
        pass

    @abstractmethod
    async def update_credit(self, credit: Credit) -> Credit:
        """
        Raises:
            NotFoundError: If the credit doesn't exist
        """
        pass

    @abstractmethod
    async def delete_credit(self, credit_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_credits(
        self,
        category: Optional[str] = None,
        unassigned_only: bool = False,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Credit]:
        """
        List credits with optional filters.

        Args:
            category: Filter by category name
            unassigned_only: Only credits without a category
            date_from: Filter credits on or after this date
            date_to: Filter credits on or before this date
        """
        pass

    # -------------------------------------------------------------------------
    # Credit card charges
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_credit_card_expense(self, charge: CreditCardExpense) -> CreditCardExpense:
        pass

    @abstractmethod
    async def get_credit_card_expense(self, charge_id: UUID) -> Optional[CreditCardExpense]:
        pass

    @abstractmethod
    async def update_credit_card_expense(self, charge: CreditCardExpense) -> CreditCardExpense:
        pass

    @abstractmethod
    async def delete_credit_card_expense(self, charge_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_credit_card_expenses(
        self,
        paid: Optional[bool] = None,
    ) -> list[CreditCardExpense]:
        pass

    # -------------------------------------------------------------------------
    # Unassigned credit pool
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_unassigned(self, year: int, month: int) -> Optional[MonthlyUnassignedCredit]:
        pass

    @abstractmethod
    async def get_unassigned_by_id(self, entry_id: UUID) -> Optional[MonthlyUnassignedCredit]:
        pass

    @abstractmethod
    async def upsert_unassigned(self, entry: MonthlyUnassignedCredit) -> MonthlyUnassignedCredit:
        """Create or replace the pool entry for (entry.year, entry.month)."""
        pass

    @abstractmethod
    async def delete_unassigned(self, entry_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_unassigned(self) -> list[MonthlyUnassignedCredit]:
        """All pool entries, newest month first."""
        pass

    @abstractmethod
    async def replace_unassigned(self, entries: list[MonthlyUnassignedCredit]) -> None:
        """Bulk replace the whole pool (used when rebuilding it from credits)."""
        pass

    # -------------------------------------------------------------------------
    # Salary months
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_salary_months(self) -> list[SalaryMonthFlag]:
        pass

    @abstractmethod
    async def mark_salary_month(self, year: int, month: int) -> SalaryMonthFlag:
        """Set the flag; marking an already-marked month is a no-op."""
        pass

    @abstractmethod
    async def unmark_salary_month(self, year: int, month: int) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Recurring expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_recurring_expenses(self, active_only: bool = False) -> list[RecurringExpense]:
        """Rules, newest first."""
        pass

    @abstractmethod
    async def get_recurring_expense(self, rule_id: UUID) -> Optional[RecurringExpense]:
        pass

    @abstractmethod
    async def save_recurring_expense(self, rule: RecurringExpense) -> RecurringExpense:
        pass

    @abstractmethod
    async def update_recurring_expense(self, rule: RecurringExpense) -> RecurringExpense:
        """
        Raises:
            NotFoundError: If the rule doesn't exist
        """
        pass

    @abstractmethod
    async def delete_recurring_expense(self, rule_id: UUID) -> bool:
        """Delete a rule. Expenses it already generated stay."""
        pass

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_profile(self) -> UserProfile:
        """Profile of the store owner (a default profile if none was saved)."""
        pass

    @abstractmethod
    async def set_initial_bank_balance(self, amount: Decimal) -> UserProfile:
        pass

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def snapshot(self) -> LedgerSnapshot:
        """
        Read everything the calculators need.

        Each read is a suspension point; the snapshot reflects the ledger at
        roughly the time the pipeline started.
        """
        taken_at = utcnow()
        categories = await self.list_categories()
        budgets = await self.list_budgets()
        expenses = await self.list_expenses()
        credits = await self.list_credits()
        charges = await self.list_credit_card_expenses()
        unassigned = await self.list_unassigned()
        salary_months = await self.list_salary_months()
        profile = await self.get_profile()

        return LedgerSnapshot(
            user_id=self.user_id,
            taken_at=taken_at,
            categories=categories,
            budgets=budgets,
            expenses=expenses,
            credits=credits,
            credit_card_expenses=charges,
            unassigned=unassigned,
            salary_months=salary_months,
            initial_bank_balance=profile.initial_bank_balance,
        )


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one split).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class StoreUnavailableError(StorageError):
    """Storage backend cannot serve reads or writes right now."""
    pass
