"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is available as a ledger backend because:
1. A single owner can view and fix their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (split writes are ordered so the pool entry goes last)
- Limited query capabilities (we filter in Python)

Each ledger table lives in its own worksheet with a header row; the first
column is always the row key.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, TypeVar
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from budget_engine.config import get_settings
from budget_engine.models.audit import AuditEvent, AuditEventType, AuditSeverity
from budget_engine.models.ledger import (
    Budget,
    Category,
    Credit,
    CreditCardExpense,
    Expense,
    MonthKey,
    MonthlyUnassignedCredit,
    PaymentMethod,
    RecurringExpense,
    SalaryMonthFlag,
    UserProfile,
    utcnow,
)
from budget_engine.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)


T = TypeVar("T")

CATEGORY_COLUMNS = ["id", "name", "icon"]
BUDGET_COLUMNS = ["key", "category", "month", "amount", "id"]
EXPENSE_COLUMNS = [
    "id", "category", "amount", "description", "date", "created_at", "payment_method",
]
CREDIT_COLUMNS = ["id", "category", "amount", "description", "date", "created_at"]
CREDIT_CARD_COLUMNS = [
    "id", "category", "amount", "description", "date", "created_at", "paid",
]
UNASSIGNED_COLUMNS = ["id", "year", "month", "amount", "created_at", "updated_at"]
SALARY_MONTH_COLUMNS = ["month", "salary_added_at"]
RECURRING_COLUMNS = [
    "id", "category", "amount", "description", "day_of_month", "time_of_day",
    "total_occurrences", "remaining_occurrences", "start_date", "end_date",
    "is_active", "last_generated", "created_at", "updated_at",
]
PROFILE_COLUMNS = ["user_id", "initial_bank_balance", "updated_at"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    One spreadsheet holds one user's ledger; every table is a worksheet.
    """

    def __init__(self, user_id: str, client: Optional[GoogleSheetsClient] = None):
        self._user_id = user_id
        self._client = client or GoogleSheetsClient()

    @property
    def user_id(self) -> str:
        return self._user_id

    # -------------------------------------------------------------------------
    # Row plumbing
    # -------------------------------------------------------------------------

    def _sheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        return self._client.get_worksheet(title, columns)

    def _read(
        self,
        title: str,
        columns: list[str],
        parse: Callable[[list], T],
    ) -> list[T]:
        try:
            all_rows = self._sheet(title, columns).get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to read {title}: {e}")

        items = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                items.append(parse(row))
            except Exception:
                continue  # Skip malformed rows
        return items

    def _append(self, title: str, columns: list[str], row: list) -> None:
        try:
            self._sheet(title, columns).append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to write {title}: {e}")

    def _find_row(self, title: str, columns: list[str], key: str) -> tuple[gspread.Worksheet, Optional[int]]:
        sheet = self._sheet(title, columns)
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row and row[0] == key:
                return sheet, idx
        return sheet, None

    def _rewrite(self, title: str, columns: list[str], key: str, row: list) -> bool:
        try:
            sheet, idx = self._find_row(title, columns, key)
            if idx is None:
                return False
            for col_idx, value in enumerate(row, start=1):
                sheet.update_cell(idx, col_idx, value)
            return True
        except Exception as e:
            raise StorageError(f"Failed to update {title}: {e}")

    def _remove(self, title: str, columns: list[str], key: str) -> bool:
        try:
            sheet, idx = self._find_row(title, columns, key)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete from {title}: {e}")

    # -------------------------------------------------------------------------
    # Row codecs
    # -------------------------------------------------------------------------

    @staticmethod
    def _budget_key(category: str, month: MonthKey) -> str:
        return f"{category}|{month}"

    def _budget_to_row(self, budget: Budget) -> list:
        return [
            self._budget_key(budget.category, budget.month),
            budget.category,
            str(budget.month),
            str(budget.amount),
            str(budget.id),
        ]

    @staticmethod
    def _row_to_budget(row: list) -> Budget:
        return Budget(
            id=UUID(_safe_get(row, 4)),
            category=_safe_get(row, 1),
            month=MonthKey.parse(_safe_get(row, 2)),
            amount=Decimal(_safe_get(row, 3, "0")),
        )

    @staticmethod
    def _expense_to_row(expense: Expense) -> list:
        return [
            str(expense.id),
            expense.category,
            str(expense.amount),
            expense.description,
            expense.date.isoformat(),
            expense.created_at.isoformat(),
            expense.payment_method.value,
        ]

    @staticmethod
    def _row_to_expense(row: list) -> Expense:
        return Expense(
            id=UUID(_safe_get(row, 0)),
            category=_safe_get(row, 1),
            amount=Decimal(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            date=date.fromisoformat(_safe_get(row, 4)),
            created_at=datetime.fromisoformat(_safe_get(row, 5)),
            payment_method=PaymentMethod(_safe_get(row, 6, PaymentMethod.CASH.value)),
        )

    @staticmethod
    def _credit_to_row(credit: Credit) -> list:
        return [
            str(credit.id),
            credit.category or "",
            str(credit.amount),
            credit.description,
            credit.date.isoformat(),
            credit.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_credit(row: list) -> Credit:
        return Credit(
            id=UUID(_safe_get(row, 0)),
            category=_safe_get(row, 1) or None,
            amount=Decimal(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            date=date.fromisoformat(_safe_get(row, 4)),
            created_at=datetime.fromisoformat(_safe_get(row, 5)),
        )

    @staticmethod
    def _recurring_to_row(rule: RecurringExpense) -> list:
        return [
            str(rule.id),
            rule.category,
            str(rule.amount),
            rule.description,
            rule.day_of_month,
            rule.time_of_day,
            rule.total_occurrences,
            rule.remaining_occurrences,
            rule.start_date.isoformat(),
            rule.end_date.isoformat() if rule.end_date else "",
            str(rule.is_active),
            str(rule.last_generated) if rule.last_generated else "",
            rule.created_at.isoformat(),
            rule.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_recurring(row: list) -> RecurringExpense:
        end_date = _safe_get(row, 9)
        last_generated = _safe_get(row, 11)
        return RecurringExpense(
            id=UUID(_safe_get(row, 0)),
            category=_safe_get(row, 1),
            amount=Decimal(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            day_of_month=int(_safe_get(row, 4)),
            time_of_day=_safe_get(row, 5, "09:00"),
            total_occurrences=int(_safe_get(row, 6)),
            remaining_occurrences=int(_safe_get(row, 7)),
            start_date=date.fromisoformat(_safe_get(row, 8)),
            end_date=date.fromisoformat(end_date) if end_date else None,
            is_active=_safe_get(row, 10, "True").lower() == "true",
            last_generated=MonthKey.parse(last_generated) if last_generated else None,
            created_at=datetime.fromisoformat(_safe_get(row, 12)),
            updated_at=datetime.fromisoformat(_safe_get(row, 13)),
        )

    @staticmethod
    def _charge_to_row(charge: CreditCardExpense) -> list:
        return [
            str(charge.id),
            charge.category,
            str(charge.amount),
            charge.description,
            charge.date.isoformat(),
            charge.created_at.isoformat(),
            str(charge.paid),
        ]

    @staticmethod
    def _row_to_charge(row: list) -> CreditCardExpense:
        return CreditCardExpense(
            id=UUID(_safe_get(row, 0)),
            category=_safe_get(row, 1),
            amount=Decimal(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            date=date.fromisoformat(_safe_get(row, 4)),
            created_at=datetime.fromisoformat(_safe_get(row, 5)),
            paid=_safe_get(row, 6).lower() == "true",
        )

    @staticmethod
    def _unassigned_to_row(entry: MonthlyUnassignedCredit) -> list:
        return [
            str(entry.id),
            entry.year,
            entry.month,
            str(entry.amount),
            entry.created_at.isoformat(),
            entry.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_unassigned(row: list) -> MonthlyUnassignedCredit:
        return MonthlyUnassignedCredit(
            id=UUID(_safe_get(row, 0)),
            year=int(_safe_get(row, 1)),
            month=int(_safe_get(row, 2)),
            amount=Decimal(_safe_get(row, 3)),
            created_at=datetime.fromisoformat(_safe_get(row, 4)),
            updated_at=datetime.fromisoformat(_safe_get(row, 5)),
        )

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        s = self._client.settings
        categories = self._read(
            s.categories_sheet_name,
            CATEGORY_COLUMNS,
            lambda row: Category(
                id=UUID(_safe_get(row, 0)),
                name=_safe_get(row, 1),
                icon=_safe_get(row, 2) or None,
            ),
        )
        return sorted(categories, key=lambda c: c.name.lower())

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_category(self, category: Category) -> Category:
        existing = await self.list_categories()
        if any(c.name == category.name for c in existing):
            raise DuplicateError(f"Category already exists: {category.name}")
        s = self._client.settings
        self._append(
            s.categories_sheet_name,
            CATEGORY_COLUMNS,
            [str(category.id), category.name, category.icon or ""],
        )
        return category

    async def delete_category(self, name: str) -> bool:
        for category in await self.list_categories():
            if category.name == name:
                s = self._client.settings
                return self._remove(s.categories_sheet_name, CATEGORY_COLUMNS, str(category.id))
        return False

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_budget(self, budget: Budget) -> Budget:
        s = self._client.settings
        key = self._budget_key(budget.category, budget.month)
        for existing in await self.list_budgets(month=budget.month, category=budget.category):
            budget = budget.model_copy(update={"id": existing.id})
        if not self._rewrite(s.budgets_sheet_name, BUDGET_COLUMNS, key, self._budget_to_row(budget)):
            self._append(s.budgets_sheet_name, BUDGET_COLUMNS, self._budget_to_row(budget))
        return budget

    async def delete_budget(self, category: str, month: MonthKey) -> bool:
        s = self._client.settings
        return self._remove(
            s.budgets_sheet_name,
            BUDGET_COLUMNS,
            self._budget_key(category, month),
        )

    async def list_budgets(
        self,
        month: Optional[MonthKey] = None,
        category: Optional[str] = None,
    ) -> list[Budget]:
        s = self._client.settings
        budgets = self._read(s.budgets_sheet_name, BUDGET_COLUMNS, self._row_to_budget)
        return [
            budget for budget in budgets
            if (month is None or budget.month == month)
            and (category is None or budget.category == category)
        ]

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def add_expense(self, expense: Expense) -> Expense:
        s = self._client.settings
        self._append(s.expenses_sheet_name, EXPENSE_COLUMNS, self._expense_to_row(expense))
        return expense

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        for expense in await self.list_expenses():
            if expense.id == expense_id:
                return expense
        return None

    async def update_expense(self, expense: Expense) -> Expense:
        s = self._client.settings
        if not self._rewrite(s.expenses_sheet_name, EXPENSE_COLUMNS, str(expense.id), self._expense_to_row(expense)):
            raise NotFoundError(f"Expense not found: {expense.id}")
        return expense

    async def delete_expense(self, expense_id: UUID) -> bool:
        s = self._client.settings
        return self._remove(s.expenses_sheet_name, EXPENSE_COLUMNS, str(expense_id))

    async def list_expenses(
        self,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        s = self._client.settings
        expenses = [
            expense
            for expense in self._read(s.expenses_sheet_name, EXPENSE_COLUMNS, self._row_to_expense)
            if (category is None or expense.category == category)
            and (date_from is None or expense.date >= date_from)
            and (date_to is None or expense.date <= date_to)
        ]
        # Sort by date descending (newest first)
        expenses.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return expenses

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def add_credit(self, credit: Credit) -> Credit:
        s = self._client.settings
        self._append(s.credits_sheet_name, CREDIT_COLUMNS, self._credit_to_row(credit))
        return credit

    async def get_credit(self, credit_id: UUID) -> Optional[Credit]:
        for credit in await self.list_credits():
            if credit.id == credit_id:
                return credit
        return None

    async def update_credit(self, credit: Credit) -> Credit:
        s = self._client.settings
        if not self._rewrite(s.credits_sheet_name, CREDIT_COLUMNS, str(credit.id), self._credit_to_row(credit)):
            raise NotFoundError(f"Credit not found: {credit.id}")
        return credit

    async def delete_credit(self, credit_id: UUID) -> bool:
        s = self._client.settings
        return self._remove(s.credits_sheet_name, CREDIT_COLUMNS, str(credit_id))

    async def list_credits(
        self,
        category: Optional[str] = None,
        unassigned_only: bool = False,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Credit]:
        s = self._client.settings
        credits = [
            credit
            for credit in self._read(s.credits_sheet_name, CREDIT_COLUMNS, self._row_to_credit)
            if (category is None or credit.category == category)
            and (not unassigned_only or credit.is_unassigned)
            and (date_from is None or credit.date >= date_from)
            and (date_to is None or credit.date <= date_to)
        ]
        credits.sort(key=lambda c: (c.date, c.created_at), reverse=True)
        return credits

    # -------------------------------------------------------------------------
    # Credit card charges
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def add_credit_card_expense(self, charge: CreditCardExpense) -> CreditCardExpense:
        s = self._client.settings
        self._append(s.credit_card_sheet_name, CREDIT_CARD_COLUMNS, self._charge_to_row(charge))
        return charge

    async def get_credit_card_expense(self, charge_id: UUID) -> Optional[CreditCardExpense]:
        for charge in await self.list_credit_card_expenses():
            if charge.id == charge_id:
                return charge
        return None

    async def update_credit_card_expense(self, charge: CreditCardExpense) -> CreditCardExpense:
        s = self._client.settings
        if not self._rewrite(s.credit_card_sheet_name, CREDIT_CARD_COLUMNS, str(charge.id), self._charge_to_row(charge)):
            raise NotFoundError(f"Credit card expense not found: {charge.id}")
        return charge

    async def delete_credit_card_expense(self, charge_id: UUID) -> bool:
        s = self._client.settings
        return self._remove(s.credit_card_sheet_name, CREDIT_CARD_COLUMNS, str(charge_id))

    async def list_credit_card_expenses(
        self,
        paid: Optional[bool] = None,
    ) -> list[CreditCardExpense]:
        s = self._client.settings
        charges = [
            charge
            for charge in self._read(s.credit_card_sheet_name, CREDIT_CARD_COLUMNS, self._row_to_charge)
            if paid is None or charge.paid == paid
        ]
        charges.sort(key=lambda c: c.date, reverse=True)
        return charges

    # -------------------------------------------------------------------------
    # Unassigned credit pool
    # -------------------------------------------------------------------------

    async def get_unassigned(self, year: int, month: int) -> Optional[MonthlyUnassignedCredit]:
        for entry in await self.list_unassigned():
            if entry.year == year and entry.month == month:
                return entry
        return None

    async def get_unassigned_by_id(self, entry_id: UUID) -> Optional[MonthlyUnassignedCredit]:
        for entry in await self.list_unassigned():
            if entry.id == entry_id:
                return entry
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_unassigned(self, entry: MonthlyUnassignedCredit) -> MonthlyUnassignedCredit:
        s = self._client.settings
        existing = await self.get_unassigned(entry.year, entry.month)
        if existing:
            entry = entry.model_copy(update={"id": existing.id})
            self._rewrite(s.unassigned_sheet_name, UNASSIGNED_COLUMNS, str(existing.id), self._unassigned_to_row(entry))
        else:
            self._append(s.unassigned_sheet_name, UNASSIGNED_COLUMNS, self._unassigned_to_row(entry))
        return entry

    async def delete_unassigned(self, entry_id: UUID) -> bool:
        s = self._client.settings
        return self._remove(s.unassigned_sheet_name, UNASSIGNED_COLUMNS, str(entry_id))

    async def list_unassigned(self) -> list[MonthlyUnassignedCredit]:
        s = self._client.settings
        entries = self._read(s.unassigned_sheet_name, UNASSIGNED_COLUMNS, self._row_to_unassigned)
        entries.sort(key=lambda e: (e.year, e.month), reverse=True)
        return entries

    async def replace_unassigned(self, entries: list[MonthlyUnassignedCredit]) -> None:
        s = self._client.settings
        try:
            sheet = self._sheet(s.unassigned_sheet_name, UNASSIGNED_COLUMNS)
            sheet.clear()
            sheet.append_rows(
                [UNASSIGNED_COLUMNS] + [self._unassigned_to_row(e) for e in entries],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to rebuild unassigned credits: {e}")

    # -------------------------------------------------------------------------
    # Salary months
    # -------------------------------------------------------------------------

    async def list_salary_months(self) -> list[SalaryMonthFlag]:
        s = self._client.settings

        def parse(row: list) -> SalaryMonthFlag:
            key = MonthKey.parse(_safe_get(row, 0))
            return SalaryMonthFlag(
                year=key.year,
                month=key.month,
                salary_added_at=datetime.fromisoformat(_safe_get(row, 1)),
            )

        flags = self._read(s.salary_months_sheet_name, SALARY_MONTH_COLUMNS, parse)
        return sorted(flags, key=lambda f: (f.year, f.month))

    async def mark_salary_month(self, year: int, month: int) -> SalaryMonthFlag:
        for flag in await self.list_salary_months():
            if flag.year == year and flag.month == month:
                return flag
        flag = SalaryMonthFlag(year=year, month=month)
        s = self._client.settings
        self._append(
            s.salary_months_sheet_name,
            SALARY_MONTH_COLUMNS,
            [str(flag.month_key), flag.salary_added_at.isoformat()],
        )
        return flag

    async def unmark_salary_month(self, year: int, month: int) -> bool:
        s = self._client.settings
        return self._remove(
            s.salary_months_sheet_name,
            SALARY_MONTH_COLUMNS,
            str(MonthKey(year=year, month=month)),
        )

    # -------------------------------------------------------------------------
    # Recurring expenses
    # -------------------------------------------------------------------------

    async def list_recurring_expenses(self, active_only: bool = False) -> list[RecurringExpense]:
        s = self._client.settings
        rules = [
            rule
            for rule in self._read(s.recurring_sheet_name, RECURRING_COLUMNS, self._row_to_recurring)
            if not active_only or rule.is_active
        ]
        rules.sort(key=lambda r: r.created_at, reverse=True)
        return rules

    async def get_recurring_expense(self, rule_id: UUID) -> Optional[RecurringExpense]:
        for rule in await self.list_recurring_expenses():
            if rule.id == rule_id:
                return rule
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_recurring_expense(self, rule: RecurringExpense) -> RecurringExpense:
        s = self._client.settings
        self._append(s.recurring_sheet_name, RECURRING_COLUMNS, self._recurring_to_row(rule))
        return rule

    async def update_recurring_expense(self, rule: RecurringExpense) -> RecurringExpense:
        s = self._client.settings
        if not self._rewrite(s.recurring_sheet_name, RECURRING_COLUMNS, str(rule.id), self._recurring_to_row(rule)):
            raise NotFoundError(f"Recurring expense not found: {rule.id}")
        return rule

    async def delete_recurring_expense(self, rule_id: UUID) -> bool:
        s = self._client.settings
        return self._remove(s.recurring_sheet_name, RECURRING_COLUMNS, str(rule_id))

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def get_profile(self) -> UserProfile:
        s = self._client.settings
        profiles = self._read(
            s.profile_sheet_name,
            PROFILE_COLUMNS,
            lambda row: UserProfile(
                user_id=_safe_get(row, 0),
                initial_bank_balance=Decimal(_safe_get(row, 1, "0")),
                updated_at=datetime.fromisoformat(_safe_get(row, 2)),
            ),
        )
        for profile in profiles:
            if profile.user_id == self._user_id:
                return profile
        return UserProfile(user_id=self._user_id)

    async def set_initial_bank_balance(self, amount: Decimal) -> UserProfile:
        s = self._client.settings
        profile = UserProfile(
            user_id=self._user_id,
            initial_bank_balance=amount,
            updated_at=utcnow(),
        )
        row = [profile.user_id, str(profile.initial_bank_balance), profile.updated_at.isoformat()]
        if not self._rewrite(s.profile_sheet_name, PROFILE_COLUMNS, self._user_id, row):
            self._append(s.profile_sheet_name, PROFILE_COLUMNS, row)
        return profile


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    def _all_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._all_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
