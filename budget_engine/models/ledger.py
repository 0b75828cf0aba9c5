"""
Core Ledger Models for Budget Engine

These models define the strict schemas for the raw ledger facts and for the
aggregates derived from them. They are designed to:
1. Keep money in Decimal (no binary float drift across accumulations)
2. Reject impossible values at the boundary (non-positive amounts)
3. Be serializable for storage and logging
4. Separate raw facts (persisted) from derived values (recomputed)

DESIGN DECISION: Derived models (CategorySummary, DerivedAggregates) carry no
identity of their own. They are always rebuilt from a LedgerSnapshot and may
be thrown away at any time.
"""

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")
ZERO = Decimal("0")
UNASSIGNED_LABEL = "Unassigned"

PositiveAmount = Annotated[Decimal, Field(gt=0, decimal_places=2)]
NonNegativeAmount = Annotated[Decimal, Field(ge=0, decimal_places=2)]


def money(value) -> Decimal:
    """Round a value to currency precision (2 places, half-up) for display."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.utcnow()


def today_in(timezone: str) -> date:
    """Calendar date "now" in the given IANA timezone."""
    return datetime.now(ZoneInfo(timezone)).date()


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PaymentMethod(str, Enum):
    """How an expense left the budget."""
    CASH = "cash"
    CREDIT_CARD_DUE_PAYMENT = "credit_card_due_payment"


# =============================================================================
# CALENDAR MONTH
# =============================================================================

class MonthKey(BaseModel):
    """
    A calendar month identifier (year + month).

    Hashable and ordered so it can key caches and bound accumulation windows.
    """
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1, le=9999)
    month: int = Field(..., ge=1, le=12)

    @classmethod
    def of(cls, value: date) -> "MonthKey":
        return cls(year=value.year, month=value.month)

    @classmethod
    def parse(cls, text: str) -> "MonthKey":
        """Parse a 'YYYY-MM' string."""
        try:
            year, month = text.strip().split("-")[:2]
            return cls(year=int(year), month=int(month))
        except (ValueError, AttributeError) as e:
            raise ValueError(f"Invalid month identifier: {text!r}") from e

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return self.next().first_day - timedelta(days=1)

    def next(self) -> "MonthKey":
        if self.month == 12:
            return MonthKey(year=self.year + 1, month=1)
        return MonthKey(year=self.year, month=self.month + 1)

    def contains(self, value: date) -> bool:
        return value.year == self.year and value.month == self.month

    def _key(self) -> tuple[int, int]:
        return (self.year, self.month)

    def __lt__(self, other: "MonthKey") -> bool:
        return self._key() < other._key()

    def __le__(self, other: "MonthKey") -> bool:
        return self._key() <= other._key()

    def __gt__(self, other: "MonthKey") -> bool:
        return self._key() > other._key()

    def __ge__(self, other: "MonthKey") -> bool:
        return self._key() >= other._key()

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def months_of_year(year: int) -> list[MonthKey]:
    return [MonthKey(year=year, month=m) for m in range(1, 13)]


# =============================================================================
# RAW LEDGER FACTS
# =============================================================================

class Category(BaseModel):
    """
    A user-defined spending category.

    Budgets, expenses and credits reference categories by NAME (soft
    reference); the engine never enforces that the category exists.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=50)


class Budget(BaseModel):
    """Planned amount for one category in one month. Unique per (category, month)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: str = Field(..., min_length=1, max_length=100)
    month: MonthKey
    amount: NonNegativeAmount


class Expense(BaseModel):
    """
    Money that has left the budget.

    Only Expense rows count as "spent". Settling a credit-card charge
    materializes a new Expense dated at settlement time.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: str = Field(..., min_length=1, max_length=100)
    amount: PositiveAmount
    description: str = Field(default="", max_length=500)
    date: date
    created_at: datetime = Field(default_factory=utcnow)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)


class Credit(BaseModel):
    """
    Money entering the budget.

    A credit without a category sits in the unassigned pool for its
    (year, month) until it is split into categorized credits.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: Optional[str] = Field(default=None, max_length=100)
    amount: PositiveAmount
    description: str = Field(default="", max_length=500)
    date: date
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('category')
    @classmethod
    def blank_category_is_unassigned(cls, v: Optional[str]) -> Optional[str]:
        """An empty category string means the credit is unassigned."""
        return v or None

    @property
    def is_unassigned(self) -> bool:
        return self.category is None


class CreditCardExpense(BaseModel):
    """
    A charge made on a credit card, tracked apart from expenses until paid.

    Unpaid charges never reduce a category's budget; they show up only in
    the outstanding debt view.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: str = Field(..., min_length=1, max_length=100)
    amount: PositiveAmount
    description: str = Field(default="", max_length=500)
    date: date
    created_at: datetime = Field(default_factory=utcnow)
    paid: bool = False


class MonthlyUnassignedCredit(BaseModel):
    """
    Pool entry: accumulated unassigned credit for one (year, month).

    This is an index over the null-category Credit rows of that month, not
    an independent source of truth.
    """

    id: UUID = Field(default_factory=uuid4)
    year: int = Field(..., ge=1, le=9999)
    month: int = Field(..., ge=1, le=12)
    amount: Decimal = Field(..., decimal_places=2)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def month_key(self) -> MonthKey:
        return MonthKey(year=self.year, month=self.month)


class SalaryMonthFlag(BaseModel):
    """Marks a month for which a salary credit has been recorded."""
    model_config = ConfigDict(frozen=True)

    year: int = Field(..., ge=1, le=9999)
    month: int = Field(..., ge=1, le=12)
    salary_added_at: datetime = Field(default_factory=utcnow)

    @property
    def month_key(self) -> MonthKey:
        return MonthKey(year=self.year, month=self.month)


class UserProfile(BaseModel):
    """Per-user values that are not derivable from the ledger."""

    user_id: str = Field(..., min_length=1)
    initial_bank_balance: Decimal = Field(default=ZERO, decimal_places=2)
    updated_at: datetime = Field(default_factory=utcnow)


class RecurringExpense(BaseModel):
    """
    A rule that produces one expense per month on a fixed day.

    The rule itself is never "spent"; only the Expense rows it materializes
    count. Days past the end of a short month fall on its last day.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category: str = Field(..., min_length=1, max_length=100)
    amount: PositiveAmount
    description: str = Field(default="", max_length=500)
    day_of_month: int = Field(..., ge=1, le=31)
    time_of_day: str = Field(default="09:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    total_occurrences: int = Field(..., ge=1)
    remaining_occurrences: int = Field(..., ge=0)
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    last_generated: Optional[MonthKey] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_occurrences(self) -> 'RecurringExpense':
        if self.remaining_occurrences > self.total_occurrences:
            raise ValueError("remaining_occurrences cannot exceed total_occurrences")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self

    def occurrence_in(self, month: MonthKey) -> date:
        """Scheduled date within `month`."""
        return min(month.first_day + timedelta(days=self.day_of_month - 1), month.last_day)

    @property
    def expense_description(self) -> str:
        return self.description or f"Recurring: {self.category}"


# =============================================================================
# SPLIT / PAYMENT REQUESTS AND RESULTS
# =============================================================================

class SplitAssignment(BaseModel):
    """One categorized slice of an unassigned pool entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(default="", max_length=100)
    amount: Decimal = Field(..., decimal_places=2)
    target_year: int = Field(..., ge=1, le=9999)
    target_month: int = Field(..., ge=1, le=12)

    @property
    def target(self) -> MonthKey:
        return MonthKey(year=self.target_year, month=self.target_month)

    @property
    def is_effective(self) -> bool:
        """Only assignments with a category and a positive amount are written."""
        return bool(self.category) and self.amount > 0


class SplitResult(BaseModel):
    """Outcome of a fully successful split."""

    pool_entry_id: UUID
    source_month: MonthKey
    credits_written: list[Credit] = Field(default_factory=list)
    assigned_total: Decimal
    remainder: Decimal = ZERO
    pool_entry_deleted: bool


class SalaryRecordResult(BaseModel):
    """How a recorded salary was divided."""

    month: MonthKey
    salary_credit: Credit
    unassigned_credit: Optional[Credit] = None

    @property
    def unassigned_amount(self) -> Decimal:
        return self.unassigned_credit.amount if self.unassigned_credit else ZERO


class PaymentFailure(BaseModel):
    credit_card_expense_id: UUID
    error_message: str


class BulkPaymentResult(BaseModel):
    """Outcome of paying several credit-card dues in one action."""

    paid: list[Expense] = Field(default_factory=list)
    failures: list[PaymentFailure] = Field(default_factory=list)

    @property
    def total_paid(self) -> Decimal:
        return sum((expense.amount for expense in self.paid), ZERO)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


class RecurringRunResult(BaseModel):
    """Expenses materialized by one pass over the recurring rules."""

    created: list[Expense] = Field(default_factory=list)
    completed_rule_ids: list[UUID] = Field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((expense.amount for expense in self.created), ZERO)


# =============================================================================
# DERIVED VALUES (recomputed, never authoritative)
# =============================================================================

class CategorySummary(BaseModel):
    """
    Budget position of one category in one month.

    `budget` is the effective budget: the declared budget plus categorized
    credits dated in the month. `spent` counts paid Expense rows only.
    """
    model_config = ConfigDict(frozen=True)

    category: str
    month: MonthKey
    budgeted: Decimal = ZERO
    credited: Decimal = ZERO
    budget: Decimal = ZERO
    spent: Decimal = ZERO
    remaining: Decimal = ZERO

    @model_validator(mode='after')
    def validate_remaining(self) -> 'CategorySummary':
        """remaining is always budget - spent."""
        if self.budget != self.budgeted + self.credited:
            raise ValueError("Budget must equal budgeted plus credited")
        if self.remaining != self.budget - self.spent:
            raise ValueError("Remaining must equal budget minus spent")
        return self

    @property
    def is_over_budget(self) -> bool:
        return self.remaining < 0


class LedgerSnapshot(BaseModel):
    """
    Everything the calculators read, captured at one point in time.

    The pure derivation functions only ever see a snapshot, never the store.
    """

    user_id: str
    taken_at: datetime = Field(default_factory=utcnow)
    categories: list[Category] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)
    credits: list[Credit] = Field(default_factory=list)
    credit_card_expenses: list[CreditCardExpense] = Field(default_factory=list)
    unassigned: list[MonthlyUnassignedCredit] = Field(default_factory=list)
    salary_months: list[SalaryMonthFlag] = Field(default_factory=list)
    initial_bank_balance: Decimal = ZERO

    @property
    def salary_month_keys(self) -> set[MonthKey]:
        return {flag.month_key for flag in self.salary_months}


class DerivedAggregates(BaseModel):
    """Output of one pipeline run."""

    user_id: str
    computed_at: datetime = Field(default_factory=utcnow)
    as_of: MonthKey
    year: int
    summaries: dict[MonthKey, list[CategorySummary]] = Field(default_factory=dict)
    accumulated_by_category: dict[str, Decimal] = Field(default_factory=dict)
    lifetime_accumulated_by_category: dict[str, Decimal] = Field(default_factory=dict)
    unassigned_by_month: dict[MonthKey, Decimal] = Field(default_factory=dict)
    unassigned_entries: list[MonthlyUnassignedCredit] = Field(default_factory=list)
    unassigned_total: Decimal = ZERO
    initial_bank_balance: Decimal = ZERO
    bank_balance: Decimal = ZERO

    @property
    def total_accumulated_balance(self) -> Decimal:
        """Year-scoped total across all categories."""
        return sum(self.accumulated_by_category.values(), ZERO)

    @property
    def lifetime_accumulated_balance(self) -> Decimal:
        return sum(self.lifetime_accumulated_by_category.values(), ZERO)


class IncomeShare(BaseModel):
    """One category's share of the money that came in during a period."""

    category: str
    credits: Decimal = ZERO
    income: Decimal = ZERO
    total: Decimal = ZERO
    percentage: Decimal = ZERO


class IncomeTrendPoint(BaseModel):
    month: MonthKey
    credits: Decimal = ZERO
    income: Decimal = ZERO
    total: Decimal = ZERO


class CreditIncomeAnalytics(BaseModel):
    """
    Where incoming money came from over a month or a year.

    `income` is salary; `credits` is every other credit, unassigned ones
    included under UNASSIGNED_LABEL.
    """

    year: int
    month: Optional[int] = None
    total_credits: Decimal = ZERO
    total_income: Decimal = ZERO
    category_breakdown: list[IncomeShare] = Field(default_factory=list)
    monthly_trend: list[IncomeTrendPoint] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return self.total_credits + self.total_income

    @property
    def period_label(self) -> str:
        if self.month is None:
            return str(self.year)
        return str(MonthKey(year=self.year, month=self.month))


# =============================================================================
# VALIDATION RESULT MODELS
# =============================================================================

class EntryKind(str, Enum):
    """Kinds of ledger entries that pass through validation."""
    EXPENSE = "expense"
    CREDIT = "credit"
    CREDIT_CARD_EXPENSE = "credit_card_expense"
    BUDGET = "budget"
    SALARY = "salary"


class ValidationIssue(BaseModel):
    """A single validation issue found."""
    
    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.
    
    Stage 1: Schema validation (amount, required category)
    Stage 2: Semantic validation (dates, magnitudes, soft references)
    """
    
    entry_kind: EntryKind
    validated_at: datetime = Field(default_factory=utcnow)
    
    schema_valid: bool = Field(
        ...,
        description="Did schema validation pass?"
    )
    semantic_valid: bool = Field(
        ...,
        description="Did semantic validation pass?"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )
    
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Messages of the warning-level issues"
    )
    
    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
    
    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
    
    @property
    def error_count(self) -> int:
        return len(self.errors)
