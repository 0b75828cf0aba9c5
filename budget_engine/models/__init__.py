"""
Data Models Package

This package contains all Pydantic models used in the Budget Engine.
All data flowing through the engine must conform to these schemas.
"""

from budget_engine.models.ledger import (
    Budget,
    BulkPaymentResult,
    Category,
    CategorySummary,
    Credit,
    CreditCardExpense,
    CreditIncomeAnalytics,
    DerivedAggregates,
    EntryKind,
    Expense,
    IncomeShare,
    IncomeTrendPoint,
    LedgerSnapshot,
    MonthKey,
    MonthlyUnassignedCredit,
    PaymentFailure,
    PaymentMethod,
    RecurringExpense,
    RecurringRunResult,
    SalaryMonthFlag,
    SalaryRecordResult,
    SplitAssignment,
    SplitResult,
    UserProfile,
    ValidationIssue,
    ValidationResult,
    money,
    months_of_year,
    today_in,
)
from budget_engine.models.events import (
    LedgerEvent,
    LedgerEventType,
)
from budget_engine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Budget",
    "BulkPaymentResult",
    "Category",
    "CategorySummary",
    "Credit",
    "CreditCardExpense",
    "CreditIncomeAnalytics",
    "DerivedAggregates",
    "EntryKind",
    "Expense",
    "IncomeShare",
    "IncomeTrendPoint",
    "LedgerSnapshot",
    "MonthKey",
    "MonthlyUnassignedCredit",
    "PaymentFailure",
    "PaymentMethod",
    "RecurringExpense",
    "RecurringRunResult",
    "SalaryMonthFlag",
    "SalaryRecordResult",
    "SplitAssignment",
    "SplitResult",
    "UserProfile",
    "ValidationIssue",
    "ValidationResult",
    "money",
    "months_of_year",
    "today_in",
    # Events
    "LedgerEvent",
    "LedgerEventType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
