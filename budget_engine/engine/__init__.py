"""
Budget accumulation and reconciliation engine.

Pure calculators (summary, accumulator, bank_balance, pipeline) read a
LedgerSnapshot. The reconciler, the salary housekeeper and the refresh
coordinator talk to the ledger store.
"""

from budget_engine.engine.accumulator import (
    accumulated_balance,
    accumulated_by_category,
    accumulation_window,
    lifetime_accumulated_by_category,
    lifetime_window,
    remaining_for_month,
    remaining_grid,
)
from budget_engine.engine.bank_balance import BankBalance, compose_bank_balance
from budget_engine.engine.cache import AggregateMemo, DerivedCache, snapshot_fingerprint
from budget_engine.engine.coordinator import CoordinatorState, RefreshCoordinator
from budget_engine.engine.income import credit_income_analytics, period_months
from budget_engine.engine.pipeline import STAGES, PipelineError, derive_aggregates
from budget_engine.engine.reconciler import (
    PartialSplitError,
    SplitError,
    SplitValidationError,
    UnassignedCreditReconciler,
    pool_from_credits,
    pool_totals,
)
from budget_engine.engine.recurring import due_occurrences, is_finished
from budget_engine.engine.salary import SalaryMonthHousekeeper
from budget_engine.engine.summary import (
    LedgerIndex,
    MonthTotals,
    month_totals,
    over_budget_categories,
    summarize,
    total_budget,
)

__all__ = [
    # Calculators
    "LedgerIndex",
    "MonthTotals",
    "summarize",
    "month_totals",
    "over_budget_categories",
    "total_budget",
    "accumulation_window",
    "lifetime_window",
    "accumulated_balance",
    "accumulated_by_category",
    "lifetime_accumulated_by_category",
    "remaining_for_month",
    "remaining_grid",
    "BankBalance",
    "compose_bank_balance",
    "credit_income_analytics",
    "period_months",
    # Pipeline
    "STAGES",
    "PipelineError",
    "derive_aggregates",
    "AggregateMemo",
    "DerivedCache",
    "snapshot_fingerprint",
    "CoordinatorState",
    "RefreshCoordinator",
    # Reconciliation
    "SplitError",
    "SplitValidationError",
    "PartialSplitError",
    "UnassignedCreditReconciler",
    "pool_from_credits",
    "pool_totals",
    "SalaryMonthHousekeeper",
    # Recurring expenses
    "due_occurrences",
    "is_finished",
]
