"""
Summary Query API

DESIGN DECISION: Reads are served from the derived cache.
The refresh coordinator keeps that cache current; readers never trigger a
recompute. When the cache has nothing for the requested key (cold start, a
year no run has covered yet) the answer is derived on the spot from a fresh
snapshot, using the same pure calculators the pipeline uses.

Values are eventually consistent: right after a mutation they may lag by
the debounce/throttle window.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from pydantic import BaseModel, Field

from budget_engine.config import EngineSettings, get_settings
from budget_engine.engine import (
    BankBalance,
    DerivedCache,
    LedgerIndex,
    MonthTotals,
    accumulated_by_category,
    credit_income_analytics,
    derive_aggregates,
    month_totals,
    over_budget_categories,
    period_months,
    remaining_grid,
)
from budget_engine.models.ledger import (
    ZERO,
    CategorySummary,
    CreditIncomeAnalytics,
    MonthKey,
    MonthlyUnassignedCredit,
    today_in,
)
from budget_engine.services.storage import LedgerStoreInterface


class OutstandingDebt(BaseModel):
    """Unpaid credit-card charges."""

    total: Decimal = ZERO
    by_category: dict[str, Decimal] = Field(default_factory=dict)
    charge_count: int = 0


class SummaryQueries:
    """
    Read API consumed by presentation layers.

    GUARANTEES:
    - Never writes to the ledger store
    - Cached values are returned as-is, fresh derivation only on a miss
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        cache: DerivedCache,
        settings: Optional[EngineSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._cache = cache
        self._settings = settings or get_settings().engine
        self._today = today or (lambda: today_in(self._settings.timezone))

    async def _fresh_index(self) -> LedgerIndex:
        snapshot = await self._store.snapshot()
        return LedgerIndex(snapshot, self._settings.hidden_categories)

    # -------------------------------------------------------------------------
    # Category summaries
    # -------------------------------------------------------------------------

    async def get_category_summaries(self, month: MonthKey) -> list[CategorySummary]:
        cached = self._cache.summaries(month)
        if cached is not None:
            return cached
        return (await self._fresh_index()).summarize(month)

    async def get_over_budget_categories(self, month: MonthKey) -> list[CategorySummary]:
        return over_budget_categories(await self.get_category_summaries(month))

    async def get_month_totals(self, month: MonthKey) -> MonthTotals:
        return month_totals(month, await self.get_category_summaries(month))

    async def get_remaining_for_month(self, category: str, month: MonthKey) -> Decimal:
        for summary in await self.get_category_summaries(month):
            if summary.category == category:
                return summary.remaining
        return ZERO

    async def get_remaining_grid(self, year: int) -> dict[str, dict[int, Decimal]]:
        """Category x month remaining balances for one year (analytics)."""
        return remaining_grid(await self._fresh_index(), year)

    # -------------------------------------------------------------------------
    # Accumulation
    # -------------------------------------------------------------------------

    async def get_accumulated_by_category(self, year: int) -> dict[str, Decimal]:
        cached = self._cache.accumulated(year)
        if cached is not None:
            return cached
        return accumulated_by_category(await self._fresh_index(), year, self._today())

    async def get_accumulated_balance(self, category: str, year: int) -> Decimal:
        return (await self.get_accumulated_by_category(year)).get(category, ZERO)

    async def get_total_accumulated_balance(self, year: Optional[int] = None) -> Decimal:
        """
        Sum over all categories.

        With a year: that year's accumulation window. Without: lifetime,
        which is the figure the bank balance is composed from.
        """
        if year is not None:
            return sum((await self.get_accumulated_by_category(year)).values(), ZERO)
        if self._cache.is_warm:
            return sum(self._cache.lifetime_accumulated().values(), ZERO)
        return (await self._derive()).lifetime_accumulated_balance

    # -------------------------------------------------------------------------
    # Unassigned pool
    # -------------------------------------------------------------------------

    async def get_unassigned_credits_total(self) -> Decimal:
        if self._cache.is_warm:
            return self._cache.pool_total()
        return sum((e.amount for e in await self._store.list_unassigned()), ZERO)

    async def get_unassigned_for_month(self, year: int, month: int) -> Decimal:
        key = MonthKey(year=year, month=month)
        if self._cache.is_warm:
            return self._cache.pool().get(key, ZERO)
        entry = await self._store.get_unassigned(year, month)
        return entry.amount if entry else ZERO

    async def list_unassigned(self) -> list[MonthlyUnassignedCredit]:
        """Pool entries, newest month first (split candidates)."""
        return await self._store.list_unassigned()

    # -------------------------------------------------------------------------
    # Bank balance and debt
    # -------------------------------------------------------------------------

    async def get_bank_balance(self) -> BankBalance:
        cached = self._cache.bank_balance()
        if cached is not None:
            return cached
        aggregates = await self._derive()
        return BankBalance(
            accumulated=aggregates.lifetime_accumulated_balance,
            unassigned=aggregates.unassigned_total,
            initial=aggregates.initial_bank_balance,
        )

    async def get_outstanding_debt(self) -> OutstandingDebt:
        charges = await self._store.list_credit_card_expenses(paid=False)
        by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for charge in charges:
            by_category[charge.category] += charge.amount
        return OutstandingDebt(
            total=sum(by_category.values(), ZERO),
            by_category=dict(sorted(by_category.items())),
            charge_count=len(charges),
        )

    async def _derive(self):
        snapshot = await self._store.snapshot()
        return derive_aggregates(snapshot, self._today(), self._settings)

    # -------------------------------------------------------------------------
    # Credit and income analytics
    # -------------------------------------------------------------------------

    async def get_credit_income_analytics(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> CreditIncomeAnalytics:
        """
        Incoming money for one month, one year, or (no arguments) the
        current year. Read straight from the credit rows.
        """
        year = year or self._today().year
        months = period_months(year, month)
        credits = await self._store.list_credits(
            date_from=months[0].first_day,
            date_to=months[-1].last_day,
        )
        return credit_income_analytics(
            credits,
            self._settings.salary_category_name,
            year,
            month,
        )
