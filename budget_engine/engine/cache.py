"""
Derived-Aggregate Cache

DerivedCache holds the last successfully computed aggregates in four
namespaces: category summaries, accumulated balances, pool totals and bank
balance. Each namespace is filled by exactly one pipeline stage, and all
four are replaced together in `commit` (no await inside), so readers never
see a mix of two runs. A failed run never calls `commit`.

AggregateMemo memoizes the pure derivation on a fingerprint of the
snapshot, so redundant refreshes over an unchanged ledger cost one hash.
"""

import hashlib
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

from budget_engine.config import EngineSettings
from budget_engine.engine.bank_balance import BankBalance
from budget_engine.engine.pipeline import derive_aggregates
from budget_engine.models.ledger import (
    ZERO,
    CategorySummary,
    DerivedAggregates,
    LedgerSnapshot,
    MonthKey,
    utcnow,
)


class DerivedCache:
    """Last committed aggregates, split by owning stage."""

    def __init__(self):
        self._summaries: dict[MonthKey, list[CategorySummary]] = {}
        self._accumulated: dict[int, dict[str, Decimal]] = {}
        self._lifetime: dict[str, Decimal] = {}
        self._pool: dict[MonthKey, Decimal] = {}
        self._pool_total: Decimal = ZERO
        self._bank_balance: Optional[BankBalance] = None
        self.last_aggregates: Optional[DerivedAggregates] = None
        self.updated_at: Optional[datetime] = None
        self.version = 0

    @property
    def is_warm(self) -> bool:
        return self.last_aggregates is not None

    def commit(self, aggregates: DerivedAggregates) -> None:
        """
        Store the output of one successful run.

        Summaries are merged by month; every other namespace is replaced.
        Accumulated balances are kept for the committed year only, since
        any mutation can change the accumulation of other years.
        """
        self._summaries.update(aggregates.summaries)
        self._accumulated = {aggregates.year: dict(aggregates.accumulated_by_category)}
        self._lifetime = dict(aggregates.lifetime_accumulated_by_category)
        self._pool = dict(aggregates.unassigned_by_month)
        self._pool_total = aggregates.unassigned_total
        self._bank_balance = BankBalance(
            accumulated=aggregates.lifetime_accumulated_balance,
            unassigned=aggregates.unassigned_total,
            initial=aggregates.initial_bank_balance,
        )
        self.last_aggregates = aggregates
        self.updated_at = utcnow()
        self.version += 1

    def summaries(self, month: MonthKey) -> Optional[list[CategorySummary]]:
        return self._summaries.get(month)

    def accumulated(self, year: int) -> Optional[dict[str, Decimal]]:
        return self._accumulated.get(year)

    def lifetime_accumulated(self) -> dict[str, Decimal]:
        return self._lifetime

    def pool(self) -> dict[MonthKey, Decimal]:
        return self._pool

    def pool_total(self) -> Decimal:
        return self._pool_total

    def bank_balance(self) -> Optional[BankBalance]:
        return self._bank_balance


def snapshot_fingerprint(snapshot: LedgerSnapshot) -> str:
    """Stable digest of the ledger facts (capture time excluded)."""
    payload = snapshot.model_dump_json(exclude={"taken_at"})
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class AggregateMemo:
    """Small LRU over derive_aggregates keyed by snapshot fingerprint."""

    def __init__(
        self,
        derive: Callable[..., DerivedAggregates] = derive_aggregates,
        maxsize: int = 8,
    ):
        self._derive = derive
        self._maxsize = maxsize
        self._entries: OrderedDict[tuple, DerivedAggregates] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get_or_derive(
        self,
        snapshot: LedgerSnapshot,
        today: date,
        settings: EngineSettings,
        year: Optional[int] = None,
        months: Iterable[MonthKey] = (),
        force: bool = False,
    ) -> DerivedAggregates:
        months = tuple(sorted(set(months)))
        key = (
            snapshot_fingerprint(snapshot),
            MonthKey.of(today),
            year or today.year,
            months,
            force,
            settings.ledger_start_year,
            settings.hidden_categories,
        )
        if key in self._entries:
            self.hits += 1
            self._entries.move_to_end(key)
            return self._entries[key]

        self.misses += 1
        aggregates = self._derive(
            snapshot,
            today,
            settings,
            year=year,
            months=months,
            force=force,
        )
        self._entries[key] = aggregates
        if len(self._entries) > self._maxsize:
            self._entries.popitem(last=False)
        return aggregates

    def clear(self) -> None:
        self._entries.clear()
