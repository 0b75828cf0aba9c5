"""
Recompute Pipeline

    (LedgerSnapshot) -> DerivedAggregates

Stages run strictly in order, each reading what the previous one produced:

1. summaries     category summaries for the refreshed months
2. accumulate    year-scoped and lifetime accumulated balances
3. unassigned    pool totals (re-derived from credit rows in force mode)
4. bank_balance  composed bank balance

The whole function is pure. A failing stage raises PipelineError naming
the stage; nothing partial is returned.
"""

from contextlib import contextmanager
from datetime import date
from typing import Iterable, Optional

from budget_engine.config import EngineSettings
from budget_engine.engine.accumulator import (
    accumulated_by_category,
    lifetime_accumulated_by_category,
)
from budget_engine.engine.bank_balance import compose_bank_balance
from budget_engine.engine.reconciler import pool_from_credits, pool_totals
from budget_engine.engine.summary import LedgerIndex
from budget_engine.models.ledger import (
    ZERO,
    DerivedAggregates,
    LedgerSnapshot,
    MonthKey,
    months_of_year,
)


STAGES = ("summaries", "accumulate", "unassigned", "bank_balance")


class PipelineError(Exception):
    """A pipeline stage failed; cached aggregates must stay untouched."""

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Pipeline stage '{stage}' failed: {cause}")


@contextmanager
def pipeline_stage(name: str):
    """Re-raise any failure inside the block as PipelineError(name)."""
    try:
        yield
    except PipelineError:
        raise
    except Exception as e:
        raise PipelineError(name, e) from e


def derive_aggregates(
    snapshot: LedgerSnapshot,
    today: date,
    settings: EngineSettings,
    year: Optional[int] = None,
    months: Iterable[MonthKey] = (),
    force: bool = False,
) -> DerivedAggregates:
    """
    Derive every aggregate from one snapshot.

    Args:
        snapshot: Ledger facts
        today: Defines the current calendar month
        settings: Hidden categories and the lifetime start year
        year: Reference year for year-scoped accumulation (default: today's)
        months: Extra months to summarize besides the reference year
        force: Rebuild the unassigned pool from null-category credits
    """
    year = year or today.year

    with pipeline_stage("summaries"):
        index = LedgerIndex(snapshot, settings.hidden_categories)
        refreshed = sorted(set(months_of_year(year)) | set(months))
        summaries = {month: index.summarize(month) for month in refreshed}

    with pipeline_stage("accumulate"):
        accumulated = accumulated_by_category(index, year, today)
        lifetime = lifetime_accumulated_by_category(
            index, settings.ledger_start_year, today
        )

    with pipeline_stage("unassigned"):
        if force:
            entries = pool_from_credits(snapshot.credits, snapshot.unassigned)
        else:
            entries = list(snapshot.unassigned)
        by_month = pool_totals(entries)
        unassigned_total = sum(by_month.values(), ZERO)

    with pipeline_stage("bank_balance"):
        bank_balance = compose_bank_balance(
            sum(lifetime.values(), ZERO),
            unassigned_total,
            snapshot.initial_bank_balance,
        )

    return DerivedAggregates(
        user_id=snapshot.user_id,
        as_of=MonthKey.of(today),
        year=year,
        summaries=summaries,
        accumulated_by_category=accumulated,
        lifetime_accumulated_by_category=lifetime,
        unassigned_by_month=by_month,
        unassigned_entries=entries,
        unassigned_total=unassigned_total,
        initial_bank_balance=snapshot.initial_bank_balance,
        bank_balance=bank_balance,
    )
