"""
Unassigned Credit Reconciler

Maintains the pool of credits not yet attributed to a category and splits
pool entries into categorized credits.

The pool is an index over the null-category Credit rows, one entry per
(year, month). It can always be rebuilt from those rows
(`pool_from_credits`); force-mode refreshes do exactly that.

SPLIT ATOMICITY:
Assignment credits are written one by one. The source pool entry is
deleted (or reduced to the remainder) only after every write succeeded.
When a write fails part-way the entry is kept, already-written credits stay
in place, and PartialSplitError tells the caller which ones exist.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog

from budget_engine.audit.logger import AuditLogger
from budget_engine.config import EngineSettings, SplitPolicy, get_settings
from budget_engine.models.ledger import (
    ZERO,
    Credit,
    MonthKey,
    MonthlyUnassignedCredit,
    SplitAssignment,
    SplitResult,
    utcnow,
)
from budget_engine.services.storage import LedgerStoreInterface, NotFoundError


logger = structlog.get_logger(__name__)


class SplitError(Exception):
    """Base exception for split operations."""
    pass


class SplitValidationError(SplitError):
    """Assignments do not satisfy the split policy. Nothing was written."""
    pass


class PartialSplitError(SplitError):
    """
    A write failed after some assignment credits were already stored.

    The pool entry was NOT deleted. Retrying blindly would duplicate the
    credits in `written`; resolve by deleting them or re-splitting the rest.
    """

    retryable = True

    def __init__(
        self,
        pool_entry_id: UUID,
        written: list[Credit],
        failed: Optional[SplitAssignment],
        cause: Exception,
    ):
        self.pool_entry_id = pool_entry_id
        self.written = written
        self.failed = failed
        self.cause = cause
        where = f"assignment to '{failed.category}'" if failed else "pool cleanup"
        super().__init__(
            f"Split of pool entry {pool_entry_id} stopped at {where} "
            f"after {len(written)} credit(s) were written: {cause}"
        )


def pool_from_credits(
    credits: Iterable[Credit],
    existing: Iterable[MonthlyUnassignedCredit] = (),
) -> list[MonthlyUnassignedCredit]:
    """
    Rebuild the pool from null-category credits.

    Entry ids of months already present in `existing` are kept. Result is
    ordered newest month first.
    """
    sums: dict[MonthKey, Decimal] = defaultdict(lambda: ZERO)
    for credit in credits:
        if credit.is_unassigned:
            sums[MonthKey.of(credit.date)] += credit.amount

    previous = {entry.month_key: entry for entry in existing}
    entries = []
    for month in sorted(sums, reverse=True):
        amount = sums[month]
        if amount <= 0:
            continue
        prior = previous.get(month)
        if prior and prior.amount == amount:
            entries.append(prior)
        elif prior:
            entries.append(prior.model_copy(update={"amount": amount, "updated_at": utcnow()}))
        else:
            entries.append(MonthlyUnassignedCredit(
                year=month.year,
                month=month.month,
                amount=amount,
            ))
    return entries


def pool_totals(entries: Iterable[MonthlyUnassignedCredit]) -> dict[MonthKey, Decimal]:
    totals: dict[MonthKey, Decimal] = defaultdict(lambda: ZERO)
    for entry in entries:
        totals[entry.month_key] += entry.amount
    return dict(sorted(totals.items(), reverse=True))


def split_description(source: MonthKey, target: MonthKey) -> str:
    return f"Split from unassigned credit ({source}) to {target}"


class UnassignedCreditReconciler:
    """
    Pool operations against the ledger store.

    Usage:
        reconciler = UnassignedCreditReconciler(store)
        await reconciler.add_or_merge(2025, 2, Decimal("1000"))
        result = await reconciler.split(entry.id, assignments)
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().engine
        self._audit = audit_logger or AuditLogger()

    async def add_or_merge(self, year: int, month: int, amount: Decimal) -> MonthlyUnassignedCredit:
        """
        Add `amount` to the pool entry of (year, month), creating it if needed.

        Each call adds; call exactly once per real event.
        """
        entry = await self._store.get_unassigned(year, month)
        if entry:
            entry = entry.model_copy(update={
                "amount": entry.amount + amount,
                "updated_at": utcnow(),
            })
        else:
            entry = MonthlyUnassignedCredit(year=year, month=month, amount=amount)
        return await self._store.upsert_unassigned(entry)

    async def total(self) -> Decimal:
        return sum((entry.amount for entry in await self._store.list_unassigned()), ZERO)

    async def for_month(self, year: int, month: int) -> Decimal:
        entry = await self._store.get_unassigned(year, month)
        return entry.amount if entry else ZERO

    async def entries(self) -> list[MonthlyUnassignedCredit]:
        """Pool entries, newest month first."""
        return await self._store.list_unassigned()

    async def rebuild_from_credits(self) -> list[MonthlyUnassignedCredit]:
        """Re-derive the whole pool from null-category credit rows and store it."""
        credits = await self._store.list_credits(unassigned_only=True)
        existing = await self._store.list_unassigned()
        entries = pool_from_credits(credits, existing)
        await self._store.replace_unassigned(entries)
        return entries

    def _check_assignments(
        self,
        entry: MonthlyUnassignedCredit,
        assignments: list[SplitAssignment],
    ) -> tuple[list[SplitAssignment], Decimal]:
        """Apply the split policy. Returns (effective assignments, assigned total)."""
        negative = [a for a in assignments if a.amount < 0]
        if negative:
            raise SplitValidationError(
                f"Assignment amounts cannot be negative ({negative[0].category or 'no category'})"
            )

        effective = [a for a in assignments if a.is_effective]
        if not effective:
            raise SplitValidationError("No assignment has both a category and a positive amount")

        assigned_total = sum((a.amount for a in effective), ZERO)

        # Compared exactly; amounts are two-place decimals
        if assigned_total > entry.amount:
            raise SplitValidationError(
                f"Assignments ({assigned_total}) exceed the unassigned amount ({entry.amount})"
            )
        if (
            self._settings.split_policy == SplitPolicy.EXACT
            and assigned_total != entry.amount
        ):
            raise SplitValidationError(
                f"Assignments ({assigned_total}) must add up to the unassigned amount ({entry.amount})"
            )

        return effective, assigned_total

    async def split(
        self,
        pool_entry_id: UUID,
        assignments: list[SplitAssignment],
        correlation_id: Optional[UUID] = None,
    ) -> SplitResult:
        """
        Split a pool entry into categorized credits.

        Each effective assignment becomes a Credit dated on the first day of
        its target month. With the exact policy the assignments must add up
        to the entry to the cent; with allow_remainder any remainder stays
        pooled in the source month.

        Raises:
            NotFoundError: No pool entry with that id
            SplitValidationError: Assignments rejected, nothing written
            PartialSplitError: A write failed part-way, pool entry kept
        """
        entry = await self._store.get_unassigned_by_id(pool_entry_id)
        if entry is None:
            raise NotFoundError(f"Unassigned credit entry not found: {pool_entry_id}")

        source = entry.month_key

        try:
            effective, assigned_total = self._check_assignments(entry, assignments)
        except SplitValidationError as e:
            await self._audit.log_split_rejected(
                pool_entry_id=pool_entry_id,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        remainder = entry.amount - assigned_total
        keep_remainder = (
            self._settings.split_policy == SplitPolicy.ALLOW_REMAINDER
            and remainder > 0
        )

        written: list[Credit] = []
        failed: Optional[SplitAssignment] = None
        try:
            for assignment in effective:
                failed = assignment
                credit = Credit(
                    category=assignment.category,
                    amount=assignment.amount,
                    description=split_description(source, assignment.target),
                    date=assignment.target.first_day,
                )
                written.append(await self._store.add_credit(credit))
            failed = None

            # Source credits are consumed; a remainder is re-pooled as one row
            sources = await self._store.list_credits(
                unassigned_only=True,
                date_from=source.first_day,
                date_to=source.last_day,
            )
            if keep_remainder:
                await self._store.add_credit(Credit(
                    amount=remainder,
                    description=f"Unassigned remainder of split ({source})",
                    date=source.first_day,
                ))
            for credit in sources:
                await self._store.delete_credit(credit.id)
        except Exception as e:
            logger.error(
                "split_partial_failure",
                pool_entry_id=str(pool_entry_id),
                written=len(written),
                error=str(e),
            )
            await self._audit.log_split_partial(
                pool_entry_id=pool_entry_id,
                written_credit_ids=[c.id for c in written],
                failed_category=failed.category if failed else "",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise PartialSplitError(pool_entry_id, written, failed, e) from e

        if keep_remainder:
            await self._store.upsert_unassigned(entry.model_copy(update={
                "amount": remainder,
                "updated_at": utcnow(),
            }))
            deleted = False
        else:
            deleted = await self._store.delete_unassigned(entry.id)

        await self._audit.log_split_completed(
            pool_entry_id=pool_entry_id,
            source_month=str(source),
            assigned_total=str(assigned_total),
            remainder=str(remainder),
            credit_count=len(written),
            correlation_id=correlation_id,
        )

        return SplitResult(
            pool_entry_id=pool_entry_id,
            source_month=source,
            credits_written=written,
            assigned_total=assigned_total,
            remainder=remainder,
            pool_entry_deleted=deleted,
        )
