"""
Refresh Coordinator

Sequences the recompute pipeline after ledger mutations.

STATE MACHINE:
    Idle -> Running -> Idle   (success: caches committed)
    Idle -> Running -> Idle   (failure: logged, caches untouched)

SCHEDULING:
- Debounce: every request restarts a quiet-period timer, so a burst of
  mutations triggers one run.
- Throttle: a run never starts sooner than `throttle_interval` after the
  previous run started; requests inside the interval wait for its trailing
  edge instead of being lost.
- Single-flight: at most one run is in flight. A request that arrives while
  Running is either queued (at most one re-run, started right after the
  current run) or dropped, depending on `rerun_policy`.

Requests merge: the next run refreshes the union of all requested months
and runs in force mode if any request asked for it.

All of this runs on one asyncio event loop; state changes between awaits
are atomic, so no locks are needed.
"""

import asyncio
import time
from datetime import date
from enum import Enum
from typing import Callable, Iterable, Optional

import structlog

from budget_engine.audit.logger import AuditLogger
from budget_engine.config import EngineSettings, RerunPolicy, get_settings
from budget_engine.engine.cache import AggregateMemo, DerivedCache
from budget_engine.engine.pipeline import PipelineError, pipeline_stage
from budget_engine.engine.salary import SalaryMonthHousekeeper
from budget_engine.models.events import LedgerEvent
from budget_engine.models.ledger import DerivedAggregates, MonthKey, today_in, utcnow
from budget_engine.services.storage import LedgerStoreInterface


logger = structlog.get_logger(__name__)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class RefreshCoordinator:
    """
    Single-flight, debounced and throttled runner of the recompute pipeline.

    Usage:
        coordinator = RefreshCoordinator(store, cache)
        bus.subscribe(coordinator.on_event)
        ...
        await coordinator.drain()
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        cache: Optional[DerivedCache] = None,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        housekeeper: Optional[SalaryMonthHousekeeper] = None,
        memo: Optional[AggregateMemo] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().engine
        self._audit = audit_logger or AuditLogger()
        self._today = today or (lambda: today_in(self._settings.timezone))
        self._housekeeper = housekeeper or SalaryMonthHousekeeper(
            store,
            settings=self._settings,
            audit_logger=self._audit,
            today=self._today,
        )
        self._memo = memo or AggregateMemo()
        self.cache = cache or DerivedCache()

        self.state = CoordinatorState.IDLE
        self.pending_rerun = False
        self.last_run_at = None  # wall clock of the last successful run
        self._last_started: Optional[float] = None  # loop time

        self._pending_months: set[MonthKey] = set()
        self._pending_force = False
        self._pending_housekeeping = False
        self._timer: Optional[asyncio.Task] = None

        self.run_count = 0
        self.completed_runs = 0
        self.failed_runs = 0
        self.dropped_requests = 0
        self.last_error: Optional[PipelineError] = None

    @property
    def is_running(self) -> bool:
        return self.state == CoordinatorState.RUNNING

    @property
    def has_scheduled_run(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def on_event(self, event: LedgerEvent) -> None:
        """Event bus subscriber."""
        self.request(
            months=event.months,
            force=event.requires_force,
            housekeeping=event.touches_credits,
        )

    def request(
        self,
        months: Iterable[MonthKey] = (),
        force: bool = False,
        housekeeping: bool = False,
    ) -> None:
        """Ask for a recompute. Must be called from inside the event loop."""
        if self.is_running and self._settings.rerun_policy == RerunPolicy.DROP:
            self.dropped_requests += 1
            logger.info("refresh_request_dropped", run_number=self.run_count)
            return

        self._pending_months.update(months)
        self._pending_force = self._pending_force or force
        self._pending_housekeeping = self._pending_housekeeping or housekeeping

        if self.is_running:
            if not self.pending_rerun:
                logger.info("refresh_rerun_queued", run_number=self.run_count)
            self.pending_rerun = True
            return

        self._schedule(self._settings.debounce_seconds)

    async def refresh_now(
        self,
        months: Iterable[MonthKey] = (),
        force: bool = False,
        housekeeping: bool = False,
    ) -> Optional[DerivedAggregates]:
        """
        Run the pipeline without waiting for debounce or throttle.

        While a run is in flight this behaves like `request` and then waits
        for everything scheduled to finish.
        """
        if self.is_running:
            self.request(months, force, housekeeping)
            await self.drain()
            return self.cache.last_aggregates

        if self.has_scheduled_run:
            self._timer.cancel()
        self._pending_months.update(months)
        self._pending_force = self._pending_force or force
        self._pending_housekeeping = self._pending_housekeeping or housekeeping
        await self._run()
        await self.drain()
        return self.cache.last_aggregates

    async def drain(self) -> None:
        """Wait until no run is scheduled or in flight."""
        while self.has_scheduled_run:
            await asyncio.wait({self._timer})

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _schedule(self, delay: float) -> None:
        if self.has_scheduled_run:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(
            self._wait_then_run(delay)
        )

    async def _wait_then_run(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        if delay > 0:
            await asyncio.sleep(delay)

        if self._last_started is not None:
            wait = self._last_started + self._settings.throttle_interval_seconds - loop.time()
            if wait > 0:
                logger.debug("refresh_throttled", wait_seconds=round(wait, 3))
                await asyncio.sleep(wait)

        await self._run()

    def _take_pending(self) -> tuple[set[MonthKey], bool, bool]:
        pending = (
            self._pending_months,
            self._pending_force,
            self._pending_housekeeping,
        )
        self._pending_months = set()
        self._pending_force = False
        self._pending_housekeeping = False
        return pending

    # -------------------------------------------------------------------------
    # Pipeline run
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        self.state = CoordinatorState.RUNNING
        self._last_started = loop.time()
        self.run_count += 1
        run_number = self.run_count
        months, force, housekeeping = self._take_pending()
        started = time.perf_counter()

        logger.info(
            "refresh_started",
            run_number=run_number,
            months=[str(m) for m in sorted(months)],
            force=force,
        )

        try:
            if housekeeping:
                with pipeline_stage("salary_housekeeping"):
                    cleared = await self._housekeeper.reconcile()
                    months.update(cleared)

            with pipeline_stage("snapshot"):
                snapshot = await self._store.snapshot()

            today = self._today()
            aggregates = self._memo.get_or_derive(
                snapshot,
                today,
                self._settings,
                months=months,
                force=force,
            )

            if force:
                with pipeline_stage("unassigned"):
                    await self._write_pool(snapshot, aggregates, run_number)

            self.cache.commit(aggregates)
            self.last_run_at = utcnow()
            self.completed_runs += 1
            self.last_error = None

            await self._audit.log_pipeline_completed(
                run_number=run_number,
                months=[str(m) for m in sorted(months)],
                force=force,
                bank_balance=str(aggregates.bank_balance),
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        except PipelineError as e:
            self.failed_runs += 1
            self.last_error = e
            logger.error(
                "refresh_failed",
                run_number=run_number,
                stage=e.stage,
                error=str(e.cause),
            )
            await self._audit.log_pipeline_failed(
                run_number=run_number,
                stage=e.stage,
                error_message=str(e.cause),
            )
        finally:
            self.state = CoordinatorState.IDLE
            if self.pending_rerun:
                self.pending_rerun = False
                self._timer = loop.create_task(self._wait_then_run(0))

    async def _write_pool(self, snapshot, aggregates: DerivedAggregates, run_number: int) -> None:
        """
        Store the rebuilt pool unless it changed since the snapshot.

        A split or credit edit that landed mid-run makes the rebuilt pool
        stale; writing it would bring back deleted entries. The write is
        skipped and a forced re-run queued instead, regardless of
        `rerun_policy`.
        """
        current_pool = await self._store.list_unassigned()
        current_credits = await self._store.list_credits(unassigned_only=True)
        snapshot_credits = [c for c in snapshot.credits if c.is_unassigned]

        if current_pool == snapshot.unassigned and current_credits == snapshot_credits:
            await self._store.replace_unassigned(aggregates.unassigned_entries)
            return

        logger.info("pool_changed_during_refresh", run_number=run_number)
        self._pending_force = True
        self.pending_rerun = True
