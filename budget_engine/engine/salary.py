"""
Salary-Month Housekeeping

A SalaryMonthFlag is only valid while at least one salary-category credit
is dated in its month. Whenever credits change, every flagged month is
re-checked and flags without a backing credit are cleared. A cleared
future month drops out of the accumulation window on the next refresh.
"""

from datetime import date
from typing import Callable, Optional

import structlog

from budget_engine.audit.logger import AuditLogger
from budget_engine.config import EngineSettings, get_settings
from budget_engine.models.ledger import MonthKey, today_in
from budget_engine.services.storage import LedgerStoreInterface


logger = structlog.get_logger(__name__)


class SalaryMonthHousekeeper:
    """Clears salary-month flags that no salary credit backs any more."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        settings: Optional[EngineSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().engine
        self._audit = audit_logger or AuditLogger()
        self._today = today or (lambda: today_in(self._settings.timezone))

    async def reconcile(self) -> list[MonthKey]:
        """
        Check every flagged month. O(flagged months) after one credit read.

        Returns the months whose flag was cleared.
        """
        flags = await self._store.list_salary_months()
        if not flags:
            return []

        salary_credits = await self._store.list_credits(
            category=self._settings.salary_category_name,
        )
        backed = {MonthKey.of(credit.date) for credit in salary_credits}
        current = MonthKey.of(self._today())

        cleared = []
        for flag in flags:
            month = flag.month_key
            if month in backed:
                continue
            await self._store.unmark_salary_month(month.year, month.month)
            was_future = month > current
            logger.info(
                "salary_month_cleared",
                month=str(month),
                was_future=was_future,
            )
            await self._audit.log_salary_month_cleared(str(month), was_future)
            cleared.append(month)

        return cleared
