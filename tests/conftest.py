"""
Shared fixtures.

Every test runs against the in-memory store with an injected clock; the
engine settings use zero debounce/throttle unless a test overrides them.
"""

from datetime import date
from decimal import Decimal

import pytest

from budget_engine.config import AppSettings, EngineSettings
from budget_engine.models.ledger import Budget, Credit, Expense, LedgerSnapshot, MonthKey
from budget_engine.orchestrator import build_engine
from budget_engine.services.storage import InMemoryAuditStorage, InMemoryLedgerStore
from budget_engine.validation import LedgerValidator


class Clock:
    """Callable returning a settable 'today'."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


def make_snapshot(**facts) -> LedgerSnapshot:
    return LedgerSnapshot(user_id="test-user", **facts)


def budget(category: str, year: int, month: int, amount: str) -> Budget:
    return Budget(
        category=category,
        month=MonthKey(year=year, month=month),
        amount=Decimal(amount),
    )


def expense(category: str, amount: str, on: date) -> Expense:
    return Expense(category=category, amount=Decimal(amount), date=on)


def credit(amount: str, on: date, category=None) -> Credit:
    return Credit(category=category, amount=Decimal(amount), date=on)


@pytest.fixture
def clock() -> Clock:
    return Clock(date(2025, 2, 15))


@pytest.fixture
def engine_settings() -> EngineSettings:
    return EngineSettings(
        ledger_start_year=2025,
        throttle_interval_ms=0,
        debounce_ms=0,
    )


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore("test-user")


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def engine(store, audit_storage, engine_settings, app_settings, clock):
    return build_engine(
        store,
        audit_storage,
        settings=engine_settings,
        today=clock,
        validator=LedgerValidator(settings=app_settings, today=clock),
    )
