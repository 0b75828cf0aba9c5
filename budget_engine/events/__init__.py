"""Ledger event channel package."""

from budget_engine.events.bus import LedgerEventBus, Subscriber

__all__ = ["LedgerEventBus", "Subscriber"]
