"""
Ledger Event Bus

A small in-process publish/subscribe channel. Mutation flows publish a
LedgerEvent after the write has been committed; subscribers (the refresh
coordinator, the audit logger) register once at start-up.

Subscribers run sequentially in registration order. A failing subscriber
is logged and does not stop the others: the mutation is already committed
and must not be reported as failed because a listener broke.
"""

from typing import Awaitable, Callable

import structlog

from budget_engine.models.events import LedgerEvent


Subscriber = Callable[[LedgerEvent], Awaitable[None]]

logger = structlog.get_logger(__name__)


class LedgerEventBus:
    """Fan-out of committed ledger mutations to async subscribers."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, handler: Subscriber) -> Callable[[], None]:
        """Register a handler. Returns a callable that unsubscribes it."""
        self._subscribers.append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: LedgerEvent) -> None:
        for handler in list(self._subscribers):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "event_subscriber_failed",
                    event_type=event.event_type.value,
                    event_id=str(event.event_id),
                    error=str(e),
                )
