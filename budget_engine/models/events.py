"""
Ledger Mutation Events

Every change to the ledger is published as one typed event. The refresh
coordinator subscribes once and decides what to recompute from the event
alone; no screen or caller wires recompute callbacks by hand.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_engine.models.ledger import MonthKey, utcnow


class LedgerEventType(str, Enum):
    """Ingress mutations the engine reacts to."""
    EXPENSE_ADDED = "expense_added"
    EXPENSE_EDITED = "expense_edited"
    EXPENSE_DELETED = "expense_deleted"
    CREDIT_ADDED = "credit_added"
    CREDIT_EDITED = "credit_edited"
    CREDIT_DELETED = "credit_deleted"
    CREDIT_CARD_EXPENSE_CHANGED = "credit_card_expense_changed"
    CREDIT_CARD_DUE_PAID = "credit_card_due_paid"
    UNASSIGNED_CREDIT_SPLIT = "unassigned_credit_split"
    SALARY_RECORDED = "salary_recorded"
    BUDGET_CHANGED = "budget_changed"
    CATEGORY_DELETED = "category_deleted"
    INITIAL_BANK_BALANCE_SET = "initial_bank_balance_set"


# Mutations after which the pool cache may disagree with the Credit rows
FORCE_REFRESH_EVENTS = frozenset({
    LedgerEventType.CREDIT_ADDED,
    LedgerEventType.CREDIT_EDITED,
    LedgerEventType.CREDIT_DELETED,
    LedgerEventType.SALARY_RECORDED,
    LedgerEventType.UNASSIGNED_CREDIT_SPLIT,
})

# Mutations that can remove the last salary credit of a flagged month
CREDIT_EVENTS = frozenset({
    LedgerEventType.CREDIT_ADDED,
    LedgerEventType.CREDIT_EDITED,
    LedgerEventType.CREDIT_DELETED,
    LedgerEventType.SALARY_RECORDED,
    LedgerEventType.UNASSIGNED_CREDIT_SPLIT,
})


class LedgerEvent(BaseModel):
    """A committed ledger mutation."""

    event_id: UUID = Field(default_factory=uuid4)
    occurred_at: datetime = Field(default_factory=utcnow)
    event_type: LedgerEventType
    months: list[MonthKey] = Field(
        default_factory=list,
        description="Months whose category summaries the mutation touched"
    )
    entity_id: Optional[UUID] = None
    correlation_id: Optional[UUID] = None

    @property
    def requires_force(self) -> bool:
        return self.event_type in FORCE_REFRESH_EVENTS

    @property
    def touches_credits(self) -> bool:
        return self.event_type in CREDIT_EVENTS
