"""
Bank Balance Composer

bank_balance = total accumulated balance + unassigned pool total
               + initial bank balance

No clamping: a negative result is a valid state.
"""

from decimal import Decimal

from pydantic import BaseModel

from budget_engine.models.ledger import ZERO


class BankBalance(BaseModel):
    """The bank balance and the three inputs it was composed from."""

    accumulated: Decimal = ZERO
    unassigned: Decimal = ZERO
    initial: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return compose_bank_balance(self.accumulated, self.unassigned, self.initial)

    @property
    def is_negative(self) -> bool:
        return self.total < 0


def compose_bank_balance(
    total_accumulated: Decimal,
    unassigned_total: Decimal,
    initial_bank_balance: Decimal,
) -> Decimal:
    return total_accumulated + unassigned_total + initial_bank_balance
