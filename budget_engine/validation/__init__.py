"""Two-stage validation of ledger mutations."""

from budget_engine.validation.validator import (
    LedgerValidationError,
    LedgerValidator,
)

__all__ = ["LedgerValidationError", "LedgerValidator"]
