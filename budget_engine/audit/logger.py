"""
Audit Logger

DESIGN DECISION: Every ledger mutation and every recompute run is logged.
This provides:
1. Complete traceability of derived figures
2. Debugging capability when a pipeline run fails
3. A durable record of partial splits that need manual follow-up

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the engine if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_engine.models.audit import AuditEvent, AuditEventBuilder
from budget_engine.models.events import LedgerEvent
from budget_engine.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.
    
    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """
    
    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.
        
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)
    
    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.
        
        Always logs locally. Persists to storage if available.
        
        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()
        
        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)
        
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False
        
        return True
    
    async def log_ledger_event(self, event: LedgerEvent) -> None:
        """Log a committed ledger mutation (event bus subscriber)."""
        await self.log(AuditEventBuilder.ledger_mutation(
            mutation=event.event_type.value,
            entity_id=event.entity_id,
            months=[str(m) for m in event.months],
            correlation_id=event.correlation_id,
        ))
    
    async def log_mutation_rejected(
        self,
        mutation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a mutation that failed validation."""
        await self.log(AuditEventBuilder.mutation_rejected(
            mutation=mutation,
            issues=issues,
            correlation_id=correlation_id,
        ))
    
    async def log_split_completed(
        self,
        pool_entry_id: UUID,
        source_month: str,
        assigned_total: str,
        remainder: str,
        credit_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.split_completed(
            pool_entry_id=pool_entry_id,
            source_month=source_month,
            assigned_total=assigned_total,
            remainder=remainder,
            credit_count=credit_count,
            correlation_id=correlation_id,
        ))
    
    async def log_split_partial(
        self,
        pool_entry_id: UUID,
        written_credit_ids: list[UUID],
        failed_category: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.split_partial(
            pool_entry_id=pool_entry_id,
            written_credit_ids=written_credit_ids,
            failed_category=failed_category,
            error_message=error_message,
            correlation_id=correlation_id,
        ))
    
    async def log_split_rejected(
        self,
        pool_entry_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.split_rejected(
            pool_entry_id=pool_entry_id,
            reason=reason,
            correlation_id=correlation_id,
        ))
    
    async def log_salary_month_marked(
        self,
        month: str,
        salary_credit: str,
        unassigned_overflow: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.salary_month_marked(
            month=month,
            salary_credit=salary_credit,
            unassigned_overflow=unassigned_overflow,
            correlation_id=correlation_id,
        ))
    
    async def log_salary_month_cleared(self, month: str, was_future: bool) -> None:
        await self.log(AuditEventBuilder.salary_month_cleared(
            month=month,
            was_future=was_future,
        ))
    
    async def log_credit_card_due_paid(
        self,
        credit_card_expense_id: UUID,
        expense_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.credit_card_due_paid(
            credit_card_expense_id=credit_card_expense_id,
            expense_id=expense_id,
            amount=amount,
            correlation_id=correlation_id,
        ))
    
    async def log_credit_card_payment_failed(
        self,
        credit_card_expense_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.credit_card_payment_failed(
            credit_card_expense_id=credit_card_expense_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))
    
    async def log_recurring_expense_generated(
        self,
        rule_id: UUID,
        expense_id: UUID,
        scheduled_date: str,
        remaining_occurrences: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_expense_generated(
            rule_id=rule_id,
            expense_id=expense_id,
            scheduled_date=scheduled_date,
            remaining_occurrences=remaining_occurrences,
            correlation_id=correlation_id,
        ))
    
    async def log_pipeline_completed(
        self,
        run_number: int,
        months: list[str],
        force: bool,
        bank_balance: str,
        duration_ms: float,
    ) -> None:
        await self.log(AuditEventBuilder.pipeline_completed(
            run_number=run_number,
            months=months,
            force=force,
            bank_balance=bank_balance,
            duration_ms=duration_ms,
        ))
    
    async def log_pipeline_failed(
        self,
        run_number: int,
        stage: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.pipeline_failed(
            run_number=run_number,
            stage=stage,
            error_message=error_message,
        ))
    
    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.
    
    Use this at the start of a new user action (e.g., one split).
    Pass it through all subsequent operations.
    """
    return uuid4()
