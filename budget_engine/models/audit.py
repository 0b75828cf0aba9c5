"""
Audit Models for Budget Engine

Every ledger mutation and every recompute run is logged for audit purposes.
This provides:
1. Complete traceability of how an aggregate came to be
2. Debugging information when a pipeline run fails
3. A record of partial splits that need manual follow-up

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    
    Ledger mutations mirror LedgerEventType; the rest describe the
    recompute pipeline and reconciliation outcomes.
    """
    # Ledger mutations
    LEDGER_MUTATION = "ledger_mutation"
    MUTATION_REJECTED = "mutation_rejected"
    
    # Unassigned credit reconciliation
    SPLIT_COMPLETED = "split_completed"
    SPLIT_PARTIAL = "split_partial"
    SPLIT_REJECTED = "split_rejected"
    
    # Salary months
    SALARY_MONTH_MARKED = "salary_month_marked"
    SALARY_MONTH_CLEARED = "salary_month_cleared"
    
    # Credit card dues
    CREDIT_CARD_DUE_PAID = "credit_card_due_paid"
    CREDIT_CARD_PAYMENT_FAILED = "credit_card_payment_failed"
    
    # Recurring expenses
    RECURRING_EXPENSE_GENERATED = "recurring_expense_generated"
    
    # Refresh pipeline
    PIPELINE_COMPLETED = "pipeline_completed"
    PIPELINE_FAILED = "pipeline_failed"
    
    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    
    This is the core unit of our audit trail.
    """
    
    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )
    
    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )
    
    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'credit', 'pool_entry')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    
    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all writes of one split)"
    )
    
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    
    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )
    
    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }
    
    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.
        
        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.
    
    Usage:
        event = AuditEventBuilder.ledger_mutation("expense_added", expense_id, months)
        event = AuditEventBuilder.split_partial(pool_entry_id, written, failed, error)
    """
    
    @staticmethod
    def ledger_mutation(
        mutation: str,
        entity_id: Optional[UUID],
        months: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_MUTATION,
            entity_type=mutation.split("_")[0],
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Ledger mutation: {mutation}",
            details={
                "mutation": mutation,
                "months": months,
            },
            is_user_action=True,
        )
    
    @staticmethod
    def mutation_rejected(
        mutation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Mutation rejected: {mutation} ({len(issues)} issues)",
            details={
                "mutation": mutation,
                "issues": issues,
            },
            is_user_action=True,
        )
    
    @staticmethod
    def split_completed(
        pool_entry_id: UUID,
        source_month: str,
        assigned_total: str,
        remainder: str,
        credit_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_COMPLETED,
            entity_type="pool_entry",
            entity_id=pool_entry_id,
            correlation_id=correlation_id,
            description=f"Unassigned credit for {source_month} split into {credit_count} credits",
            details={
                "source_month": source_month,
                "assigned_total": assigned_total,
                "remainder": remainder,
            },
            is_user_action=True,
        )
    
    @staticmethod
    def split_partial(
        pool_entry_id: UUID,
        written_credit_ids: list[UUID],
        failed_category: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_PARTIAL,
            severity=AuditSeverity.ERROR,
            entity_type="pool_entry",
            entity_id=pool_entry_id,
            correlation_id=correlation_id,
            description="Split stopped part-way; pool entry kept, written credits need review",
            details={
                "written_credit_ids": [str(i) for i in written_credit_ids],
                "failed_category": failed_category,
            },
            error_code="partial_split",
            error_message=error_message,
        )
    
    @staticmethod
    def split_rejected(
        pool_entry_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="pool_entry",
            entity_id=pool_entry_id,
            correlation_id=correlation_id,
            description="Split rejected before any write",
            details={"reason": reason},
            is_user_action=True,
        )
    
    @staticmethod
    def salary_month_marked(
        month: str,
        salary_credit: str,
        unassigned_overflow: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SALARY_MONTH_MARKED,
            entity_type="salary_month",
            correlation_id=correlation_id,
            description=f"Salary recorded for {month}",
            details={
                "month": month,
                "salary_credit": salary_credit,
                "unassigned_overflow": unassigned_overflow,
            },
            is_user_action=True,
        )
    
    @staticmethod
    def salary_month_cleared(
        month: str,
        was_future: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SALARY_MONTH_CLEARED,
            entity_type="salary_month",
            description=f"Salary flag cleared for {month}: no salary credit remains",
            details={
                "month": month,
                "removed_from_accumulation_window": was_future,
            },
        )
    
    @staticmethod
    def credit_card_due_paid(
        credit_card_expense_id: UUID,
        expense_id: UUID,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_CARD_DUE_PAID,
            entity_type="credit_card_expense",
            entity_id=credit_card_expense_id,
            correlation_id=correlation_id,
            description=f"Credit card due paid: ₹{amount}",
            details={
                "expense_id": str(expense_id),
                "amount": amount,
            },
            is_user_action=True,
        )
    
    @staticmethod
    def credit_card_payment_failed(
        credit_card_expense_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDIT_CARD_PAYMENT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="credit_card_expense",
            entity_id=credit_card_expense_id,
            correlation_id=correlation_id,
            description="Credit card due payment failed",
            error_message=error_message,
        )
    
    @staticmethod
    def recurring_expense_generated(
        rule_id: UUID,
        expense_id: UUID,
        scheduled_date: str,
        remaining_occurrences: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_EXPENSE_GENERATED,
            entity_type="recurring_expense",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring expense generated for {scheduled_date}",
            details={
                "expense_id": str(expense_id),
                "scheduled_date": scheduled_date,
                "remaining_occurrences": remaining_occurrences,
            },
        )
    
    @staticmethod
    def pipeline_completed(
        run_number: int,
        months: list[str],
        force: bool,
        bank_balance: str,
        duration_ms: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIPELINE_COMPLETED,
            entity_type="pipeline",
            description=f"Recompute run #{run_number} completed",
            details={
                "months": months,
                "force": force,
                "bank_balance": bank_balance,
                "duration_ms": round(duration_ms, 2),
            },
        )
    
    @staticmethod
    def pipeline_failed(
        run_number: int,
        stage: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIPELINE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="pipeline",
            description=f"Recompute run #{run_number} failed at stage '{stage}'; cached values kept",
            details={"stage": stage},
            error_code="pipeline_failed",
            error_message=error_message,
        )
    
    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
