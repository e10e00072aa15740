"""
Audit Models for Budget Ledger Reconciler

Every fallback, skip and suspicious reading in a reconciliation run is
recorded as an audit event. This provides:
1. A per-record explanation of why a number is what it is
2. Debugging information when a remote collaborator misbehaves
3. Ability to reconstruct what a dashboard showed and why

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every stage of the fetch → decode → reconcile pipeline has its own type.
    """
    # Budget level
    BUDGET_LOADED = "budget_loaded"
    BUDGET_RECONCILED = "budget_reconciled"

    # Decoding
    DECODE_FALLBACK = "decode_fallback"

    # Per-expense outcome
    EXPENSE_RECONCILED = "expense_reconciled"
    RECORD_SKIPPED = "record_skipped"
    SUSPICIOUS_READING = "suspicious_reading"
    BALANCE_UNAVAILABLE = "balance_unavailable"
    ATTRIBUTE_UNAVAILABLE = "attribute_unavailable"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


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

    # Context - which record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Kind of record (e.g., 'budget', 'expense')"
    )
    entity_address: Optional[str] = Field(
        default=None,
        description="Base58 address of the record this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one budget run)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

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
            "entity_address": self.entity_address,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_skipped(3, address, "not_found", msg, cid)
        event = AuditEventBuilder.budget_reconciled(address, 5, 1, cid)
    """

    @staticmethod
    def budget_loaded(
        address: str,
        year: int,
        expense_count: int,
        tier: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_LOADED,
            entity_type="budget",
            entity_address=address,
            correlation_id=correlation_id,
            description=f"Budget {year} loaded with {expense_count} expenses",
            details={
                "year": year,
                "expense_count": expense_count,
                "decode_tier": tier,
            },
        )

    @staticmethod
    def decode_fallback(
        kind: str,
        tier: str,
        address: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECODE_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            entity_address=address,
            correlation_id=correlation_id,
            description=f"{kind} decoded with {tier} fallback",
            details={
                "decode_tier": tier,
            },
        )

    @staticmethod
    def expense_reconciled(
        index: Optional[int],
        address: Optional[str],
        status: str,
        actual_spent: int,
        approved_amount: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECONCILED,
            severity=AuditSeverity.DEBUG,
            entity_type="expense",
            entity_address=address,
            correlation_id=correlation_id,
            description=f"Expense {index} reconciled: {status}",
            details={
                "index": index,
                "status": status,
                "actual_spent": actual_spent,
                "approved_amount": approved_amount,
            },
        )

    @staticmethod
    def record_skipped(
        index: int,
        address: Optional[str],
        reason: str,
        message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_address=address,
            correlation_id=correlation_id,
            description=f"Expense {index} skipped: {reason}",
            details={
                "index": index,
                "reason": reason,
            },
            error_message=message or None,
        )

    @staticmethod
    def suspicious_reading(
        index: Optional[int],
        address: Optional[str],
        computed_spent: int,
        approved_amount: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUSPICIOUS_READING,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_address=address,
            correlation_id=correlation_id,
            description=(
                f"Suspicious spent amount {computed_spent} for approved "
                f"{approved_amount}; reported as 0"
            ),
            details={
                "index": index,
                "computed_spent": computed_spent,
                "approved_amount": approved_amount,
            },
        )

    @staticmethod
    def balance_unavailable(
        index: int,
        holding_address: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_UNAVAILABLE,
            severity=AuditSeverity.WARNING,
            entity_type="token_account",
            entity_address=holding_address,
            correlation_id=correlation_id,
            description=f"Live balance unavailable for expense {index}; using on-record spend",
            details={
                "index": index,
            },
            error_message=error_message,
        )

    @staticmethod
    def attribute_unavailable(
        index: int,
        mint: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTRIBUTE_UNAVAILABLE,
            severity=AuditSeverity.INFO,
            entity_type="mint",
            entity_address=mint,
            correlation_id=correlation_id,
            description=f"No external approved amount for expense {index}; using on-record value",
            details={
                "index": index,
            },
        )

    @staticmethod
    def budget_reconciled(
        address: str,
        reconciled: int,
        skipped: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RECONCILED,
            severity=AuditSeverity.WARNING if skipped else AuditSeverity.INFO,
            entity_type="budget",
            entity_address=address,
            correlation_id=correlation_id,
            description=f"Budget reconciled: {reconciled} expenses, {skipped} skipped",
            details={
                "reconciled": reconciled,
                "skipped": skipped,
            },
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

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
