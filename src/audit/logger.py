"""
Audit Logger

DESIGN DECISION: Every fallback, skip and suspicious reading is logged.
This provides:
1. A way to tell "zero spend" from "data unavailable" after the fact
2. Debugging capability when a collaborator misbehaves
3. A per-budget trail keyed by correlation ID

The audit logger:
- Is async to not block the fetch pipelines
- Gracefully handles failures (a broken audit sink never breaks a reconciliation)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from src.services.storage import AuditStorageInterface


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


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend, if one is configured
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

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
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

    async def log_budget_loaded(
        self,
        address: str,
        year: int,
        expense_count: int,
        tier: str,
        correlation_id: UUID,
    ) -> None:
        """Log a budget record being read and decoded."""
        await self.log(AuditEventBuilder.budget_loaded(
            address=address,
            year=year,
            expense_count=expense_count,
            tier=tier,
            correlation_id=correlation_id,
        ))

    async def log_decode_fallback(
        self,
        kind: str,
        tier: str,
        address: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a record that needed the alias or raw tier."""
        await self.log(AuditEventBuilder.decode_fallback(
            kind=kind,
            tier=tier,
            address=address,
            correlation_id=correlation_id,
        ))

    async def log_expense_reconciled(
        self,
        index: Optional[int],
        address: Optional[str],
        status: str,
        actual_spent: int,
        approved_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_reconciled(
            index=index,
            address=address,
            status=status,
            actual_spent=actual_spent,
            approved_amount=approved_amount,
            correlation_id=correlation_id,
        ))

    async def log_record_skipped(
        self,
        index: int,
        address: Optional[str],
        reason: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense left out of the totals."""
        await self.log(AuditEventBuilder.record_skipped(
            index=index,
            address=address,
            reason=reason,
            message=message,
            correlation_id=correlation_id,
        ))

    async def log_suspicious_reading(
        self,
        index: Optional[int],
        address: Optional[str],
        computed_spent: int,
        approved_amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.suspicious_reading(
            index=index,
            address=address,
            computed_spent=computed_spent,
            approved_amount=approved_amount,
            correlation_id=correlation_id,
        ))

    async def log_balance_unavailable(
        self,
        index: int,
        holding_address: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_unavailable(
            index=index,
            holding_address=holding_address,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_attribute_unavailable(
        self,
        index: int,
        mint: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.attribute_unavailable(
            index=index,
            mint=mint,
            correlation_id=correlation_id,
        ))

    async def log_budget_reconciled(
        self,
        address: str,
        reconciled: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.budget_reconciled(
            address=address,
            reconciled=reconciled,
            skipped=skipped,
            correlation_id=correlation_id,
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

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a budget reconciliation.
    Pass it through all subsequent operations.
    """
    return uuid4()
