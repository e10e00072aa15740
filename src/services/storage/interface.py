"""
Abstract Audit Storage Interface

DESIGN DECISION: Audit events go through an abstract sink so the
reconciler does not care whether they end up in a log shipper, a
database table or a test list.

Audit logs are append-only - we never delete or modify them.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from src.models.audit import AuditEvent


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one budget reconciliation).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_address(
        self,
        address: str,
    ) -> list[AuditEvent]:
        """
        Get all events about one record address.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(self, message: str, event_id: Optional[UUID] = None):
        self.event_id = event_id
        super().__init__(message)
