"""In-memory audit storage, for tests and single-process runs."""

from uuid import UUID

from src.models.audit import AuditEvent
from src.services.storage.interface import AuditStorageInterface, StorageError


class InMemoryAuditStorage(AuditStorageInterface):
    """Keeps events in a list, in append order."""

    def __init__(self, capacity: int = 10_000):
        self._events: list[AuditEvent] = []
        self._capacity = capacity

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        if len(self._events) >= self._capacity:
            raise StorageError(
                f"Audit storage full ({self._capacity} events)",
                event_id=event.event_id,
            )
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_address(self, address: str) -> list[AuditEvent]:
        return [e for e in self._events if e.entity_address == address]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
