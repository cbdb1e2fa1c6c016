"""In-memory storage backends, used by tests and as a scratch ledger."""

from typing import Optional, Sequence
from uuid import UUID

from subshare.models.audit import AuditEvent
from subshare.models.ledger import Service
from subshare.services.storage.interface import (
    AuditStorageInterface,
    LedgerStoreInterface,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    def __init__(self, services: Optional[Sequence[Service]] = None):
        self._services: Optional[list[Service]] = (
            list(services) if services is not None else None
        )
        self.save_count = 0

    async def load_all(self) -> Optional[list[Service]]:
        if self._services is None:
            return None
        return list(self._services)

    async def save_all(self, services: Sequence[Service]) -> None:
        self._services = list(services)
        self.save_count += 1


class InMemoryAuditStorage(AuditStorageInterface):
    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]
