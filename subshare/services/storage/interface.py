"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the JSON file for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The ledger contract is deliberately tiny: the whole service collection is
one serialized blob under a namespace, loaded and replaced wholesale.
There is no partial or incremental persistence.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
from uuid import UUID

from subshare.models.audit import AuditEvent
from subshare.models.ledger import Service


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the ledger store.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def load_all(self) -> Optional[list[Service]]:
        """
        Load the full service collection.

        Returns:
            The stored services, or None if the namespace was never written
            (an explicitly saved empty collection returns [])

        Raises:
            StorageError: If the stored data cannot be read or parsed
        """
        pass

    @abstractmethod
    async def save_all(self, services: Sequence[Service]) -> None:
        """
        Replace the stored collection with services.

        Raises:
            StorageError: If save fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

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
        Get all events for a correlation ID (e.g., one receipt verification).

        Returns:
            List of related events in chronological order
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
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass
