"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The JSON file backend is the default; the in-memory one backs the tests.
"""

from subshare.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)
from subshare.services.storage.json_file import (
    JsonFileLedgerStore,
    JsonLinesAuditStorage,
)
from subshare.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from subshare.services.storage.seed import demo_services

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "JsonLinesAuditStorage",
    # Seed data
    "demo_services",
]
