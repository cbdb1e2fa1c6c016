"""Services package."""

from subshare.services.clipboard import ClipboardInterface, InMemoryClipboard
from subshare.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    JsonLinesAuditStorage,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
    demo_services,
)

__all__ = [
    # Clipboard
    "ClipboardInterface",
    "InMemoryClipboard",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "JsonLinesAuditStorage",
    "LedgerStoreInterface",
    "NotFoundError",
    "StorageError",
    "demo_services",
]
