"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON document is the default backend because:
1. The whole ledger is small (a handful of services)
2. No database setup required
3. The file is human readable and trivially backed up

The document maps namespace -> serialized service list, so several
ledgers (or versions of one) can share a file. Writes go to a temporary
file that replaces the original, so a crash never leaves half a ledger.

Transient OS errors (locked file, network mount hiccup) are retried a
few times before surfacing as StorageError.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional, Sequence
from uuid import UUID

from pydantic import ValidationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from subshare.config import get_settings
from subshare.models.audit import AuditEvent
from subshare.models.ledger import Service
from subshare.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStoreInterface,
    StorageError,
)


def _is_transient(error: BaseException) -> bool:
    # A missing file is an answer, not a hiccup
    return isinstance(error, OSError) and not isinstance(error, FileNotFoundError)


_transient_retry = retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    reraise=True,
)


class JsonFileLedgerStore(LedgerStoreInterface):
    """Ledger store backed by one JSON file."""

    def __init__(
        self,
        path: Optional[Path] = None,
        namespace: Optional[str] = None,
    ):
        settings = get_settings().ledger
        self._path = Path(path or settings.store_path)
        self._namespace = namespace or settings.store_namespace

    @property
    def path(self) -> Path:
        return self._path

    @property
    def namespace(self) -> str:
        return self._namespace

    async def load_all(self) -> Optional[list[Service]]:
        document = await asyncio.to_thread(self._read_document)
        if self._namespace not in document:
            return None

        raw = document[self._namespace]
        if not isinstance(raw, list):
            raise StorageError(
                f"Namespace {self._namespace!r} does not hold a service list"
            )
        try:
            return [Service.model_validate(item) for item in raw]
        except ValidationError as e:
            raise StorageError(f"Stored ledger is invalid: {e}") from e

    async def save_all(self, services: Sequence[Service]) -> None:
        payload = [s.model_dump(mode="json") for s in services]
        await asyncio.to_thread(self._write_namespace, payload)

    def _read_document(self) -> dict:
        try:
            text = self._read_text()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise ConnectionError(f"Could not read {self._path}: {e}") from e

        if not text.strip():
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Ledger file {self._path} is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise StorageError(f"Ledger file {self._path} must contain a JSON object")
        return document

    def _write_namespace(self, payload: list) -> None:
        document = self._read_document()
        document[self._namespace] = payload
        try:
            self._write_text(json.dumps(document, indent=2, ensure_ascii=False))
        except OSError as e:
            raise ConnectionError(f"Could not write {self._path}: {e}") from e

    @_transient_retry
    def _read_text(self) -> str:
        return self._path.read_text(encoding="utf-8")

    @_transient_retry
    def _write_text(self, text: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, self._path)


class JsonLinesAuditStorage(AuditStorageInterface):
    """Append-only audit log, one JSON object per line."""

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path or get_settings().ledger.audit_log_path)

    async def append_event(self, event: AuditEvent) -> bool:
        await asyncio.to_thread(self._append_line, event.to_json_line())
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = await asyncio.to_thread(self._read_events)
        return [e for e in events if e.correlation_id == correlation_id]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await asyncio.to_thread(self._read_events)
        return list(reversed(events))[:limit]

    @_transient_retry
    def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        with self._path.open(encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    events.append(AuditEvent.model_validate_json(line))
        return events
