"""
Local File Storage

JSON-backed implementations of the local storage interfaces:

- JsonFileKeyValueStore: the persistent mirror of the transaction cache,
  one JSON object per file, rewritten as a whole on every change
- MemoryKeyValueStore: same contract, nothing written to disk
- JsonLinesAuditStorage: append-only audit trail, one event per line

Files are written to a sibling temp file and moved into place, so a
crash mid-write leaves the previous content intact.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

import structlog

from perfinper.errors import StorageError
from perfinper.models.audit import AuditEvent, AuditEventType, AuditSeverity
from perfinper.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
)


logger = structlog.get_logger(__name__)


class MemoryKeyValueStore(KeyValueStoreInterface):
    """
    In-process key-value store.

    Values are copied through JSON so that what comes back is never the
    same object that went in, exactly like the file store.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for '{key}' is not JSON serializable: {e}")

    def set_many(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            self.set(key, value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """
    Key-value store persisted to a single JSON file.

    The file is read once, on first access, and rewritten after every
    change.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._data: Optional[dict[str, Any]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            if not self._path.exists():
                self._data = {}
            else:
                try:
                    content = self._path.read_text(encoding="utf-8")
                    self._data = json.loads(content) if content.strip() else {}
                except (OSError, ValueError) as e:
                    raise StorageError(f"Failed to read {self._path}: {e}")
                if not isinstance(self._data, dict):
                    self._data = None
                    raise StorageError(f"{self._path} does not hold a JSON object")
        return self._data

    def _flush(self, data: dict[str, Any]) -> None:
        """Write `data` to disk, then make it the in-memory state."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            content = json.dumps(data, ensure_ascii=False)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write {self._path}: {e}")
        self._data = data

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        self._flush({**self._load(), key: value})

    def set_many(self, values: dict[str, Any]) -> None:
        self._flush({**self._load(), **values})

    def remove(self, key: str) -> None:
        data = dict(self._load())
        if data.pop(key, None) is not None:
            self._flush(data)

    def clear(self) -> None:
        self._flush({})


class JsonLinesAuditStorage(AuditStorageInterface):
    """
    Audit log appended to a JSON-lines file.

    Audit events are append-only.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @staticmethod
    def _line_to_event(line: str) -> AuditEvent:
        data = json.loads(line)
        return AuditEvent(
            event_id=UUID(data["event_id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            event_type=AuditEventType(data["event_type"]),
            severity=AuditSeverity(data["severity"]),
            entity_type=data.get("entity_type"),
            entity_id=data.get("entity_id"),
            description=data.get("description", ""),
            details=data.get("details") or {},
            error_message=data.get("error_message"),
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(event.to_json_line() + "\n")
            return True
        except OSError as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", path=str(self._path), error=str(e))
            return False

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        try:
            with self._path.open(encoding="utf-8") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    try:
                        events.append(self._line_to_event(line))
                    except (KeyError, ValueError):
                        continue
        except OSError as e:
            raise StorageError(f"Failed to read audit events: {e}")
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            event for event in self._read_events()
            if event.entity_type == entity_type and event.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
