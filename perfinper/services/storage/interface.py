"""
Abstract Local Storage Interfaces

DESIGN DECISION: We define abstract interfaces for what the client keeps
on the user's machine. This allows us to:
1. Swap the JSON file for another local store later
2. Use in-memory storage for testing
3. Keep the cache logic decoupled from where the mirror lives

The key-value store is synchronous: it is local, small and has a single
writer. The audit store keeps the async shape of the remote stores.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from perfinper.models.audit import AuditEvent


class KeyValueStoreInterface(ABC):
    """
    Persistent string-keyed store of JSON-compatible values.

    Values must come back from get() equal to what was given to set().
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """
        Read a value.

        Returns:
            The stored value, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the value cannot be persisted
        """
        pass

    @abstractmethod
    def set_many(self, values: dict[str, Any]) -> None:
        """Write several values as one unit."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key; absent keys are ignored."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Delete every key."""
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

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'fiscal_book')
            entity_id: The entity's backend id

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

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass
