"""
Audit Models for Perfinper

Every operation that changes the cache or a remote store is recorded.
This provides:
1. Traceability of bulk reassignments (which ids moved where)
2. Debugging information when a remote call fails
3. A record of transactions left detached by an incomplete transfer

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transaction cache
    CACHE_WARM_START = "cache_warm_start"
    CACHE_COLD_START = "cache_cold_start"
    PERIOD_CHANGED = "period_changed"
    TRANSACTIONS_FETCHED = "transactions_fetched"

    # Transactions
    TRANSACTION_INSERTED = "transaction_inserted"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_SEPARATED = "transaction_separated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTIONS_BULK_DELETED = "transactions_bulk_deleted"

    # Fiscal books
    FISCAL_BOOK_CREATED = "fiscal_book_created"
    FISCAL_BOOK_UPDATED = "fiscal_book_updated"
    FISCAL_BOOK_DELETED = "fiscal_book_deleted"
    FISCAL_BOOK_STATUS_CHANGED = "fiscal_book_status_changed"

    # Bulk reassignment
    TRANSACTIONS_ASSIGNED = "transactions_assigned"
    TRANSACTIONS_REMOVED = "transactions_removed"
    TRANSACTIONS_TRANSFERRED = "transactions_transferred"
    TRANSFER_INCOMPLETE = "transfer_incomplete"
    TRANSFER_ROLLED_BACK = "transfer_rolled_back"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    INVARIANT_VIOLATED = "invariant_violated"
    REMOTE_FAILURE = "remote_failure"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'fiscal_book', 'cache')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Backend id of the entity this event relates to"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_json_line(self) -> str:
        """One line of the JSON-lines audit file."""
        return json.dumps(self.to_log_dict(), ensure_ascii=False, default=str)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.period_changed("2024-05", "2024-06")
        event = AuditEventBuilder.remote_failure("fiscal_book.close", "timeout")
    """

    @staticmethod
    def cache_started(warm: bool, period: str, full_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CACHE_WARM_START if warm
                else AuditEventType.CACHE_COLD_START
            ),
            entity_type="cache",
            description=(
                f"Transaction cache {'restored from local storage' if warm else 'is cold'}"
            ),
            details={"period": period, "full_count": full_count},
        )

    @staticmethod
    def period_changed(previous: str, period: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_CHANGED,
            entity_type="cache",
            description=f"Selected period changed to {period}",
            details={"previous": previous, "period": period},
        )

    @staticmethod
    def transactions_fetched(period: str, count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_FETCHED,
            entity_type="cache",
            description=f"Fetched {count} transactions for {period}",
            details={"period": period, "count": count},
        )

    @staticmethod
    def transaction_changed(
        event_type: AuditEventType,
        transaction_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def bulk_deleted(mode: str, key: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_BULK_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            description=f"All listed transactions deleted by {mode}",
            details={"mode": mode, "key": key},
        )

    @staticmethod
    def fiscal_book_changed(
        event_type: AuditEventType,
        book_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="fiscal_book",
            entity_id=book_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def reassignment(
        event_type: AuditEventType,
        source_id: Optional[str],
        target_id: Optional[str],
        transaction_ids: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="fiscal_book",
            entity_id=target_id or source_id,
            description=f"{len(transaction_ids)} transaction(s): {event_type.value}",
            details={
                "source_id": source_id,
                "target_id": target_id,
                "transaction_ids": transaction_ids,
            },
        )

    @staticmethod
    def transfer_incomplete(
        source_id: str,
        target_id: str,
        detached_ids: list[str],
        pending_ids: list[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_INCOMPLETE,
            severity=AuditSeverity.ERROR,
            entity_type="fiscal_book",
            entity_id=source_id,
            description=(
                f"Transfer stopped: {len(detached_ids)} transaction(s) detached "
                f"from {source_id} and not attached to {target_id}"
            ),
            details={
                "source_id": source_id,
                "target_id": target_id,
                "detached_ids": detached_ids,
                "pending_ids": pending_ids,
            },
            error_message=error_message,
        )

    @staticmethod
    def validation_failed(entity_type: str, errors: dict[str, str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            description=f"Validation failed with {len(errors)} issue(s)",
            details={"errors": errors},
        )

    @staticmethod
    def invariant_violated(entity_type: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_VIOLATED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            description="Operation rejected before reaching the backend",
            error_message=error_message,
        )

    @staticmethod
    def remote_failure(
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_FAILURE,
            severity=AuditSeverity.ERROR,
            description=f"Remote call failed: {operation}",
            error_message=error_message,
            details=details or {},
        )
