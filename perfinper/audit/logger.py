"""
Audit Logger

DESIGN DECISION: Every operation that changes the cache or a remote
store is logged. This provides:
1. Traceability of bulk reassignments
2. Debugging capability when the backend rejects a call
3. A record of transactions left detached by an incomplete transfer

The audit logger:
- Always writes a structured local log line
- Gracefully handles storage failures (never crashes the app)
- Is optional everywhere: components run without one
"""

import logging
from typing import Optional

import structlog

from perfinper.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from perfinper.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at `log_level`."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("perfinper.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_changed(
        self,
        event_type: AuditEventType,
        transaction_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log an insert / update / separate / delete of one transaction."""
        await self.log(AuditEventBuilder.transaction_changed(
            event_type, transaction_id, description, details,
        ))

    async def log_fiscal_book_changed(
        self,
        event_type: AuditEventType,
        book_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a fiscal book lifecycle change."""
        await self.log(AuditEventBuilder.fiscal_book_changed(
            event_type, book_id, description, details,
        ))

    async def log_validation_failed(self, entity_type: str, errors: dict[str, str]) -> None:
        await self.log(AuditEventBuilder.validation_failed(entity_type, errors))

    async def log_invariant_violated(self, entity_type: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.invariant_violated(entity_type, error_message))

    async def log_remote_failure(
        self,
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a failed call to a remote store."""
        await self.log(AuditEventBuilder.remote_failure(operation, error_message, details))
