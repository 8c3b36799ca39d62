"""
Main Orchestrator for Perfinper

This module ties together all the components: remote stores, the local
mirror, the transaction list cache, fiscal book management and the bulk
reassignment engine.

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every component shares one audit logger and one set of settings
- The reassignment engine merges its results into the same cache the
  transaction list reads from
- Nothing outside this module builds a store from settings
"""

from pathlib import Path
from typing import Optional

import structlog

from perfinper.audit import AuditLogger, configure_logging
from perfinper.cache import TransactionListCache
from perfinper.config import Settings, get_settings
from perfinper.fiscal import FiscalBookManager, FiscalBookRules
from perfinper.models import ReassignmentOperation, ReassignmentResult, Transaction
from perfinper.reassignment import BulkReassignmentEngine
from perfinper.services.remote import (
    ApiClient,
    FiscalBookStoreInterface,
    RestFiscalBookStore,
    RestTransactionStore,
    TransactionStoreInterface,
)
from perfinper.services.storage import (
    JsonFileKeyValueStore,
    JsonLinesAuditStorage,
    KeyValueStoreInterface,
    MemoryKeyValueStore,
    TransactionCacheStore,
)
from perfinper.transactions import TransactionEditor


logger = structlog.get_logger(__name__)


class AppComponents:
    """
    Everything the front end needs, wired together.

    Flow:
    1. Transactions page → cache (list, search, delete) + editor
    2. Fiscal books page → manager (lifecycle) + rules (display)
    3. Bulk page → reassignment engine, results merged into the cache
    """

    def __init__(
        self,
        transaction_store: TransactionStoreInterface,
        fiscal_book_store: FiscalBookStoreInterface,
        key_value_store: KeyValueStoreInterface,
        rules: FiscalBookRules,
        audit_logger: AuditLogger,
        min_search_length: int = 3,
        compensation: str = "none",
    ):
        self.transaction_store = transaction_store
        self.fiscal_book_store = fiscal_book_store
        self.rules = rules
        self.audit_logger = audit_logger

        self.cache = TransactionListCache(
            transaction_store,
            TransactionCacheStore(key_value_store),
            min_search_length=min_search_length,
            audit_logger=audit_logger,
        )
        self.editor = TransactionEditor(transaction_store, self.cache, audit_logger)
        self.fiscal_books = FiscalBookManager(fiscal_book_store, rules, audit_logger)
        self.reassignment = BulkReassignmentEngine(
            fiscal_book_store,
            compensation=compensation,
            rules=rules,
            audit_logger=audit_logger,
        )

    async def load_fiscal_books(self):
        """Fetch, sort and format the books, and hand them to the engine."""
        books = await self.fiscal_books.list()
        self.reassignment.set_books(books)
        return books

    async def reassign(
        self,
        operation: ReassignmentOperation,
        selection: list[Transaction],
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> ReassignmentResult:
        """Run a bulk operation and merge the new ownership into the cache."""
        return await self.reassignment.execute(
            operation,
            selection,
            source_id=source_id,
            target_id=target_id,
            on_projection=self.cache.apply_projection,
        )


def create_app_components(
    settings: Optional[Settings] = None,
    use_local_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings())
        use_local_storage: Whether to mirror the cache to disk.
                    Set to False for an in-memory mirror.

    Returns:
        The wired AppComponents
    """
    settings = settings or get_settings()
    app_settings = settings.app
    cache_settings = settings.cache

    configure_logging(app_settings.log_level)

    client = ApiClient(settings.api)

    if use_local_storage:
        key_value_store: KeyValueStoreInterface = JsonFileKeyValueStore(
            Path(cache_settings.storage_path)
        )
    else:
        key_value_store = MemoryKeyValueStore()

    audit_storage = None
    if app_settings.audit_log_path:
        audit_storage = JsonLinesAuditStorage(Path(app_settings.audit_log_path))

    logger.info(
        "app_components_created",
        base_url=client.base_url,
        local_storage=use_local_storage,
        audit_log=str(app_settings.audit_log_path or ""),
        compensation=app_settings.reassignment_compensation,
    )

    return AppComponents(
        transaction_store=RestTransactionStore(client),
        fiscal_book_store=RestFiscalBookStore(client),
        key_value_store=key_value_store,
        rules=FiscalBookRules(currency_symbol=app_settings.currency_symbol),
        audit_logger=AuditLogger(audit_storage),
        min_search_length=cache_settings.min_search_length,
        compensation=app_settings.reassignment_compensation,
    )
