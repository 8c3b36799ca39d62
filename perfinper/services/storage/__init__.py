"""
Storage Services Package

Provides abstract interfaces and local implementations for what the
client keeps on disk: the transaction cache mirror and the audit trail.
"""

from perfinper.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
)
from perfinper.services.storage.local_file import (
    JsonFileKeyValueStore,
    JsonLinesAuditStorage,
    MemoryKeyValueStore,
)
from perfinper.services.storage.cache_store import (
    COLD,
    DISPLAY_LIST_KEY,
    FULL_LIST_KEY,
    PERIOD_KEY,
    SEARCH_TERM_KEY,
    CacheSnapshot,
    TransactionCacheStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStoreInterface",
    # Local implementations
    "JsonFileKeyValueStore",
    "JsonLinesAuditStorage",
    "MemoryKeyValueStore",
    # Transaction cache persistence
    "COLD",
    "DISPLAY_LIST_KEY",
    "FULL_LIST_KEY",
    "PERIOD_KEY",
    "SEARCH_TERM_KEY",
    "CacheSnapshot",
    "TransactionCacheStore",
]
