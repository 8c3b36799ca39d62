"""Services package."""

from perfinper.services.remote import (
    ApiClient,
    FiscalBookStoreInterface,
    RestFiscalBookStore,
    RestTransactionStore,
    TransactionStoreInterface,
)
from perfinper.services.storage import (
    COLD,
    AuditStorageInterface,
    CacheSnapshot,
    JsonFileKeyValueStore,
    JsonLinesAuditStorage,
    KeyValueStoreInterface,
    MemoryKeyValueStore,
    TransactionCacheStore,
)

__all__ = [
    # Remote stores
    "ApiClient",
    "FiscalBookStoreInterface",
    "RestFiscalBookStore",
    "RestTransactionStore",
    "TransactionStoreInterface",
    # Local storage
    "COLD",
    "AuditStorageInterface",
    "CacheSnapshot",
    "JsonFileKeyValueStore",
    "JsonLinesAuditStorage",
    "KeyValueStoreInterface",
    "MemoryKeyValueStore",
    "TransactionCacheStore",
]
