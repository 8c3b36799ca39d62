"""Record search package."""

from perfinper.search.engine import (
    TRANSACTION_SEARCH_FIELDS,
    RecordSearchEngine,
    search,
)

__all__ = ["TRANSACTION_SEARCH_FIELDS", "RecordSearchEngine", "search"]
