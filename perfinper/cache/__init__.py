"""Transaction list cache package."""

from perfinper.cache.transactions import ALL_BOOKS, NO_BOOK, TransactionListCache

__all__ = ["ALL_BOOKS", "NO_BOOK", "TransactionListCache"]
