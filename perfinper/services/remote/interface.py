"""
Abstract Remote Store Interfaces

DESIGN DECISION: The core never talks HTTP directly. It talks to these
two interfaces, which allows us to:
1. Point the client at any backend speaking the same resources
2. Use in-memory stores for testing
3. Keep cache and reassignment logic decoupled from transport

Every method may raise `RemoteFailure` (or `NotFoundError` for a missing
entity). Callers decide whether the failure is reported or propagated.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from perfinper.models import FiscalBook, Transaction


class TransactionStoreInterface(ABC):
    """
    Abstract interface for the backend's transaction resource.

    Any implementation (REST, in-memory, ...) must implement these methods.
    """

    @abstractmethod
    async def find_by_id(self, transaction_id: str) -> Transaction:
        """
        Retrieve a transaction by its id.

        Raises:
            NotFoundError: If the transaction doesn't exist
            RemoteFailure: If the call fails
        """
        pass

    @abstractmethod
    async def find_all_in_period(self, period: str) -> list[Transaction]:
        """
        Get every transaction of a YYYY-MM period.

        Args:
            period: The period to load

        Returns:
            Transactions in backend order
        """
        pass

    @abstractmethod
    async def insert(self, transaction: Transaction) -> Transaction:
        """Create a transaction; returns it as stored (with its id)."""
        pass

    @abstractmethod
    async def update_by_id(self, transaction_id: str, transaction: Transaction) -> Transaction:
        """
        Replace a transaction's fields.

        Raises:
            NotFoundError: If the transaction doesn't exist
            RemoteFailure: If the call fails
        """
        pass

    @abstractmethod
    async def delete_by_id(self, transaction_id: str) -> None:
        """Delete a single transaction."""
        pass

    @abstractmethod
    async def separate_by_id(self, transaction_id: str) -> Any:
        """
        Split a transaction into one transaction per line item.

        The result is whatever the backend answers; it is not interpreted.
        """
        pass

    @abstractmethod
    async def remove_all_in_period(self, period: str) -> None:
        """Delete every transaction of a period."""
        pass

    @abstractmethod
    async def remove_all_by_name(self, name: str) -> None:
        """
        Delete every transaction matching a name.

        DEPRECATED: kept for the bulk delete of a searched list.
        """
        pass

    @abstractmethod
    async def find_unique_periods(self) -> list[str]:
        """All YYYY-MM periods that hold transactions."""
        pass

    @abstractmethod
    async def find_unique_years(self) -> list[str]:
        """All YYYY years that hold transactions."""
        pass


class FiscalBookStoreInterface(ABC):
    """
    Abstract interface for the backend's fiscal book resource.

    Books never leave the backend with an updated status unless the
    backend accepted the change.
    """

    @abstractmethod
    async def get_all(self, filters: Optional[dict[str, Any]] = None) -> list[FiscalBook]:
        """
        List fiscal books.

        Args:
            filters: Query filters (status, bookType, year, search, ...)
        """
        pass

    @abstractmethod
    async def get_by_id(self, book_id: str) -> FiscalBook:
        """
        Retrieve a fiscal book.

        Raises:
            NotFoundError: If the book doesn't exist
        """
        pass

    @abstractmethod
    async def create(self, book: FiscalBook) -> FiscalBook:
        """Create a book; returns it as stored (with its id)."""
        pass

    @abstractmethod
    async def update(self, book_id: str, book: FiscalBook) -> FiscalBook:
        """Replace a book's fields; returns it as stored."""
        pass

    @abstractmethod
    async def delete(self, book_id: str) -> None:
        """Delete a book."""
        pass

    @abstractmethod
    async def close(self, book_id: str) -> FiscalBook:
        """Close a book; returns it with its new status."""
        pass

    @abstractmethod
    async def reopen(self, book_id: str) -> FiscalBook:
        """Reopen a closed book; returns it with its new status."""
        pass

    @abstractmethod
    async def add_transactions(self, book_id: str, transaction_ids: list[str]) -> Any:
        """
        Attach transactions to a book in one call.

        Args:
            book_id: Target book
            transaction_ids: Transactions to attach
        """
        pass

    @abstractmethod
    async def remove_transaction(self, transaction_id: str) -> Any:
        """Detach a single transaction from whichever book owns it."""
        pass

    @abstractmethod
    async def export(self, book_id: str, export_format: str = "json") -> Any:
        """
        Export a book with its transactions.

        Args:
            export_format: 'json' (parsed document) or 'csv' (text)
        """
        pass

    @abstractmethod
    async def get_transactions(
        self,
        book_id: str,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> list[Transaction]:
        """
        Transactions attached to a book.

        Args:
            limit: Page size, backend default if None
            sort: Wire name to sort on (e.g. 'createdAt')
            order: 'asc' or 'desc'
        """
        pass

    @abstractmethod
    async def get_statistics(self) -> dict[str, Any]:
        """Overall fiscal book statistics; the backend keeps none per book."""
        pass
