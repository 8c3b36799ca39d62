"""
Transaction List Cache

Two lists of the selected period's transactions are kept in memory and
mirrored to local storage:

- full: everything the backend returned for the period
- display: what the user currently sees

INVARIANT: display is always a subset of full, namely full filtered by
the last predicate applied (search term, category, fiscal book filter or
none at all). Every operation that changes a list writes it back to the
local mirror under the same key before returning.

On top of every display publication the fiscal book filter is applied:
None / "all" keeps everything, "none" keeps transactions that belong to
no book, any other value keeps the transactions of that book.

Remote failures never raise out of this class. They are logged and
reported through an OperationResult; the lists stay as they were.
"""

from typing import Callable, Optional

import structlog
from pydantic.alias_generators import to_snake

from perfinper.audit import AuditLogger
from perfinper.errors import NotFoundError, RemoteFailure, StorageError, user_message
from perfinper.models import (
    AuditEventBuilder,
    AuditEventType,
    OperationResult,
    Transaction,
    TransactionProjection,
)
from perfinper.money import TransactionSummary, parse_numeric, summarize
from perfinper.search import RecordSearchEngine
from perfinper.services.remote import TransactionStoreInterface
from perfinper.services.storage import COLD, CacheSnapshot, TransactionCacheStore


logger = structlog.get_logger(__name__)

ALL_BOOKS = "all"
NO_BOOK = "none"


class TransactionListCache:
    """
    Dual full/display transaction list with a persistent mirror.

    Usage:
        cache = TransactionListCache(store, TransactionCacheStore(kv))
        await cache.initialize("2024-05")
        cache.search("mercado")
        await cache.delete(transaction_id)
    """

    def __init__(
        self,
        store: TransactionStoreInterface,
        cache_store: TransactionCacheStore,
        search_engine: Optional[RecordSearchEngine] = None,
        min_search_length: int = 3,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._cache_store = cache_store
        self._search_engine = search_engine or RecordSearchEngine()
        self._min_search_length = min_search_length
        self._audit_logger = audit_logger

        self._full: list[Transaction] = []
        self._display: list[Transaction] = []
        self._search_term = ""
        self._selected_period = ""
        self._fiscal_book_filter: Optional[str] = None
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def full(self) -> list[Transaction]:
        return list(self._full)

    @property
    def display(self) -> list[Transaction]:
        return list(self._display)

    @property
    def search_term(self) -> str:
        return self._search_term

    @property
    def selected_period(self) -> str:
        return self._selected_period

    @property
    def fiscal_book_filter(self) -> Optional[str]:
        return self._fiscal_book_filter

    @property
    def last_error(self) -> Optional[str]:
        """User message of the last failed remote call, cleared on success."""
        return self._last_error

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def initialize(self, period: Optional[str] = None) -> bool:
        """
        Restore from the local mirror, or fetch when it is cold.

        Args:
            period: Period to fetch on a cold start; ignored on a warm one

        Returns:
            True if the state was restored from the mirror
        """
        snapshot = self._cache_store.load()

        if snapshot is COLD:
            if period:
                self._selected_period = period
                self._persist(self._cache_store.save_period, period)
            await self._audit_event(AuditEventBuilder.cache_started(
                warm=False, period=self._selected_period, full_count=0,
            ))
            if self._selected_period:
                await self._fetch(self._selected_period)
            return False

        self._full = list(snapshot.full)
        self._display = list(snapshot.display)
        self._search_term = snapshot.search_term
        self._selected_period = snapshot.selected_period
        await self._audit_event(AuditEventBuilder.cache_started(
            warm=True, period=self._selected_period, full_count=len(self._full),
        ))
        return True

    async def refresh(self) -> OperationResult:
        """Refetch the selected period."""
        if not self._selected_period:
            return OperationResult.succeeded()
        return await self._fetch(self._selected_period)

    async def change_period(self, period: str) -> OperationResult:
        """
        Switch to another period.

        The display list is emptied at once and stays empty if the fetch
        fails. Empty or unchanged periods are ignored.
        """
        if not period or period == self._selected_period:
            return OperationResult.succeeded()

        previous = self._selected_period
        self._display = []
        self._selected_period = period
        self._persist(self._cache_store.save_display, self._display)
        self._persist(self._cache_store.save_period, period)
        await self._audit_event(AuditEventBuilder.period_changed(previous, period))

        return await self._fetch(period)

    async def _fetch(self, period: str) -> OperationResult:
        try:
            transactions = await self._store.find_all_in_period(period)
        except (RemoteFailure, NotFoundError) as e:
            return await self._remote_failed("transaction.find_all_in_period", e, period=period)

        self._full = list(transactions)
        self._persist(self._cache_store.save_full, self._full)
        self._persist(self._cache_store.save_search_term, self._search_term)
        self._publish(self._full)
        self._last_error = None
        await self._audit_event(AuditEventBuilder.transactions_fetched(period, len(self._full)))
        return OperationResult.succeeded(f"{len(self._full)} transações carregadas")

    # ------------------------------------------------------------------
    # Display predicates
    # ------------------------------------------------------------------

    def search(self, term: str) -> list[Transaction]:
        """
        Full-text search over the full list.

        Terms shorter than the minimum length reset the display list.
        """
        term = term or ""
        self._search_term = term
        self._persist(self._cache_store.save_search_term, term)

        if len(term) >= self._min_search_length:
            matches = self._search_engine.search(term, self._full)
        else:
            matches = self._full
        return self._publish(matches)

    def select_category(self, category: str) -> list[Transaction]:
        """
        Show one category.

        An empty category, or one without transactions under the current
        fiscal book filter, leaves the display list untouched.
        """
        if not category:
            return self.display
        matches = [
            t for t in self._search_engine.search_category(category, self._full)
            if self._book_filter_allows(t)
        ]
        if not matches:
            return self.display
        return self._publish(matches)

    def restore(self) -> list[Transaction]:
        """Show the full list again."""
        return self._publish(self._full)

    def filter_by_fiscal_book(self, book_filter: Optional[str]) -> list[Transaction]:
        """
        Select a fiscal book filter and apply it to the full list.

        Args:
            book_filter: None or "all", "none", or a fiscal book id
        """
        self._fiscal_book_filter = book_filter
        return self._publish(self._full)

    def _book_filter_allows(self, transaction: Transaction) -> bool:
        book_filter = self._fiscal_book_filter
        if not book_filter or book_filter == ALL_BOOKS:
            return True
        if book_filter == NO_BOOK:
            return not transaction.fiscal_book_id
        return transaction.fiscal_book_id == book_filter

    def _publish(self, transactions: list[Transaction]) -> list[Transaction]:
        self._display = [t for t in transactions if self._book_filter_allows(t)]
        self._persist(self._cache_store.save_display, self._display)
        return self.display

    def sort_display(
        self,
        column: str,
        order: str = "asc",
        numeric: bool = False,
    ) -> list[Transaction]:
        """
        Reorder the display list by a transaction field.

        Args:
            column: Wire (camelCase) or attribute name
            order: 'asc' or 'desc'
            numeric: Compare comma-decimal values as numbers
        """
        attribute = to_snake(column)
        reverse = order == "desc"

        def key(transaction: Transaction):
            value = getattr(transaction, attribute, None)
            if numeric:
                return (True, parse_numeric(value))
            if hasattr(value, "value"):
                value = value.value
            # missing values first, whatever the column type
            return (value is not None, value)

        self._display = sorted(self._display, key=key, reverse=reverse)
        self._persist(self._cache_store.save_display, self._display)
        return self.display

    def summary(self) -> TransactionSummary:
        """Credit / debit totals of what is displayed."""
        return summarize(self._display)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def delete(self, transaction_id: str) -> OperationResult:
        """
        Delete one transaction remotely, then from both lists.

        Removal uses strict id equality; an id that is not cached removes
        nothing locally.
        """
        try:
            await self._store.delete_by_id(transaction_id)
        except (RemoteFailure, NotFoundError) as e:
            return await self._remote_failed(
                "transaction.delete_by_id", e, transaction_id=transaction_id,
            )

        self._full = self._without(self._full, transaction_id)
        self._display = self._without(self._display, transaction_id)
        self._persist(self._cache_store.save_full, self._full)
        self._persist(self._cache_store.save_display, self._display)
        self._last_error = None

        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                AuditEventType.TRANSACTION_DELETED, transaction_id, "Transaction deleted",
            )
        return OperationResult.succeeded("Transação excluída")

    def _without(self, transactions: list[Transaction], transaction_id: str) -> list[Transaction]:
        index = self._search_engine.index_of(transaction_id, transactions)
        if index < 0:
            return list(transactions)
        return transactions[:index] + transactions[index + 1:]

    async def delete_all(self) -> OperationResult:
        """
        Delete everything listed.

        Without a search term the whole selected period is deleted,
        with one the (deprecated) delete-by-name is used. Either way the
        lists are refetched and the search term is cleared.
        """
        if self._search_term:
            mode, key = "name", self._search_term
            call = self._store.remove_all_by_name(self._search_term)
        else:
            mode, key = "period", self._selected_period
            call = self._store.remove_all_in_period(self._selected_period)

        try:
            await call
        except (RemoteFailure, NotFoundError) as e:
            return await self._remote_failed(f"transaction.remove_all_by_{mode}", e, key=key)

        await self._audit_event(AuditEventBuilder.bulk_deleted(mode, key))
        self._search_term = ""
        self._persist(self._cache_store.save_search_term, "")
        return await self.refresh()

    def apply_update(self, transaction: Transaction) -> None:
        """
        Replace a transaction, matched by id, in both lists.

        The display list keeps only what the fiscal book filter still
        allows, so a transaction moved out of the filtered book leaves it.
        """
        def replace(transactions: list[Transaction]) -> list[Transaction]:
            return [transaction if t.id == transaction.id else t for t in transactions]

        self._full = replace(self._full)
        self._display = [t for t in replace(self._display) if self._book_filter_allows(t)]
        self._persist(self._cache_store.save_full, self._full)
        self._persist(self._cache_store.save_display, self._display)

    def apply_projection(self, projection: TransactionProjection) -> None:
        """Merge a fiscal book reassignment into the cached transaction."""
        index = self._search_engine.index_of(projection.transaction_id, self._full)
        if index < 0:
            return
        self.apply_update(projection.apply_to(self._full[index]))

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(
            full=self._full,
            display=self._display,
            search_term=self._search_term,
            selected_period=self._selected_period,
        )

    # ------------------------------------------------------------------

    def _persist(self, save: Callable, *args) -> None:
        try:
            save(*args)
        except StorageError as e:
            # Memory stays authoritative; the mirror catches up on the next write
            logger.error("cache_persist_failed", error=str(e))

    async def _remote_failed(
        self,
        operation: str,
        error: Exception,
        **details,
    ) -> OperationResult:
        message = user_message(error)
        self._last_error = message
        logger.warning("transaction_cache_remote_failure", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_remote_failure(operation, message, details)
        return OperationResult.failed(error, message)

    async def _audit_event(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)
