"""
Transaction Cache Persistence

Maps the in-memory state of the transaction list cache onto four keys of
a key-value store:

    fullTransactionsList    every transaction of the selected period
    transactionsPrintList   what is currently displayed
    searchTerm              last search term
    periodSelected          selected YYYY-MM period

The four keys are one logical unit. load() returns either a complete
CacheSnapshot or the COLD sentinel, never a partial state: if any of
the four keys is missing the cache is cold. An empty search term or
empty lists are values, not absences.
"""

from typing import Any, Iterable, Union

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from perfinper.errors import StorageError
from perfinper.models import Transaction
from perfinper.services.storage.interface import KeyValueStoreInterface


logger = structlog.get_logger(__name__)


FULL_LIST_KEY = "fullTransactionsList"
DISPLAY_LIST_KEY = "transactionsPrintList"
SEARCH_TERM_KEY = "searchTerm"
PERIOD_KEY = "periodSelected"


class _ColdCache:
    """Marker for "nothing usable was persisted"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "COLD"


COLD = _ColdCache()


class CacheSnapshot(BaseModel):
    """Everything the transaction list cache restores on a warm start."""

    full: list[Transaction] = Field(default_factory=list)
    display: list[Transaction] = Field(default_factory=list)
    search_term: str = ""
    selected_period: str


def _dump(transactions: Iterable[Transaction]) -> list[dict[str, Any]]:
    return [transaction.to_wire() for transaction in transactions]


class TransactionCacheStore:
    """
    Reads and writes the transaction cache keys.

    Transactions are stored in their camelCase wire form, so ids and
    comma-decimal values survive the round trip untouched.
    """

    def __init__(self, store: KeyValueStoreInterface):
        self._store = store

    def load(self) -> Union[CacheSnapshot, _ColdCache]:
        try:
            full = self._store.get(FULL_LIST_KEY)
            display = self._store.get(DISPLAY_LIST_KEY)
            period = self._store.get(PERIOD_KEY)
            search_term = self._store.get(SEARCH_TERM_KEY)
        except StorageError as e:
            logger.warning("cache_load_failed", error=str(e))
            return COLD

        if full is None or display is None or search_term is None or not period:
            return COLD

        try:
            return CacheSnapshot(
                full=[Transaction.model_validate(item) for item in full],
                display=[Transaction.model_validate(item) for item in display],
                search_term=str(search_term),
                selected_period=str(period),
            )
        except (SchemaError, TypeError) as e:
            logger.warning("cache_snapshot_invalid", error=str(e))
            return COLD

    def save_full(self, transactions: Iterable[Transaction]) -> None:
        self._store.set(FULL_LIST_KEY, _dump(transactions))

    def save_display(self, transactions: Iterable[Transaction]) -> None:
        self._store.set(DISPLAY_LIST_KEY, _dump(transactions))

    def save_search_term(self, term: str) -> None:
        self._store.set(SEARCH_TERM_KEY, term)

    def save_period(self, period: str) -> None:
        self._store.set(PERIOD_KEY, period)

    def save(self, snapshot: CacheSnapshot) -> None:
        """Write all four keys at once."""
        self._store.set_many({
            FULL_LIST_KEY: _dump(snapshot.full),
            DISPLAY_LIST_KEY: _dump(snapshot.display),
            SEARCH_TERM_KEY: snapshot.search_term,
            PERIOD_KEY: snapshot.selected_period,
        })
