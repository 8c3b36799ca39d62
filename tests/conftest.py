"""
Shared fixtures for the perfinper tests.

The remote stores are replaced by in-memory fakes that record every call
and can be told to fail, so no test talks to a real backend.
"""

import asyncio
from typing import Any, Optional

import pytest

from perfinper.audit import AuditLogger
from perfinper.cache import TransactionListCache
from perfinper.errors import NotFoundError, RemoteFailure
from perfinper.models import FiscalBook, Transaction, TransactionItem
from perfinper.services.remote import (
    FiscalBookStoreInterface,
    TransactionStoreInterface,
)
from perfinper.services.storage import (
    AuditStorageInterface,
    MemoryKeyValueStore,
    TransactionCacheStore,
)


def run(coro):
    """Drive a coroutine to completion."""
    return asyncio.run(coro)


class RecordingStore:
    """
    Call recording and failure injection shared by the fakes.

    `fail(name, error, after=n)` lets the first n calls of `name`
    succeed and makes every later one raise `error`.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self._failures: dict[str, tuple[Exception, int]] = {}

    def fail(self, name: str, error: Optional[Exception] = None, after: int = 0) -> None:
        self._failures[name] = (error or RemoteFailure("boom", server_message="Servidor indisponível"), after)

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _record(self, name: str, *args: Any) -> None:
        previous = len(self.calls_to(name))
        self.calls.append((name, *args))
        if name in self._failures:
            error, after = self._failures[name]
            if previous >= after:
                raise error


class FakeTransactionStore(RecordingStore, TransactionStoreInterface):
    """In-memory transaction store keyed by period."""

    def __init__(self, periods: Optional[dict[str, list[Transaction]]] = None):
        super().__init__()
        self.periods = {k: list(v) for k, v in (periods or {}).items()}
        self.unique_periods = sorted(self.periods)
        self.unique_years: list[str] = []

    def _all(self) -> list[Transaction]:
        return [t for transactions in self.periods.values() for t in transactions]

    async def find_by_id(self, transaction_id: str) -> Transaction:
        self._record("find_by_id", transaction_id)
        for transaction in self._all():
            if transaction.id == transaction_id:
                return transaction
        raise NotFoundError(transaction_id)

    async def find_all_in_period(self, period: str) -> list[Transaction]:
        self._record("find_all_in_period", period)
        return list(self.periods.get(period, []))

    async def insert(self, transaction: Transaction) -> Transaction:
        self._record("insert", transaction)
        created = transaction.model_copy(update={"id": f"new-{len(self.calls)}"})
        self.periods.setdefault(created.transaction_period, []).append(created)
        return created

    async def update_by_id(self, transaction_id: str, transaction: Transaction) -> Transaction:
        self._record("update_by_id", transaction_id, transaction)
        return transaction

    async def delete_by_id(self, transaction_id: str) -> None:
        self._record("delete_by_id", transaction_id)
        for period, transactions in self.periods.items():
            self.periods[period] = [t for t in transactions if t.id != transaction_id]

    async def separate_by_id(self, transaction_id: str) -> Any:
        self._record("separate_by_id", transaction_id)
        return {"message": "ok"}

    async def remove_all_in_period(self, period: str) -> None:
        self._record("remove_all_in_period", period)
        self.periods[period] = []

    async def remove_all_by_name(self, name: str) -> None:
        self._record("remove_all_by_name", name)
        for period, transactions in self.periods.items():
            self.periods[period] = [
                t for t in transactions if name.lower() not in t.transaction_name.lower()
            ]

    async def find_unique_periods(self) -> list[str]:
        self._record("find_unique_periods")
        return list(self.unique_periods)

    async def find_unique_years(self) -> list[str]:
        self._record("find_unique_years")
        return list(self.unique_years)


class FakeFiscalBookStore(RecordingStore, FiscalBookStoreInterface):
    """In-memory fiscal book store."""

    def __init__(self, books: Optional[list[FiscalBook]] = None):
        super().__init__()
        self.books = {book.id: book for book in books or []}
        self.transactions: list[Transaction] = []

    def _get(self, book_id: str) -> FiscalBook:
        if book_id not in self.books:
            raise NotFoundError(book_id)
        return self.books[book_id]

    async def get_all(self, filters: Optional[dict[str, Any]] = None) -> list[FiscalBook]:
        self._record("get_all", filters)
        return list(self.books.values())

    async def get_by_id(self, book_id: str) -> FiscalBook:
        self._record("get_by_id", book_id)
        return self._get(book_id)

    async def create(self, book: FiscalBook) -> FiscalBook:
        self._record("create", book)
        created = book.model_copy(update={"id": f"fb-{len(self.books) + 1}"})
        self.books[created.id] = created
        return created

    async def update(self, book_id: str, book: FiscalBook) -> FiscalBook:
        self._record("update", book_id, book)
        self._get(book_id)
        self.books[book_id] = book
        return book

    async def delete(self, book_id: str) -> None:
        self._record("delete", book_id)
        self.books.pop(self._get(book_id).id)

    async def close(self, book_id: str) -> FiscalBook:
        self._record("close", book_id)
        return self._get(book_id).model_copy(update={"status": "Fechado"})

    async def reopen(self, book_id: str) -> FiscalBook:
        self._record("reopen", book_id)
        return self._get(book_id).model_copy(update={"status": "Aberto"})

    async def add_transactions(self, book_id: str, transaction_ids: list[str]) -> Any:
        self._record("add_transactions", book_id, list(transaction_ids))
        return {"success": True}

    async def remove_transaction(self, transaction_id: str) -> Any:
        self._record("remove_transaction", transaction_id)
        return {"success": True}

    async def export(self, book_id: str, export_format: str = "json") -> Any:
        self._record("export", book_id, export_format)
        return {"fiscalBook": {"_id": book_id}, "transactions": []}

    async def get_transactions(
        self,
        book_id: str,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> list[Transaction]:
        self._record("get_transactions", book_id, limit, sort, order)
        self._get(book_id)
        return [t for t in self.transactions if t.fiscal_book_id == book_id]

    async def get_statistics(self) -> dict[str, Any]:
        self._record("get_statistics")
        return {"total": len(self.books)}


class MemoryAuditStorage(AuditStorageInterface):
    """Audit storage that keeps events in a list."""

    def __init__(self):
        self.events = []

    async def append_event(self, event) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_entity(self, entity_type: str, entity_id: str):
        return [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100):
        return list(reversed(self.events))[:limit]


def make_transaction(transaction_id: str, **fields: Any) -> Transaction:
    values = {
        "id": transaction_id,
        "transaction_period": "2024-05",
        "transaction_name": f"Compra {transaction_id}",
        "transaction_value": "10,00",
        "transaction_type": "debit",
    }
    values.update(fields)
    return Transaction(**values)


@pytest.fixture
def transactions() -> list[Transaction]:
    return [
        make_transaction(
            "t1",
            transaction_name="Supermercado Bom Preço",
            company_name="Bom Preço LTDA",
            transaction_category="mercado",
            transaction_value="120,50",
        ),
        make_transaction(
            "t2",
            transaction_name="Farmácia",
            company_name="Drogaria Central",
            company_cnpj="12.345.678/0001-90",
            transaction_category="saude",
            transaction_value="35,10",
            fiscal_book_id="fb-1",
        ),
        make_transaction(
            "t3",
            transaction_name="Salário",
            company_name="Empresa XPTO",
            transaction_category="renda",
            transaction_value="5000,00",
            transaction_type="credit",
            items=[
                TransactionItem(item_name="Base", item_value="4500,00"),
                TransactionItem(item_name="Bônus", item_value="500,00"),
            ],
        ),
    ]


@pytest.fixture
def transaction_store(transactions) -> FakeTransactionStore:
    return FakeTransactionStore({
        "2024-05": transactions,
        "2024-06": [make_transaction("t9", transaction_period="2024-06")],
    })


@pytest.fixture
def books() -> list[FiscalBook]:
    return [
        FiscalBook(_id="fb-1", bookName="Livro 2024", bookPeriod="2024"),
        FiscalBook(_id="fb-2", bookName="Livro Maio", bookPeriod="2024-05"),
        FiscalBook(_id="fb-3", bookName="Livro 2023", bookPeriod="2023", status="Fechado"),
    ]


@pytest.fixture
def fiscal_book_store(books) -> FakeFiscalBookStore:
    return FakeFiscalBookStore(books)


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def audit_storage() -> MemoryAuditStorage:
    return MemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def cache(transaction_store, kv_store, audit_logger) -> TransactionListCache:
    return TransactionListCache(
        transaction_store,
        TransactionCacheStore(kv_store),
        audit_logger=audit_logger,
    )


@pytest.fixture
def warm_cache(cache) -> TransactionListCache:
    run(cache.initialize("2024-05"))
    return cache
