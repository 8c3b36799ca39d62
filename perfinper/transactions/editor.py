"""
Transaction Editor

Single-transaction operations behind the insert and edit forms:
building the record that is sent, loading a record for editing, inserting,
updating and separating a transaction into one transaction per item.

Updates are merged into the transaction list cache (both lists and the
local mirror) once the backend accepted them.
"""

import re
from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, Optional

import structlog

from perfinper.audit import AuditLogger
from perfinper.cache import TransactionListCache
from perfinper.errors import NotFoundError, RemoteFailure, user_message
from perfinper.models import (
    AuditEventType,
    OperationResult,
    Transaction,
    TransactionItem,
)
from perfinper.money import to_comma_decimal
from perfinper.search import RecordSearchEngine
from perfinper.services.remote import TransactionStoreInterface


logger = structlog.get_logger(__name__)


UPDATED_MESSAGE = "O lançamento foi atualizado com sucesso!"
SEPARATED_MESSAGE = "A transação foi separada com sucesso!"
NOT_SEPARABLE_MESSAGE = "A transação precisa de ao menos dois itens para ser separada"

_YEAR = re.compile(r"^\d{4}$")
_MONTH = re.compile(r"^(\d{4})-(\d{2})$")


def new_transaction(**overrides) -> Transaction:
    """A blank manual transaction dated now, with one empty item."""
    values = {
        "transaction_date": datetime.now(),
        "transaction_value": "0,0",
        "freight_value": "0,0",
        "items": [TransactionItem(item_value="0,0")],
    }
    values.update(overrides)
    return Transaction(**values)


def _period_key(period: str) -> tuple[Optional[int], int, Optional[int]]:
    """(year, rank, month) with rank 0 = year, 1 = month, 2 = unknown."""
    if _YEAR.match(period):
        return int(period), 0, None
    match = _MONTH.match(period)
    if match:
        return int(match.group(1)), 1, int(match.group(2))
    return None, 2, None


def _compare_periods(a: str, b: str) -> int:
    if a == "" or b == "":
        return (b == "") - (a == "")

    year_a, rank_a, month_a = _period_key(a)
    year_b, rank_b, month_b = _period_key(b)

    if year_a is not None and year_b is not None and year_a != year_b:
        return year_b - year_a
    if (year_a is None) != (year_b is None):
        return -1 if year_a is not None else 1
    if rank_a != rank_b:
        return rank_a - rank_b
    if rank_a == 1 and month_a != month_b:
        return month_b - month_a
    return (a < b) - (a > b)


def sort_periods(periods: Iterable[str]) -> list[str]:
    """
    Order periods for the period selector.

    Empty first, then newest year first with the year itself ("2024")
    before its months, months newest first, unparseable values last.
    """
    return sorted(periods, key=cmp_to_key(_compare_periods))


class TransactionEditor:
    """
    Insert, load, update and separate single transactions.

    Args:
        store: Transaction store for the remote calls
        cache: Cache that receives accepted updates (optional)
        audit_logger: Optional audit trail
    """

    def __init__(
        self,
        store: TransactionStoreInterface,
        cache: Optional[TransactionListCache] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._cache = cache
        self._audit_logger = audit_logger

    @staticmethod
    def build(transaction: Transaction, date: Optional[datetime] = None) -> Transaction:
        """
        The record sent to the backend.

        A given date sets both the transaction date and its YYYY-MM
        period; values are put in comma-decimal form.
        """
        changes = {
            "transaction_value": to_comma_decimal(transaction.transaction_value),
            "freight_value": to_comma_decimal(transaction.freight_value),
        }
        if date is not None:
            changes["transaction_date"] = date
            changes["transaction_period"] = f"{date.year}-{date.month:02d}"
        return transaction.model_copy(update=changes)

    async def load(self, transaction_id: str) -> Transaction:
        """
        A transaction for editing: from the cached full list when present,
        otherwise from the backend.

        Raises:
            NotFoundError: If the backend doesn't know it either
        """
        if self._cache is not None:
            cached = RecordSearchEngine.find_by_id(transaction_id, self._cache.full)
            if cached is not None:
                return cached
        return await self._store.find_by_id(transaction_id)

    async def insert(
        self,
        transaction: Transaction,
        date: Optional[datetime] = None,
    ) -> Transaction:
        """Build and create a transaction; returns it as stored."""
        created = await self._store.insert(self.build(transaction, date).model_copy(
            update={"id": None},
        ))
        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                AuditEventType.TRANSACTION_INSERTED, created.id,
                f"Transaction '{created.transaction_name}' inserted",
                {"period": created.transaction_period},
            )
        return created

    async def update(
        self,
        transaction: Transaction,
        date: Optional[datetime] = None,
    ) -> Transaction:
        """
        Build and save an existing transaction, then merge it into the cache.

        Raises:
            NotFoundError / RemoteFailure: The backend rejected the update;
                the cache is left untouched
        """
        built = self.build(transaction, date)
        saved = await self._store.update_by_id(transaction.id, built)
        if self._cache is not None:
            self._cache.apply_update(saved)
        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                AuditEventType.TRANSACTION_UPDATED, transaction.id,
                f"Transaction '{saved.transaction_name}' updated",
            )
        return saved

    async def update_and_separate(
        self,
        transaction: Transaction,
        date: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Save pending edits, then split the transaction per item.

        The separation is skipped when the update fails; the update's
        error is what gets reported.
        """
        if not transaction.can_be_separated:
            return OperationResult(
                success=False,
                message=NOT_SEPARABLE_MESSAGE,
                error_type="InvariantViolation",
            )

        try:
            await self.update(transaction, date)
        except (RemoteFailure, NotFoundError) as e:
            return await self._failed("transaction.update_by_id", transaction.id, e)

        try:
            await self._store.separate_by_id(transaction.id)
        except (RemoteFailure, NotFoundError) as e:
            return await self._failed("transaction.separate_by_id", transaction.id, e)

        if self._audit_logger:
            await self._audit_logger.log_transaction_changed(
                AuditEventType.TRANSACTION_SEPARATED, transaction.id,
                f"Transaction separated into {len(transaction.items)} transactions",
            )
        if self._cache is not None:
            # The separated transactions only exist on the backend so far
            await self._cache.refresh()
        return OperationResult.succeeded(SEPARATED_MESSAGE)

    async def unique_periods(self, include_years: bool = False) -> list[str]:
        """Periods that hold transactions, ordered for the period selector."""
        periods = await self._store.find_unique_periods()
        if include_years:
            periods = list(periods) + list(await self._store.find_unique_years())
        return sort_periods(dict.fromkeys(periods))

    async def _failed(
        self,
        operation: str,
        transaction_id: Optional[str],
        error: Exception,
    ) -> OperationResult:
        message = user_message(error)
        logger.warning("transaction_edit_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_remote_failure(
                operation, message, {"transaction_id": transaction_id},
            )
        return OperationResult.failed(error, message)
