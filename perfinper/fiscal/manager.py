"""
Fiscal Book Manager

Validated lifecycle operations on fiscal books. Each operation checks
what can be checked locally first (validation, editability, deletability,
status transition) and only then calls the FiscalBookStore.

Failures propagate as perfinper errors:
- ValidationError: the book data is invalid, nothing was sent
- InvariantViolation / InvalidTransitionError: rejected locally
- NotFoundError / RemoteFailure: the backend call failed
"""

from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

import structlog

from perfinper.audit import AuditLogger
from perfinper.errors import (
    InvariantViolation,
    NotFoundError,
    RemoteFailure,
    ValidationError,
    user_message,
)
from perfinper.fiscal.rules import FiscalBookAction, FiscalBookRules
from perfinper.models import (
    AuditEventType,
    FiscalBook,
    FormattedFiscalBook,
    Transaction,
    new_fiscal_book,
)
from perfinper.services.remote import FiscalBookStoreInterface


logger = structlog.get_logger(__name__)

BookRef = Union[str, FiscalBook]


def merge_changes(book: FiscalBook, changes: Mapping[str, Any]) -> FiscalBook:
    """
    Lay `changes` over `book`.

    `changes` may use wire (camelCase) or attribute names; only the keys
    it sets are applied. The id is never changed.
    """
    validated = FiscalBook.model_validate(dict(changes))
    update = {
        name: getattr(validated, name)
        for name in validated.model_fields_set | set(validated.model_extra or {})
        if name != "id"
    }
    return book.model_copy(update=update)


class FiscalBookManager:
    """
    Create, edit, delete and move fiscal books through their lifecycle.

    Usage:
        manager = FiscalBookManager(store)
        book = await manager.create({"bookName": "Livro 2024", "bookPeriod": "2024"})
        book = await manager.close(book)
    """

    def __init__(
        self,
        store: FiscalBookStoreInterface,
        rules: Optional[FiscalBookRules] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._rules = rules or FiscalBookRules()
        self._audit_logger = audit_logger

    @property
    def rules(self) -> FiscalBookRules:
        return self._rules

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort_key: str = "bookPeriod",
        order: str = "desc",
    ) -> list[FormattedFiscalBook]:
        """
        All books matching `filters`, sorted and formatted for display.

        Args:
            filters: Any of status, book_type, year, search
            sort_key: Wire or attribute name to sort on
            order: 'asc' or 'desc'
        """
        books = await self._call("fiscal_book.get_all", self._store.get_all())
        books = self._rules.filter(books, **dict(filters or {}))
        return [self._rules.format(book) for book in self._rules.sort(books, sort_key, order)]

    async def get(self, book_id: str) -> FormattedFiscalBook:
        book = await self._call("fiscal_book.get_by_id", self._store.get_by_id(book_id))
        return self._rules.format(book)

    async def create(self, data: Union[FiscalBook, Mapping[str, Any]]) -> FiscalBook:
        """
        Validate and create a book.

        Mapping input is laid over the new-book defaults (open, type
        'Outros', current year).
        """
        if isinstance(data, FormattedFiscalBook):
            book = data.to_book()
        elif isinstance(data, FiscalBook):
            book = data
        else:
            book = merge_changes(new_fiscal_book(), data)
        await self._validate(book)

        created = await self._call("fiscal_book.create", self._store.create(book))
        await self._audit(
            AuditEventType.FISCAL_BOOK_CREATED, created.id,
            f"Fiscal book '{created.display_name_source}' created",
        )
        return created

    async def update(
        self,
        book: BookRef,
        changes: Union[FiscalBook, Mapping[str, Any]],
    ) -> FiscalBook:
        """
        Validate and save changes to an editable book.

        Raises:
            InvariantViolation: If the book is closed or archived
        """
        current = await self._resolve(book)
        if not self._rules.is_editable(current):
            raise await self._reject(
                f"Livro fiscal com status '{current.status}' não pode ser editado"
            )

        if isinstance(changes, FormattedFiscalBook):
            updated = changes.to_book()
        elif isinstance(changes, FiscalBook):
            updated = changes
        else:
            updated = merge_changes(current, changes)
        await self._validate(updated)

        saved = await self._call("fiscal_book.update", self._store.update(current.id, updated))
        await self._audit(
            AuditEventType.FISCAL_BOOK_UPDATED, current.id,
            f"Fiscal book '{saved.display_name_source}' updated",
        )
        return saved

    async def delete(self, book: BookRef) -> None:
        """
        Delete a book that holds no transactions.

        Raises:
            InvariantViolation: If the book still has transactions
        """
        current = await self._resolve(book)
        if not self._rules.can_delete(current):
            raise await self._reject(
                f"Livro fiscal possui {current.transaction_count} transação(ões) "
                "e não pode ser excluído"
            )

        await self._call("fiscal_book.delete", self._store.delete(current.id))
        await self._audit(
            AuditEventType.FISCAL_BOOK_DELETED, current.id,
            f"Fiscal book '{current.display_name_source}' deleted",
        )

    async def close(self, book: BookRef) -> FiscalBook:
        current = await self._resolve(book)
        status = self._rules.next_status(current.status, FiscalBookAction.CLOSE)

        answered = await self._call("fiscal_book.close", self._store.close(current.id))
        return await self._status_changed(current, status, {
            "closed_at": answered.closed_at or datetime.now(),
            "updated_at": answered.updated_at or current.updated_at,
        })

    async def reopen(self, book: BookRef) -> FiscalBook:
        current = await self._resolve(book)
        status = self._rules.next_status(current.status, FiscalBookAction.REOPEN)

        answered = await self._call("fiscal_book.reopen", self._store.reopen(current.id))
        return await self._status_changed(current, status, {
            "closed_at": None,
            "updated_at": answered.updated_at or current.updated_at,
        })

    async def archive(self, book: BookRef) -> FiscalBook:
        """Archive through a plain update with the archived status."""
        current = await self._resolve(book)
        status = self._rules.next_status(current.status, FiscalBookAction.ARCHIVE)

        answered = await self._call(
            "fiscal_book.archive",
            self._store.update(current.id, current.model_copy(update={"status": status})),
        )
        return await self._status_changed(current, status, {
            "updated_at": answered.updated_at or current.updated_at,
        })

    async def export(self, book_id: str, export_format: str = "json") -> Any:
        """Export a book and its transactions as 'json' or 'csv'."""
        return await self._call("fiscal_book.export", self._store.export(book_id, export_format))

    async def transactions(
        self,
        book_id: str,
        limit: Optional[int] = 10,
        sort: str = "createdAt",
        order: str = "desc",
    ) -> List[Transaction]:
        """The most recent transactions of a book, as the book drawer shows them."""
        return await self._call(
            "fiscal_book.get_transactions",
            self._store.get_transactions(book_id, limit=limit, sort=sort, order=order),
        )

    async def statistics(self) -> dict[str, Any]:
        """Overall statistics across every book; the backend has none per book."""
        return await self._call("fiscal_book.get_statistics", self._store.get_statistics())

    # ------------------------------------------------------------------

    async def _resolve(self, book: BookRef) -> FiscalBook:
        if isinstance(book, FormattedFiscalBook):
            return book.to_book()
        if isinstance(book, FiscalBook):
            return book
        return await self._call("fiscal_book.get_by_id", self._store.get_by_id(book))

    async def _validate(self, book: FiscalBook) -> None:
        result = self._rules.validate_fiscal_book(book)
        if result.is_valid:
            return
        if self._audit_logger:
            await self._audit_logger.log_validation_failed("fiscal_book", result.errors)
        raise ValidationError(
            result.errors,
            {field: code.value for field, code in result.codes.items()},
        )

    async def _reject(self, message: str) -> InvariantViolation:
        if self._audit_logger:
            await self._audit_logger.log_invariant_violated("fiscal_book", message)
        return InvariantViolation(message)

    async def _call(self, operation: str, call: Any) -> Any:
        try:
            return await call
        except (RemoteFailure, NotFoundError) as e:
            logger.warning("fiscal_book_call_failed", operation=operation, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_remote_failure(operation, user_message(e))
            raise

    async def _status_changed(
        self,
        book: FiscalBook,
        status: str,
        extra: dict[str, Any],
    ) -> FiscalBook:
        updated = book.model_copy(update={"status": status, **extra})
        await self._audit(
            AuditEventType.FISCAL_BOOK_STATUS_CHANGED, book.id,
            f"Fiscal book status changed from {book.status} to {status}",
            {"previous": book.status, "status": status},
        )
        return updated

    async def _audit(
        self,
        event_type: AuditEventType,
        book_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_fiscal_book_changed(
                event_type, book_id, description, details,
            )
