"""
Bulk Reassignment Engine

Moves a selection of transactions between fiscal books:

- assign:   attach to a target book (one bulk call)
- remove:   detach from a source book (one call per transaction)
- transfer: detach every transaction from the source, then attach them
            all to the target

SINGLE OWNER: a transaction belongs to at most one book. Whatever can be
checked locally is checked before the first remote call:
- the required book ids are present
- the target book, when known, accepts changes (not closed / archived)
- no known transaction is owned by a book other than the one it is
  being moved from

PARTIAL TRANSFERS: the backend has no transactional transfer. When a
detach or the final attach fails, the attach is not attempted (or not
retried) and TransferIncompleteError lists what is left detached. With
the "rollback" compensation policy the detached transactions are first
re-attached to the source book. A remove that stops halfway raises
ReassignmentIncompleteError with the transactions it already detached.
"""

from typing import Callable, Optional, Sequence, Union

import structlog

from perfinper.audit import AuditLogger
from perfinper.errors import (
    InvariantViolation,
    NotFoundError,
    ReassignmentIncompleteError,
    RemoteFailure,
    TransferIncompleteError,
    ValidationError,
    user_message,
)
from perfinper.fiscal.rules import FiscalBookRules
from perfinper.models import (
    AuditEventBuilder,
    AuditEventType,
    FiscalBook,
    ReassignmentOperation,
    ReassignmentResult,
    Transaction,
    TransactionProjection,
)
from perfinper.services.remote import FiscalBookStoreInterface


logger = structlog.get_logger(__name__)


MISSING_TARGET = "MISSING_TARGET"
MISSING_SOURCE = "MISSING_SOURCE"
MISSING_BOTH = "MISSING_BOTH"

VALIDATION_MESSAGES = {
    MISSING_TARGET: "Selecione um livro fiscal para atribuir as transações",
    MISSING_BOTH: "Selecione os livros de origem e destino para transferir as transações",
    MISSING_SOURCE: "Selecione o livro fiscal para remover as transações",
}

BULK_FAILURE_MESSAGE = "Erro ao executar operação em lote"

COMPENSATION_NONE = "none"
COMPENSATION_ROLLBACK = "rollback"

Selection = Sequence[Union[str, Transaction]]


def _split_selection(selection: Selection) -> tuple[list[str], list[Transaction]]:
    """Ids in selection order, plus the transactions whose owner is known."""
    ids: list[str] = []
    known: list[Transaction] = []
    for item in selection:
        if isinstance(item, Transaction):
            if item.id:
                ids.append(item.id)
                known.append(item)
        else:
            ids.append(item)
    return ids, known


class BulkReassignmentEngine:
    """
    Assign, remove and transfer transactions between fiscal books.

    Args:
        store: Fiscal book store used for the remote calls
        books: Currently loaded books, used for projections and checks
        compensation: "none" or "rollback" for failed transfers
        rules: Fiscal book rules (editability, derived year)
        audit_logger: Optional audit trail
    """

    def __init__(
        self,
        store: FiscalBookStoreInterface,
        books: Sequence[FiscalBook] = (),
        compensation: str = COMPENSATION_NONE,
        rules: Optional[FiscalBookRules] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if compensation not in (COMPENSATION_NONE, COMPENSATION_ROLLBACK):
            raise ValueError(f"Unknown compensation policy: {compensation}")
        self._store = store
        self._books = {book.id: book for book in books if book.id}
        self._compensation = compensation
        self._rules = rules or FiscalBookRules()
        self._audit_logger = audit_logger

    def set_books(self, books: Sequence[FiscalBook]) -> None:
        self._books = {book.id: book for book in books if book.id}

    def available_targets(self, exclude_id: Optional[str] = None) -> list[FiscalBook]:
        """Books transactions can be moved into: editable, other than `exclude_id`."""
        return [
            book for book_id, book in self._books.items()
            if book_id != exclude_id and self._rules.is_editable(book)
        ]

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @staticmethod
    def validation_code(
        operation: ReassignmentOperation,
        source_id: Optional[str],
        target_id: Optional[str],
    ) -> Optional[str]:
        """The missing-input code for an operation, or None when complete."""
        operation = ReassignmentOperation(operation)
        if operation is ReassignmentOperation.ASSIGN and not target_id:
            return MISSING_TARGET
        if operation is ReassignmentOperation.REMOVE and not source_id:
            return MISSING_SOURCE
        if operation is ReassignmentOperation.TRANSFER and not (source_id and target_id):
            return MISSING_BOTH
        return None

    def _require(
        self,
        operation: ReassignmentOperation,
        source_id: Optional[str],
        target_id: Optional[str],
    ) -> None:
        code = self.validation_code(operation, source_id, target_id)
        if code is None:
            return
        field = "targetFiscalBookId" if code == MISSING_TARGET else "sourceFiscalBookId"
        raise ValidationError({field: VALIDATION_MESSAGES[code]}, {field: code})

    def _check_target(self, target_id: str) -> None:
        book = self._books.get(target_id)
        if book is not None and not self._rules.is_editable(book):
            raise InvariantViolation(
                f"Livro fiscal '{book.display_name_source}' com status "
                f"'{book.status}' não aceita transações"
            )

    @staticmethod
    def _check_owner(known: Sequence[Transaction], allowed: Optional[str]) -> None:
        """Every known transaction must be unowned or owned by `allowed`."""
        conflicts = [
            t.id for t in known
            if t.fiscal_book_id and t.fiscal_book_id != allowed
        ]
        if conflicts:
            raise InvariantViolation(
                "Transações já pertencem a outro livro fiscal: " + ", ".join(conflicts)
            )

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def _projections(
        self,
        transaction_ids: Sequence[str],
        book_id: Optional[str],
    ) -> list[TransactionProjection]:
        book = self._books.get(book_id) if book_id else None
        name = book.display_name_source or None if book else None
        year = self._rules.derive_year(book) if book else None
        return [
            TransactionProjection(
                transaction_id=transaction_id,
                fiscal_book_id=book_id,
                fiscal_book_name=name,
                fiscal_book_year=year,
            )
            for transaction_id in transaction_ids
        ]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def assign(
        self,
        target_id: Optional[str],
        selection: Selection,
    ) -> list[TransactionProjection]:
        """
        Attach the selection to `target_id` in one call.

        Raises:
            ValidationError: MISSING_TARGET
            InvariantViolation: Locked target or a transaction owned elsewhere
            RemoteFailure: The bulk add failed
        """
        self._require(ReassignmentOperation.ASSIGN, None, target_id)
        ids, known = _split_selection(selection)
        if not ids:
            return []
        self._check_target(target_id)
        self._check_owner(known, allowed=target_id)

        await self._store.add_transactions(target_id, ids)
        await self._audit(AuditEventType.TRANSACTIONS_ASSIGNED, None, target_id, ids)
        return self._projections(ids, target_id)

    async def remove(
        self,
        source_id: Optional[str],
        selection: Selection,
    ) -> list[TransactionProjection]:
        """
        Detach the selection from `source_id`, one call per transaction.

        Stops at the first failure; transactions before it stay detached,
        which is what was asked for, and are listed on the error.

        Raises:
            ValidationError: MISSING_SOURCE
            InvariantViolation: A transaction is owned by another book
            ReassignmentIncompleteError: A detach failed
        """
        self._require(ReassignmentOperation.REMOVE, source_id, None)
        ids, known = _split_selection(selection)
        if not ids:
            return []
        self._check_owner(known, allowed=source_id)

        detached: list[str] = []
        for transaction_id in ids:
            try:
                await self._store.remove_transaction(transaction_id)
            except (RemoteFailure, NotFoundError) as e:
                if not detached:
                    raise
                pending = ids[len(detached):]
                raise await self._removal_incomplete(source_id, detached, pending, e)
            detached.append(transaction_id)

        await self._audit(AuditEventType.TRANSACTIONS_REMOVED, source_id, None, ids)
        return self._projections(ids, None)

    async def _removal_incomplete(
        self,
        source_id: str,
        detached: list[str],
        pending: list[str],
        error: Exception,
    ) -> ReassignmentIncompleteError:
        server_message = getattr(error, "server_message", None)
        if self._audit_logger:
            await self._audit(AuditEventType.TRANSACTIONS_REMOVED, source_id, None, detached)
            await self._audit_logger.log_remote_failure(
                "reassignment.remove",
                server_message or str(error),
                {"detached_ids": detached, "pending_ids": pending},
            )
        return ReassignmentIncompleteError(
            f"Remoção interrompida; {len(detached)} transação(ões) removida(s) do livro fiscal",
            detached_ids=detached,
            pending_ids=pending,
            server_message=server_message,
        )

    async def transfer(
        self,
        source_id: Optional[str],
        target_id: Optional[str],
        selection: Selection,
    ) -> list[TransactionProjection]:
        """
        Detach the selection from `source_id`, then attach it to `target_id`.

        Raises:
            ValidationError: MISSING_BOTH
            InvariantViolation: Locked target or a transaction owned by
                a book other than the source
            TransferIncompleteError: Some transactions were detached and
                could not be attached to the target
        """
        self._require(ReassignmentOperation.TRANSFER, source_id, target_id)
        ids, known = _split_selection(selection)
        if not ids:
            return []
        self._check_target(target_id)
        self._check_owner(known, allowed=source_id)

        detached: list[str] = []
        for transaction_id in ids:
            try:
                await self._store.remove_transaction(transaction_id)
            except (RemoteFailure, NotFoundError) as e:
                pending = ids[len(detached):]
                raise await self._incomplete(source_id, target_id, detached, pending, e)
            detached.append(transaction_id)

        try:
            await self._store.add_transactions(target_id, ids)
        except (RemoteFailure, NotFoundError) as e:
            raise await self._incomplete(source_id, target_id, detached, [], e)

        await self._audit(AuditEventType.TRANSACTIONS_TRANSFERRED, source_id, target_id, ids)
        return self._projections(ids, target_id)

    async def _incomplete(
        self,
        source_id: str,
        target_id: str,
        detached: list[str],
        pending: list[str],
        error: Exception,
    ) -> TransferIncompleteError:
        server_message = getattr(error, "server_message", None)
        rolled_back: list[str] = []

        if detached and self._compensation == COMPENSATION_ROLLBACK:
            try:
                await self._store.add_transactions(source_id, detached)
                rolled_back, detached = detached, []
            except (RemoteFailure, NotFoundError) as rollback_error:
                logger.error(
                    "transfer_rollback_failed",
                    source_id=source_id,
                    detached_ids=detached,
                    error=str(rollback_error),
                )

        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.transfer_incomplete(
                source_id, target_id, detached, pending, server_message or str(error),
            ))
            if rolled_back:
                await self._audit(
                    AuditEventType.TRANSFER_ROLLED_BACK, None, source_id, rolled_back,
                )

        if rolled_back:
            message = "Transferência interrompida; transações devolvidas ao livro de origem"
        else:
            message = (
                f"Transferência interrompida; {len(detached)} transação(ões) "
                "ficaram sem livro fiscal"
            )
        return TransferIncompleteError(
            message,
            detached_ids=detached,
            pending_ids=pending,
            server_message=server_message,
            rolled_back_ids=rolled_back,
        )

    async def execute(
        self,
        operation: ReassignmentOperation,
        selection: Selection,
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
        on_projection: Optional[Callable[[TransactionProjection], None]] = None,
    ) -> ReassignmentResult:
        """
        Run an operation and report its outcome instead of raising.

        On success `on_projection` is called once per moved transaction,
        typically TransactionListCache.apply_projection. When a remove or
        transfer stops halfway it is called for the detached transactions,
        with no book.
        """
        operation = ReassignmentOperation(operation)
        ids, _ = _split_selection(selection)
        result = ReassignmentResult(
            success=False,
            operation=operation,
            source_id=source_id,
            target_id=target_id,
            transaction_ids=ids,
        )

        try:
            if operation is ReassignmentOperation.ASSIGN:
                projections = await self.assign(target_id, selection)
            elif operation is ReassignmentOperation.REMOVE:
                projections = await self.remove(source_id, selection)
            else:
                projections = await self.transfer(source_id, target_id, selection)
        except ValidationError as e:
            code = next(iter(e.codes.values()), None)
            if self._audit_logger:
                await self._audit_logger.log_validation_failed("reassignment", e.errors)
            return result.model_copy(update={
                "message": VALIDATION_MESSAGES.get(code, str(e)),
                "error_type": type(e).__name__,
                "validation_code": code,
            })
        except InvariantViolation as e:
            if self._audit_logger:
                await self._audit_logger.log_invariant_violated("reassignment", str(e))
            return result.model_copy(update={
                "message": str(e),
                "error_type": type(e).__name__,
            })
        except ReassignmentIncompleteError as e:
            logger.error(
                "reassignment_incomplete",
                operation=operation.value,
                source_id=source_id,
                target_id=target_id,
                detached_ids=e.detached_ids,
                pending_ids=e.pending_ids,
            )
            # detached transactions belong to no book on the backend now
            detached = self._projections(e.detached_ids, None)
            if on_projection is not None:
                for projection in detached:
                    on_projection(projection)
            return result.model_copy(update={
                "message": str(e),
                "error_type": type(e).__name__,
                "detached_ids": e.detached_ids,
                "projections": detached,
            })
        except (RemoteFailure, NotFoundError) as e:
            message = user_message(e, BULK_FAILURE_MESSAGE)
            logger.warning("reassignment_failed", operation=operation.value, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_remote_failure(
                    f"reassignment.{operation.value}", message, {"transaction_ids": ids},
                )
            return result.model_copy(update={
                "message": message,
                "error_type": type(e).__name__,
            })

        if on_projection is not None:
            for projection in projections:
                on_projection(projection)

        return result.model_copy(update={
            "success": True,
            "message": f"{len(projections)} transação(ões) processada(s)",
            "projections": projections,
        })

    async def _audit(
        self,
        event_type: AuditEventType,
        source_id: Optional[str],
        target_id: Optional[str],
        transaction_ids: list[str],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.reassignment(
                event_type, source_id, target_id, transaction_ids,
            ))
