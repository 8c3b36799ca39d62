"""Tests for the fiscal book manager."""

import pytest

from conftest import make_transaction, run
from perfinper.errors import (
    InvalidTransitionError,
    InvariantViolation,
    NotFoundError,
    RemoteFailure,
    ValidationError,
)
from perfinper.fiscal import FiscalBookManager
from perfinper.models import AuditEventType, FiscalBook


@pytest.fixture
def manager(fiscal_book_store, audit_logger):
    return FiscalBookManager(fiscal_book_store, audit_logger=audit_logger)


class TestList:
    """Tests for listing books."""

    def test_list_sorts_by_period_desc_and_formats(self, manager):
        """Test books come newest period first, formatted for display."""
        books = run(manager.list())

        assert [b.id for b in books] == ["fb-2", "fb-1", "fb-3"]
        assert books[0].display_name == "Livro Maio (2024-05)"
        assert books[2].is_editable is False

    def test_list_applies_filters(self, manager):
        """Test year and status filters with a name sort."""
        books = run(manager.list({"year": 2024, "status": "Aberto"}, sort_key="bookName", order="asc"))
        assert [b.id for b in books] == ["fb-1", "fb-2"]

    def test_get_formats(self, manager):
        """Test get returns the formatted book."""
        book = run(manager.get("fb-3"))
        assert book.is_closed is True

    def test_unknown_book_is_audited(self, manager, audit_storage):
        """Test a NotFoundError from the backend is raised and audited as a remote failure."""
        with pytest.raises(NotFoundError):
            run(manager.get("nope"))

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.REMOTE_FAILURE
        assert event.description == "Remote call failed: fiscal_book.get_by_id"


class TestCreateAndUpdate:
    """Tests for create() and update()."""

    def test_create_fills_defaults(self, manager, fiscal_book_store):
        """Test a mapping is laid over the open / 'Outros' defaults."""
        created = run(manager.create({"bookName": "Livro Novo", "bookPeriod": "2024-07"}))

        assert created.id == "fb-4"
        assert created.status == "Aberto"
        assert created.book_type == "Outros"
        assert fiscal_book_store.calls_to("create")

    def test_invalid_book_never_reaches_the_store(self, manager, fiscal_book_store, audit_storage):
        """Test validation errors are raised and audited before any create call."""
        with pytest.raises(ValidationError) as exc:
            run(manager.create({"bookName": "", "bookPeriod": "2024-13"}))

        assert exc.value.codes == {"bookName": "REQUIRED", "bookPeriod": "RANGE"}
        assert fiscal_book_store.calls_to("create") == []
        assert audit_storage.events[-1].event_type == AuditEventType.VALIDATION_FAILED

    def test_update_merges_changes(self, manager, fiscal_book_store):
        """Test only the changed fields replace the stored ones."""
        saved = run(manager.update("fb-1", {"notes": "Revisado"}))

        assert saved.notes == "Revisado"
        assert saved.book_name == "Livro 2024"
        assert fiscal_book_store.calls_to("update")[0][1] == "fb-1"

    def test_update_accepts_attribute_names(self, manager, fiscal_book_store):
        """Test snake_case change keys are applied like their wire names."""
        saved = run(manager.update("fb-1", {"book_name": "Novo Nome"}))

        assert saved.book_name == "Novo Nome"
        assert saved.book_period == "2024"
        (_, _, sent), = fiscal_book_store.calls_to("update")
        assert sent.to_wire()["bookName"] == "Novo Nome"

    def test_update_accepts_wire_names(self, manager):
        """Test camelCase change keys replace the stored values."""
        saved = run(manager.update("fb-1", {"bookName": "Outro Nome", "bookPeriod": "2024-06"}))

        assert saved.book_name == "Outro Nome"
        assert saved.book_period == "2024-06"
        assert saved.id == "fb-1"

    def test_update_never_changes_the_id(self, manager, fiscal_book_store):
        """Test an id in the changes is ignored and the stored book is updated."""
        saved = run(manager.update("fb-1", {"_id": "fb-2", "notes": "x"}))

        assert saved.id == "fb-1"
        assert fiscal_book_store.books["fb-2"].notes is None

    def test_create_accepts_attribute_names(self, manager):
        """Test a create mapping may use snake_case keys."""
        created = run(manager.create({"book_name": "Livro Novo", "book_period": "2024-08"}))

        assert created.book_name == "Livro Novo"
        assert created.book_period == "2024-08"
        assert created.status == "Aberto"

    def test_formatted_book_is_sent_without_display_fields(self, manager, fiscal_book_store):
        """Test a formatted book passed as changes is saved as a plain book."""
        formatted = run(manager.get("fb-2"))

        run(manager.update("fb-2", formatted))

        (_, _, sent), = fiscal_book_store.calls_to("update")
        assert type(sent) is FiscalBook
        assert "displayName" not in sent.to_wire()

    def test_closed_book_cannot_be_updated(self, manager, fiscal_book_store, audit_storage):
        """Test a closed book is rejected locally and the rejection audited."""
        with pytest.raises(InvariantViolation):
            run(manager.update("fb-3", {"notes": "x"}))

        assert fiscal_book_store.calls_to("update") == []
        assert audit_storage.events[-1].event_type == AuditEventType.INVARIANT_VIOLATED


class TestDelete:
    """Tests for delete()."""

    def test_delete_empty_book(self, manager, fiscal_book_store):
        """Test a book without transactions is deleted."""
        run(manager.delete("fb-2"))
        assert "fb-2" not in fiscal_book_store.books

    def test_book_with_transactions_cannot_be_deleted(self, manager, fiscal_book_store):
        """Test a book with transactions is never sent to delete."""
        book = FiscalBook(_id="fb-1", bookName="Livro 2024", transactionCount=4)

        with pytest.raises(InvariantViolation):
            run(manager.delete(book))

        assert fiscal_book_store.calls_to("delete") == []

    def test_unknown_book(self, manager):
        """Test deleting an unknown book raises NotFoundError."""
        with pytest.raises(NotFoundError):
            run(manager.delete("nope"))


class TestLifecycle:
    """Tests for close / reopen / archive."""

    def test_close_applies_status_after_backend_accepts(self, manager, fiscal_book_store, audit_storage):
        """Test the closed status is applied and audited once the backend accepts."""
        closed = run(manager.close("fb-1"))

        assert closed.status == "Fechado"
        assert closed.closed_at is not None
        assert fiscal_book_store.calls_to("close") == [("close", "fb-1")]
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.FISCAL_BOOK_STATUS_CHANGED
        assert event.details == {"previous": "Aberto", "status": "Fechado"}

    def test_failed_close_keeps_status(self, manager, fiscal_book_store, books, audit_storage):
        """Test a failed close leaves the book open and is audited."""
        fiscal_book_store.fail("close")

        with pytest.raises(RemoteFailure):
            run(manager.close(books[0]))

        assert books[0].status == "Aberto"
        assert audit_storage.events[-1].event_type == AuditEventType.REMOTE_FAILURE

    def test_closing_a_closed_book_is_rejected_locally(self, manager, fiscal_book_store):
        """Test closing a closed book never reaches the backend."""
        with pytest.raises(InvalidTransitionError):
            run(manager.close("fb-3"))
        assert fiscal_book_store.calls_to("close") == []

    def test_reopen_clears_closed_at(self, manager):
        """Test reopening clears the closing date."""
        reopened = run(manager.reopen("fb-3"))
        assert reopened.status == "Aberto"
        assert reopened.closed_at is None

    def test_archive_is_an_update(self, manager, fiscal_book_store):
        """Test archive sends the book with the archived status through update."""
        archived = run(manager.archive("fb-3"))

        assert archived.status == "Arquivado"
        (_, book_id, sent), = fiscal_book_store.calls_to("update")
        assert book_id == "fb-3"
        assert sent.status == "Arquivado"

    def test_archive_formatted_book_sends_plain_book(self, manager, fiscal_book_store):
        """Test archiving a formatted book sends the stored fields only."""
        formatted = run(manager.get("fb-1"))

        run(manager.archive(formatted))

        (_, book_id, sent), = fiscal_book_store.calls_to("update")
        assert book_id == "fb-1"
        assert type(sent) is FiscalBook
        wire = sent.to_wire()
        assert wire["status"] == "Arquivado"
        for display_field in ("displayName", "isEditable", "formattedTotalIncome"):
            assert display_field not in wire
        # legacy aliases filled in for display are not written back
        assert sent.name is None
        assert sent.description is None

    def test_archived_book_cannot_be_archived_again(self, manager):
        """Test an archived book cannot be archived again."""
        book = FiscalBook(_id="fb-9", status="Arquivado")
        with pytest.raises(InvalidTransitionError):
            run(manager.archive(book))

    def test_export(self, manager, fiscal_book_store):
        """Test export passes the format through."""
        run(manager.export("fb-1", "csv"))
        assert fiscal_book_store.calls_to("export") == [("export", "fb-1", "csv")]


class TestBookDetails:
    """Tests for the transactions and statistics of books."""

    def test_transactions_defaults_to_ten_newest(self, manager, fiscal_book_store):
        """Test a book's transactions are asked for ten at a time, newest first."""
        fiscal_book_store.transactions = [
            make_transaction("t1", fiscal_book_id="fb-1"),
            make_transaction("t2", fiscal_book_id="fb-2"),
        ]

        transactions = run(manager.transactions("fb-1"))

        assert [t.id for t in transactions] == ["t1"]
        assert fiscal_book_store.calls_to("get_transactions") == [
            ("get_transactions", "fb-1", 10, "createdAt", "desc"),
        ]

    def test_transactions_of_unknown_book(self, manager, audit_storage):
        """Test an unknown book raises NotFoundError and is audited."""
        with pytest.raises(NotFoundError):
            run(manager.transactions("nope"))

        assert audit_storage.events[-1].description == (
            "Remote call failed: fiscal_book.get_transactions"
        )

    def test_statistics(self, manager, fiscal_book_store):
        """Test statistics are passed through from the backend."""
        assert run(manager.statistics()) == {"total": 3}
        assert fiscal_book_store.calls_to("get_statistics") == [("get_statistics",)]

    def test_failed_statistics_are_audited(self, manager, fiscal_book_store, audit_storage):
        """Test a failed statistics call is raised and audited."""
        fiscal_book_store.fail("get_statistics")

        with pytest.raises(RemoteFailure):
            run(manager.statistics())

        assert audit_storage.events[-1].event_type == AuditEventType.REMOTE_FAILURE
