"""Tests for bulk fiscal book reassignment."""

import pytest

from conftest import make_transaction, run
from perfinper.errors import (
    InvariantViolation,
    ReassignmentIncompleteError,
    RemoteFailure,
    TransferIncompleteError,
    ValidationError,
)
from perfinper.models import AuditEventType, ReassignmentOperation
from perfinper.reassignment import (
    MISSING_BOTH,
    MISSING_SOURCE,
    MISSING_TARGET,
    BulkReassignmentEngine,
)


@pytest.fixture
def engine(fiscal_book_store, books, audit_logger):
    return BulkReassignmentEngine(fiscal_book_store, books, audit_logger=audit_logger)


@pytest.fixture
def rollback_engine(fiscal_book_store, books, audit_logger):
    return BulkReassignmentEngine(
        fiscal_book_store, books, compensation="rollback", audit_logger=audit_logger,
    )


class TestChecks:
    """Tests for the checks made before any remote call."""

    @pytest.mark.parametrize("operation, source, target, code", [
        ("assign", None, None, MISSING_TARGET),
        ("assign", "fb-1", "", MISSING_TARGET),
        ("remove", None, "fb-2", MISSING_SOURCE),
        ("transfer", "fb-1", None, MISSING_BOTH),
        ("transfer", None, "fb-2", MISSING_BOTH),
        ("assign", None, "fb-2", None),
        ("remove", "fb-1", None, None),
        ("transfer", "fb-1", "fb-2", None),
    ])
    def test_validation_code(self, operation, source, target, code):
        """Test the missing-input code of each operation."""
        assert BulkReassignmentEngine.validation_code(operation, source, target) == code

    def test_missing_target_raises_with_code(self, engine, fiscal_book_store):
        """Test a missing target raises MISSING_TARGET without any call."""
        with pytest.raises(ValidationError) as exc:
            run(engine.assign(None, ["t1"]))

        assert exc.value.codes == {"targetFiscalBookId": MISSING_TARGET}
        assert fiscal_book_store.calls == []

    def test_available_targets_are_editable_books(self, engine):
        """Test closed books and the source are not offered as targets."""
        assert [b.id for b in engine.available_targets()] == ["fb-1", "fb-2"]
        assert [b.id for b in engine.available_targets(exclude_id="fb-1")] == ["fb-2"]

    def test_unknown_compensation_policy(self, fiscal_book_store):
        """Test only 'none' and 'rollback' compensation are accepted."""
        with pytest.raises(ValueError):
            BulkReassignmentEngine(fiscal_book_store, compensation="retry")

    def test_closed_target_is_rejected_before_any_call(self, engine, fiscal_book_store):
        """Test a closed target is refused before any remote call."""
        with pytest.raises(InvariantViolation):
            run(engine.assign("fb-3", ["t1"]))
        with pytest.raises(InvariantViolation):
            run(engine.transfer("fb-1", "fb-3", ["t2"]))

        assert fiscal_book_store.calls == []

    def test_transaction_owned_elsewhere_cannot_be_assigned(self, engine, fiscal_book_store):
        """Test a transaction owned by another book cannot be assigned."""
        owned = make_transaction("t2", fiscal_book_id="fb-1")

        with pytest.raises(InvariantViolation):
            run(engine.assign("fb-2", [owned]))

        assert fiscal_book_store.calls == []

    def test_transfer_requires_source_ownership(self, engine, fiscal_book_store):
        """Test a transfer refuses transactions the source does not own."""
        owned = make_transaction("t2", fiscal_book_id="fb-2")

        with pytest.raises(InvariantViolation):
            run(engine.transfer("fb-1", "fb-2", [owned]))

        assert fiscal_book_store.calls == []

    def test_empty_selection_is_a_no_op(self, engine, fiscal_book_store):
        """Test an empty selection makes no remote call."""
        assert run(engine.transfer("fb-1", "fb-2", [])) == []
        assert fiscal_book_store.calls == []


class TestAssignAndRemove:
    """Tests for assign() and remove()."""

    def test_assign_is_one_bulk_call(self, engine, fiscal_book_store):
        """Test assign sends one bulk call and projects the target book."""
        projections = run(engine.assign("fb-2", ["t1", make_transaction("t3")]))

        assert fiscal_book_store.calls == [("add_transactions", "fb-2", ["t1", "t3"])]
        assert [p.transaction_id for p in projections] == ["t1", "t3"]
        assert projections[0].fiscal_book_name == "Livro Maio"
        assert projections[0].fiscal_book_year == 2024

    def test_assign_to_unloaded_book_has_no_name(self, engine):
        """Test a target that is not loaded is projected without a name."""
        projections = run(engine.assign("fb-99", ["t1"]))
        assert projections[0].fiscal_book_id == "fb-99"
        assert projections[0].fiscal_book_name is None

    def test_remove_is_one_call_per_transaction(self, engine, fiscal_book_store):
        """Test remove detaches each transaction in its own call."""
        projections = run(engine.remove("fb-1", ["t1", "t2"]))

        assert fiscal_book_store.calls == [
            ("remove_transaction", "t1"),
            ("remove_transaction", "t2"),
        ]
        assert all(p.fiscal_book_id is None for p in projections)

    def test_remove_stops_at_first_failure(self, engine, fiscal_book_store):
        """Test remove stops at the first failed detach."""
        fiscal_book_store.fail("remove_transaction", after=1)

        with pytest.raises(ReassignmentIncompleteError) as exc:
            run(engine.remove("fb-1", ["t1", "t2", "t3"]))

        assert len(fiscal_book_store.calls_to("remove_transaction")) == 2
        assert exc.value.detached_ids == ["t1"]
        assert exc.value.pending_ids == ["t2", "t3"]
        assert exc.value.server_message == "Servidor indisponível"

    def test_remove_audits_what_was_detached(self, engine, fiscal_book_store, audit_storage):
        """Test a remove stopped halfway audits the transactions already detached."""
        fiscal_book_store.fail("remove_transaction", after=1)

        with pytest.raises(ReassignmentIncompleteError):
            run(engine.remove("fb-1", ["t1", "t2"]))

        removed = [e for e in audit_storage.events
                   if e.event_type == AuditEventType.TRANSACTIONS_REMOVED]
        assert removed[-1].details["transaction_ids"] == ["t1"]

    def test_remove_failing_on_first_call_raises_plain_failure(self, engine, fiscal_book_store):
        """Test nothing is reported as detached when the first detach fails."""
        fiscal_book_store.fail("remove_transaction")

        with pytest.raises(RemoteFailure) as exc:
            run(engine.remove("fb-1", ["t1", "t2"]))

        assert not isinstance(exc.value, ReassignmentIncompleteError)
        assert len(fiscal_book_store.calls_to("remove_transaction")) == 1


class TestTransfer:
    """Tests for transfer() and partial failures."""

    def test_detaches_then_attaches(self, engine, fiscal_book_store, audit_storage):
        """Test every detach runs before the single attach."""
        projections = run(engine.transfer("fb-1", "fb-2", ["t1", "t2"]))

        assert fiscal_book_store.calls == [
            ("remove_transaction", "t1"),
            ("remove_transaction", "t2"),
            ("add_transactions", "fb-2", ["t1", "t2"]),
        ]
        assert {p.fiscal_book_id for p in projections} == {"fb-2"}
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTIONS_TRANSFERRED

    def test_failed_detach_never_attaches(self, engine, fiscal_book_store, audit_storage):
        """Test a failed detach stops the transfer before the attach."""
        fiscal_book_store.fail("remove_transaction", after=1)

        with pytest.raises(TransferIncompleteError) as exc:
            run(engine.transfer("fb-1", "fb-2", ["t1", "t2", "t3"]))

        assert fiscal_book_store.calls_to("add_transactions") == []
        assert exc.value.detached_ids == ["t1"]
        assert exc.value.pending_ids == ["t2", "t3"]
        assert exc.value.server_message == "Servidor indisponível"
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.TRANSFER_INCOMPLETE
        assert event.details["detached_ids"] == ["t1"]

    def test_failed_attach_leaves_everything_detached(self, engine, fiscal_book_store):
        """Test a failed attach reports every transaction as detached."""
        fiscal_book_store.fail("add_transactions")

        with pytest.raises(TransferIncompleteError) as exc:
            run(engine.transfer("fb-1", "fb-2", ["t1", "t2"]))

        assert exc.value.detached_ids == ["t1", "t2"]
        assert exc.value.pending_ids == []
        assert exc.value.rolled_back_ids == []

    def test_rollback_reattaches_to_source(self, rollback_engine, fiscal_book_store, audit_storage):
        """Test rollback re-attaches detached transactions to the source."""
        fiscal_book_store.fail("remove_transaction", after=2)

        with pytest.raises(TransferIncompleteError) as exc:
            run(rollback_engine.transfer("fb-1", "fb-2", ["t1", "t2", "t3"]))

        assert fiscal_book_store.calls_to("add_transactions") == [
            ("add_transactions", "fb-1", ["t1", "t2"]),
        ]
        assert exc.value.rolled_back_ids == ["t1", "t2"]
        assert exc.value.detached_ids == []
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSFER_ROLLED_BACK

    def test_failed_rollback_still_reports_detached(self, rollback_engine, fiscal_book_store):
        """Test detached ids are still reported when the rollback fails."""
        fiscal_book_store.fail("add_transactions")

        with pytest.raises(TransferIncompleteError) as exc:
            run(rollback_engine.transfer("fb-1", "fb-2", ["t1"]))

        # target attach and source re-attach both attempted
        assert len(fiscal_book_store.calls_to("add_transactions")) == 2
        assert exc.value.detached_ids == ["t1"]
        assert exc.value.rolled_back_ids == []


class TestExecute:
    """Tests for execute(), which reports instead of raising."""

    def test_success_applies_projections(self, engine, warm_cache):
        """Test projections reach the cache after a successful assign."""
        result = run(engine.execute(
            ReassignmentOperation.ASSIGN, ["t1"], target_id="fb-2",
            on_projection=warm_cache.apply_projection,
        ))

        assert result.success
        assert result.transaction_ids == ["t1"]
        assert warm_cache.full[0].fiscal_book_id == "fb-2"
        assert warm_cache.full[0].fiscal_book_name == "Livro Maio"

    def test_validation_failure_carries_code_and_message(self, engine):
        """Test the missing-input code and its message are reported."""
        result = run(engine.execute("transfer", ["t1"], source_id="fb-1"))

        assert result.success is False
        assert result.validation_code == MISSING_BOTH
        assert result.message == (
            "Selecione os livros de origem e destino para transferir as transações"
        )

    def test_invariant_failure(self, engine):
        """Test a closed target is reported as an invariant failure, not raised."""
        result = run(engine.execute("assign", ["t1"], target_id="fb-3"))
        assert result.success is False
        assert result.error_type == "InvariantViolation"

    def test_incomplete_transfer_reports_detached(self, engine, fiscal_book_store, warm_cache):
        """Test detached transactions lose their book in the cache."""
        fiscal_book_store.fail("add_transactions")

        result = run(engine.execute(
            "transfer", ["t2"], source_id="fb-1", target_id="fb-2",
            on_projection=warm_cache.apply_projection,
        ))

        assert result.success is False
        assert result.detached_ids == ["t2"]
        assert warm_cache.full[1].fiscal_book_id is None
        assert warm_cache.full[1].fiscal_book_name is None

    def test_incomplete_remove_reports_detached(self, engine, fiscal_book_store, warm_cache):
        """Test transactions detached before a failed remove lose their book in the cache."""
        fiscal_book_store.fail("remove_transaction", after=1)

        result = run(engine.execute(
            "remove", ["t2", "t3"], source_id="fb-1",
            on_projection=warm_cache.apply_projection,
        ))

        assert result.success is False
        assert result.error_type == "ReassignmentIncompleteError"
        assert result.detached_ids == ["t2"]
        assert [p.transaction_id for p in result.projections] == ["t2"]
        assert warm_cache.full[1].fiscal_book_id is None

    def test_remote_failure_uses_server_message(self, engine, fiscal_book_store):
        """Test the bulk default message is used when the server sends none."""
        fiscal_book_store.fail("add_transactions", RemoteFailure(""))

        result = run(engine.execute("assign", ["t1"], target_id="fb-2"))

        assert result.success is False
        assert result.message == "Erro ao executar operação em lote"
