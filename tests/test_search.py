"""Tests for the record search engine."""

from perfinper.models import Transaction
from perfinper.search import TRANSACTION_SEARCH_FIELDS, RecordSearchEngine, search


class TestSearch:
    """Tests for substring and exclude-mode search."""

    def test_case_insensitive_substring(self):
        """Test matching ignores case."""
        records = [
            {"id": "1", "name": "Padaria Pão Quente"},
            {"id": "2", "name": "Posto Shell"},
        ]

        result = search("PADARIA", records, ["name"])

        assert [r["id"] for r in result] == ["1"]

    def test_any_field_may_match(self):
        """Test a match in any searched field keeps the record."""
        records = [{"id": "1", "a": "nada", "b": "mercado"}]
        assert search("merc", records, ["a", "b"]) == records

    def test_exclude_mode_keeps_record_when_one_field_lacks_term(self):
        """Test exclude mode keeps a record with one field lacking the term."""
        records = [{"id": "1", "a": "foo", "b": "bar"}]
        assert search("-foo", records, ["a", "b"]) == records

    def test_exclude_mode_drops_record_when_every_field_has_term(self):
        """Test exclude mode drops a record whose fields all contain the term."""
        records = [{"id": "1", "a": "foo", "b": "foobar"}]
        assert search("-foo", records, ["a", "b"]) == []

    def test_non_string_values_never_match(self):
        """Test numbers and None never match, in either mode."""
        records = [{"id": "1", "a": 123, "b": None}]
        assert search("123", records, ["a", "b"]) == []
        assert search("-x", records, ["a", "b"]) == []

    def test_missing_fields_are_skipped(self):
        """Test fields the record lacks are skipped."""
        records = [{"id": "1", "a": "alpha"}]
        assert search("alp", records, ["a", "missing"]) == records

    def test_searches_model_attributes(self):
        """Test pydantic models are searched through their attributes."""
        transactions = [
            Transaction(id="t1", company_name="Loja Azul"),
            Transaction(id="t2", company_cnpj="11.222.333/0001-44"),
        ]
        engine = RecordSearchEngine()

        assert [t.id for t in engine.search("azul", transactions)] == ["t1"]
        assert [t.id for t in engine.search("0001", transactions)] == ["t2"]

    def test_default_fields(self):
        """Test the default fields are the transaction text fields, not category."""
        assert RecordSearchEngine().fields == TRANSACTION_SEARCH_FIELDS
        assert "transaction_category" not in TRANSACTION_SEARCH_FIELDS


class TestLookups:
    """Tests for category and id lookups."""

    def test_search_category_is_exact(self):
        """Test category matching is exact, not by substring."""
        records = [
            Transaction(id="t1", transaction_category="mercado"),
            Transaction(id="t2", transaction_category="mercado-online"),
        ]

        result = RecordSearchEngine.search_category("mercado", records)

        assert [t.id for t in result] == ["t1"]

    def test_find_by_id_matches_substring(self):
        """Test id lookup matches by substring and returns None when absent."""
        records = [{"id": "abc123"}, {"id": "xyz"}]
        assert RecordSearchEngine.find_by_id("abc", records) == {"id": "abc123"}
        assert RecordSearchEngine.find_by_id("nope", records) is None

    def test_index_of_uses_strict_equality(self):
        """Test index_of matches ids exactly and returns -1 when absent."""
        records = [{"id": "abc123"}, {"id": "abc"}]
        assert RecordSearchEngine.index_of("abc", records) == 1
        assert RecordSearchEngine.index_of("ab", records) == -1
