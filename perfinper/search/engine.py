"""
Record Search Engine

Generic substring matching over a configurable set of fields, used for
the transaction full-text search and by the cache for category and id
lookups.

Records can be mappings (raw JSON) or attribute objects (pydantic
models); fields are read with `record[field]` or `getattr` accordingly.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Optional, TypeVar


T = TypeVar("T")

# Fields searched by the transaction search bar
TRANSACTION_SEARCH_FIELDS = (
    "company_cnpj",
    "company_name",
    "company_seller_name",
    "transaction_name",
    "transaction_description",
)


def _field_value(record: Any, field: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(field)
    return getattr(record, field, None)


class RecordSearchEngine:
    """
    Substring / negated-substring predicate matcher.

    EXCLUDE MODE: a term starting with '-' keeps a record when *at least
    one* of the fields does not contain the rest of the term. A record is
    therefore only dropped when every searched field contains it.
    """

    def __init__(self, fields: Sequence[str] = TRANSACTION_SEARCH_FIELDS):
        self._fields = tuple(fields)

    @property
    def fields(self) -> tuple[str, ...]:
        return self._fields

    def search(
        self,
        term: str,
        records: Sequence[T],
        fields: Optional[Sequence[str]] = None,
    ) -> list[T]:
        """Return the records with some field matching `term`."""
        fields = self._fields if fields is None else fields
        exclude = term.startswith("-")
        needle = term[1:].lower() if exclude else term.lower()

        def matches(value: Any) -> bool:
            if not isinstance(value, str):
                return False
            contained = needle in value.lower()
            return not contained if exclude else contained

        return [
            record for record in records
            if any(matches(_field_value(record, field)) for field in fields)
        ]

    @staticmethod
    def search_category(
        category: str,
        records: Sequence[T],
        field: str = "transaction_category",
    ) -> list[T]:
        """Records whose category equals `category` exactly."""
        return [record for record in records if _field_value(record, field) == category]

    @staticmethod
    def find_by_id(record_id: str, records: Sequence[T]) -> Optional[T]:
        """
        First record whose id contains `record_id`.

        Prefix/substring lookup, as used when opening a record for editing.
        Never use it to decide what to delete; see index_of().
        """
        for record in records:
            value = _field_value(record, "id")
            if isinstance(value, str) and record_id in value:
                return record
        return None

    @staticmethod
    def index_of(record_id: str, records: Sequence[Any]) -> int:
        """Index of the first record whose id equals `record_id`, or -1."""
        for index, record in enumerate(records):
            if _field_value(record, "id") == record_id:
                return index
        return -1


_default_engine = RecordSearchEngine()


def search(term: str, records: Sequence[T], fields: Sequence[str]) -> list[T]:
    """Module-level shortcut for RecordSearchEngine().search()."""
    return _default_engine.search(term, records, fields)
