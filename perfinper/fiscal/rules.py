"""
Fiscal Book Rules

Everything the client decides about a fiscal book without asking the
backend:

- STATUS LIFECYCLE: Aberto <-> Fechado (close / reopen), anything that is
  not archived -> Arquivado (archive). Nothing leaves Arquivado.
- EDITABILITY: closed and archived books are read-only. Any other status,
  including ones this client has never seen, is editable.
- VALIDATION: name and period checks run before a create/update is sent.
- PRESENTATION: display formatting, sorting and filtering of book lists.

IMPORTANT: The lifecycle check only says whether an action may be
*requested*. The new status is applied locally after the backend accepts
the change, never before.
"""

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from enum import Enum
from functools import cmp_to_key
from typing import Any, Callable, Optional, Union

from pydantic.alias_generators import to_snake

from perfinper.errors import InvalidTransitionError
from perfinper.models.fiscal_book import (
    FiscalBook,
    FiscalBookStatus,
    FiscalBookType,
    FormattedFiscalBook,
)
from perfinper.models.results import (
    FieldValidation,
    ValidationCode,
    ValidationResult,
)
from perfinper.money import format_currency


MAX_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 500
MAX_REFERENCE_LENGTH = 100
MIN_YEAR = 2000

LOCKED_STATUSES = frozenset({
    FiscalBookStatus.FECHADO.value,
    FiscalBookStatus.ARQUIVADO.value,
})
KNOWN_STATUSES = frozenset(s.value for s in FiscalBookStatus)
KNOWN_BOOK_TYPES = frozenset(t.value for t in FiscalBookType)

_YEAR_PERIOD = re.compile(r"^\d{4}$")
_MONTH_PERIOD = re.compile(r"^(\d{4})-(\d{2})$")
_LEADING_YEAR = re.compile(r"^\s*(\d{4})")


class FiscalBookAction(str, Enum):
    """Lifecycle actions that change a book's status."""
    CLOSE = "close"
    REOPEN = "reopen"
    ARCHIVE = "archive"


def extract_year(period: Optional[Union[str, int]], today: Optional[date] = None) -> int:
    """
    Year of a book period: the leading 4 digits of "YYYY" / "YYYY-MM".

    Falls back to the current calendar year when there is nothing to parse.
    """
    current_year = (today or date.today()).year
    if period is None or period == "":
        return current_year
    match = _LEADING_YEAR.match(str(period))
    return int(match.group(1)) if match else current_year


def _read(data: Any, camel: str) -> Any:
    """Read a field from a model (snake attribute) or a raw mapping (either spelling)."""
    snake = to_snake(camel)
    if isinstance(data, Mapping):
        value = data.get(camel)
        return data.get(snake) if value is None else value
    return getattr(data, snake, None)


class FiscalBookRules:
    """
    Lifecycle, validation and presentation rules for fiscal books.

    Args:
        currency_symbol: Symbol used by format() for the totals
        today: Clock used for the year range and year fallbacks
    """

    def __init__(
        self,
        currency_symbol: str = "R$",
        today: Callable[[], date] = date.today,
    ):
        self._currency_symbol = currency_symbol
        self._today = today

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def can_transition(status: str, action: FiscalBookAction) -> bool:
        action = FiscalBookAction(action)
        if action is FiscalBookAction.CLOSE:
            return status == FiscalBookStatus.ABERTO.value
        if action is FiscalBookAction.REOPEN:
            return status == FiscalBookStatus.FECHADO.value
        return status != FiscalBookStatus.ARQUIVADO.value

    def next_status(self, status: str, action: FiscalBookAction) -> str:
        """Status a book ends up in after `action`, or InvalidTransitionError."""
        action = FiscalBookAction(action)
        if not self.can_transition(status, action):
            raise InvalidTransitionError(status, action.value)
        return {
            FiscalBookAction.CLOSE: FiscalBookStatus.FECHADO.value,
            FiscalBookAction.REOPEN: FiscalBookStatus.ABERTO.value,
            FiscalBookAction.ARCHIVE: FiscalBookStatus.ARQUIVADO.value,
        }[action]

    @staticmethod
    def is_editable(book: Any) -> bool:
        return _read(book, "status") not in LOCKED_STATUSES

    @staticmethod
    def is_closed(book: Any) -> bool:
        return _read(book, "status") == FiscalBookStatus.FECHADO.value

    @staticmethod
    def is_archived(book: Any) -> bool:
        return _read(book, "status") == FiscalBookStatus.ARQUIVADO.value

    @staticmethod
    def can_delete(book: Any) -> bool:
        """Only books without transactions can be deleted."""
        return not (_read(book, "transactionCount") or 0)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_name(name: Optional[str]) -> FieldValidation:
        if not name or not name.strip():
            return FieldValidation.fail(
                ValidationCode.REQUIRED, "Nome do livro é obrigatório"
            )
        if len(name) > MAX_NAME_LENGTH:
            return FieldValidation.fail(
                ValidationCode.TOO_LONG,
                f"Nome deve ter menos de {MAX_NAME_LENGTH} caracteres",
            )
        return FieldValidation.ok()

    def validate_period(self, period: Optional[str]) -> FieldValidation:
        if period is None or not str(period).strip():
            return FieldValidation.fail(ValidationCode.REQUIRED, "Período é obrigatório")

        period = str(period)
        max_year = self._today().year + 1
        year_error = FieldValidation.fail(
            ValidationCode.RANGE, f"Ano deve estar entre {MIN_YEAR} e {max_year}"
        )

        if _YEAR_PERIOD.match(period):
            year = int(period)
            return year_error if not MIN_YEAR <= year <= max_year else FieldValidation.ok()

        match = _MONTH_PERIOD.match(period)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if not MIN_YEAR <= year <= max_year:
                return year_error
            if not 1 <= month <= 12:
                return FieldValidation.fail(
                    ValidationCode.RANGE, "Mês deve estar entre 01 e 12"
                )
            return FieldValidation.ok()

        return FieldValidation.fail(
            ValidationCode.FORMAT, "Formato de período inválido. Use YYYY ou YYYY-MM"
        )

    def validate_fiscal_book(self, data: Any) -> ValidationResult:
        """
        Validate a book (model or raw form data) before it is submitted.

        Legacy `name` / `year` / `description` are accepted in place of
        `bookName` / `bookPeriod` / `notes`.
        """
        result = ValidationResult()

        name = _read(data, "bookName") or _read(data, "name")
        result.add("bookName", self.validate_name(name))

        period = _read(data, "bookPeriod")
        if not period and _read(data, "year") is not None:
            period = str(_read(data, "year"))
        result.add("bookPeriod", self.validate_period(period))

        notes = _read(data, "notes") or _read(data, "description")
        if notes and len(notes) > MAX_NOTES_LENGTH:
            result.add("notes", FieldValidation.fail(
                ValidationCode.TOO_LONG,
                f"Observações devem ter menos de {MAX_NOTES_LENGTH} caracteres",
            ))

        reference = _read(data, "reference")
        if reference and len(reference) > MAX_REFERENCE_LENGTH:
            result.add("reference", FieldValidation.fail(
                ValidationCode.TOO_LONG,
                f"Referência deve ter menos de {MAX_REFERENCE_LENGTH} caracteres",
            ))

        book_type = _read(data, "bookType")
        if book_type and book_type not in KNOWN_BOOK_TYPES:
            result.add("bookType", FieldValidation.fail(
                ValidationCode.INVALID_CHOICE, "Tipo de livro inválido"
            ))

        status = _read(data, "status")
        if status and status not in KNOWN_STATUSES:
            result.add("status", FieldValidation.fail(
                ValidationCode.INVALID_CHOICE, "Status inválido"
            ))

        return result

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def derive_year(self, book: FiscalBook) -> int:
        if book.book_period:
            return extract_year(book.book_period, self._today())
        if book.year is not None:
            return book.year
        return self._today().year

    @staticmethod
    def _format_date(value: Optional[datetime]) -> str:
        if value is None:
            return ""
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.strftime("%d/%m/%Y")

    def format(self, book: FiscalBook) -> FormattedFiscalBook:
        """Enrich a book with display fields, derived year and legacy aliases."""
        data = book.model_dump()
        data.update(
            status=book.status or FiscalBookStatus.ABERTO.value,
            display_name=f"{book.display_name_source} ({book.period_source})",
            is_editable=self.is_editable(book),
            is_archived=self.is_archived(book),
            is_closed=self.is_closed(book),
            formatted_total_income=format_currency(book.total_income, self._currency_symbol),
            formatted_total_expenses=format_currency(book.total_expenses, self._currency_symbol),
            formatted_net_amount=format_currency(book.net_amount, self._currency_symbol),
            created_at_formatted=self._format_date(book.created_at),
            updated_at_formatted=self._format_date(book.updated_at),
            closed_at_formatted=self._format_date(book.closed_at),
            year=self.derive_year(book),
            name=book.book_name or book.name,
            description=book.notes or book.description,
        )
        formatted = FormattedFiscalBook(**data)
        formatted._source = book.to_book() if isinstance(book, FormattedFiscalBook) else book
        return formatted

    def sort(
        self,
        books: Sequence[FiscalBook],
        key: str = "bookPeriod",
        order: str = "desc",
    ) -> list[FiscalBook]:
        """
        Stable sort by a wire or attribute key.

        Strings compare case-insensitively, `*At` keys compare as dates,
        missing values sort before present ones. 'desc' negates the
        comparator, so equal values keep their input order either way.
        """
        attribute = to_snake(key)
        is_date = key.endswith("At") or attribute.endswith("_at")

        def value_of(book: FiscalBook) -> Any:
            value = getattr(book, attribute, None)
            if attribute == "book_name" and not value:
                value = book.name
            elif attribute == "book_period" and not value:
                value = str(book.year) if book.year is not None else None
            if value is None:
                return None
            if is_date:
                return _as_timestamp(value)
            if isinstance(value, str):
                return value.lower()
            return value

        def compare(a: FiscalBook, b: FiscalBook) -> int:
            first, second = value_of(a), value_of(b)
            if first is None or second is None:
                comparison = (first is not None) - (second is not None)
            elif first < second:
                comparison = -1
            elif first > second:
                comparison = 1
            else:
                comparison = 0
            return -comparison if order == "desc" else comparison

        return sorted(books, key=cmp_to_key(compare))

    def filter(
        self,
        books: Sequence[FiscalBook],
        status: Optional[str] = None,
        book_type: Optional[str] = None,
        year: Optional[Union[int, str]] = None,
        search: Optional[str] = None,
    ) -> list[FiscalBook]:
        """Books matching every supplied criterion."""
        wanted_year = int(year) if year not in (None, "") else None
        needle = search.lower() if search else None

        def keep(book: FiscalBook) -> bool:
            if status and book.status != status:
                return False
            if book_type and book.book_type != book_type:
                return False
            if wanted_year is not None and self.derive_year(book) != wanted_year:
                return False
            if needle:
                fields = [book.book_name or book.name, book.notes_source, book.reference]
                if not any(needle in field.lower() for field in fields if field):
                    return False
            return True

        return [book for book in books if keep(book)]

    def name_suggestions(
        self,
        existing: Sequence[FiscalBook],
        period: Optional[str] = None,
    ) -> list[str]:
        """Default names for a new book that are not already taken."""
        year = extract_year(period, self._today())
        suggestions = [
            f"Livro Fiscal {year}",
            f"Registros Anuais {year}",
            f"Livro Financeiro {year}",
            f"Registros Fiscais {year}",
            f"Livro Contábil {year}",
        ]
        taken = {
            (book.book_name or book.name or "").lower() for book in existing
        }
        return [name for name in suggestions if name.lower() not in taken]


def _as_timestamp(value: Any) -> Optional[float]:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).timestamp()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None
