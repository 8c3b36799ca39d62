"""
Fiscal Book Models

A fiscal book is a named container with a period (YYYY or YYYY-MM) and a
lifecycle status that groups transactions for reporting.

DESIGN DECISION: `status` and `book_type` are plain strings on the model.
The backend owns these records and may send values this client does not
know; they are carried through untouched and checked by the validators
in `perfinper.fiscal.rules` only when a book is about to be written.

Legacy records use `name` / `year` / `description` instead of
`bookName` / `bookPeriod` / `notes`. Both spellings are kept.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, PrivateAttr, field_validator

from perfinper.models.transaction import WIRE_CONFIG


class FiscalBookStatus(str, Enum):
    """Lifecycle status, aligned with the backend enum."""
    ABERTO = "Aberto"
    FECHADO = "Fechado"
    EM_REVISAO = "Em Revisão"
    ARQUIVADO = "Arquivado"


class FiscalBookType(str, Enum):
    """Kind of records a book groups."""
    ENTRADA = "Entrada"
    SAIDA = "Saída"
    SERVICOS = "Serviços"
    INVENTARIO = "Inventário"
    OUTROS = "Outros"


class TaxRegime(str, Enum):
    SIMPLES_NACIONAL = "Simples Nacional"
    LUCRO_REAL = "Lucro Real"
    LUCRO_PRESUMIDO = "Lucro Presumido"
    OUTRO = "Outro"


class FiscalPeriod(str, Enum):
    ANNUAL = "annual"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"


FISCAL_PERIOD_LABELS = {
    FiscalPeriod.ANNUAL.value: "Anual",
    FiscalPeriod.MONTHLY.value: "Mensal",
    FiscalPeriod.QUARTERLY.value: "Trimestral",
    FiscalPeriod.BIANNUAL.value: "Bianual",
}


class FiscalData(BaseModel):
    """Tax metadata attached to a fiscal book."""
    model_config = WIRE_CONFIG

    tax_authority: str = ""
    fiscal_year: int = Field(default_factory=lambda: date.today().year)
    fiscal_period: str = FiscalPeriod.ANNUAL.value
    tax_regime: str = TaxRegime.SIMPLES_NACIONAL.value
    submission_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class FiscalBook(BaseModel):
    """
    A fiscal book as exchanged with the backend.

    The aggregates (transaction_count, totals) are computed by the backend
    and are read-only for the client.
    """
    model_config = WIRE_CONFIG

    # Identity (MongoDB-style `_id` on the wire, `id` accepted too)
    id: Optional[str] = Field(default=None, alias="_id")

    book_name: Optional[str] = None
    book_type: str = FiscalBookType.OUTROS.value
    book_period: Optional[str] = None
    status: str = FiscalBookStatus.ABERTO.value
    reference: str = ""
    notes: Optional[str] = None
    company_id: Optional[str] = None
    fiscal_data: FiscalData = Field(default_factory=FiscalData)

    # Legacy aliases
    name: Optional[str] = None
    year: Optional[int] = None
    description: Optional[str] = None

    # Virtual fields (calculated on backend)
    transaction_count: int = 0
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_amount: float = 0.0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @field_validator('transaction_count', 'total_income', 'total_expenses', 'net_amount', mode='before')
    @classmethod
    def missing_aggregate_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator('year', mode='before')
    @classmethod
    def legacy_year_as_int(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return int(v[:4]) if v[:4].isdigit() else None
        return v

    @property
    def display_name_source(self) -> str:
        """bookName, falling back to the legacy name."""
        return self.book_name or self.name or ""

    @property
    def period_source(self) -> str:
        """bookPeriod, falling back to the legacy year."""
        if self.book_period:
            return self.book_period
        return str(self.year) if self.year is not None else ""

    @property
    def notes_source(self) -> Optional[str]:
        """notes, falling back to the legacy description."""
        return self.notes or self.description

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire names, JSON-safe values, unset ids dropped."""
        data = self.model_dump(by_alias=True, mode="json")
        if data.get("_id") is None:
            data.pop("_id", None)
        return data


def new_fiscal_book(**overrides: Any) -> FiscalBook:
    """
    Build a fiscal book with the defaults used for new books.

    Open, type 'Outros', period = current year.
    """
    now = datetime.now()
    values: dict[str, Any] = {
        "book_name": "",
        "book_type": FiscalBookType.OUTROS.value,
        "book_period": str(now.year),
        "status": FiscalBookStatus.ABERTO.value,
        "notes": "",
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return FiscalBook(**values)


class FormattedFiscalBook(FiscalBook):
    """
    A fiscal book enriched for display.

    Produced by FiscalBookRules.format(); never sent back to the backend.
    """

    display_name: str = ""
    is_editable: bool = True
    is_archived: bool = False
    is_closed: bool = False
    formatted_total_income: str = ""
    formatted_total_expenses: str = ""
    formatted_net_amount: str = ""
    created_at_formatted: str = ""
    updated_at_formatted: str = ""
    closed_at_formatted: str = ""

    _source: Optional[FiscalBook] = PrivateAttr(default=None)

    def to_book(self) -> FiscalBook:
        """
        The plain book behind the display fields, safe to send back.

        Books built by FiscalBookRules.format() return the exact book they
        were formatted from; otherwise the display fields are dropped.
        """
        if self._source is not None:
            return self._source
        data = self.model_dump(include=set(FiscalBook.model_fields))
        data.update(self.model_extra or {})
        return FiscalBook.model_validate(data)
