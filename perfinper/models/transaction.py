"""
Transaction Models

The backend owns transactions; the client only holds copies of them in
the full/display lists and in the local mirror. Wire names are camelCase
(`transactionValue`, `fiscalBookId`, ...) and are preserved on the way
back out, including fields this client does not know about.

DESIGN DECISION: Monetary values stay comma-decimal strings ("12,30")
exactly as typed. They are only turned into numbers for aggregation.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


class TransactionType(str, Enum):
    """Direction of a transaction."""
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionSource(str, Enum):
    """Where a transaction was recorded or imported from."""
    MANUAL = "manual"
    NUBANK = "nubank"
    DIGIO = "digio"
    MERCADOLIVRE = "mercadolivre"
    FLASH = "flash"


WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="allow",
)


class TransactionItem(BaseModel):
    """
    A line item of a transaction.

    A transaction with two or more items can be separated into one
    transaction per item by the backend.
    """
    model_config = WIRE_CONFIG

    item_name: str = ""
    item_description: str = ""
    item_value: str = Field(
        default="0,00",
        description="Comma-decimal value of a single unit"
    )
    item_units: int = Field(
        default=1,
        ge=1,
        description="Amount of units of the same item"
    )


class Transaction(BaseModel):
    """
    A single financial transaction as exchanged with the backend.

    `fiscal_book_name` / `fiscal_book_year` are denormalized copies of the
    owning book, kept only for display.
    """
    model_config = WIRE_CONFIG

    id: Optional[str] = None

    transaction_date: Optional[datetime] = None
    transaction_period: str = Field(
        default="",
        description="YYYY-MM the transaction belongs to"
    )
    transaction_source: str = TransactionSource.MANUAL.value
    transaction_value: str = "0,00"
    transaction_name: str = ""
    transaction_description: str = ""
    transaction_fiscal_note: str = ""
    transaction_id: str = Field(
        default="",
        description="Identifier given by the transaction source"
    )
    transaction_status: str = ""
    transaction_location: str = "other"
    transaction_type: Optional[TransactionType] = None
    transaction_category: str = ""
    freight_value: str = "0,00"
    payment_method: str = ""

    items: list[TransactionItem] = Field(default_factory=list)

    company_name: str = ""
    company_seller_name: str = ""
    company_cnpj: str = ""

    fiscal_book_id: Optional[str] = None
    fiscal_book_name: Optional[str] = None
    fiscal_book_year: Optional[Union[int, str]] = None

    @field_validator('transaction_type', mode='before')
    @classmethod
    def empty_type_is_unset(cls, v: Any) -> Any:
        """The prototype sends '' for a type that was not chosen yet."""
        if v == "":
            return None
        return v

    @field_validator(
        'transaction_value', 'freight_value', 'transaction_category',
        mode='before',
    )
    @classmethod
    def coerce_to_text(cls, v: Any) -> Any:
        """Numbers sent by older records are kept as text."""
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase names, JSON-safe values."""
        return self.model_dump(by_alias=True, mode="json")

    @property
    def can_be_separated(self) -> bool:
        """Only transactions with two or more items can be split."""
        return len(self.items) >= 2


class TransactionProjection(BaseModel):
    """
    The part of a transaction changed by a fiscal book reassignment.

    Callers merge this into their own copy of the transaction.
    """

    transaction_id: str
    fiscal_book_id: Optional[str] = None
    fiscal_book_name: Optional[str] = None
    fiscal_book_year: Optional[int] = None

    def apply_to(self, transaction: Transaction) -> Transaction:
        """Return a copy of `transaction` owned by the projected book."""
        return transaction.model_copy(update={
            "fiscal_book_id": self.fiscal_book_id,
            "fiscal_book_name": self.fiscal_book_name,
            "fiscal_book_year": self.fiscal_book_year,
        })
