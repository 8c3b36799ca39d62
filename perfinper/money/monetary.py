"""
Comma-Decimal Monetary Strings

Values are typed and stored as Brazilian comma-decimal text ("1234,56").
This module normalizes what the user types, converts text to numbers for
aggregation and renders totals as currency.

KNOWN LIMITATION: parse_numeric() returns a binary float, so sums can
drift by fractions of a cent. Thousand separators are not understood
("1.234,56" parses as 1.234). Both behaviors are kept on purpose so that
totals match the ones the rest of the system already shows.
"""

import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from pydantic import BaseModel

from perfinper.models.transaction import Transaction, TransactionType


ZERO = "0,00"

# Longest leading float literal, "Infinity" included
_FLOAT_PREFIX = re.compile(
    r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|Infinity)"
)


def normalize(raw: Optional[str]) -> str:
    """
    Normalize user-typed monetary text to "{whole},{two digits}".

    Only digits and the first comma survive; later commas are dropped
    (their digits are kept). Leading zeros of the whole part go away,
    the fraction is zero-padded or truncated (never rounded) to 2 digits.

        normalize("00012,3")   -> "12,30"
        normalize("R$ 1.5,789") -> "15,78"
        normalize("")          -> "0,00"
    """
    if not raw:
        return ZERO

    cleaned = re.sub(r"[^\d,]", "", str(raw))
    whole, comma, rest = cleaned.partition(",")
    fraction = rest.replace(",", "") if comma else ""

    whole = whole.lstrip("0") or "0"
    fraction = (fraction + "00")[:2]

    return f"{whole},{fraction}"


def parse_numeric(value: Union[str, int, float, None]) -> float:
    """
    Convert a comma-decimal value to a number.

    Numbers pass through, empty values are 0, the first comma becomes a
    dot and the longest numeric prefix is parsed. Anything unparseable
    is 0.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return value
    if value is None or value == "":
        return 0

    text = str(value).replace(",", ".", 1).strip()
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return 0
    return float(match.group(0).replace("Infinity", "inf"))


def to_comma_decimal(value: Union[str, int, float, None]) -> str:
    """Turn a dotted/numeric value into the comma wire form ("12.5" -> "12,5")."""
    if value is None:
        return ZERO
    return str(value).replace(".", ",", 1)


def format_currency(amount: Union[int, float, Decimal, None], symbol: str = "R$") -> str:
    """
    Render an amount as pt-BR currency: "R$ 1.234,56".

    Rounds half away from zero to two decimals; negatives are "-R$ 1,00".
    """
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    whole, fraction = f"{abs(value):.2f}".split(".")
    grouped = f"{int(whole):,}".replace(",", ".")
    return f"{sign}{symbol} {grouped},{fraction}"


class TransactionSummary(BaseModel):
    """Credit / debit totals of a list of transactions."""

    count: int = 0
    total_credit: float = 0.0
    total_debit: float = 0.0

    @property
    def balance(self) -> float:
        return self.total_credit - self.total_debit


def summarize(transactions: Iterable[Transaction]) -> TransactionSummary:
    """Aggregate transaction values by type; untyped ones are counted, not summed."""
    summary = TransactionSummary()
    for transaction in transactions:
        summary.count += 1
        amount = parse_numeric(transaction.transaction_value)
        if transaction.transaction_type == TransactionType.CREDIT:
            summary.total_credit += amount
        elif transaction.transaction_type == TransactionType.DEBIT:
            summary.total_debit += amount
    return summary
