"""Monetary string handling."""

from perfinper.money.monetary import (
    ZERO,
    TransactionSummary,
    format_currency,
    normalize,
    parse_numeric,
    summarize,
    to_comma_decimal,
)

__all__ = [
    "ZERO",
    "TransactionSummary",
    "format_currency",
    "normalize",
    "parse_numeric",
    "summarize",
    "to_comma_decimal",
]
