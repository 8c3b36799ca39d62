"""Fiscal book rules and lifecycle management."""

from perfinper.fiscal.rules import (
    KNOWN_BOOK_TYPES,
    KNOWN_STATUSES,
    LOCKED_STATUSES,
    FiscalBookAction,
    FiscalBookRules,
    extract_year,
)
from perfinper.fiscal.manager import FiscalBookManager

__all__ = [
    "KNOWN_BOOK_TYPES",
    "KNOWN_STATUSES",
    "LOCKED_STATUSES",
    "FiscalBookAction",
    "FiscalBookRules",
    "FiscalBookManager",
    "extract_year",
]
