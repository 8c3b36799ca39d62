"""Single transaction editing package."""

from perfinper.transactions.editor import (
    SEPARATED_MESSAGE,
    UPDATED_MESSAGE,
    TransactionEditor,
    new_transaction,
    sort_periods,
)

__all__ = [
    "SEPARATED_MESSAGE",
    "UPDATED_MESSAGE",
    "TransactionEditor",
    "new_transaction",
    "sort_periods",
]
