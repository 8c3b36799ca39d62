"""
Remote Stores Package

Abstract interfaces for the transactions / fiscal books backend and
their REST implementation.
"""

from perfinper.services.remote.interface import (
    FiscalBookStoreInterface,
    TransactionStoreInterface,
)
from perfinper.services.remote.rest import (
    ApiClient,
    RestFiscalBookStore,
    RestTransactionStore,
)

__all__ = [
    # Interfaces
    "FiscalBookStoreInterface",
    "TransactionStoreInterface",
    # REST implementation
    "ApiClient",
    "RestFiscalBookStore",
    "RestTransactionStore",
]
