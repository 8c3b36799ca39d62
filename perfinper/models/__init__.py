"""
Data Models Package

All data flowing between the core, the remote stores and the local
mirror conforms to these pydantic schemas.
"""

from perfinper.models.transaction import (
    Transaction,
    TransactionItem,
    TransactionProjection,
    TransactionSource,
    TransactionType,
)
from perfinper.models.fiscal_book import (
    FISCAL_PERIOD_LABELS,
    FiscalBook,
    FiscalBookStatus,
    FiscalBookType,
    FiscalData,
    FiscalPeriod,
    FormattedFiscalBook,
    TaxRegime,
    new_fiscal_book,
)
from perfinper.models.results import (
    FieldValidation,
    OperationResult,
    ReassignmentOperation,
    ReassignmentResult,
    ValidationCode,
    ValidationResult,
)
from perfinper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "Transaction",
    "TransactionItem",
    "TransactionProjection",
    "TransactionSource",
    "TransactionType",
    # Fiscal book models
    "FISCAL_PERIOD_LABELS",
    "FiscalBook",
    "FiscalBookStatus",
    "FiscalBookType",
    "FiscalData",
    "FiscalPeriod",
    "FormattedFiscalBook",
    "TaxRegime",
    "new_fiscal_book",
    # Results
    "FieldValidation",
    "OperationResult",
    "ReassignmentOperation",
    "ReassignmentResult",
    "ValidationCode",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
