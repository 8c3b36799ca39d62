"""
Result Models

What the core hands back to the presentation layer: per-field validation
outcomes, form-level validation results and the outcome of an operation
that touched a remote store.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from perfinper.models.transaction import TransactionProjection


class ValidationCode(str, Enum):
    """Machine-readable class of a field validation failure."""
    REQUIRED = "REQUIRED"
    TOO_LONG = "TOO_LONG"
    RANGE = "RANGE"
    FORMAT = "FORMAT"
    INVALID_CHOICE = "INVALID_CHOICE"


class FieldValidation(BaseModel):
    """Outcome of validating a single field."""

    is_valid: bool
    code: Optional[ValidationCode] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "FieldValidation":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, code: ValidationCode, error: str) -> "FieldValidation":
        return cls(is_valid=False, code=code, error=error)


class ValidationResult(BaseModel):
    """
    Form-level validation result.

    `errors` maps field name to the message shown inline next to it.
    """

    errors: dict[str, str] = Field(default_factory=dict)
    codes: dict[str, ValidationCode] = Field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def add(self, field: str, outcome: FieldValidation) -> None:
        """Record a failed field outcome; valid outcomes are ignored."""
        if outcome.is_valid:
            return
        self.errors[field] = outcome.error or ""
        if outcome.code is not None:
            self.codes[field] = outcome.code


class OperationResult(BaseModel):
    """Outcome of a user action that went through a remote store."""

    success: bool
    message: str = ""
    error_type: Optional[str] = None
    completed_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def succeeded(cls, message: str = "") -> "OperationResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: BaseException, message: str) -> "OperationResult":
        return cls(success=False, message=message, error_type=type(error).__name__)


class ReassignmentOperation(str, Enum):
    """Bulk fiscal book operations."""
    ASSIGN = "assign"
    TRANSFER = "transfer"
    REMOVE = "remove"


class ReassignmentResult(OperationResult):
    """
    Outcome of a bulk reassignment.

    On success `projections` holds the new ownership of every transaction.
    On a remove or transfer that stopped halfway `detached_ids` lists
    transactions that were removed from the source book and not attached
    anywhere; `projections` then carries them with no book.
    """

    operation: ReassignmentOperation
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    transaction_ids: list[str] = Field(default_factory=list)
    projections: list[TransactionProjection] = Field(default_factory=list)
    detached_ids: list[str] = Field(default_factory=list)
    validation_code: Optional[str] = None
