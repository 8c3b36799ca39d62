"""Bulk fiscal book reassignment package."""

from perfinper.reassignment.engine import (
    COMPENSATION_NONE,
    COMPENSATION_ROLLBACK,
    MISSING_BOTH,
    MISSING_SOURCE,
    MISSING_TARGET,
    VALIDATION_MESSAGES,
    BulkReassignmentEngine,
)

__all__ = [
    "COMPENSATION_NONE",
    "COMPENSATION_ROLLBACK",
    "MISSING_BOTH",
    "MISSING_SOURCE",
    "MISSING_TARGET",
    "VALIDATION_MESSAGES",
    "BulkReassignmentEngine",
]
