"""Audit logging package."""

from perfinper.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
