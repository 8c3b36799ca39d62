"""
Error Taxonomy

Every failure the core reports falls into one of these classes:

- ValidationError: field-level, recoverable, never reaches the network
- NotFoundError: the referenced entity does not exist
- RemoteFailure: any network/server error raised by a store call
- InvariantViolation: a domain rule that can be checked locally was broken

Components catch these at their boundary and turn them into a short
user-facing message via `user_message()`.
"""

from typing import Optional


DEFAULT_REMOTE_MESSAGE = "Não foi possível concluir a operação"


class PerfinperError(Exception):
    """Base exception for all perfinper errors."""


class ValidationError(PerfinperError):
    """
    One or more fields failed validation.

    `errors` maps field name to a human-readable message, `codes` maps
    the same fields to a machine-readable code (REQUIRED, TOO_LONG, ...).
    """

    def __init__(
        self,
        errors: dict[str, str],
        codes: Optional[dict[str, str]] = None,
    ):
        self.errors = dict(errors)
        self.codes = dict(codes or {})
        summary = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(summary or "Dados inválidos")


class NotFoundError(PerfinperError):
    """Entity not found."""


class RemoteFailure(PerfinperError):
    """
    A call to a remote store failed.

    `server_message` is the message the backend sent back, if any.
    """

    def __init__(
        self,
        message: str,
        server_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.server_message = server_message
        self.status_code = status_code
        super().__init__(message)


class ReassignmentIncompleteError(RemoteFailure):
    """
    A bulk reassignment stopped after some transactions were already
    detached from their source book.

    `detached_ids` belong to no book right now. `pending_ids` were never
    touched.
    """

    def __init__(
        self,
        message: str,
        detached_ids: list[str],
        pending_ids: list[str],
        server_message: Optional[str] = None,
    ):
        self.detached_ids = list(detached_ids)
        self.pending_ids = list(pending_ids)
        super().__init__(message, server_message=server_message)


class TransferIncompleteError(ReassignmentIncompleteError):
    """
    A transfer failed after some transactions were already detached
    from their source book.

    `rolled_back_ids` were detached and then re-attached to the source.
    """

    def __init__(
        self,
        message: str,
        detached_ids: list[str],
        pending_ids: list[str],
        server_message: Optional[str] = None,
        rolled_back_ids: Optional[list[str]] = None,
    ):
        self.rolled_back_ids = list(rolled_back_ids or [])
        super().__init__(message, detached_ids, pending_ids, server_message=server_message)


class InvariantViolation(PerfinperError):
    """A domain invariant would be broken by the requested operation."""


class InvalidTransitionError(InvariantViolation):
    """Fiscal book status transition is not allowed."""

    def __init__(self, status: str, action: str):
        self.status = status
        self.action = action
        super().__init__(f"Não é possível '{action}' um livro com status '{status}'")


class StorageError(PerfinperError):
    """Local key-value storage could not be read or written."""


def user_message(error: BaseException, default: str = DEFAULT_REMOTE_MESSAGE) -> str:
    """
    Translate an exception into the message shown to the user.

    Falls back through: server-provided message -> exception message
    -> the given default.
    """
    server_message = getattr(error, "server_message", None)
    if server_message:
        return server_message
    text = str(error).strip()
    return text or default
