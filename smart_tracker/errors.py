"""
Domain Errors

Every rejected operation raises one of these, so callers can tell the
kinds apart (HTTP status, CLI exit code, UI message) without parsing text.

Storage failures are NOT wrapped here. They surface as StorageError from
the storage layer, unmodified.
"""

from decimal import Decimal
from typing import Any, Optional

from smart_tracker.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for rejected ledger and goal operations."""

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed or out-of-range input. Raised before any mutation."""

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ):
        self.issues = issues or []
        super().__init__(
            message,
            issues=[issue.model_dump() for issue in self.issues],
        )


class ConflictError(LedgerError):
    """
    The request is well-formed but clashes with current state:
    duplicate description, goal not active, month already closed
    by a monthly summary.
    """
    pass


class InsufficientFundsError(LedgerError):
    """
    Requested amount exceeds the cumulative savings available.

    ledger_modified is True when linked transactions were already deleted
    before the check ran; the message then says so.
    """

    def __init__(
        self,
        message: str,
        requested: Decimal,
        available: Decimal,
        ledger_modified: bool = False,
    ):
        self.requested = requested
        self.available = available
        self.ledger_modified = ledger_modified
        super().__init__(
            message,
            requested=str(requested),
            available=str(available),
            ledger_modified=ledger_modified,
        )


class NotFoundError(LedgerError):
    """Goal or transaction does not exist."""
    pass


class AuthorizationError(LedgerError):
    """Record exists but belongs to a different user."""
    pass
