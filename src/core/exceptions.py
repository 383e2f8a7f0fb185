"""Escrow Settlement Service - Custom exceptions."""

from decimal import Decimal
from typing import Any


class EscrowLedgerError(Exception):
    """Base exception for all service errors.

    Carries a human-readable message that API handlers and tasks
    return to callers as-is.
    """

    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(EscrowLedgerError):
    """Authentication failed."""

    pass


class AuthorizationError(EscrowLedgerError):
    """User lacks permission for this action."""

    pass


class ValidationError(EscrowLedgerError):
    """Input validation failed."""

    pass


class NotFoundError(EscrowLedgerError):
    """Requested record does not exist."""

    pass


class InvalidStateError(EscrowLedgerError):
    """Record is not in a state that allows the requested transition."""

    pass


class InsufficientBalanceError(EscrowLedgerError):
    """Wallet balance is lower than the amount required."""

    def __init__(
        self,
        required: Decimal | None = None,
        available: Decimal | None = None,
        message: str = "Insufficient wallet balance",
    ) -> None:
        details = {}
        if required is not None:
            details["required"] = str(required)
        if available is not None:
            details["available"] = str(available)
        super().__init__(message, details)


class LedgerError(EscrowLedgerError):
    """Wallet ledger write failed."""

    retryable = True


class EscrowCreationError(EscrowLedgerError):
    """Escrow could not be created after the buyer was debited.

    Raised only after the compensating credit has been committed.
    """

    pass


class OperationTimeoutError(EscrowLedgerError):
    """A money-moving operation exceeded its time budget and was rolled back."""

    retryable = True
