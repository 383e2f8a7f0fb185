"""Core module - configuration, Redis and exceptions."""

from src.core.config import Settings, get_settings
from src.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    EscrowCreationError,
    EscrowLedgerError,
    InsufficientBalanceError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Exceptions
    "EscrowLedgerError",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "InsufficientBalanceError",
    "LedgerError",
    "EscrowCreationError",
    "OperationTimeoutError",
]
