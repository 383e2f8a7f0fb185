"""Escrow Settlement Service Layer.

Business logic services for wallets, escrow accounts and orders.
Each service encapsulates domain-specific operations and can be reused
across API endpoints and Celery tasks.
"""

from src.services.escrow_service import EscrowService
from src.services.ledger_service import LedgerService, WalletLedger
from src.services.order_service import OrderService
from src.services.release_scheduler import (
    EscrowReleaseScheduler,
    SweepResult,
    trigger_escrow_release,
)

__all__ = [
    "EscrowReleaseScheduler",
    "EscrowService",
    "LedgerService",
    "OrderService",
    "SweepResult",
    "WalletLedger",
    "trigger_escrow_release",
]
