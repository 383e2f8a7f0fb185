"""Models module - SQLModel database entities."""

from src.models.escrow import ESCROW_TRANSITIONS, EscrowAccount, EscrowStatus
from src.models.ledger import WalletEntry, WalletEntryDirection
from src.models.listing import BookListing, ListingStatus
from src.models.order import (
    ORDER_TRANSITIONS,
    REQUESTABLE_STATUSES,
    Order,
    OrderStatus,
    PaymentStep,
    generate_order_no,
)
from src.models.transaction import Transaction, TransactionStatus, TransactionType
from src.models.user import User, UserRole

__all__ = [
    # User
    "User",
    "UserRole",
    # Listing
    "BookListing",
    "ListingStatus",
    # Order
    "Order",
    "OrderStatus",
    "PaymentStep",
    "ORDER_TRANSITIONS",
    "REQUESTABLE_STATUSES",
    "generate_order_no",
    # Escrow
    "EscrowAccount",
    "EscrowStatus",
    "ESCROW_TRANSITIONS",
    # Ledger
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "WalletEntry",
    "WalletEntryDirection",
]
