"""Common FastAPI dependencies for API endpoints."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user, require_role
from src.db.engine import get_db
from src.models.user import User, UserRole
from src.services.escrow_service import EscrowService
from src.services.ledger_service import LedgerService
from src.services.order_service import OrderService


def get_ledger_service(db: Annotated[AsyncSession, Depends(get_db)]) -> LedgerService:
    """Get ledger service instance."""
    return LedgerService(db)


def get_escrow_service(db: Annotated[AsyncSession, Depends(get_db)]) -> EscrowService:
    """Get escrow service instance."""
    return EscrowService(db)


def get_order_service(db: Annotated[AsyncSession, Depends(get_db)]) -> OrderService:
    """Get order service instance."""
    return OrderService(db)


# ============ Type Aliases for Common Dependencies ============

# Current user (authenticated)
CurrentUser = Annotated[User, Depends(get_current_user)]

# Platform operator
AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]

Ledger = Annotated[LedgerService, Depends(get_ledger_service)]
Escrows = Annotated[EscrowService, Depends(get_escrow_service)]
Orders = Annotated[OrderService, Depends(get_order_service)]
