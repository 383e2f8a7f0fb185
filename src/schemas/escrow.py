"""Escrow schemas for API request/response."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.models.escrow import EscrowStatus
from src.schemas.common import ActionResponse


class EscrowResponse(BaseModel):
    """Schema for escrow account response."""

    id: int
    order_id: int | None = None
    book_listing_id: int
    buyer_id: int
    seller_id: int

    amount: Decimal
    platform_fee: Decimal
    currency: str
    status: EscrowStatus
    hold_period_days: int

    release_at: datetime
    released_at: datetime | None = None
    refunded_at: datetime | None = None
    dispute_reason: str | None = None
    dispute_resolved_at: datetime | None = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DisputeRequest(BaseModel):
    """Schema for raising a dispute on an escrow account."""

    escrow_id: int
    reason: str = Field(min_length=1, max_length=1000)


class RefundRequest(BaseModel):
    """Schema for an admin escrow refund."""

    reason: str | None = Field(default=None, max_length=1000)


class EscrowActionResponse(ActionResponse):
    """Action result carrying the affected escrow."""

    escrow: EscrowResponse | None = None


class SweepResultResponse(ActionResponse):
    """Outcome counts of one release sweep."""

    released: int
    failed: int
    skipped: bool = False
