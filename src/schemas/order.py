"""Order schemas for API request/response."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from src.models.order import OrderStatus, PaymentStep
from src.schemas.common import ActionResponse

# ============ Order Response Schemas ============


class OrderResponse(BaseModel):
    """Schema for order response."""

    id: int
    order_no: str
    buyer_id: int
    seller_id: int
    book_listing_id: int

    # Commercial terms
    quantity: int
    total_amount: Decimal
    platform_fee: Decimal
    seller_amount: Decimal

    # Status
    status: OrderStatus
    payment_step: PaymentStep
    escrow_id: int | None = None

    # Delivery
    delivery_method: str | None = None
    delivery_address: str | None = None
    tracking_number: str | None = None

    # Notes
    buyer_notes: str | None = None
    seller_notes: str | None = None
    cancellation_reason: str | None = None

    # Timestamps
    paid_at: datetime | None = None
    confirmed_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============ Order Request Schemas ============


class OrderCreate(BaseModel):
    """Schema for creating an order."""

    book_listing_id: int
    quantity: int = Field(default=1, ge=1)
    delivery_method: str | None = Field(default=None, max_length=50)
    delivery_address: str | None = Field(default=None, max_length=500)
    buyer_notes: str | None = Field(default=None, max_length=1000)


class OrderStatusUpdate(BaseModel):
    """Schema for updating order status."""

    status: OrderStatus
    tracking_number: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)
    cancellation_reason: str | None = Field(default=None, max_length=500)


# ============ Action Schemas ============


class OrderActionResponse(ActionResponse):
    """Action result carrying the affected order."""

    order: OrderResponse | None = None
