"""Escrow Settlement Service - Book listing model.

Listings are owned by the catalog; only the columns the order flow
reads or updates are mapped here.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from src.models.columns import enum_column
from src.utils.helpers import utc_now


class ListingStatus(str, Enum):
    """Listing availability."""

    ACTIVE = "active"  # Sellable
    SOLD = "sold"  # Quantity exhausted
    INACTIVE = "inactive"  # Withdrawn by seller


class BookListing(SQLModel, table=True):
    """Book listing offered by a seller."""

    __tablename__ = "book_listings"

    id: int | None = Field(default=None, primary_key=True)
    seller_id: int = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=500)
    price: Decimal = Field(
        sa_column=sa.Column(sa.DECIMAL(12, 2), nullable=False),
        description="Unit price",
    )
    quantity_available: int = Field(default=1)
    listing_status: ListingStatus = Field(
        default=ListingStatus.ACTIVE,
        sa_column=enum_column(ListingStatus, ListingStatus.ACTIVE),
    )
    sold_at: datetime | None = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
