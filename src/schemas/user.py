"""User profile schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_serializer

from src.models.user import UserRole
from src.utils.helpers import format_utc_datetime


class UserProfileResponse(BaseModel):
    """Signed-in user with wallet balance."""

    id: int
    clerk_id: str
    email: str
    username: str | None = None
    role: UserRole
    is_active: bool
    wallet_balance: Decimal
    currency: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_serializer("created_at", "updated_at")
    def serialize_timestamp(self, value: datetime) -> str | None:
        return format_utc_datetime(value)
