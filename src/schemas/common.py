"""Shared response schemas."""

from pydantic import BaseModel


class ActionResponse(BaseModel):
    """Result of a state-changing action."""

    success: bool
    message: str
