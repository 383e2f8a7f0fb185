"""Escrow Settlement Service - Clerk authentication.

Clerk owns identities; this service keeps a local users row per Clerk
user because that row carries the wallet balance. The row is created
with an empty wallet the first time a signed-in user calls the API.
"""

import logging
from typing import Annotated, NamedTuple

from clerk_backend_api import AuthenticateRequestOptions, Clerk, authenticate_request
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from src.core.config import get_settings
from src.db import get_db
from src.models.user import User, UserRole
from src.schemas.user import UserProfileResponse
from src.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class ClerkProfile(NamedTuple):
    email: str
    username: str | None


class ClerkAuth:
    """Resolves the Clerk user behind a request."""

    def __init__(self) -> None:
        self._secret_key = get_settings().clerk_secret_key
        self._client = Clerk(bearer_auth=self._secret_key)

    def authenticated_clerk_id(self, request: Request) -> str:
        """Clerk user ID from the request's session token.

        Raises:
            HTTPException: 401 if the token is missing, invalid or has no subject
        """
        try:
            state = authenticate_request(
                request, AuthenticateRequestOptions(secret_key=self._secret_key)
            )
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Authentication failed: {e!s}",
            ) from e

        if not state.is_signed_in:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token"
            )
        clerk_id = (state.payload or {}).get("sub")
        if not clerk_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: missing user ID"
            )
        return clerk_id

    def fetch_profile(self, clerk_id: str) -> ClerkProfile:
        """Primary email and username from the Clerk API.

        Lookup failures yield an empty profile.
        """
        try:
            clerk_user = self._client.users.get(user_id=clerk_id)
        except Exception as e:
            logger.warning(f"[auth] Clerk profile lookup failed for {clerk_id}: {e}")
            return ClerkProfile(email="", username=None)

        addresses = clerk_user.email_addresses or []
        primary = next(
            (a for a in addresses if a.id == clerk_user.primary_email_address_id),
            addresses[0] if addresses else None,
        )
        return ClerkProfile(
            email=primary.email_address if primary else "",
            username=clerk_user.username or None,
        )


_clerk_auth: ClerkAuth | None = None


def get_clerk_auth() -> ClerkAuth:
    global _clerk_auth
    if _clerk_auth is None:
        _clerk_auth = ClerkAuth()
    return _clerk_auth


async def _get_or_create_wallet_owner(db: AsyncSession, clerk: ClerkAuth, clerk_id: str) -> User:
    result = await db.execute(select(User).where(User.clerk_id == clerk_id))
    user = result.scalar_one_or_none()
    if user is not None:
        return user

    profile = clerk.fetch_profile(clerk_id)
    user = User(
        clerk_id=clerk_id,
        email=profile.email,
        username=profile.username,
        currency=get_settings().currency,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"[auth] Opened wallet for new user {user.id} ({clerk_id})")
    return user


async def get_current_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    clerk: Annotated[ClerkAuth, Depends(get_clerk_auth)],
) -> User:
    """FastAPI dependency returning the signed-in, active wallet owner."""
    clerk_id = clerk.authenticated_clerk_id(request)
    user = await _get_or_create_wallet_owner(db, clerk, clerk_id)
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled"
        )
    return user


def require_role(*roles: UserRole):
    """Dependency factory admitting only users holding one of roles.

    Usage:
        AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]
    """

    async def role_checker(user: Annotated[User, Depends(get_current_user)]) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Required role: {', '.join(r.value for r in roles)}",
            )
        return user

    return role_checker


router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/me", response_model=UserProfileResponse)
async def get_me(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserProfileResponse:
    """Current user with live wallet balance."""
    profile = UserProfileResponse.model_validate(user)
    profile.wallet_balance = await LedgerService(db).get_balance(user.id)
    return profile
