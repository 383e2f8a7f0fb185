"""API module - route handlers and common dependencies."""

from fastapi import FastAPI

from src.api.deps import AdminUser, CurrentUser

__all__ = [
    "AdminUser",
    "CurrentUser",
    "register_routers",
]


def register_routers(app: FastAPI) -> None:
    """Register all API routers to the application.

    Args:
        app: FastAPI application instance
    """
    from src.api.admin import router as admin_router
    from src.api.auth import router as auth_router
    from src.api.wallet import router as wallet_router

    app.include_router(auth_router, prefix="/api")
    app.include_router(wallet_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
