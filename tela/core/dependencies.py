"""
FastAPI dependencies. Injected into route handlers.
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import AuthenticatedUser, get_current_user
from .config import get_settings
from .database import get_db as _get_db
from .errors import RateLimitExceeded
from .redis import hit_rate_limit
from .storage import StorageBackend, get_storage as _get_storage


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def get_user(
    authorization: str = Header(default=""),
) -> AuthenticatedUser:
    """
    Resolve authenticated user from Authorization header.
    Returns dev user if FF_USE_AUTH=false.
    """
    try:
        return await get_current_user(authorization)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_user(
    user: AuthenticatedUser = Depends(get_user),
) -> AuthenticatedUser:
    """Same as get_user, but enforces a user id is present."""
    if not user.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No user id associated with this token",
        )
    return user


async def rate_limit(user: AuthenticatedUser = Depends(require_user)) -> None:
    """General API window, per user."""
    settings = get_settings()
    if await hit_rate_limit(
        f"api:{user.user_id}",
        settings.rate_limit_max_requests,
        settings.rate_limit_window_seconds,
    ):
        raise RateLimitExceeded("Too many requests, please try again later.")


async def ai_rate_limit(user: AuthenticatedUser = Depends(require_user)) -> None:
    """Stricter window for endpoints that call the LLM."""
    settings = get_settings()
    if await hit_rate_limit(
        f"ai:{user.user_id}",
        settings.ai_rate_limit_max_requests,
        settings.rate_limit_window_seconds,
    ):
        raise RateLimitExceeded("Too many AI requests, please try again later.")


def get_storage_dep() -> StorageBackend:
    """Returns the active storage backend (S3 or local)."""
    return _get_storage()
