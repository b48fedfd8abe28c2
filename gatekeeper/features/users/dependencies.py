"""
FastAPI dependencies for identifying the acting user.

Credentials are verified upstream; this service trusts the actor header.
"""
from typing import Annotated, Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core import config
from gatekeeper.core.database.engine import get_db
from gatekeeper.features.users.models import User
from gatekeeper.features.users.service import get_user


def get_actor_id(request: Request) -> Optional[str]:
    return request.headers.get(config.ACTOR_HEADER) or None


async def get_current_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Resolve the acting user from the actor header.

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    actor_id = get_actor_id(request)
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {config.ACTOR_HEADER} header",
        )

    user = await get_user(db, actor_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown actor",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def get_authorization_header(request) -> str:
    """
    Extract the actor header for rate limiting.
    Used with slowapi Limiter.
    """
    return request.headers.get(config.ACTOR_HEADER, "") or "anonymous"
