"""
User lookup dependencies.
"""
import hashlib
from typing import Annotated
from fastapi import Depends, HTTPException, Request, status
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core import config
from crm.core.database.engine import get_db
from crm.features.permissions.dependencies import get_principal
from crm.features.permissions.principal import Principal
from crm.features.users.models import User
from crm.features.users.resolver import USER_ID_HEADER, session_token_from_request


async def get_current_user(
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the stored user record for the resolved principal.
    
    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    user = await db.scalar(select(User).where(User.id == principal.user_id))
    if user is None:
        # Trusted headers can name a user that was since deleted
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


async def find_organization_user(db: AsyncSession, user_id: str, organization_id: str) -> User:
    """
    Get an active user of the given organization or raise 400.
    
    Used when a request names another user (assignee, member) who must
    belong to the same tenant as the resource.
    """
    user = await db.scalar(
        select(User).where(
            User.id == user_id,
            User.organization_id == organization_id,
            User.is_active == True,  # noqa: E712
        )
    )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is not an active member of this organization",
        )
    return user


def rate_limit_key(request: Request) -> str:
    """
    Rate-limit bucket for a request, used with slowapi Limiter.
    
    Follows the same evidence order as claims resolution: the forwarded
    user id when forwarded headers are trusted, then the session token
    (bearer or cookie), then the client address. Tokens are hashed so
    limiter storage never holds credentials.
    """
    if config.TRUST_FORWARDED_HEADERS:
        user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
        if user_id:
            return f"user:{user_id}"
    token = session_token_from_request(request)
    if token:
        return "session:" + hashlib.sha256(token.encode()).hexdigest()
    return get_remote_address(request)
