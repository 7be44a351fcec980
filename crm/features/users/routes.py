"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.activities.service import record_activity
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import ResourceRef
from crm.features.permissions.roles import Role
from crm.features.users.models import User
from crm.features.users.schemas import UserResponse, UserPublic, UserUpdate, RoleUpdate
from crm.features.users.dependencies import get_current_user


router = APIRouter(tags=["users"])


async def find_user(db: AsyncSession, user_id: str) -> User:
    """Get an onboarded user by ID or raise 404."""
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None or user.organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    # Update only provided fields
    if update_data.name is not None:
        user.name = update_data.name
    if update_data.avatar_url is not None:
        user.avatar_url = update_data.avatar_url
    
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/", response_model=list[UserPublic])
async def list_users(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    skip: int = 0,
    limit: int = 50
):
    """List active users of the caller's organization."""
    if organization_id:
        await gate.require_organization(organization_id)
    principal = await gate.require_permission("organization:read")
    
    result = await db.execute(
        select(User)
        .where(
            tenant_filter(User.organization_id, principal, organization_id),
            User.is_active == True,  # noqa: E712
        )
        .order_by(User.name)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get public profile of a user in the same organization."""
    await gate.require_authenticated()
    user = await find_user(db, user_id)
    await gate.require_organization(user.organization_id)
    return user


@router.patch("/{user_id}/role", response_model=UserResponse)
async def change_user_role(
    user_id: str,
    role_data: RoleUpdate,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Change a user's role.
    
    Callers may not change their own role, may not grant a role above their
    own and may not change the role of someone ranked above them.
    """
    await gate.require_authenticated()
    user = await find_user(db, user_id)
    principal = await gate.require_permission(
        "organization:manage", ResourceRef.for_organization(user.organization_id)
    )
    
    # Prevent self-promotion or self-demotion
    if user.id == principal.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own role"
        )
    if not principal.role.at_least(role_data.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot grant a role above your own"
        )
    current_role = Role.parse(user.role)
    if current_role is not None and current_role > principal.role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot change the role of a higher-ranked user"
        )
    
    previous = user.role
    user.role = role_data.role.value
    record_activity(db, principal, "change_role", "user", user.id, {"from": previous, "to": user.role}, request, user.organization_id)
    
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Deactivate a user of the caller's organization."""
    await gate.require_authenticated()
    user = await find_user(db, user_id)
    principal = await gate.require_permission(
        "organization:manage", ResourceRef.for_organization(user.organization_id)
    )
    
    # Prevent self-deactivation
    if user.id == principal.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account"
        )
    current_role = Role.parse(user.role)
    if current_role is not None and current_role > principal.role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot deactivate a higher-ranked user"
        )
    
    user.is_active = False
    record_activity(db, principal, "deactivate", "user", user.id, None, request, user.organization_id)
    await db.commit()
    
    return {"message": "User deactivated successfully"}
