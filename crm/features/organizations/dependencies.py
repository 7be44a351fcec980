"""
Organization-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.organizations.models import Organization
from crm.features.organizations.schemas import OrganizationResponse
from crm.features.permissions.dependencies import get_principal
from crm.features.permissions.principal import Principal
from crm.features.users.models import User


async def find_organization(db: AsyncSession, organization_id: str) -> Organization:
    """
    Get organization by ID or raise 404.
    
    Args:
        organization_id: Organization ULID
        db: Database session
        
    Returns:
        Organization model
        
    Raises:
        HTTPException: 404 if organization not found
    """
    organization = await db.scalar(
        select(Organization).where(Organization.id == organization_id)
    )
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found"
        )
    return organization


async def get_current_organization(
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Organization:
    """Get the caller's own organization."""
    return await find_organization(db, principal.organization_id)


async def to_response(db: AsyncSession, organization: Organization) -> OrganizationResponse:
    """Build a response including the number of active members."""
    response = OrganizationResponse.model_validate(organization)
    response.member_count = await db.scalar(
        select(func.count(User.id)).where(
            User.organization_id == organization.id,
            User.is_active == True,  # noqa: E712
        )
    ) or 0
    return response
