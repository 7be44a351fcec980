"""
Organization feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.activities.service import record_activity
from crm.features.organizations.dependencies import find_organization, get_current_organization, to_response
from crm.features.organizations.models import Organization
from crm.features.organizations.schemas import OrganizationCreate, OrganizationUpdate, OrganizationResponse
from crm.features.permissions.dependencies import RequestGate, get_gate, require_permission
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import Principal, ResourceRef


router = APIRouter(tags=["organizations"])


@router.get("/current", response_model=OrganizationResponse)
async def get_current_organization_endpoint(
    organization: Annotated[Organization, Depends(get_current_organization)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get the caller's organization."""
    return await to_response(db, organization)


@router.patch("/current", response_model=OrganizationResponse)
async def update_current_organization(
    update_data: OrganizationUpdate,
    request: Request,
    organization: Annotated[Organization, Depends(get_current_organization)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update the caller's organization (OWNER and above)."""
    principal = await gate.require_permission("organization:update", ResourceRef.for_organization(organization.id))
    
    for key, value in update_data.model_dump(exclude_unset=True).items():
        setattr(organization, key, value)
    record_activity(db, principal, "update", "organization", organization.id, update_data.model_dump(mode="json", exclude_unset=True), request, organization.id)
    
    await db.commit()
    await db.refresh(organization)
    return await to_response(db, organization)


@router.get("/", response_model=list[OrganizationResponse])
async def list_organizations(
    principal: Annotated[Principal, Depends(require_permission("organization:read"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50,
):
    """
    List organizations.
    
    SUPER_ADMIN sees every organization; everyone else sees only their own.
    """
    result = await db.execute(
        select(Organization)
        .where(tenant_filter(Organization.id, principal))
        .order_by(Organization.name)
        .offset(skip)
        .limit(limit)
    )
    return [await to_response(db, org) for org in result.scalars().all()]


@router.post("/", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("organization:create"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a new tenant organization (SUPER_ADMIN only)."""
    existing = await db.scalar(select(Organization).where(Organization.slug == org_data.slug))
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Organization with this slug already exists"
        )
    
    organization = Organization(**org_data.model_dump())
    db.add(organization)
    await db.flush()
    record_activity(db, principal, "create", "organization", organization.id, org_data.model_dump(mode="json"), request, organization.id)
    
    await db.commit()
    await db.refresh(organization)
    return await to_response(db, organization)


@router.get("/{organization_id}", response_model=OrganizationResponse)
async def get_organization(
    organization_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get an organization. Only SUPER_ADMIN may read other tenants."""
    await gate.require_permission("organization:read", ResourceRef.for_organization(organization_id))
    return await to_response(db, await find_organization(db, organization_id))


@router.patch("/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: str,
    update_data: OrganizationUpdate,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update an organization by ID."""
    principal = await gate.require_permission("organization:update", ResourceRef.for_organization(organization_id))
    organization = await find_organization(db, organization_id)
    
    for key, value in update_data.model_dump(exclude_unset=True).items():
        setattr(organization, key, value)
    record_activity(db, principal, "update", "organization", organization.id, update_data.model_dump(mode="json", exclude_unset=True), request, organization.id)
    
    await db.commit()
    await db.refresh(organization)
    return await to_response(db, organization)
