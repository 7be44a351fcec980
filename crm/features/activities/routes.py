"""
Activity log API routes.

USERs see the activity they performed themselves; ADMIN and above see the
whole organization. Only OWNER and above may delete entries.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.activities.models import Activity
from crm.features.activities.schemas import ActivityCreate, ActivityResponse
from crm.features.activities.service import record_activity
from crm.features.permissions.dependencies import RequestGate, get_gate, require_permission
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import Principal, ResourceRef
from crm.features.permissions.tokens import Entity, Scope

router = APIRouter()


def activity_ref(activity: Activity) -> ResourceRef:
    return ResourceRef(
        organization_id=activity.organization_id,
        assigned_user_id=activity.user_id,
    )


@router.get("", response_model=list[ActivityResponse])
async def list_activities(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    skip: int = 0,
    limit: int = 100,
):
    """List activity entries, newest first."""
    if organization_id:
        await gate.require_organization(organization_id)
    principal, scope = await gate.require_visibility(Entity.ACTIVITY)
    
    query = select(Activity).where(tenant_filter(Activity.organization_id, principal, organization_id))
    if scope is not Scope.ALL:
        query = query.where(Activity.user_id == principal.user_id)
    if entity_type:
        query = query.where(Activity.entity_type == entity_type)
    if entity_id:
        query = query.where(Activity.entity_id == entity_id)
    if user_id:
        query = query.where(Activity.user_id == user_id)
    query = query.order_by(Activity.created_at.desc()).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
async def create_activity(
    activity_data: ActivityCreate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("activity:create"))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Log an activity by hand."""
    activity = record_activity(
        db,
        principal,
        activity_data.action,
        activity_data.entity_type,
        activity_data.entity_id,
        activity_data.details,
        request,
    )
    await db.commit()
    await db.refresh(activity)
    return activity


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity(
    activity_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get a single activity entry."""
    await gate.require_authenticated()
    activity = await db.scalar(select(Activity).where(Activity.id == activity_id))
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found")
    
    await gate.require_permission("activity:read", activity_ref(activity))
    return activity


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(
    activity_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete an activity entry."""
    await gate.require_authenticated()
    activity = await db.scalar(select(Activity).where(Activity.id == activity_id))
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found")
    
    await gate.require_permission("activity:delete", activity_ref(activity))
    await db.delete(activity)
    await db.commit()
