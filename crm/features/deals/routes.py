"""
Deal API routes.

Deals are reached by USERs through assignment; ADMIN and above see every
deal in the organization.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.accounts.dependencies import account_ref, find_account
from crm.features.activities.service import record_activity
from crm.features.deals.models import Deal, DealStage
from crm.features.deals.schemas import DealCreate, DealUpdate, DealResponse
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import ResourceRef
from crm.features.permissions.tokens import Entity, Scope
from crm.features.users.dependencies import find_organization_user

router = APIRouter()


def deal_ref(deal: Deal) -> ResourceRef:
    return ResourceRef(
        organization_id=deal.organization_id,
        owner_ref=deal.account_id,
        assigned_user_id=deal.assigned_user_id,
    )


async def get_deal(
    deal_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Deal:
    """Authenticate, then load the deal or raise 404."""
    await gate.require_authenticated()
    deal = await db.scalar(select(Deal).where(Deal.id == deal_id))
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    return deal


@router.get("", response_model=list[DealResponse])
async def list_deals(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    account_id: str | None = None,
    stage: DealStage | None = None,
    skip: int = 0,
    limit: int = 100,
):
    """List deals visible to the caller."""
    if organization_id:
        await gate.require_organization(organization_id)
    principal, scope = await gate.require_visibility(Entity.DEAL)
    
    query = select(Deal).where(tenant_filter(Deal.organization_id, principal, organization_id))
    if scope is not Scope.ALL:
        query = query.where(Deal.assigned_user_id == principal.user_id)
    if account_id:
        query = query.where(Deal.account_id == account_id)
    if stage:
        query = query.where(Deal.stage == stage)
    query = query.order_by(Deal.created_at.desc()).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def create_deal(
    deal_data: DealCreate,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a deal. The assignee must belong to the caller's organization."""
    principal = await gate.require_permission("deal:create")
    if deal_data.account_id:
        account = await find_account(db, deal_data.account_id)
        await gate.require_permission("account:read", account_ref(account))
    
    assigned_user_id = deal_data.assigned_user_id or principal.user_id
    if assigned_user_id != principal.user_id:
        await find_organization_user(db, assigned_user_id, principal.organization_id)
    
    deal = Deal(
        **deal_data.model_dump(exclude={"assigned_user_id"}),
        assigned_user_id=assigned_user_id,
        organization_id=principal.organization_id,
    )
    db.add(deal)
    await db.flush()
    record_activity(db, principal, "create", "deal", deal.id, deal_data.model_dump(mode="json"), request)
    
    await db.commit()
    await db.refresh(deal)
    return deal


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal_by_id(
    deal: Annotated[Deal, Depends(get_deal)],
    gate: Annotated[RequestGate, Depends(get_gate)],
):
    """Get a single deal."""
    await gate.require_permission("deal:read", deal_ref(deal))
    return deal


@router.patch("/{deal_id}", response_model=DealResponse)
async def update_deal(
    update_data: DealUpdate,
    request: Request,
    deal: Annotated[Deal, Depends(get_deal)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update a deal, including its stage and assignee."""
    principal = await gate.require_permission("deal:update", deal_ref(deal))
    
    changes = update_data.model_dump(exclude_unset=True)
    if changes.get("assigned_user_id"):
        await find_organization_user(db, changes["assigned_user_id"], deal.organization_id)
    
    for key, value in changes.items():
        setattr(deal, key, value)
    record_activity(db, principal, "update", "deal", deal.id, update_data.model_dump(mode="json", exclude_unset=True), request, deal.organization_id)
    
    await db.commit()
    await db.refresh(deal)
    return deal


@router.delete("/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_deal(
    request: Request,
    deal: Annotated[Deal, Depends(get_deal)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a deal."""
    principal = await gate.require_permission("deal:delete", deal_ref(deal))
    
    record_activity(db, principal, "delete", "deal", deal.id, {"name": deal.name}, request, deal.organization_id)
    await db.delete(deal)
    await db.commit()
