"""
Account API routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.accounts.dependencies import account_ref, get_account
from crm.features.accounts.models import Account, account_members
from crm.features.accounts.schemas import AccountCreate, AccountUpdate, AccountResponse
from crm.features.activities.service import record_activity
from crm.features.permissions.dependencies import RequestGate, get_gate, require_permission
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import Principal
from crm.features.permissions.tokens import Entity, Scope
from crm.features.users.dependencies import find_organization_user

router = APIRouter()


@router.get("", response_model=list[AccountResponse])
async def list_accounts(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 100,
):
    """
    List accounts visible to the caller.
    
    Roles with org-wide read see every account in the organization; others
    only see accounts they are a member of.
    """
    if organization_id:
        await gate.require_organization(organization_id)
    principal, scope = await gate.require_visibility(Entity.ACCOUNT)
    
    query = select(Account).where(tenant_filter(Account.organization_id, principal, organization_id))
    if scope is not Scope.ALL:
        query = query.where(Account.id.in_(list(principal.account_ids)))
    if search:
        query = query.where(Account.name.ilike(f"%{search}%"))
    query = query.order_by(Account.name).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    account_data: AccountCreate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("account:create"))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create an account in the caller's organization. The creator becomes a member."""
    account = Account(
        **account_data.model_dump(),
        organization_id=principal.organization_id,
        created_by_id=principal.user_id,
    )
    db.add(account)
    await db.flush()
    
    await db.execute(account_members.insert().values(account_id=account.id, user_id=principal.user_id))
    record_activity(db, principal, "create", "account", account.id, account_data.model_dump(mode="json"), request)
    
    await db.commit()
    await db.refresh(account)
    return account


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account_by_id(
    account: Annotated[Account, Depends(get_account)],
    gate: Annotated[RequestGate, Depends(get_gate)],
):
    """Get a single account."""
    await gate.require_permission("account:read", account_ref(account))
    return account


@router.patch("/{account_id}", response_model=AccountResponse)
async def update_account(
    update_data: AccountUpdate,
    request: Request,
    account: Annotated[Account, Depends(get_account)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update an account."""
    principal = await gate.require_permission("account:update", account_ref(account))
    
    changes = update_data.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(account, key, value)
    record_activity(db, principal, "update", "account", account.id, update_data.model_dump(mode="json", exclude_unset=True), request, account.organization_id)
    
    await db.commit()
    await db.refresh(account)
    return account


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    request: Request,
    account: Annotated[Account, Depends(get_account)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete an account. ADMIN may only delete accounts they are a member of."""
    principal = await gate.require_permission("account:delete", account_ref(account))
    
    record_activity(db, principal, "delete", "account", account.id, {"name": account.name}, request, account.organization_id)
    await db.delete(account)
    await db.commit()


@router.post("/{account_id}/members/{user_id}", status_code=status.HTTP_201_CREATED)
async def add_account_member(
    user_id: str,
    request: Request,
    account: Annotated[Account, Depends(get_account)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Add a user of the same organization as an account member."""
    principal = await gate.require_permission("account:update", account_ref(account))
    await find_organization_user(db, user_id, account.organization_id)
    
    existing = await db.scalar(
        select(account_members.c.user_id).where(
            account_members.c.account_id == account.id,
            account_members.c.user_id == user_id,
        )
    )
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member of this account")
    
    await db.execute(account_members.insert().values(account_id=account.id, user_id=user_id))
    record_activity(db, principal, "add_member", "account", account.id, {"user_id": user_id}, request, account.organization_id)
    await db.commit()
    return {"account_id": account.id, "user_id": user_id}


@router.delete("/{account_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_account_member(
    user_id: str,
    request: Request,
    account: Annotated[Account, Depends(get_account)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Remove an account member."""
    principal = await gate.require_permission("account:update", account_ref(account))
    
    result = await db.execute(
        delete(account_members).where(
            account_members.c.account_id == account.id,
            account_members.c.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User is not a member of this account")
    
    record_activity(db, principal, "remove_member", "account", account.id, {"user_id": user_id}, request, account.organization_id)
    await db.commit()
