"""
Account lookup dependencies and ownership facts.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.accounts.models import Account
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.principal import ResourceRef


def account_ref(account: Account) -> ResourceRef:
    """An account is "owned" by its members, so the account id is the owner ref."""
    return ResourceRef(organization_id=account.organization_id, owner_ref=account.id)


async def find_account(db: AsyncSession, account_id: str) -> Account:
    """Get account by ID or raise 404."""
    account = await db.scalar(select(Account).where(Account.id == account_id))
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return account


async def get_account(
    account_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Account:
    """
    Path dependency: authenticate first, then load the account.
    
    Permission checks against the loaded row stay in the route, since the
    action differs per route.
    """
    await gate.require_authenticated()
    return await find_account(db, account_id)
