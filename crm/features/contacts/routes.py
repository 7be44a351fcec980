"""
Contact API routes.

Contacts inherit ownership from their account: a USER reaches a contact
through membership of the contact's account.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.accounts.dependencies import account_ref, find_account
from crm.features.activities.service import record_activity
from crm.features.contacts.models import Contact
from crm.features.contacts.schemas import ContactCreate, ContactUpdate, ContactResponse
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import ResourceRef
from crm.features.permissions.tokens import Entity, Scope

router = APIRouter()


def contact_ref(contact: Contact) -> ResourceRef:
    return ResourceRef(organization_id=contact.organization_id, owner_ref=contact.account_id)


async def get_contact(
    contact_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Contact:
    """Authenticate, then load the contact or raise 404."""
    await gate.require_authenticated()
    contact = await db.scalar(select(Contact).where(Contact.id == contact_id))
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.get("", response_model=list[ContactResponse])
async def list_contacts(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    account_id: str | None = None,
    skip: int = 0,
    limit: int = 100,
):
    """List contacts visible to the caller, optionally for one account."""
    if organization_id:
        await gate.require_organization(organization_id)
    principal, scope = await gate.require_visibility(Entity.CONTACT)
    
    query = select(Contact).where(tenant_filter(Contact.organization_id, principal, organization_id))
    if scope is not Scope.ALL:
        query = query.where(Contact.account_id.in_(list(principal.account_ids)))
    if account_id:
        query = query.where(Contact.account_id == account_id)
    query = query.order_by(Contact.last_name, Contact.first_name).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    contact_data: ContactCreate,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a contact, optionally attached to an account the caller can read."""
    principal = await gate.require_permission("contact:create")
    if contact_data.account_id:
        account = await find_account(db, contact_data.account_id)
        await gate.require_permission("account:read", account_ref(account))
    
    contact = Contact(**contact_data.model_dump(), organization_id=principal.organization_id)
    db.add(contact)
    await db.flush()
    record_activity(db, principal, "create", "contact", contact.id, contact_data.model_dump(mode="json"), request)
    
    await db.commit()
    await db.refresh(contact)
    return contact


@router.get("/{contact_id}", response_model=ContactResponse)
async def get_contact_by_id(
    contact: Annotated[Contact, Depends(get_contact)],
    gate: Annotated[RequestGate, Depends(get_gate)],
):
    """Get a single contact."""
    await gate.require_permission("contact:read", contact_ref(contact))
    return contact


@router.patch("/{contact_id}", response_model=ContactResponse)
async def update_contact(
    update_data: ContactUpdate,
    request: Request,
    contact: Annotated[Contact, Depends(get_contact)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update a contact. Moving it to another account requires reading that account."""
    principal = await gate.require_permission("contact:update", contact_ref(contact))
    
    changes = update_data.model_dump(exclude_unset=True)
    if changes.get("account_id"):
        account = await find_account(db, changes["account_id"])
        await gate.require_permission("account:read", account_ref(account))
    
    for key, value in changes.items():
        setattr(contact, key, value)
    record_activity(db, principal, "update", "contact", contact.id, update_data.model_dump(mode="json", exclude_unset=True), request, contact.organization_id)
    
    await db.commit()
    await db.refresh(contact)
    return contact


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    request: Request,
    contact: Annotated[Contact, Depends(get_contact)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a contact."""
    principal = await gate.require_permission("contact:delete", contact_ref(contact))
    
    record_activity(db, principal, "delete", "contact", contact.id, None, request, contact.organization_id)
    await db.delete(contact)
    await db.commit()
