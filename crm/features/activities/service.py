"""
Activity logging helper used by every mutating route.
"""
from typing import Any, Dict, Optional
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from crm.features.activities.models import Activity
from crm.features.permissions.principal import Principal
from crm.utils import get_logger


log = get_logger(__name__)


def record_activity(
    db: AsyncSession,
    principal: Principal,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
    organization_id: Optional[str] = None,
) -> Activity:
    """
    Add an activity entry to the session.
    
    The entry is committed together with the change it describes, so a
    rolled-back mutation leaves no activity behind.
    
    Args:
        db: Database session
        principal: Actor
        action: Action performed (e.g., "create", "update", "delete")
        entity_type: Type of entity (e.g., "account", "deal")
        entity_id: ID of the entity
        details: Additional details (JSON serializable)
        request: Incoming request, for client IP and user agent
        organization_id: Tenant of the entity; defaults to the actor's
    """
    activity = Activity(
        organization_id=organization_id or principal.organization_id,
        user_id=principal.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )
    db.add(activity)
    
    log.info(
        "Activity: user=%s action=%s entity=%s:%s org=%s",
        principal.user_id, action, entity_type, entity_id, activity.organization_id
    )
    
    return activity
