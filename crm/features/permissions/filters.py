"""
Query filters derived from a principal.
"""
from typing import Optional
from sqlalchemy import true
from sqlalchemy.sql.elements import ColumnElement

from crm.features.permissions.principal import Principal


def tenant_filter(column, principal: Principal, organization_id: Optional[str] = None) -> ColumnElement[bool]:
    """
    WHERE clause confining rows to the caller's organization.
    
    SUPER_ADMIN sees every organization, or the one named by
    `organization_id`. Everyone else is pinned to their own organization;
    callers must reject a foreign `organization_id` with the gate first.
    """
    if principal.is_super_admin:
        return column == organization_id if organization_id else true()
    return column == principal.organization_id
