"""
Pydantic schemas for permission-related API requests/responses.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


# ============================================================================
# Role Table Schemas
# ============================================================================

class RoleTableResponse(BaseModel):
    """The active role -> permission table."""
    version: str
    hierarchy: List[str] = Field(..., description="Roles from highest to lowest rank")
    roles: Dict[str, List[str]]


class PrincipalPermissionsResponse(BaseModel):
    """The caller's resolved identity and the permission tokens its role holds."""
    user_id: str
    organization_id: str
    role: str
    account_ids: List[str] = []
    permissions: List[str] = []


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking a permission for the caller."""
    permission: str = Field(..., description="Permission token, e.g. account:read:own")
    organization_id: Optional[str] = Field(None, description="Organization of the target resource")
    owner_ref: Optional[str] = Field(None, description="Owning account of the target resource")
    assigned_user_id: Optional[str] = Field(None, description="Assignee of the target resource")
    member_ids: List[str] = Field(default_factory=list, description="Recorded members of the target resource")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    allowed: bool
    outcome: str
    reason: Optional[str] = None
