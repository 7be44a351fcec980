"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from crm.features.permissions.roles import Role


class UserUpdate(BaseModel):
    """Schema for updating one's own profile."""
    name: str | None = Field(None, min_length=1, max_length=255)
    avatar_url: str | None = Field(None, max_length=500)

    @field_validator('name')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class RoleUpdate(BaseModel):
    """Schema for changing another user's role."""
    role: Role


class UserResponse(BaseModel):
    """Schema for user responses."""
    id: str
    email: str
    name: str
    avatar_url: str | None = None
    role: str
    is_active: bool
    organization_id: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    avatar_url: str | None = None
    role: str
    
    model_config = {"from_attributes": True}
