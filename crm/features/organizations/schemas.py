"""
Pydantic schemas for organization-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class OrganizationBase(BaseModel):
    """Base organization schema."""
    name: str = Field(..., min_length=1, max_length=255)
    industry: str | None = Field(None, max_length=100)
    size: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)
    logo_url: str | None = Field(None, max_length=500)


class OrganizationCreate(OrganizationBase):
    """Schema for creating a new organization (SUPER_ADMIN only)."""
    slug: str = Field(..., min_length=2, max_length=100, pattern="^[a-z0-9]+(?:-[a-z0-9]+)*$")


class OrganizationUpdate(BaseModel):
    """Schema for updating organization information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    industry: str | None = Field(None, max_length=100)
    size: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)
    logo_url: str | None = Field(None, max_length=500)

    @field_validator('name')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class OrganizationResponse(OrganizationBase):
    """Schema for organization responses."""
    id: str
    slug: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    member_count: int = 0
    
    model_config = {"from_attributes": True}
