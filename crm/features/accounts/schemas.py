"""
Pydantic schemas for Account API requests/responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator


class AccountBase(BaseModel):
    """Base schema for account."""
    name: str = Field(..., min_length=1, max_length=255)
    industry: str | None = Field(None, max_length=100)
    website: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    description: str | None = None


class AccountCreate(AccountBase):
    """Schema for creating an account in the caller's organization."""
    pass


class AccountUpdate(BaseModel):
    """Schema for updating an account."""
    name: str | None = Field(None, min_length=1, max_length=255)
    industry: str | None = Field(None, max_length=100)
    website: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    description: str | None = None

    @field_validator('name')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class AccountResponse(AccountBase):
    """Schema for account response."""
    id: str
    organization_id: str
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
