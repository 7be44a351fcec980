"""
Pydantic schemas for Contact API requests/responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator


class ContactBase(BaseModel):
    """Base schema for contact."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    title: str | None = Field(None, max_length=100)


class ContactCreate(ContactBase):
    """Schema for creating a contact."""
    account_id: str | None = None


class ContactUpdate(BaseModel):
    """Schema for updating a contact."""
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    title: str | None = Field(None, max_length=100)
    account_id: str | None = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class ContactResponse(ContactBase):
    """Schema for contact response."""
    id: str
    organization_id: str
    account_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
