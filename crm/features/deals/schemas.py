"""
Pydantic schemas for Deal API requests/responses.
"""
from datetime import date, datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict, field_validator

from crm.features.deals.models import DealStage


class DealBase(BaseModel):
    """Base schema for deal."""
    name: str = Field(..., min_length=1, max_length=255)
    value: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    stage: DealStage = DealStage.LEAD
    expected_close_date: date | None = None


class DealCreate(DealBase):
    """Schema for creating a deal. Unassigned deals go to the creator."""
    account_id: str | None = None
    assigned_user_id: str | None = None


class DealUpdate(BaseModel):
    """Schema for updating a deal."""
    name: str | None = Field(None, min_length=1, max_length=255)
    value: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    stage: DealStage | None = None
    expected_close_date: date | None = None
    assigned_user_id: str | None = None

    @field_validator('name', 'stage')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class DealResponse(DealBase):
    """Schema for deal response."""
    id: str
    organization_id: str
    account_id: str | None = None
    assigned_user_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
