"""
Pydantic schemas for activity log entries.
"""
from datetime import datetime
from typing import Any, Dict
from pydantic import BaseModel, Field, ConfigDict


class ActivityCreate(BaseModel):
    """Manually logged activity, e.g. a call or meeting note."""
    action: str = Field(..., min_length=1, max_length=50)
    entity_type: str = Field(..., min_length=1, max_length=50)
    entity_id: str | None = Field(None, max_length=26)
    details: Dict[str, Any] | None = None


class ActivityResponse(BaseModel):
    """Schema for activity response."""
    id: str
    organization_id: str
    user_id: str | None = None
    action: str
    entity_type: str
    entity_id: str | None = None
    details: Dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
