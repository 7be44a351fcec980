"""
Pydantic schemas for Project API requests/responses.
"""
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator

from crm.features.projects.models import ProjectStatus


class ProjectBase(BaseModel):
    """Base schema for project."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    start_date: date | None = None
    end_date: date | None = None


class ProjectCreate(ProjectBase):
    """Schema for creating a project. The creator is added as a member."""
    account_id: str | None = None
    member_ids: list[str] = []


class ProjectUpdate(BaseModel):
    """Schema for updating a project."""
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: ProjectStatus | None = None
    start_date: date | None = None
    end_date: date | None = None

    @field_validator('name', 'status')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class ProjectResponse(ProjectBase):
    """Schema for project response."""
    id: str
    organization_id: str
    account_id: str | None = None
    member_ids: list[str] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
