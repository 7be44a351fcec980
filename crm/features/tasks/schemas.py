"""
Pydantic schemas for Task API requests/responses.
"""
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator

from crm.features.tasks.models import TaskStatus, TaskPriority


class TaskBase(BaseModel):
    """Base schema for task."""
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: date | None = None


class TaskCreate(TaskBase):
    """Schema for creating a task. Defaults the assignee to the caller."""
    project_id: str | None = None
    parent_id: str | None = None
    assigned_user_id: str | None = None


class TaskUpdate(BaseModel):
    """Schema for updating a task."""
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None
    assigned_user_id: str | None = None

    @field_validator('title', 'status', 'priority')
    @classmethod
    def required_fields_not_null(cls, v):
        """Omit a field to leave it unchanged; null cannot clear a required column."""
        if v is None:
            raise ValueError('may not be null')
        return v


class TaskResponse(TaskBase):
    """Schema for task response."""
    id: str
    organization_id: str
    project_id: str | None = None
    parent_id: str | None = None
    assigned_user_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
