"""
Task API routes.

USERs see and change the tasks assigned to them. Subtasks are tasks with a
parent in the same project.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.activities.service import record_activity
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.principal import ResourceRef
from crm.features.permissions.tokens import Entity, Scope
from crm.features.projects.dependencies import find_project, project_ref
from crm.features.tasks.models import Task, TaskStatus, TaskPriority
from crm.features.tasks.schemas import TaskCreate, TaskUpdate, TaskResponse
from crm.features.users.dependencies import find_organization_user

router = APIRouter()


def task_ref(task: Task) -> ResourceRef:
    return ResourceRef(
        organization_id=task.organization_id,
        assigned_user_id=task.assigned_user_id,
    )


async def get_task(
    task_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Task:
    """Authenticate, then load the task or raise 404."""
    await gate.require_authenticated()
    task = await db.scalar(select(Task).where(Task.id == task_id))
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    project_id: str | None = None,
    status_filter: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    top_level: bool = False,
    skip: int = 0,
    limit: int = 100,
):
    """List tasks visible to the caller."""
    if organization_id:
        await gate.require_organization(organization_id)
    principal, scope = await gate.require_visibility(Entity.TASK)
    
    query = select(Task).where(tenant_filter(Task.organization_id, principal, organization_id))
    if scope is not Scope.ALL:
        query = query.where(Task.assigned_user_id == principal.user_id)
    if project_id:
        query = query.where(Task.project_id == project_id)
    if status_filter:
        query = query.where(Task.status == status_filter)
    if priority:
        query = query.where(Task.priority == priority)
    if top_level:
        query = query.where(Task.parent_id.is_(None))
    query = query.order_by(Task.due_date, Task.created_at).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Create a task or subtask.
    
    A project task needs read access to the project; a subtask needs read
    access to its parent and inherits the parent's project.
    """
    principal = await gate.require_permission("task:create")
    project_id = task_data.project_id
    
    if task_data.parent_id:
        parent = await db.scalar(select(Task).where(Task.id == task_data.parent_id))
        if parent is None:
            raise HTTPException(status_code=404, detail="Parent task not found")
        await gate.require_permission("task:read", task_ref(parent))
        if project_id and project_id != parent.project_id:
            raise HTTPException(status_code=400, detail="Subtask must belong to the parent's project")
        project_id = parent.project_id
    
    if project_id:
        project = await find_project(db, project_id)
        await gate.require_permission("project:read", await project_ref(db, project))
    
    assigned_user_id = task_data.assigned_user_id or principal.user_id
    if assigned_user_id != principal.user_id:
        await find_organization_user(db, assigned_user_id, principal.organization_id)
    
    task = Task(
        **task_data.model_dump(exclude={"assigned_user_id", "project_id"}),
        project_id=project_id,
        assigned_user_id=assigned_user_id,
        organization_id=principal.organization_id,
    )
    db.add(task)
    await db.flush()
    record_activity(db, principal, "create", "task", task.id, task_data.model_dump(mode="json"), request)
    
    await db.commit()
    await db.refresh(task)
    return task


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task_by_id(
    task: Annotated[Task, Depends(get_task)],
    gate: Annotated[RequestGate, Depends(get_gate)],
):
    """Get a single task."""
    await gate.require_permission("task:read", task_ref(task))
    return task


@router.get("/{task_id}/subtasks", response_model=list[TaskResponse])
async def list_subtasks(
    task: Annotated[Task, Depends(get_task)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List subtasks of a task the caller can read."""
    principal = await gate.require_permission("task:read", task_ref(task))
    scope = gate.evaluator.visibility(principal, Entity.TASK)
    
    query = select(Task).where(Task.parent_id == task.id)
    if scope is not Scope.ALL:
        query = query.where(Task.assigned_user_id == principal.user_id)
    
    result = await db.execute(query.order_by(Task.created_at))
    return result.scalars().all()


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    update_data: TaskUpdate,
    request: Request,
    task: Annotated[Task, Depends(get_task)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update a task, including its status and assignee."""
    principal = await gate.require_permission("task:update", task_ref(task))
    
    changes = update_data.model_dump(exclude_unset=True)
    if changes.get("assigned_user_id"):
        await find_organization_user(db, changes["assigned_user_id"], task.organization_id)
    
    for key, value in changes.items():
        setattr(task, key, value)
    record_activity(db, principal, "update", "task", task.id, update_data.model_dump(mode="json", exclude_unset=True), request, task.organization_id)
    
    await db.commit()
    await db.refresh(task)
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    request: Request,
    task: Annotated[Task, Depends(get_task)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a task and its subtasks."""
    principal = await gate.require_permission("task:delete", task_ref(task))
    
    record_activity(db, principal, "delete", "task", task.id, {"title": task.title}, request, task.organization_id)
    await db.delete(task)
    await db.commit()
