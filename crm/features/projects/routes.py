"""
Project API routes.

USERs reach projects through recorded membership.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.accounts.dependencies import account_ref, find_account
from crm.features.activities.service import record_activity
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.filters import tenant_filter
from crm.features.permissions.tokens import Entity, Scope
from crm.features.projects.dependencies import get_project, project_member_ids, project_ref
from crm.features.projects.models import Project, ProjectStatus, project_members
from crm.features.projects.schemas import ProjectCreate, ProjectUpdate, ProjectResponse
from crm.features.users.dependencies import find_organization_user

router = APIRouter()


async def to_response(db: AsyncSession, project: Project) -> ProjectResponse:
    response = ProjectResponse.model_validate(project)
    response.member_ids = sorted(await project_member_ids(db, project.id))
    return response


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: str | None = None,
    status_filter: ProjectStatus | None = None,
    skip: int = 0,
    limit: int = 100,
):
    """List projects visible to the caller."""
    if organization_id:
        await gate.require_organization(organization_id)
    principal, scope = await gate.require_visibility(Entity.PROJECT)
    
    query = select(Project).where(tenant_filter(Project.organization_id, principal, organization_id))
    if scope is not Scope.ALL:
        query = query.join(project_members, project_members.c.project_id == Project.id).where(
            project_members.c.user_id == principal.user_id
        )
    if status_filter:
        query = query.where(Project.status == status_filter)
    query = query.order_by(Project.name).offset(skip).limit(limit)
    
    result = await db.execute(query)
    return [await to_response(db, project) for project in result.scalars().all()]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    request: Request,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a project with initial members from the caller's organization."""
    principal = await gate.require_permission("project:create")
    if project_data.account_id:
        account = await find_account(db, project_data.account_id)
        await gate.require_permission("account:read", account_ref(account))
    
    member_ids = {principal.user_id, *project_data.member_ids}
    for user_id in member_ids - {principal.user_id}:
        await find_organization_user(db, user_id, principal.organization_id)
    
    project = Project(
        **project_data.model_dump(exclude={"member_ids"}),
        organization_id=principal.organization_id,
    )
    db.add(project)
    await db.flush()
    
    await db.execute(
        project_members.insert(),
        [{"project_id": project.id, "user_id": user_id} for user_id in sorted(member_ids)]
    )
    record_activity(db, principal, "create", "project", project.id, project_data.model_dump(mode="json"), request)
    
    await db.commit()
    await db.refresh(project)
    return await to_response(db, project)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project_by_id(
    project: Annotated[Project, Depends(get_project)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Get a single project."""
    await gate.require_permission("project:read", await project_ref(db, project))
    return await to_response(db, project)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    update_data: ProjectUpdate,
    request: Request,
    project: Annotated[Project, Depends(get_project)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update a project."""
    principal = await gate.require_permission("project:update", await project_ref(db, project))
    
    for key, value in update_data.model_dump(exclude_unset=True).items():
        setattr(project, key, value)
    record_activity(db, principal, "update", "project", project.id, update_data.model_dump(mode="json", exclude_unset=True), request, project.organization_id)
    
    await db.commit()
    await db.refresh(project)
    return await to_response(db, project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    request: Request,
    project: Annotated[Project, Depends(get_project)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a project and its tasks."""
    principal = await gate.require_permission("project:delete", await project_ref(db, project))
    
    record_activity(db, principal, "delete", "project", project.id, {"name": project.name}, request, project.organization_id)
    await db.delete(project)
    await db.commit()


@router.post("/{project_id}/members/{user_id}", status_code=status.HTTP_201_CREATED)
async def add_project_member(
    user_id: str,
    request: Request,
    project: Annotated[Project, Depends(get_project)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Add a user of the same organization to the project."""
    ref = await project_ref(db, project)
    principal = await gate.require_permission("project:update", ref)
    await find_organization_user(db, user_id, project.organization_id)
    
    if user_id in ref.member_ids:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member of this project")
    
    await db.execute(project_members.insert().values(project_id=project.id, user_id=user_id))
    record_activity(db, principal, "add_member", "project", project.id, {"user_id": user_id}, request, project.organization_id)
    await db.commit()
    return {"project_id": project.id, "user_id": user_id}


@router.delete("/{project_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_project_member(
    user_id: str,
    request: Request,
    project: Annotated[Project, Depends(get_project)],
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Remove a project member."""
    principal = await gate.require_permission("project:update", await project_ref(db, project))
    
    result = await db.execute(
        delete(project_members).where(
            project_members.c.project_id == project.id,
            project_members.c.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User is not a member of this project")
    
    record_activity(db, principal, "remove_member", "project", project.id, {"user_id": user_id}, request, project.organization_id)
    await db.commit()
