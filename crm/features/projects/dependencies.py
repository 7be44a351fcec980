"""
Project lookup dependencies and membership facts.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.permissions.dependencies import RequestGate, get_gate
from crm.features.permissions.principal import ResourceRef
from crm.features.projects.models import Project, project_members


async def project_member_ids(db: AsyncSession, project_id: str) -> frozenset[str]:
    result = await db.execute(
        select(project_members.c.user_id).where(project_members.c.project_id == project_id)
    )
    return frozenset(result.scalars().all())


async def project_ref(db: AsyncSession, project: Project) -> ResourceRef:
    """Ownership facts for a project, including its recorded members."""
    return ResourceRef(
        organization_id=project.organization_id,
        owner_ref=project.account_id,
        member_ids=await project_member_ids(db, project.id),
    )


async def find_project(db: AsyncSession, project_id: str) -> Project:
    """Get project by ID or raise 404."""
    project = await db.scalar(select(Project).where(Project.id == project_id))
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


async def get_project(
    project_id: str,
    gate: Annotated[RequestGate, Depends(get_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Project:
    """Authenticate, then load the project or raise 404."""
    await gate.require_authenticated()
    return await find_project(db, project_id)
