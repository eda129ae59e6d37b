"""
Project endpoints.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from app.core.database import get_db
from app.models.project import Project
from app.models.user import User
from app.schemas.project import ProjectCreate, ProjectResponse
from app.services.auth_service import get_current_user
from app.utils.exceptions import NotFoundError

router = APIRouter()


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a project owned by the caller."""
    project = Project(name=project_data.name.strip(), owner_id=current_user.id)
    db.add(project)
    await db.commit()
    await db.refresh(project)

    logger.info(f"Created project {project.id} '{project.name}' for {current_user.username}")
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a project."""
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return ProjectResponse.model_validate(project)
