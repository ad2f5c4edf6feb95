import logging
from typing import List, Optional

from config import PROJECT_NAME_MAX_LENGTH, Collection
from database import db, RecordNotFoundError
from errors import NotFoundError, ValidationError
from events import AppEvent, event_bus
from models.entities import Project

logger = logging.getLogger(__name__)

COLLECTION = Collection.PROJECTS.value


class ProjectService:
    """Service for project operations.

    Projects are labels. Entries store the project name, so deleting or
    renaming a project never touches existing entries.
    """

    async def load_projects(self) -> List[Project]:
        records = await db.load_documents(COLLECTION, order_by="name")
        return [Project.from_dict(r) for r in records]

    async def active_projects(self) -> List[Project]:
        return [p for p in await self.load_projects() if p.is_active]

    async def validate_project_name(self, name: str, editing_id: Optional[str] = None) -> Optional[str]:
        """Validate a project name.

        Returns an error message if invalid, None if valid.
        """
        name = (name or "").strip()
        if not name:
            return "Name required"
        if len(name) > PROJECT_NAME_MAX_LENGTH:
            return f"Name must be at most {PROJECT_NAME_MAX_LENGTH} characters"
        for p in await self.load_projects():
            if p.name.lower() == name.lower() and p.id != editing_id:
                return "Project already exists"
        return None

    async def add_project(self, project: Project) -> Project:
        error = await self.validate_project_name(project.name)
        if error:
            raise ValidationError(error)
        project.name = project.name.strip()
        project.id = await db.add_document(COLLECTION, project.to_dict())
        event_bus.emit(AppEvent.PROJECT_CREATED, project)
        return project

    async def update_project(self, project: Project) -> Project:
        if not project.id:
            raise ValidationError("Project ID is required")
        error = await self.validate_project_name(project.name, editing_id=project.id)
        if error:
            raise ValidationError(error)
        project.name = project.name.strip()
        try:
            await db.update_document(COLLECTION, project.id, project.to_dict())
        except RecordNotFoundError:
            raise NotFoundError(project.id)
        event_bus.emit(AppEvent.PROJECT_UPDATED, project)
        return project

    async def delete_project(self, project_id: str) -> None:
        """Delete a project. Entries keep their project label."""
        try:
            await db.delete_document(COLLECTION, project_id)
        except RecordNotFoundError:
            raise NotFoundError(project_id)
        logger.info(f"Project {project_id} deleted")
        event_bus.emit(AppEvent.PROJECT_DELETED, project_id)
