"""Project and task persistence."""

import logging
from typing import Any, Dict, List, Optional

from project_engine.models import PROJECT_STATUSES, Project, Task, ProjectDTO, TaskDTO, convert_list_to_dtos
from project_engine.utils.database import session_scope


logger = logging.getLogger(__name__)

_PROJECT_FIELDS = {"name", "status", "last_update", "context", "updates"}
_TASK_FIELDS = {"project_id", "task", "owner", "due", "priority", "completed"}


def _check_status(status: str):
    if status not in PROJECT_STATUSES:
        raise ValueError(f"Invalid project status '{status}', expected one of {PROJECT_STATUSES}")


class ProjectStore:
    """CRUD access to projects and tasks.

    Every method opens its own short session and commits before returning, so
    each call is a single point read or write. Several writes cannot be grouped
    into one transaction; callers that need all-or-nothing behaviour across
    entities must provide it themselves.
    """

    def __init__(self, session_factory=None):
        """Initialize the store.

        Args:
            session_factory: Optional callable returning a SQLAlchemy session.
                Defaults to the application-wide session factory.
        """
        self.session_factory = session_factory

    def _scope(self):
        return session_scope(self.session_factory)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        owner_id: str,
        name: str,
        status: str = "open",
        last_update: str = "",
        context: Optional[str] = None,
        updates: Optional[List[Dict[str, Any]]] = None,
    ) -> ProjectDTO:
        _check_status(status)
        with self._scope() as session:
            project = Project(
                owner_id=owner_id,
                name=name,
                status=status,
                last_update=last_update or "",
                context=context,
                updates=list(updates or []),
            )
            session.add(project)
            session.flush()
            logger.info(f"Created project {project.id} '{name}' for owner {owner_id}")
            return ProjectDTO.from_orm(project)

    def get_project(self, project_id: int, owner_id: str) -> Optional[ProjectDTO]:
        with self._scope() as session:
            project = (
                session.query(Project)
                .filter(Project.id == project_id, Project.owner_id == owner_id)
                .first()
            )
            return ProjectDTO.from_orm(project)

    def get_project_by_name(self, name: str, owner_id: str) -> Optional[ProjectDTO]:
        with self._scope() as session:
            project = (
                session.query(Project)
                .filter(Project.name == name, Project.owner_id == owner_id)
                .order_by(Project.id.asc())
                .first()
            )
            return ProjectDTO.from_orm(project)

    def list_projects(self, owner_id: str) -> List[ProjectDTO]:
        """All projects for an owner, oldest first."""
        with self._scope() as session:
            projects = (
                session.query(Project)
                .filter(Project.owner_id == owner_id)
                .order_by(Project.id.asc())
                .all()
            )
            return convert_list_to_dtos(projects, ProjectDTO)

    def update_project(self, project_id: int, owner_id: str, **changes) -> Optional[ProjectDTO]:
        """Overwrite the given fields. Returns None if the project does not exist."""
        unknown = set(changes) - _PROJECT_FIELDS
        if unknown:
            raise ValueError(f"Unknown project fields: {sorted(unknown)}")
        if "status" in changes:
            _check_status(changes["status"])

        with self._scope() as session:
            project = (
                session.query(Project)
                .filter(Project.id == project_id, Project.owner_id == owner_id)
                .first()
            )
            if project is None:
                return None
            for key, value in changes.items():
                if key == "updates":
                    value = [dict(entry) for entry in value]
                setattr(project, key, value)
            session.flush()
            return ProjectDTO.from_orm(project)

    def delete_project(self, project_id: int, owner_id: str) -> bool:
        with self._scope() as session:
            deleted = (
                session.query(Project)
                .filter(Project.id == project_id, Project.owner_id == owner_id)
                .delete(synchronize_session=False)
            )
            if deleted:
                logger.info(f"Deleted project {project_id} for owner {owner_id}")
            return bool(deleted)

    def restore_project(self, snapshot: ProjectDTO) -> ProjectDTO:
        """Re-insert a previously deleted project under its original ID."""
        with self._scope() as session:
            project = Project(
                id=snapshot.id,
                owner_id=snapshot.owner_id,
                name=snapshot.name,
                status=snapshot.status,
                last_update=snapshot.last_update,
                context=snapshot.context,
                updates=[dict(entry) for entry in snapshot.updates],
            )
            if snapshot.created_at is not None:
                project.created_at = snapshot.created_at
            session.add(project)
            session.flush()
            logger.info(f"Restored project {snapshot.id} for owner {snapshot.owner_id}")
            return ProjectDTO.from_orm(project)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        owner_id: str,
        meeting_id: int,
        task: str,
        owner: str,
        project_id: Optional[int] = None,
        due: Optional[str] = None,
        priority: str = "medium",
        completed: bool = False,
    ) -> TaskDTO:
        with self._scope() as session:
            item = Task(
                owner_id=owner_id,
                meeting_id=meeting_id,
                project_id=project_id,
                task=task,
                owner=owner,
                due=due,
                priority=priority,
                completed=completed,
            )
            session.add(item)
            session.flush()
            return TaskDTO.from_orm(item)

    def get_task(self, task_id: int, owner_id: str) -> Optional[TaskDTO]:
        with self._scope() as session:
            item = (
                session.query(Task)
                .filter(Task.id == task_id, Task.owner_id == owner_id)
                .first()
            )
            return TaskDTO.from_orm(item)

    def list_tasks(self, owner_id: str) -> List[TaskDTO]:
        with self._scope() as session:
            items = (
                session.query(Task)
                .filter(Task.owner_id == owner_id)
                .order_by(Task.id.asc())
                .all()
            )
            return convert_list_to_dtos(items, TaskDTO)

    def update_task(self, task_id: int, owner_id: str, **changes) -> Optional[TaskDTO]:
        """Overwrite the given fields. Returns None if the task does not exist."""
        unknown = set(changes) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")

        with self._scope() as session:
            item = (
                session.query(Task)
                .filter(Task.id == task_id, Task.owner_id == owner_id)
                .first()
            )
            if item is None:
                return None
            for key, value in changes.items():
                setattr(item, key, value)
            session.flush()
            return TaskDTO.from_orm(item)

    def delete_task(self, task_id: int, owner_id: str) -> bool:
        with self._scope() as session:
            deleted = (
                session.query(Task)
                .filter(Task.id == task_id, Task.owner_id == owner_id)
                .delete(synchronize_session=False)
            )
            return bool(deleted)
