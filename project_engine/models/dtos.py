"""Data Transfer Objects (DTOs) for database models.

These DTOs solve the "detached object" problem by copying data from SQLAlchemy
objects while the session is still active. They are plain Python objects that
can be safely used after the session is closed, and they are the snapshots the
analyzers and the merge executor work from.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


@dataclass
class ProjectDTO:
    """DTO for Project model."""
    id: int
    owner_id: str
    name: str
    status: str = 'open'
    last_update: str = ''
    context: Optional[str] = None
    updates: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, project):
        """Create DTO from SQLAlchemy Project object.

        Must be called while the session is still active!
        """
        if project is None:
            return None

        return cls(
            id=project.id,
            owner_id=project.owner_id,
            name=project.name,
            status=project.status,
            last_update=project.last_update or '',
            context=project.context,
            # Copy entries so callers never mutate session-bound JSON
            updates=[dict(entry) for entry in (project.updates or [])],
            created_at=project.created_at
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'ownerId': self.owner_id,
            'name': self.name,
            'status': self.status,
            'lastUpdate': self.last_update,
            'context': self.context,
            'updates': [dict(entry) for entry in self.updates],
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }


@dataclass
class TaskDTO:
    """DTO for Task model."""
    id: int
    owner_id: str
    meeting_id: int
    task: str
    owner: str
    project_id: Optional[int] = None
    due: Optional[str] = None
    priority: str = 'medium'
    completed: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, task):
        """Create DTO from SQLAlchemy Task object.

        Must be called while the session is still active!
        """
        if task is None:
            return None

        return cls(
            id=task.id,
            owner_id=task.owner_id,
            meeting_id=task.meeting_id,
            task=task.task,
            owner=task.owner,
            project_id=task.project_id,
            due=task.due,
            priority=task.priority or 'medium',
            completed=bool(task.completed),
            created_at=task.created_at
        )

    @property
    def is_unassigned(self) -> bool:
        return self.project_id is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'ownerId': self.owner_id,
            'meetingId': self.meeting_id,
            'projectId': self.project_id,
            'task': self.task,
            'owner': self.owner,
            'due': self.due,
            'priority': self.priority,
            'completed': self.completed,
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }


def convert_list_to_dtos(orm_objects, dto_class):
    """Convert a list of ORM objects to DTOs.

    Must be called while the session is still active!
    """
    return [dto_class.from_orm(obj) for obj in orm_objects if obj is not None]
