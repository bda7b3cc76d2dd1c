"""Project and Task models."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    JSON,
)
from datetime import datetime, timezone
from .base import Base


PROJECT_STATUSES = ("open", "hold", "done")


class Project(Base):
    """
    Durable work thread tracked across meetings.

    ``updates`` holds the project's history as an ordered JSON list of
    ``{"meetingId": int, "update": str, "date": str}`` entries. Order is the
    order in which meeting analyses were applied, not sorted by ``date``
    (which is free-form text). The list is append-only except when another
    project is merged into this one.
    """

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="open")  # open, hold, done
    last_update = Column(Text, nullable=False, default="")
    context = Column(Text)  # Narrative summary built up from meeting discussions
    updates = Column(JSON, nullable=False, default=list)

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self):
        return f"<Project(id={self.id}, name='{self.name}', status='{self.status}')>"


class Task(Base):
    """Action item extracted from a meeting, optionally owned by one project."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(255), nullable=False, index=True)
    meeting_id = Column(Integer, nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
    task = Column(Text, nullable=False)
    owner = Column(String(255), nullable=False)  # Person responsible
    due = Column(String(100))  # Free-form date text
    priority = Column(String(20), nullable=False, default="medium")
    completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def __repr__(self):
        return f"<Task(id={self.id}, project_id={self.project_id}, task='{self.task[:30]}')>"
