"""Models package for the project relationship engine."""

# Import base first
from .base import Base

from .project import Project, Task, PROJECT_STATUSES
from .dtos import ProjectDTO, TaskDTO, convert_list_to_dtos
from .analysis import (
    ProjectMention,
    ProjectMapping,
    TaskAssignment,
    MeetingProjectAnalysis,
    ConsolidationGroup,
    ConsolidationResponse,
    ProjectSummary,
    TargetProject,
    ProposedConsolidation,
    ProjectForAnalysis,
    ConsolidationPreview,
    GroupMergeOutcome,
    ConsolidationResult,
    MeetingAnalysisResult,
)

__all__ = [
    # ORM Models
    "Base",
    "Project",
    "Task",
    "PROJECT_STATUSES",
    # DTOs
    "ProjectDTO",
    "TaskDTO",
    "convert_list_to_dtos",
    # Analysis shapes
    "ProjectMention",
    "ProjectMapping",
    "TaskAssignment",
    "MeetingProjectAnalysis",
    "ConsolidationGroup",
    "ConsolidationResponse",
    "ProjectSummary",
    "TargetProject",
    "ProposedConsolidation",
    "ProjectForAnalysis",
    "ConsolidationPreview",
    "GroupMergeOutcome",
    "ConsolidationResult",
    "MeetingAnalysisResult",
]
