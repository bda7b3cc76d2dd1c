"""Pydantic shapes for reasoning service responses and engine results.

Responses from the reasoning service are untrusted. Each response shape is its
own strict model: values are never coerced (``"12"`` is not an ID, ``true`` is
not an integer) and cross-field invariants are checked before any domain code
sees the data. Referential checks against live project and task IDs happen in
the analyzers, which know the snapshot that was offered.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator
from pydantic.alias_generators import to_camel

from .dtos import ProjectDTO


ProjectStatus = Literal["open", "hold", "done"]


class ProjectMention(BaseModel):
    """A project reference extracted from one meeting, not yet reconciled."""

    name: str = Field(min_length=1)
    update: str = ""
    context: str = ""
    status: ProjectStatus = "open"


# ============================================================================
# Reasoning service response shapes
# ============================================================================

_RESPONSE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


class ProjectMapping(BaseModel):
    """Decision for one mention: create a new project or merge into an existing one."""

    model_config = _RESPONSE_CONFIG

    source_mention_name: StrictStr = Field(alias="newProjectName")
    action: Literal["create", "merge"]
    target_project_id: Optional[StrictInt] = None
    target_project_name: Optional[StrictStr] = None
    merged_name: Optional[StrictStr] = None
    merged_context: Optional[StrictStr] = None
    reasoning: StrictStr = ""

    @model_validator(mode="after")
    def _merge_needs_target(self):
        if self.action == "merge" and self.target_project_id is None:
            raise ValueError(
                f"merge mapping for '{self.source_mention_name}' has no targetProjectId"
            )
        return self


class TaskAssignment(BaseModel):
    """Assignment of a previously unassigned task to a project."""

    model_config = _RESPONSE_CONFIG

    task_id: StrictInt
    project_id: StrictInt
    project_name: Optional[StrictStr] = None
    reasoning: StrictStr = ""


class MeetingProjectAnalysis(BaseModel):
    """Response shape for per-meeting relationship analysis."""

    model_config = _RESPONSE_CONFIG

    project_mappings: List[ProjectMapping]
    task_assignments: List[TaskAssignment]


class ConsolidationGroup(BaseModel):
    """A set of duplicate projects to fold into ``keep_project_id``."""

    model_config = _RESPONSE_CONFIG

    source_project_ids: List[StrictInt] = Field(min_length=2)
    keep_project_id: StrictInt
    merged_name: StrictStr = Field(min_length=1)
    merged_context: Optional[StrictStr] = None
    reasoning: Optional[StrictStr] = None

    @model_validator(mode="after")
    def _check_members(self):
        if len(set(self.source_project_ids)) != len(self.source_project_ids):
            raise ValueError(
                f"sourceProjectIds contains duplicates: {self.source_project_ids}"
            )
        if self.keep_project_id not in self.source_project_ids:
            raise ValueError(
                f"keepProjectId {self.keep_project_id} must be in sourceProjectIds"
            )
        return self


class ConsolidationResponse(BaseModel):
    """Response shape for corpus-wide consolidation analysis."""

    model_config = _RESPONSE_CONFIG

    consolidation_groups: List[ConsolidationGroup]


# ============================================================================
# Preview / execute payloads
# ============================================================================

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProjectSummary(BaseModel):
    """Lightweight view of a project inside a consolidation proposal."""

    model_config = _WIRE_CONFIG

    id: int
    name: str
    updates_count: int = 0
    tasks_count: int = 0


class TargetProject(BaseModel):
    model_config = _WIRE_CONFIG

    id: int
    name: str


class ProposedConsolidation(BaseModel):
    """One merge group as shown to the operator and sent back for execution."""

    model_config = _WIRE_CONFIG

    source_projects: List[ProjectSummary] = Field(min_length=2)
    target_project: TargetProject
    merged_name: str = Field(min_length=1)
    merged_context: str = ""
    reason: str = ""

    @model_validator(mode="after")
    def _check_members(self):
        ids = self.source_project_ids
        if len(set(ids)) != len(ids):
            raise ValueError(f"sourceProjects contains duplicate ids: {ids}")
        if self.target_project.id not in ids:
            raise ValueError(
                f"targetProject {self.target_project.id} must be one of sourceProjects"
            )
        return self

    @property
    def source_project_ids(self) -> List[int]:
        return [project.id for project in self.source_projects]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class ProjectForAnalysis:
    """Bounded per-project record sent to the reasoning service."""
    id: int
    name: str
    context: str
    updates_count: int
    tasks_count: int

    def to_summary(self) -> ProjectSummary:
        return ProjectSummary(
            id=self.id,
            name=self.name,
            updates_count=self.updates_count,
            tasks_count=self.tasks_count,
        )


@dataclass
class ConsolidationPreview:
    """Result of a consolidation analysis. Nothing has been changed yet."""
    success: bool
    original_project_count: int
    proposed_consolidations: List[ProposedConsolidation] = field(default_factory=list)
    no_changes: bool = True
    error: Optional[str] = None
    batches_analyzed: int = 0
    batches_failed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'originalProjectCount': self.original_project_count,
            'proposedConsolidations': [p.to_dict() for p in self.proposed_consolidations],
            'noChanges': self.no_changes,
            'batchesAnalyzed': self.batches_analyzed,
            'batchesFailed': self.batches_failed,
        }
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class GroupMergeOutcome:
    """What one executed group did."""
    source_projects: List[Dict[str, Any]]
    target_project: Dict[str, Any]
    updates_consolidated: int
    tasks_reassigned: int
    reason: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sourceProjects': self.source_projects,
            'targetProject': self.target_project,
            'updatesConsolidated': self.updates_consolidated,
            'tasksReassigned': self.tasks_reassigned,
            'reason': self.reason,
        }


@dataclass
class ConsolidationResult:
    """Aggregate outcome of executing approved consolidation groups."""
    original_project_count: int
    final_project_count: int
    consolidations: List[GroupMergeOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def error(self) -> Optional[str]:
        return '; '.join(self.errors) if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'originalProjectCount': self.original_project_count,
            'finalProjectCount': self.final_project_count,
            'consolidations': [c.to_dict() for c in self.consolidations],
            'errors': list(self.errors),
        }
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class MeetingAnalysisResult:
    """Outcome of reconciling one meeting's project mentions."""
    projects: List[ProjectDTO]
    assignments: List[TaskAssignment]
    analysis: MeetingProjectAnalysis
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'projects': [p.to_dict() for p in self.projects],
            'assignments': [a.model_dump(by_alias=True) for a in self.assignments],
            'usedFallback': self.used_fallback,
        }
