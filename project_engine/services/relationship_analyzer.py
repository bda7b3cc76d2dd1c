"""Per-meeting project relationship analysis.

Given the project mentions extracted from one meeting, decides for each one
whether it is a new project or an update to an existing project, and assigns
the meeting's unassigned tasks to projects. The decision itself is delegated
to the reasoning service; this module prepares the prompt, validates the
response against the snapshot that was offered, and applies the result.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from project_engine.exceptions import ProjectEngineError, ResponseValidationError
from project_engine.models import (
    MeetingProjectAnalysis,
    ProjectDTO,
    ProjectMapping,
    ProjectMention,
    TaskAssignment,
    TaskDTO,
)
from project_engine.services.reasoning_client import ReasoningClient
from project_engine.utils.prompt_manager import get_prompt_manager

logger = logging.getLogger(__name__)

PROMPT_CATEGORY = "project_analysis"
FALLBACK_REASON = "Fallback due to analysis error"


def _format_mentions(mentions: Sequence[ProjectMention]) -> str:
    return "\n\n".join(
        f"- {m.name}: {m.update} (Status: {m.status})\n  Context: {m.context}"
        for m in mentions
    )


def _format_existing(projects: Sequence[ProjectDTO]) -> str:
    if not projects:
        return "No existing projects"
    return "\n\n".join(
        f"- ID {p.id}: {p.name} - {p.last_update} (Status: {p.status})\n"
        f"  Context: {p.context or 'No context available'}"
        for p in projects
    )


def _format_tasks(tasks: Sequence[TaskDTO]) -> str:
    if not tasks:
        return "No unassigned tasks"
    return "\n".join(
        f"- ID {t.id}: {t.task} (Owner: {t.owner}, Priority: {t.priority})"
        for t in tasks
    )


class RelationshipAnalyzer:
    """Classifies a meeting's project mentions as create-vs-merge."""

    def __init__(self, reasoning_client: Optional[ReasoningClient] = None, prompt_manager=None):
        self.reasoning_client = reasoning_client or ReasoningClient()
        self.prompt_manager = prompt_manager or get_prompt_manager()

    def build_user_prompt(
        self,
        mentions: Sequence[ProjectMention],
        existing_projects: Sequence[ProjectDTO],
        unassigned_tasks: Sequence[TaskDTO],
        meeting_title: str = "",
        meeting_date: str = "",
    ) -> str:
        values = dict(
            meeting_title=meeting_title or "Team Meeting",
            meeting_date=meeting_date or "Unknown date",
            new_projects=_format_mentions(mentions),
            existing_projects=_format_existing(existing_projects),
            unassigned_tasks=_format_tasks(unassigned_tasks),
        )
        prompt = self.prompt_manager.format_prompt(
            PROMPT_CATEGORY, "user_prompt_template", **values
        )
        if prompt is None:
            prompt = (
                "Meeting: \"{meeting_title}\" ({meeting_date})\n\n"
                "NEW PROJECTS MENTIONED:\n{new_projects}\n\n"
                "EXISTING PROJECTS:\n{existing_projects}\n\n"
                "UNASSIGNED TASKS FROM THIS MEETING:\n{unassigned_tasks}"
            ).format(**values)
        return prompt

    async def analyze(
        self,
        mentions: Sequence[ProjectMention],
        existing_projects: Sequence[ProjectDTO],
        unassigned_tasks: Sequence[TaskDTO],
        meeting_title: str = "",
        meeting_date: str = "",
        user_info: Optional[Dict[str, str]] = None,
    ) -> MeetingProjectAnalysis:
        """Ask the reasoning service how the mentions relate to existing projects.

        Returns an empty analysis without calling the service when there are
        no mentions.

        Raises:
            UpstreamError: the reasoning call failed
            ResponseValidationError: the response broke the schema or referenced
                projects/tasks that were not offered
        """
        if not mentions:
            return MeetingProjectAnalysis(project_mappings=[], task_assignments=[])

        system_prompt = self.prompt_manager.get_user_specific_prompt(PROMPT_CATEGORY, user_info)
        if not system_prompt:
            raise ProjectEngineError("Project analysis system prompt not found")

        user_prompt = self.build_user_prompt(
            mentions, existing_projects, unassigned_tasks, meeting_title, meeting_date
        )

        logger.info(
            f"Analyzing {len(mentions)} project mentions against {len(existing_projects)} "
            f"existing projects and {len(unassigned_tasks)} unassigned tasks"
        )
        payload = await self.reasoning_client.invoke_json(system_prompt, user_prompt)

        return self.validate(
            payload,
            mentions,
            {p.id for p in existing_projects},
            {t.id for t in unassigned_tasks},
        )

    @staticmethod
    def validate(
        payload: dict,
        mentions: Sequence[ProjectMention],
        existing_project_ids: Set[int],
        offered_task_ids: Set[int],
    ) -> MeetingProjectAnalysis:
        """Check a parsed response against the snapshot it was produced from.

        Any violation rejects the whole response. Mentions the response did not
        address are added as ``create`` mappings so no mention is dropped.
        """
        try:
            analysis = MeetingProjectAnalysis.model_validate(payload)
        except ValidationError as e:
            raise ResponseValidationError(f"Invalid project analysis response: {e}") from e

        mention_names = {m.name for m in mentions}
        seen_names: Set[str] = set()
        for mapping in analysis.project_mappings:
            name = mapping.source_mention_name
            if name not in mention_names:
                raise ResponseValidationError(f"Mapping for unknown project mention '{name}'")
            if name in seen_names:
                raise ResponseValidationError(f"Duplicate mapping for project mention '{name}'")
            seen_names.add(name)
            if mapping.action == "merge" and mapping.target_project_id not in existing_project_ids:
                raise ResponseValidationError(
                    f"Mapping for '{name}' targets unknown project {mapping.target_project_id}"
                )

        seen_tasks: Set[int] = set()
        for assignment in analysis.task_assignments:
            if assignment.task_id not in offered_task_ids:
                raise ResponseValidationError(
                    f"Assignment references task {assignment.task_id} which was not offered"
                )
            if assignment.task_id in seen_tasks:
                raise ResponseValidationError(f"Task {assignment.task_id} assigned more than once")
            seen_tasks.add(assignment.task_id)
            if assignment.project_id not in existing_project_ids:
                raise ResponseValidationError(
                    f"Assignment of task {assignment.task_id} references unknown project "
                    f"{assignment.project_id}"
                )

        missing = [m for m in mentions if m.name not in seen_names]
        if not missing:
            return analysis

        # Deduplicate by name: one mapping covers every mention with that name
        added: List[ProjectMapping] = []
        for mention in missing:
            if any(m.source_mention_name == mention.name for m in added):
                continue
            logger.warning(f"Analysis did not address mention '{mention.name}', creating it")
            added.append(
                ProjectMapping(
                    source_mention_name=mention.name,
                    action="create",
                    reasoning="Not addressed by analysis",
                )
            )
        return MeetingProjectAnalysis(
            project_mappings=list(analysis.project_mappings) + added,
            task_assignments=list(analysis.task_assignments),
        )

    @staticmethod
    def fallback(mentions: Sequence[ProjectMention]) -> MeetingProjectAnalysis:
        """Every mention becomes a new project and no tasks are assigned."""
        mappings = []
        seen: Set[str] = set()
        for mention in mentions:
            if mention.name in seen:
                continue
            seen.add(mention.name)
            mappings.append(
                ProjectMapping(
                    source_mention_name=mention.name,
                    action="create",
                    reasoning=FALLBACK_REASON,
                )
            )
        return MeetingProjectAnalysis(project_mappings=mappings, task_assignments=[])

    async def analyze_or_fallback(
        self,
        mentions: Sequence[ProjectMention],
        existing_projects: Sequence[ProjectDTO],
        unassigned_tasks: Sequence[TaskDTO],
        meeting_title: str = "",
        meeting_date: str = "",
        user_info: Optional[Dict[str, str]] = None,
    ) -> Tuple[MeetingProjectAnalysis, bool]:
        """Run :meth:`analyze`, degrading to :meth:`fallback` on any failure.

        Returns:
            (analysis, used_fallback)
        """
        try:
            analysis = await self.analyze(
                mentions,
                existing_projects,
                unassigned_tasks,
                meeting_title=meeting_title,
                meeting_date=meeting_date,
                user_info=user_info,
            )
            return analysis, False
        except ProjectEngineError as e:
            logger.error(f"Project analysis failed, creating all mentions as new projects: {e}")
            return self.fallback(mentions), True
        except Exception as e:
            logger.error(
                f"Unexpected error during project analysis, creating all mentions as new projects: {e}",
                exc_info=True,
            )
            return self.fallback(mentions), True


def apply_meeting_analysis(
    store,
    analysis: MeetingProjectAnalysis,
    mentions: Sequence[ProjectMention],
    meeting_id: int,
    meeting_date: str,
    owner_id: str,
) -> Tuple[List[ProjectDTO], List[TaskAssignment]]:
    """Write a validated analysis to the store.

    Returns:
        (projects created or updated, assignments actually applied)
    """
    mapping_by_name = {m.source_mention_name: m for m in analysis.project_mappings}
    processed: List[ProjectDTO] = []

    for mention in mentions:
        mapping = mapping_by_name.get(mention.name)
        if mapping is None:
            mapping = ProjectMapping(
                source_mention_name=mention.name, action="create", reasoning="Unmapped mention"
            )

        entry = {"meetingId": meeting_id, "update": mention.update, "date": meeting_date}
        project = None

        if mapping.action == "merge":
            existing = store.get_project(mapping.target_project_id, owner_id)
            if existing is not None:
                project = store.update_project(
                    existing.id,
                    owner_id,
                    name=mapping.merged_name or existing.name,
                    status=mention.status,
                    last_update=mention.update,
                    context=mapping.merged_context or mention.context or existing.context,
                    updates=list(existing.updates) + [entry],
                )
            if project is None:
                logger.warning(
                    f"Merge target {mapping.target_project_id} for '{mention.name}' "
                    f"no longer exists, creating a new project instead"
                )

        if project is None:
            project = store.create_project(
                owner_id=owner_id,
                name=mapping.merged_name or mention.name,
                status=mention.status,
                last_update=mention.update,
                context=mention.context or None,
                updates=[entry],
            )
        processed.append(project)

    applied: List[TaskAssignment] = []
    processed_ids = {p.id for p in processed}
    for assignment in analysis.task_assignments:
        if assignment.project_id not in processed_ids and (
            store.get_project(assignment.project_id, owner_id) is None
        ):
            logger.warning(
                f"Project {assignment.project_id} not found for task assignment {assignment.task_id}"
            )
            continue

        task = store.get_task(assignment.task_id, owner_id)
        if task is None or task.project_id is not None:
            logger.warning(f"Task {assignment.task_id} is gone or already assigned, skipping")
            continue

        store.update_task(assignment.task_id, owner_id, project_id=assignment.project_id)
        logger.info(
            f"Assigned task {assignment.task_id} to project {assignment.project_id}: "
            f"{assignment.reasoning}"
        )
        applied.append(assignment)

    return processed, applied
