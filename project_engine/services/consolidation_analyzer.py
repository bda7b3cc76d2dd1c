"""Corpus-wide duplicate project detection.

Looks at every project an owner has and asks the reasoning service which of
them are the same initiative tracked under different names. Produces a preview
of proposed merges; nothing is written here.

Large project sets are split into batches so each request stays inside a safe
context budget. Each batch is validated on its own: one bad group rejects the
whole batch, while the other batches keep their results.
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional, Sequence, Set, Tuple

from pydantic import ValidationError

from config.settings import ConsolidationConfig, settings
from project_engine.exceptions import (
    ProjectEngineError,
    ResponseValidationError,
    describe_failure,
)
from project_engine.models import (
    ConsolidationGroup,
    ConsolidationPreview,
    ConsolidationResponse,
    ProjectDTO,
    ProjectForAnalysis,
    ProposedConsolidation,
    TargetProject,
    TaskDTO,
)
from project_engine.services.reasoning_client import ReasoningClient
from project_engine.utils.prompt_manager import get_prompt_manager
from project_engine.utils.response_parsing import truncate_text

logger = logging.getLogger(__name__)

PROMPT_CATEGORY = "project_consolidation"


class ConsolidationAnalyzer:
    """Finds duplicate projects across an owner's whole project set."""

    def __init__(
        self,
        reasoning_client: Optional[ReasoningClient] = None,
        prompt_manager=None,
        config: Optional[ConsolidationConfig] = None,
    ):
        self.reasoning_client = reasoning_client or ReasoningClient()
        self.prompt_manager = prompt_manager or get_prompt_manager()
        self.config = config or settings.consolidation

    # ------------------------------------------------------------------
    # Input preparation
    # ------------------------------------------------------------------

    def build_records(
        self, projects: Sequence[ProjectDTO], tasks: Sequence[TaskDTO]
    ) -> List[ProjectForAnalysis]:
        """One bounded record per project, in the order given."""
        tasks_per_project: Dict[int, int] = {}
        for task in tasks:
            if task.project_id is not None:
                tasks_per_project[task.project_id] = tasks_per_project.get(task.project_id, 0) + 1

        return [
            ProjectForAnalysis(
                id=p.id,
                name=p.name,
                context=truncate_text(p.context, self.config.max_context_length),
                updates_count=len(p.updates or []),
                tasks_count=tasks_per_project.get(p.id, 0),
            )
            for p in projects
        ]

    def estimate_tokens(self, records: Sequence[ProjectForAnalysis]) -> int:
        total_chars = sum(len(r.name) + len(r.context) for r in records)
        return math.ceil(total_chars * self.config.tokens_per_char)

    def plan_batches(
        self, records: Sequence[ProjectForAnalysis]
    ) -> List[List[ProjectForAnalysis]]:
        """Split records into ordered batches when the request would be too large.

        Records are packed in order; a batch is closed when adding the next
        record would exceed either the project cap or the token budget. A
        single record over the budget still gets a batch of its own.
        """
        estimated = self.estimate_tokens(records)
        logger.info(f"Estimated tokens for {len(records)} projects: {estimated}")

        size = self.config.max_projects_per_batch
        budget = self.config.max_tokens_per_request
        if estimated <= budget and len(records) <= size:
            return [list(records)]

        batches: List[List[ProjectForAnalysis]] = []
        current: List[ProjectForAnalysis] = []
        for record in records:
            if current and (
                len(current) >= size or self.estimate_tokens(current + [record]) > budget
            ):
                batches.append(current)
                current = []
            current.append(record)
        if current:
            batches.append(current)
        logger.info(f"Processing projects in {len(batches)} batches due to size")
        return batches

    @staticmethod
    def format_records(records: Sequence[ProjectForAnalysis]) -> str:
        return "\n\n---\n\n".join(
            f"Project ID: {r.id}\n"
            f"Name: {r.name}\n"
            f"Context: {r.context or 'No context available'}\n"
            f"Updates Count: {r.updates_count}\n"
            f"Tasks Count: {r.tasks_count}"
            for r in records
        )

    def build_user_prompt(self, records: Sequence[ProjectForAnalysis]) -> str:
        formatted = self.format_records(records)
        prompt = self.prompt_manager.format_prompt(
            PROMPT_CATEGORY, "user_prompt_template", projects=formatted
        )
        return prompt or f"Analyze these projects for potential consolidation:\n\n{formatted}"

    # ------------------------------------------------------------------
    # Response validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_groups(payload: dict, valid_project_ids: Set[int]) -> List[ConsolidationGroup]:
        """Validate one batch response. Any bad group rejects the whole batch."""
        try:
            response = ConsolidationResponse.model_validate(payload)
        except ValidationError as e:
            raise ResponseValidationError(f"Invalid consolidation response: {e}") from e

        claimed: Set[int] = set()
        for group in response.consolidation_groups:
            for project_id in group.source_project_ids:
                if project_id not in valid_project_ids:
                    raise ResponseValidationError(f"Invalid project ID in response: {project_id}")
                if project_id in claimed:
                    raise ResponseValidationError(
                        f"Project {project_id} appears in more than one consolidation group"
                    )
            if group.keep_project_id not in valid_project_ids:
                raise ResponseValidationError(
                    f"Invalid keepProjectId in response: {group.keep_project_id}"
                )
            claimed.update(group.source_project_ids)

        return list(response.consolidation_groups)

    @staticmethod
    def resolve_overlaps(groups: Sequence[ConsolidationGroup]) -> List[ConsolidationGroup]:
        """Across batches, the first group to claim a project keeps it.

        Later groups lose the already-claimed IDs; a group whose keep project
        was claimed, or which is left with fewer than two projects, is dropped.
        """
        claimed: Set[int] = set()
        resolved: List[ConsolidationGroup] = []
        for group in groups:
            remaining = [pid for pid in group.source_project_ids if pid not in claimed]
            if len(remaining) != len(group.source_project_ids):
                if group.keep_project_id in claimed or len(remaining) < 2:
                    logger.warning(
                        f"Dropping consolidation group {group.source_project_ids}: "
                        f"projects already claimed by an earlier group"
                    )
                    continue
                logger.warning(
                    f"Trimming consolidation group {group.source_project_ids} to {remaining}"
                )
                group = group.model_copy(update={"source_project_ids": remaining})
            claimed.update(group.source_project_ids)
            resolved.append(group)
        return resolved

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def _analyze_batch(
        self,
        index: int,
        batch: Sequence[ProjectForAnalysis],
        system_prompt: str,
        valid_project_ids: Set[int],
        semaphore: asyncio.Semaphore,
    ) -> Tuple[List[ConsolidationGroup], Optional[ProjectEngineError]]:
        async with semaphore:
            try:
                payload = await self.reasoning_client.invoke_json(
                    system_prompt, self.build_user_prompt(batch)
                )
                groups = self.validate_groups(payload, valid_project_ids)
            except ProjectEngineError as e:
                logger.error(f"Consolidation batch {index + 1} rejected: {e}")
                return [], e

        logger.info(f"Consolidation batch {index + 1}: {len(groups)} groups")
        return groups, None

    def _to_proposal(
        self, group: ConsolidationGroup, records_by_id: Dict[int, ProjectForAnalysis]
    ) -> ProposedConsolidation:
        target = records_by_id[group.keep_project_id]
        return ProposedConsolidation(
            source_projects=[records_by_id[pid].to_summary() for pid in group.source_project_ids],
            target_project=TargetProject(id=target.id, name=target.name),
            merged_name=group.merged_name,
            merged_context=group.merged_context or "",
            reason=group.reasoning or "",
        )

    async def analyze(
        self, projects: Sequence[ProjectDTO], tasks: Sequence[TaskDTO]
    ) -> ConsolidationPreview:
        """Propose consolidation groups for the given projects. Never mutates anything."""
        original_count = len(projects)
        if original_count < 2:
            return ConsolidationPreview(
                success=True, original_project_count=original_count, no_changes=True
            )

        system_prompt = self.prompt_manager.get_prompt(PROMPT_CATEGORY, "system_prompt")
        if not system_prompt:
            return ConsolidationPreview(
                success=False,
                original_project_count=original_count,
                no_changes=True,
                error="Project consolidation system prompt not found",
            )

        try:
            records = self.build_records(projects, tasks)
            records_by_id = {r.id: r for r in records}
            valid_project_ids = set(records_by_id)
            batches = self.plan_batches(records)

            semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_batches))
            outcomes = await asyncio.gather(
                *(
                    self._analyze_batch(i, batch, system_prompt, valid_project_ids, semaphore)
                    for i, batch in enumerate(batches)
                )
            )
        except Exception as e:
            logger.error(f"Project consolidation analysis failed: {e}", exc_info=True)
            return ConsolidationPreview(
                success=False,
                original_project_count=original_count,
                no_changes=True,
                error=describe_failure(e),
            )

        all_groups: List[ConsolidationGroup] = []
        failures: List[ProjectEngineError] = []
        for groups, error in outcomes:
            all_groups.extend(groups)
            if error is not None:
                failures.append(error)

        proposals = [
            self._to_proposal(group, records_by_id)
            for group in self.resolve_overlaps(all_groups)
        ]

        error_message = None
        if failures:
            reasons = "; ".join(dict.fromkeys(describe_failure(e) for e in failures))
            if len(batches) == 1:
                error_message = reasons
            else:
                error_message = f"{len(failures)} of {len(batches)} batches failed: {reasons}"

        logger.info(
            f"Consolidation preview: {len(proposals)} groups found across "
            f"{len(batches)} batches ({len(failures)} failed)"
        )
        return ConsolidationPreview(
            success=not failures,
            original_project_count=original_count,
            proposed_consolidations=proposals,
            no_changes=len(proposals) == 0,
            error=error_message,
            batches_analyzed=len(batches),
            batches_failed=len(failures),
        )
