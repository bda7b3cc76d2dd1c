"""Apply approved consolidation groups to the project store.

Groups are applied one at a time against freshly read data. Each group is
all-or-nothing: if any write fails part way through, the writes already made
for that group are undone in reverse order. Groups that completed earlier in
the run stay committed regardless of what happens later.
"""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

from pydantic import ValidationError

from project_engine.exceptions import ReferenceConflictError
from project_engine.managers.project_store import ProjectStore
from project_engine.models import (
    ConsolidationGroup,
    ConsolidationResult,
    GroupMergeOutcome,
    ProjectDTO,
    ProposedConsolidation,
)

logger = logging.getLogger(__name__)

Proposal = Union[ProposedConsolidation, ConsolidationGroup, Dict[str, Any]]


@dataclass
class MergePlan:
    source_ids: List[int]
    keep_id: int
    merged_name: str
    merged_context: str
    reason: str


def to_merge_plan(proposal: Proposal) -> MergePlan:
    """Normalise a preview proposal, a raw consolidation group or a dict of either."""
    if isinstance(proposal, dict):
        if "sourceProjects" in proposal or "source_projects" in proposal:
            proposal = ProposedConsolidation.model_validate(proposal)
        else:
            proposal = ConsolidationGroup.model_validate(proposal)

    if isinstance(proposal, ProposedConsolidation):
        return MergePlan(
            source_ids=proposal.source_project_ids,
            keep_id=proposal.target_project.id,
            merged_name=proposal.merged_name,
            merged_context=proposal.merged_context,
            reason=proposal.reason,
        )
    if isinstance(proposal, ConsolidationGroup):
        return MergePlan(
            source_ids=list(proposal.source_project_ids),
            keep_id=proposal.keep_project_id,
            merged_name=proposal.merged_name,
            merged_context=proposal.merged_context or "",
            reason=proposal.reasoning or "",
        )
    raise TypeError(f"Unsupported proposal type: {type(proposal).__name__}")


class MergeExecutor:
    """Folds source projects into a keep project, one group at a time."""

    def __init__(self, store: Optional[ProjectStore] = None):
        self.store = store or ProjectStore()

    def execute(self, proposals: Sequence[Proposal], owner_id: str) -> ConsolidationResult:
        """Apply approved groups in order.

        A group whose keep project is gone (or was absorbed earlier in this
        run) is reported and skipped. Source projects absorbed earlier in this
        run are silently dropped from later groups; sources deleted by someone
        else since the preview are reported and the rest of the group proceeds.
        """
        original_count = len(self.store.list_projects(owner_id))
        absorbed: Set[int] = set()
        consolidations: List[GroupMergeOutcome] = []
        errors: List[str] = []

        logger.info(
            f"Executing {len(proposals)} consolidation groups for owner {owner_id} "
            f"({original_count} projects)"
        )

        for index, proposal in enumerate(proposals, start=1):
            try:
                plan = to_merge_plan(proposal)
            except (ValidationError, TypeError) as e:
                logger.error(f"Consolidation group {index} is malformed: {e}")
                errors.append(f"Group {index}: invalid proposal: {e}")
                continue

            keep = None
            if plan.keep_id not in absorbed:
                keep = self.store.get_project(plan.keep_id, owner_id)
            if keep is None:
                conflict = ReferenceConflictError(
                    f"Target project {plan.keep_id} no longer exists or was already merged"
                )
                logger.warning(f"Skipping group {index}: {conflict}")
                errors.append(str(conflict))
                continue

            sources: List[ProjectDTO] = []
            for source_id in plan.source_ids:
                if source_id == keep.id or source_id in absorbed:
                    if source_id != keep.id:
                        logger.info(f"Project {source_id} already merged in this run, skipping")
                    continue
                source = self.store.get_project(source_id, owner_id)
                if source is None:
                    conflict = ReferenceConflictError(
                        f"Project {source_id} not found, skipping it in merge into '{keep.name}'"
                    )
                    logger.warning(str(conflict))
                    errors.append(str(conflict))
                    continue
                sources.append(source)

            if not sources:
                logger.info(f"Group {index} has nothing left to merge into project {keep.id}")
                continue

            try:
                outcome = self._merge_group(keep, sources, plan, owner_id)
            except Exception as e:
                logger.error(f"Failed to merge group {index} into project {keep.id}: {e}", exc_info=True)
                errors.append(f"Failed to merge into '{keep.name}' (project {keep.id}): {e}")
                continue

            absorbed.update(source.id for source in sources)
            consolidations.append(outcome)

        result = ConsolidationResult(
            original_project_count=original_count,
            final_project_count=original_count - len(absorbed),
            consolidations=consolidations,
            errors=errors,
        )
        logger.info(
            f"Consolidation finished: {original_count} -> {result.final_project_count} projects, "
            f"{len(consolidations)} groups applied, {len(errors)} errors"
        )
        return result

    def _merge_group(
        self,
        keep: ProjectDTO,
        sources: Sequence[ProjectDTO],
        plan: MergePlan,
        owner_id: str,
    ) -> GroupMergeOutcome:
        undo: List[Callable[[], Any]] = []
        try:
            merged_updates = [dict(entry) for entry in keep.updates]
            for source in sources:
                merged_updates.extend(dict(entry) for entry in source.updates)
            merged_context = plan.merged_context or keep.context

            updated = self.store.update_project(
                keep.id,
                owner_id,
                name=plan.merged_name,
                context=merged_context,
                updates=merged_updates,
            )
            if updated is None:
                raise ReferenceConflictError(f"Target project {keep.id} disappeared during merge")
            undo.append(partial(
                self.store.update_project,
                keep.id,
                owner_id,
                name=keep.name,
                context=keep.context,
                updates=keep.updates,
            ))

            source_ids = {source.id for source in sources}
            tasks = [t for t in self.store.list_tasks(owner_id) if t.project_id in source_ids]
            for task in tasks:
                self.store.update_task(task.id, owner_id, project_id=keep.id)
                undo.append(partial(self.store.update_task, task.id, owner_id, project_id=task.project_id))

            for source in sources:
                if self.store.delete_project(source.id, owner_id):
                    undo.append(partial(self.store.restore_project, source))
                else:
                    logger.warning(f"Project {source.id} was already deleted")
        except Exception:
            self._rollback(undo, keep.id)
            raise

        updates_consolidated = sum(len(source.updates) for source in sources)
        logger.info(
            f"Merged {sorted(source_ids)} into project {keep.id} '{plan.merged_name}': "
            f"{updates_consolidated} updates, {len(tasks)} tasks reassigned"
        )
        return GroupMergeOutcome(
            source_projects=[{"id": s.id, "name": s.name} for s in sources],
            target_project={"id": keep.id, "name": plan.merged_name, "context": merged_context},
            updates_consolidated=updates_consolidated,
            tasks_reassigned=len(tasks),
            reason=plan.reason,
        )

    @staticmethod
    def _rollback(undo: List[Callable[[], Any]], keep_id: int) -> None:
        for step in reversed(undo):
            try:
                step()
            except Exception as e:
                logger.error(f"Rollback step failed for merge into project {keep_id}: {e}", exc_info=True)
        if undo:
            logger.warning(f"Rolled back {len(undo)} writes for merge into project {keep_id}")
