"""Entry points used by the routing/orchestration layer."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from project_engine.managers.project_store import ProjectStore
from project_engine.models import (
    ConsolidationPreview,
    ConsolidationResult,
    MeetingAnalysisResult,
    ProjectMention,
)
from project_engine.services.consolidation_analyzer import ConsolidationAnalyzer
from project_engine.services.merge_executor import MergeExecutor, Proposal
from project_engine.services.reasoning_client import ReasoningClient
from project_engine.services.relationship_analyzer import (
    RelationshipAnalyzer,
    apply_meeting_analysis,
)

logger = logging.getLogger(__name__)


class ProjectEngine:
    """Project relationship and consolidation engine.

    Wires the analyzers and the merge executor to one store and one reasoning
    client, and exposes the three operations the rest of the application uses.
    """

    def __init__(
        self,
        store: Optional[ProjectStore] = None,
        reasoning_client: Optional[ReasoningClient] = None,
        prompt_manager=None,
    ):
        self.store = store or ProjectStore()
        self.reasoning_client = reasoning_client or ReasoningClient()
        self.relationship_analyzer = RelationshipAnalyzer(self.reasoning_client, prompt_manager)
        self.consolidation_analyzer = ConsolidationAnalyzer(self.reasoning_client, prompt_manager)
        self.merge_executor = MergeExecutor(self.store)

    async def analyze_meeting_projects(
        self,
        owner_id: str,
        meeting_id: int,
        mentions: Sequence[Union[ProjectMention, Dict[str, Any]]],
        meeting_title: str = "",
        meeting_date: Optional[str] = None,
        user_info: Optional[Dict[str, str]] = None,
    ) -> MeetingAnalysisResult:
        """Reconcile one meeting's project mentions with the owner's projects.

        Never fails because the reasoning service did: on any analysis error
        every mention is stored as a new project instead.
        """
        parsed: List[ProjectMention] = [
            m if isinstance(m, ProjectMention) else ProjectMention.model_validate(m)
            for m in mentions
        ]
        date = meeting_date or datetime.now(timezone.utc).strftime("%Y-%m-%d")

        existing = self.store.list_projects(owner_id)
        unassigned = [
            t for t in self.store.list_tasks(owner_id)
            if t.meeting_id == meeting_id and t.is_unassigned
        ]

        analysis, used_fallback = await self.relationship_analyzer.analyze_or_fallback(
            parsed,
            existing,
            unassigned,
            meeting_title=meeting_title,
            meeting_date=date,
            user_info=user_info,
        )
        projects, assignments = apply_meeting_analysis(
            self.store, analysis, parsed, meeting_id, date, owner_id
        )

        logger.info(
            f"Meeting {meeting_id}: {len(projects)} projects processed, "
            f"{len(assignments)} tasks assigned (fallback={used_fallback})"
        )
        return MeetingAnalysisResult(
            projects=projects,
            assignments=assignments,
            analysis=analysis,
            used_fallback=used_fallback,
        )

    async def preview_consolidation(self, owner_id: str) -> ConsolidationPreview:
        """Propose duplicate-project merges for an owner without changing anything."""
        projects = self.store.list_projects(owner_id)
        tasks = self.store.list_tasks(owner_id)
        logger.info(f"Previewing consolidation of {len(projects)} projects for owner {owner_id}")
        return await self.consolidation_analyzer.analyze(projects, tasks)

    def execute_consolidation(
        self, proposals: Sequence[Proposal], owner_id: str
    ) -> ConsolidationResult:
        return self.merge_executor.execute(proposals, owner_id)
