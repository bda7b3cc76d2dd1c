"""Tests for corpus-wide consolidation analysis."""

import re
from types import SimpleNamespace

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from config.settings import ConsolidationConfig
from project_engine.exceptions import ResponseValidationError
from project_engine.models import ConsolidationGroup, ProjectDTO
from project_engine.services.consolidation_analyzer import ConsolidationAnalyzer
from project_engine.utils.prompt_manager import PromptManager

from tests.helpers import HTTPError


def project(id, name, context="", updates=0):
    return ProjectDTO(
        id=id,
        owner_id="owner-1",
        name=name,
        context=context,
        updates=[{"meetingId": i, "update": "u", "date": "d"} for i in range(updates)],
    )


def ids_in_prompt(messages):
    return [int(x) for x in re.findall(r"Project ID: (\d+)", messages[1].content)]


def pairs_response(messages):
    """Group consecutive project pairs from whatever batch was sent."""
    ids = ids_in_prompt(messages)
    groups = [
        {"sourceProjectIds": [ids[i], ids[i + 1]], "keepProjectId": ids[i], "mergedName": f"Merged {ids[i]}"}
        for i in range(0, len(ids) - 1, 2)
    ]
    return {"consolidationGroups": groups}


@pytest.fixture
def analyzer_for(make_client, prompt_manager):
    def _make(*responses, config=None):
        client, llm = make_client(*responses)
        return ConsolidationAnalyzer(client, prompt_manager, config or ConsolidationConfig()), llm

    return _make


class TestBatching:
    def test_records_truncate_context_and_count(self, consolidation_config):
        analyzer = ConsolidationAnalyzer(reasoning_client=object(), prompt_manager=object(), config=consolidation_config)
        projects = [project(1, "Website", context="x" * 5000, updates=3), project(2, "API")]
        tasks = [SimpleNamespace(project_id=1), SimpleNamespace(project_id=None)]

        records = analyzer.build_records(projects, tasks)

        assert len(records[0].context) == 2000
        assert records[0].context.endswith("...")
        assert records[0].updates_count == 3
        assert records[0].tasks_count == 1
        assert records[1].context == ""

    def test_estimate_tokens(self, consolidation_config):
        analyzer = ConsolidationAnalyzer(reasoning_client=object(), prompt_manager=object(), config=consolidation_config)
        records = analyzer.build_records([project(1, "abcde", context="x" * 5)], [])

        assert analyzer.estimate_tokens(records) == 4

    def test_small_set_is_one_batch(self, consolidation_config):
        analyzer = ConsolidationAnalyzer(reasoning_client=object(), prompt_manager=object(), config=consolidation_config)
        records = analyzer.build_records([project(i, f"P{i}") for i in range(1, 31)], [])

        assert len(analyzer.plan_batches(records)) == 1

    def test_many_projects_split_in_order(self, consolidation_config):
        analyzer = ConsolidationAnalyzer(reasoning_client=object(), prompt_manager=object(), config=consolidation_config)
        records = analyzer.build_records([project(i, f"P{i}") for i in range(1, 66)], [])

        batches = analyzer.plan_batches(records)

        assert [len(b) for b in batches] == [30, 30, 5]
        assert [r.id for b in batches for r in b] == list(range(1, 66))

    def test_token_budget_alone_forces_split(self):
        config = ConsolidationConfig(max_tokens_per_request=1000)
        analyzer = ConsolidationAnalyzer(reasoning_client=object(), prompt_manager=object(), config=config)
        records = analyzer.build_records(
            [project(i, f"P{i}", context="x" * 1200) for i in range(1, 11)], []
        )
        assert analyzer.estimate_tokens(records) > 1000

        batches = analyzer.plan_batches(records)

        assert len(batches) == 5
        assert all(analyzer.estimate_tokens(b) <= 1000 for b in batches)
        assert [r.id for b in batches for r in b] == list(range(1, 11))

    def test_oversized_record_gets_own_batch(self):
        config = ConsolidationConfig(max_tokens_per_request=500)
        analyzer = ConsolidationAnalyzer(reasoning_client=object(), prompt_manager=object(), config=config)
        records = analyzer.build_records(
            [project(1, "A"), project(2, "Big", context="x" * 2000), project(3, "C")], []
        )

        batches = analyzer.plan_batches(records)

        assert [[r.id for r in b] for b in batches] == [[1], [2], [3]]


class TestValidateGroups:
    def test_unknown_keep_id_rejects_batch(self):
        payload = {"consolidationGroups": [
            {"sourceProjectIds": [1, 2], "keepProjectId": 1, "mergedName": "Fine"},
            {"sourceProjectIds": [3, 4], "keepProjectId": 3, "mergedName": "Bad"},
        ]}
        with pytest.raises(ResponseValidationError):
            ConsolidationAnalyzer.validate_groups(payload, {1, 2, 4})

    def test_overlap_within_batch_rejected(self):
        payload = {"consolidationGroups": [
            {"sourceProjectIds": [1, 2], "keepProjectId": 1, "mergedName": "A"},
            {"sourceProjectIds": [2, 3], "keepProjectId": 3, "mergedName": "B"},
        ]}
        with pytest.raises(ResponseValidationError):
            ConsolidationAnalyzer.validate_groups(payload, {1, 2, 3})


valid_id_sets = st.sets(st.integers(min_value=1, max_value=10_000), min_size=2, max_size=25)


@st.composite
def group_within(draw, valid_ids):
    members = draw(st.lists(st.sampled_from(sorted(valid_ids)), min_size=2, max_size=len(valid_ids), unique=True))
    keep = draw(st.sampled_from(members))
    return {"sourceProjectIds": members, "keepProjectId": keep, "mergedName": "Merged"}


@st.composite
def ids_and_group(draw):
    valid_ids = draw(valid_id_sets)
    return valid_ids, draw(group_within(valid_ids))


@st.composite
def ids_and_group_with_unknown_reference(draw):
    valid_ids, group = draw(ids_and_group())
    unknown = draw(st.integers(min_value=1, max_value=20_000).filter(lambda i: i not in valid_ids))
    members = group["sourceProjectIds"]
    members[draw(st.integers(min_value=0, max_value=len(members) - 1))] = unknown
    group["keepProjectId"] = draw(st.sampled_from(members))
    return valid_ids, group


class TestGroupValidationProperties:
    @given(ids_and_group())
    def test_groups_inside_offered_ids_accepted(self, case):
        valid_ids, group = case

        groups = ConsolidationAnalyzer.validate_groups({"consolidationGroups": [group]}, valid_ids)

        assert groups[0].source_project_ids == group["sourceProjectIds"]
        assert groups[0].keep_project_id == group["keepProjectId"]

    @given(ids_and_group_with_unknown_reference())
    def test_unknown_reference_rejects_batch(self, case):
        valid_ids, group = case
        payload = {"consolidationGroups": [group]}

        with pytest.raises(ResponseValidationError):
            ConsolidationAnalyzer.validate_groups(payload, valid_ids)

    @given(ids_and_group(), st.data())
    def test_duplicate_member_rejected(self, case, data):
        _, group = case
        members = group["sourceProjectIds"]
        members.append(data.draw(st.sampled_from(members)))

        with pytest.raises(ValidationError):
            ConsolidationGroup.model_validate(group)

    @given(ids_and_group(), st.integers(min_value=10_001, max_value=20_000))
    def test_keep_outside_sources_rejected(self, case, outsider):
        _, group = case
        group["keepProjectId"] = outsider

        with pytest.raises(ValidationError):
            ConsolidationGroup.model_validate(group)


def test_resolve_overlaps_first_group_wins():
    groups = [
        ConsolidationGroup(source_project_ids=[1, 2], keep_project_id=1, merged_name="A"),
        ConsolidationGroup(source_project_ids=[2, 3, 4], keep_project_id=3, merged_name="B"),
        ConsolidationGroup(source_project_ids=[3, 5], keep_project_id=3, merged_name="C"),
        ConsolidationGroup(source_project_ids=[1, 6], keep_project_id=6, merged_name="D"),
    ]

    resolved = ConsolidationAnalyzer.resolve_overlaps(groups)

    assert [g.source_project_ids for g in resolved] == [[1, 2], [3, 4]]


@pytest.mark.asyncio
async def test_fewer_than_two_projects_no_call(analyzer_for):
    analyzer, llm = analyzer_for()

    preview = await analyzer.analyze([project(1, "Solo")], [])

    assert preview.success is True
    assert preview.no_changes is True
    assert llm.calls == []


@pytest.mark.asyncio
async def test_example_scenario_proposes_merge(analyzer_for):
    response = {"consolidationGroups": [
        {"sourceProjectIds": [1, 2], "keepProjectId": 1, "mergedName": "Website Redesign",
         "mergedContext": "Marketing site", "reasoning": "Same initiative"},
    ]}
    analyzer, _ = analyzer_for(response)

    preview = await analyzer.analyze(
        [project(1, "Website Redesign", updates=2), project(2, "Website Redesign Project", updates=1)], []
    )

    assert preview.success is True
    assert preview.no_changes is False
    proposal = preview.proposed_consolidations[0]
    assert proposal.source_project_ids == [1, 2]
    assert proposal.target_project.id == 1
    assert proposal.merged_name == "Website Redesign"
    assert proposal.reason == "Same initiative"
    assert preview.to_dict()["proposedConsolidations"][0]["sourceProjects"][0]["updatesCount"] == 2


@pytest.mark.asyncio
async def test_unknown_keep_project_fails_closed(analyzer_for):
    response = {"consolidationGroups": [
        {"sourceProjectIds": [1, 3], "keepProjectId": 3, "mergedName": "Website Redesign"},
    ]}
    analyzer, _ = analyzer_for(response)

    preview = await analyzer.analyze([project(1, "Website Redesign"), project(2, "Website Redesign Project")], [])

    assert preview.success is False
    assert preview.proposed_consolidations == []
    assert preview.error
    assert preview.batches_failed == 1


@pytest.mark.asyncio
async def test_rate_limit_reported_after_retries(analyzer_for):
    analyzer, llm = analyzer_for(HTTPError(429), HTTPError(429), HTTPError(429))

    preview = await analyzer.analyze([project(1, "A"), project(2, "B")], [])

    assert preview.success is False
    assert "rate limit" in preview.error
    assert len(llm.calls) == 3


@pytest.mark.asyncio
async def test_unparseable_response_reported(analyzer_for):
    analyzer, _ = analyzer_for("I think projects 1 and 2 are the same.")

    preview = await analyzer.analyze([project(1, "A"), project(2, "B")], [])

    assert preview.success is False
    assert preview.error == "Invalid response from AI. Please try again."


@pytest.mark.asyncio
async def test_missing_system_prompt(make_client, tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("project_consolidation:\n  user_prompt_template: '{projects}'\n")
    client, llm = make_client()
    analyzer = ConsolidationAnalyzer(client, PromptManager(str(path)))

    preview = await analyzer.analyze([project(1, "A"), project(2, "B")], [])

    assert preview.success is False
    assert preview.error == "Project consolidation system prompt not found"
    assert llm.calls == []


@pytest.mark.asyncio
async def test_batched_run_matches_single_call(analyzer_for):
    projects = [project(i, f"Project {i}") for i in range(1, 9)]

    single, single_llm = analyzer_for(pairs_response)
    batched, batched_llm = analyzer_for(
        pairs_response, pairs_response, pairs_response, pairs_response,
        config=ConsolidationConfig(max_projects_per_batch=2),
    )

    one = await single.analyze(projects, [])
    many = await batched.analyze(projects, [])

    assert len(single_llm.calls) == 1
    assert len(batched_llm.calls) == 4
    assert many.batches_analyzed == 4
    assert sorted(p.source_project_ids for p in many.proposed_consolidations) == sorted(
        p.source_project_ids for p in one.proposed_consolidations
    )


@pytest.mark.asyncio
async def test_one_bad_batch_keeps_other_batches(analyzer_for):
    projects = [project(i, f"Project {i}") for i in range(1, 5)]

    def bad_batch(messages):
        ids = ids_in_prompt(messages)
        return {"consolidationGroups": [{"sourceProjectIds": ids, "keepProjectId": 999, "mergedName": "X"}]}

    responses = {1: pairs_response, 3: bad_batch}

    def route(messages):
        return responses[ids_in_prompt(messages)[0]](messages)

    analyzer, _ = analyzer_for(route, route, config=ConsolidationConfig(max_projects_per_batch=2))

    preview = await analyzer.analyze(projects, [])

    assert preview.success is False
    assert preview.batches_failed == 1
    assert [p.source_project_ids for p in preview.proposed_consolidations] == [[1, 2]]
    assert "1 of 2 batches failed" in preview.error


@pytest.mark.asyncio
async def test_preview_is_repeatable(analyzer_for):
    projects = [project(1, "A"), project(2, "A project")]
    analyzer, _ = analyzer_for(pairs_response, pairs_response)

    first = await analyzer.analyze(projects, [])
    second = await analyzer.analyze(projects, [])

    assert first.to_dict() == second.to_dict()
