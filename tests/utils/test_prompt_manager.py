"""Tests for PromptManager."""

from project_engine.utils.prompt_manager import PromptManager


def test_loads_repository_prompts(prompt_manager):
    system = prompt_manager.get_prompt("project_consolidation", "system_prompt")
    assert "consolidationGroups" in system
    assert prompt_manager.get_prompt("project_analysis", "user_prompt_template")


def test_missing_file_falls_back_to_defaults(tmp_path):
    manager = PromptManager(str(tmp_path / "missing.yaml"))
    assert manager.get_prompt("project_consolidation", "system_prompt")
    assert "{projects}" in manager.get_prompt("project_consolidation", "user_prompt_template")


def test_malformed_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("project_analysis: [unclosed\n")
    manager = PromptManager(str(path))
    assert manager.get_prompt("project_analysis", "system_prompt")


def test_format_prompt_missing_returns_none(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("project_analysis:\n  user_prompt_template: 'Meeting {meeting_title}'\n")
    manager = PromptManager(str(path))

    assert manager.format_prompt("project_analysis", "user_prompt_template", meeting_title="Standup") == "Meeting Standup"
    assert manager.format_prompt("project_consolidation", "system_prompt") is None


def test_user_specific_prompt_name_resolution(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("project_analysis:\n  system_prompt: 'Working for {user_name}'\n")
    manager = PromptManager(str(path))

    assert manager.get_user_specific_prompt("project_analysis", {"display_name": "Dana", "first_name": "D"}) == "Working for Dana"
    assert manager.get_user_specific_prompt("project_analysis", {"first_name": "Lee"}) == "Working for Lee"
    assert manager.get_user_specific_prompt("project_analysis", {"email": "kim@example.com"}) == "Working for kim"
    assert manager.get_user_specific_prompt("project_analysis") == "Working for User"


def test_repository_analysis_prompt_formats_cleanly(prompt_manager):
    prompt = prompt_manager.get_user_specific_prompt("project_analysis", {"first_name": "Ana"})
    assert "working for Ana" in prompt
    assert '"projectMappings"' in prompt


def test_reload_picks_up_edits(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text("project_analysis:\n  system_prompt: 'First'\n")
    manager = PromptManager(str(path))
    assert manager.get_prompt("project_analysis", "system_prompt") == "First"

    path.write_text("project_analysis:\n  system_prompt: 'Second'\n")
    manager.reload_prompts()

    assert manager.get_prompt("project_analysis", "system_prompt") == "Second"
