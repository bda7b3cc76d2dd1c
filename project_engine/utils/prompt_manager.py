"""Prompt Manager for loading and managing AI prompts from configuration."""

import os
import yaml
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class PromptManager:
    """Manages AI prompts loaded from configuration files."""

    def __init__(self, config_path: str = None):
        """
        Initialize the PromptManager with a configuration file.

        Args:
            config_path: Path to the prompts configuration file.
                        Defaults to config/ai_prompts.yaml
        """
        if config_path is None:
            # Default to config/ai_prompts.yaml relative to project root
            project_root = os.path.dirname(
                os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            )
            config_path = os.path.join(project_root, "config", "ai_prompts.yaml")

        self.config_path = config_path
        self.prompts = self._load_prompts()

    def _load_prompts(self) -> Dict[str, Any]:
        """Load prompts from the YAML configuration file."""
        try:
            with open(self.config_path, "r") as f:
                prompts = yaml.safe_load(f)
        except FileNotFoundError:
            logger.error(f"Prompts configuration file not found: {self.config_path}")
            return self._get_default_prompts()
        except yaml.YAMLError as e:
            logger.error(f"Error parsing prompts YAML: {e}")
            return self._get_default_prompts()

        if not isinstance(prompts, dict):
            logger.error(f"Prompts file {self.config_path} does not contain a mapping")
            return self._get_default_prompts()

        logger.info(f"Successfully loaded prompts from {self.config_path}")
        return prompts

    def reload_prompts(self):
        """Reload prompts from the configuration file."""
        logger.info("Reloading prompts configuration...")
        self.prompts = self._load_prompts()

    def get_prompt(self, category: str, prompt_key: str, default: str = "") -> str:
        """
        Get a specific prompt by category and key.

        Args:
            category: The category of prompts (e.g., 'project_analysis')
            prompt_key: The specific prompt key (e.g., 'system_prompt')
            default: Default value if prompt not found

        Returns:
            The prompt string or default if not found
        """
        return (self.prompts.get(category) or {}).get(prompt_key, default)

    def format_prompt(self, category: str, prompt_key: str, **kwargs) -> Optional[str]:
        """
        Get and format a prompt with provided variables.

        Returns None when the prompt is not configured, so callers can tell a
        missing prompt apart from an empty one.
        """
        prompt = self.get_prompt(category, prompt_key)
        if not prompt:
            return None
        try:
            return prompt.format(**kwargs)
        except (KeyError, IndexError) as e:
            logger.warning(f"Missing variable in prompt formatting for {category}.{prompt_key}: {e}")
            return prompt

    def get_user_specific_prompt(
        self, category: str, user_info: Optional[Dict[str, str]] = None
    ) -> Optional[str]:
        """Get a system prompt with the ``{user_name}`` placeholder filled in.

        The name is taken from display name, then first name, then the local
        part of the email address, then "User".
        """
        user_info = user_info or {}
        email = user_info.get("email") or ""
        user_name = (
            user_info.get("display_name")
            or user_info.get("first_name")
            or (email.split("@")[0] if email else "")
            or "User"
        )
        return self.format_prompt(category, "system_prompt", user_name=user_name)

    def _get_default_prompts(self) -> Dict[str, Any]:
        """Return default prompts as fallback."""
        return {
            "project_analysis": {
                "system_prompt": (
                    "You are an AI project management assistant working for {user_name}. "
                    "For each new project mentioned in a meeting decide whether it should be "
                    "merged into an existing project or created as a new one, and assign "
                    "unassigned tasks to existing projects. Only use IDs from the input. "
                    "Return ONLY a JSON object with keys \"projectMappings\" "
                    "(newProjectName, action create|merge, targetProjectId, mergedName, "
                    "mergedContext, reasoning) and \"taskAssignments\" "
                    "(taskId, projectId, reasoning)."
                ),
                "user_prompt_template": (
                    "Meeting: \"{meeting_title}\" ({meeting_date})\n\n"
                    "NEW PROJECTS MENTIONED:\n{new_projects}\n\n"
                    "EXISTING PROJECTS:\n{existing_projects}\n\n"
                    "UNASSIGNED TASKS FROM THIS MEETING:\n{unassigned_tasks}"
                ),
            },
            "project_consolidation": {
                "system_prompt": (
                    "You are an AI project management assistant. Identify groups of projects "
                    "that are true duplicates or the same initiative. Return ONLY a JSON object "
                    "with key \"consolidationGroups\": a list of objects with sourceProjectIds "
                    "(at least two IDs), keepProjectId (one of the source IDs), mergedName, "
                    "mergedContext and reasoning. Return an empty list when nothing should merge."
                ),
                "user_prompt_template": (
                    "Analyze these projects for potential consolidation:\n\n{projects}"
                ),
            },
        }


# Singleton instance
_prompt_manager = None


def get_prompt_manager(config_path: str = None) -> PromptManager:
    """
    Get the singleton PromptManager instance.

    Args:
        config_path: Optional path to prompts configuration file

    Returns:
        PromptManager instance
    """
    global _prompt_manager
    if _prompt_manager is None or config_path is not None:
        _prompt_manager = PromptManager(config_path)
    return _prompt_manager
