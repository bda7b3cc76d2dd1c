"""Configuration management for the project relationship engine."""

import os
import warnings
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


@dataclass
class AIConfig:
    """AI model configuration."""

    api_key: str
    provider: str = "openai"  # "openai", "anthropic", or "google"
    model: str = "gpt-4o"
    temperature: float = 0.1
    max_tokens: int = 4000


@dataclass
class ReasoningConfig:
    """Retry and timeout policy for reasoning service calls."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    backoff_factor: float = 2.0
    max_delay: float = 4.0  # seconds
    jitter: float = 0.0  # fraction of delay, 0 disables
    timeout: float = 60.0  # seconds per call


@dataclass
class ConsolidationConfig:
    """Batching limits for corpus-wide consolidation analysis."""

    tokens_per_char: float = 0.4  # conservative estimate for GPT-style tokenizers
    max_tokens_per_request: int = 80000
    max_context_length: int = 2000
    max_projects_per_batch: int = 30
    max_concurrent_batches: int = 3


@dataclass
class AgentConfig:
    """Main agent configuration."""

    debug_mode: bool = False
    log_level: str = "INFO"
    database_url: str = "sqlite:///database/project_engine.db"


class Settings:
    """Main settings manager."""

    def __init__(self):
        self.ai = self._load_ai_config()
        self.reasoning = self._load_reasoning_config()
        self.consolidation = self._load_consolidation_config()
        self.agent = self._load_agent_config()

    @staticmethod
    def _load_ai_config() -> Optional[AIConfig]:
        """Load AI configuration from environment variables."""
        provider = os.getenv("AI_PROVIDER", "openai")

        if provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY")
            model = os.getenv("OPENAI_MODEL", "gpt-4o")
        elif provider == "anthropic":
            api_key = os.getenv("ANTHROPIC_API_KEY")
            model = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022")
        elif provider == "google":
            api_key = os.getenv("GOOGLE_API_KEY")
            model = os.getenv("GOOGLE_MODEL", "gemini-1.5-pro")
        else:
            warnings.warn(
                f"Unsupported AI provider: {provider}. AI features will be disabled."
            )
            return None

        if not api_key:
            warnings.warn(
                f"{provider.upper()}_API_KEY not set in environment. AI features will be disabled."
            )
            return None

        return AIConfig(
            provider=provider,
            model=model,
            api_key=api_key,
            temperature=float(os.getenv("AI_TEMPERATURE", "0.1")),
            max_tokens=int(os.getenv("AI_MAX_TOKENS", "4000")),
        )

    @staticmethod
    def _load_reasoning_config() -> ReasoningConfig:
        max_attempts = int(os.getenv("REASONING_MAX_ATTEMPTS", "3"))
        if max_attempts < 1:
            warnings.warn(
                f"REASONING_MAX_ATTEMPTS={max_attempts} is invalid, using 1 attempt."
            )
            max_attempts = 1

        return ReasoningConfig(
            max_attempts=max_attempts,
            base_delay=float(os.getenv("REASONING_BASE_DELAY", "1.0")),
            backoff_factor=float(os.getenv("REASONING_BACKOFF_FACTOR", "2.0")),
            max_delay=float(os.getenv("REASONING_MAX_DELAY", "4.0")),
            jitter=float(os.getenv("REASONING_JITTER", "0.0")),
            timeout=float(os.getenv("REASONING_TIMEOUT", "60")),
        )

    @staticmethod
    def _load_consolidation_config() -> ConsolidationConfig:
        return ConsolidationConfig(
            tokens_per_char=float(os.getenv("CONSOLIDATION_TOKENS_PER_CHAR", "0.4")),
            max_tokens_per_request=int(
                os.getenv("CONSOLIDATION_MAX_TOKENS_PER_REQUEST", "80000")
            ),
            max_context_length=int(
                os.getenv("CONSOLIDATION_MAX_CONTEXT_LENGTH", "2000")
            ),
            max_projects_per_batch=int(
                os.getenv("CONSOLIDATION_MAX_PROJECTS_PER_BATCH", "30")
            ),
            max_concurrent_batches=int(
                os.getenv("CONSOLIDATION_MAX_CONCURRENT_BATCHES", "3")
            ),
        )

    @staticmethod
    def _load_agent_config() -> AgentConfig:
        return AgentConfig(
            debug_mode=os.getenv("DEBUG_MODE", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            database_url=os.getenv(
                "DATABASE_URL", "sqlite:///database/project_engine.db"
            ),
        )

    @classmethod
    def get_fresh_ai_config(cls) -> Optional[AIConfig]:
        """Get fresh AI configuration without affecting the singleton instance."""
        return cls._load_ai_config()


settings = Settings()
