"""Single entry point for calls to the external reasoning (LLM) service."""

import asyncio
import logging
from typing import Any, Dict, Optional

import openai
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI

from config.settings import AIConfig, ReasoningConfig, Settings, settings
from project_engine.exceptions import (
    UpstreamError,
    UpstreamFatalError,
    UpstreamTransientError,
)
from project_engine.utils.response_parsing import parse_json_object
from project_engine.utils.retry_logic import is_retriable_status, retry_async

logger = logging.getLogger(__name__)


def _status_code_of(error: Exception) -> Optional[int]:
    """Dig an HTTP status out of provider SDK exceptions."""
    for attr in ("status_code", "status", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_error(error: Exception) -> UpstreamError:
    """Map any exception raised during a call onto the upstream error taxonomy."""
    if isinstance(error, UpstreamError):
        return error

    if isinstance(error, (asyncio.TimeoutError, TimeoutError, openai.APITimeoutError)):
        return UpstreamTransientError(
            f"Reasoning service call timed out: {error}", reason="timeout"
        )

    status_code = _status_code_of(error)
    if is_retriable_status(status_code):
        reason = "rate_limited" if status_code == 429 else "unavailable"
        return UpstreamTransientError(
            f"Reasoning service returned {status_code}: {error}",
            status_code=status_code,
            reason=reason,
        )
    if status_code is not None:
        reason = "not_configured" if status_code in (401, 403) else "request_failed"
        return UpstreamFatalError(
            f"Reasoning service returned {status_code}: {error}",
            status_code=status_code,
            reason=reason,
        )

    if isinstance(error, openai.APIConnectionError):
        return UpstreamTransientError(
            f"Could not reach reasoning service: {error}", reason="unavailable"
        )

    return UpstreamFatalError(f"Reasoning service call failed: {error}")


def _content_text(content: Any) -> str:
    """Chat model content can be a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


class ReasoningClient:
    """Calls the reasoning service and enforces the JSON response contract.

    Owns the retry policy shared by every analyzer: transient failures (429,
    5xx, timeouts, dropped connections) are retried with exponential backoff
    up to ``max_attempts`` total attempts; anything else fails immediately.
    """

    def __init__(
        self,
        llm=None,
        config: Optional[ReasoningConfig] = None,
        ai_config: Optional[AIConfig] = None,
    ):
        """Initialize the client.

        Args:
            llm: Optional pre-built chat model (anything with ``ainvoke``)
            config: Retry/timeout policy, defaults to ``settings.reasoning``
            ai_config: Provider configuration, defaults to the current environment
        """
        self.config = config or settings.reasoning
        self._ai_config = ai_config
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            ai_config = self._ai_config or Settings.get_fresh_ai_config()
            self._llm = self._create_llm(ai_config)
        return self._llm

    @staticmethod
    def _create_llm(ai_config: Optional[AIConfig]):
        """Create LLM instance based on centralized settings."""
        if not ai_config:
            logger.warning("AI configuration not available - reasoning calls will fail")
            return None

        logger.info(
            f"Creating reasoning LLM with provider={ai_config.provider}, model={ai_config.model}"
        )

        if ai_config.provider == "openai":
            return ChatOpenAI(
                model=ai_config.model,
                temperature=ai_config.temperature,
                max_tokens=ai_config.max_tokens,
                api_key=ai_config.api_key,
                max_retries=0,  # Retries are handled here, not inside the SDK
            ).bind(response_format={"type": "json_object"})
        elif ai_config.provider == "anthropic":
            return ChatAnthropic(
                model=ai_config.model,
                anthropic_api_key=ai_config.api_key,
                temperature=ai_config.temperature,
                max_tokens=ai_config.max_tokens,
                max_retries=0,
            )
        elif ai_config.provider == "google":
            return ChatGoogleGenerativeAI(
                model=ai_config.model,
                google_api_key=ai_config.api_key,
                temperature=ai_config.temperature,
                max_tokens=ai_config.max_tokens,
            )
        else:
            logger.error(f"Unsupported AI provider: {ai_config.provider}")
            return None

    async def _call_once(self, system_prompt: str, user_prompt: str, timeout: float) -> str:
        llm = self.llm
        if llm is None:
            raise UpstreamFatalError(
                "AI API key not configured", reason="not_configured"
            )

        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        try:
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
        except Exception as e:
            raise classify_error(e) from e

        text = _content_text(getattr(response, "content", None))
        if not text.strip():
            raise UpstreamFatalError("No content returned from AI", reason="no_content")
        return text

    async def invoke(
        self, system_prompt: str, user_prompt: str, timeout: Optional[float] = None
    ) -> str:
        """Send one system/user prompt pair and return the raw response text.

        Raises:
            UpstreamTransientError: when retries are exhausted on transient failures
            UpstreamFatalError: on the first non-transient failure
        """
        return await retry_async(
            self._call_once,
            system_prompt,
            user_prompt,
            timeout if timeout is not None else self.config.timeout,
            max_attempts=self.config.max_attempts,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            backoff_factor=self.config.backoff_factor,
            jitter=self.config.jitter,
            description="reasoning_call",
        )

    async def invoke_json(
        self, system_prompt: str, user_prompt: str, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """Like :meth:`invoke`, but parse the body as a single JSON object.

        An optional markdown code fence around the body is stripped first. A
        body that does not parse is a non-transient failure and is not retried.
        """
        text = await self.invoke(system_prompt, user_prompt, timeout=timeout)
        return parse_json_object(text)
