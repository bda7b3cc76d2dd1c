"""Error types for the project relationship engine.

Every failure the engine can report belongs to one of four families:

- ``UpstreamTransientError``: rate limits, 5xx responses and timeouts from the
  reasoning service. Retried internally; surfaces only when retries run out.
- ``UpstreamFatalError``: other HTTP errors, empty responses, unparseable JSON,
  missing configuration. Never retried.
- ``ResponseValidationError``: well-formed JSON that breaks the response schema
  or references IDs that were not offered. Never retried; the affected unit of
  work is rejected as a whole.
- ``ReferenceConflictError``: an approved proposal points at data that changed
  after the preview was generated. Detected at execute time.
"""

from typing import Optional


class ProjectEngineError(Exception):
    """Base class for all engine errors."""


class UpstreamError(ProjectEngineError):
    """Raised when a reasoning service call fails.

    Attributes:
        transient: True when the failure may succeed on retry
        status_code: HTTP status returned by the service, if any
        reason: short machine-readable cause (``rate_limited``, ``unavailable``,
            ``timeout``, ``bad_response``, ``no_content``, ``not_configured``,
            ``request_failed``)
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        status_code: Optional[int] = None,
        reason: str = "request_failed",
    ):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code
        self.reason = reason


class UpstreamTransientError(UpstreamError):
    """Retryable reasoning service failure (429, 5xx, timeout, connection)."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, reason: str = "unavailable"
    ):
        super().__init__(message, transient=True, status_code=status_code, reason=reason)


class UpstreamFatalError(UpstreamError):
    """Non-retryable reasoning service failure."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: str = "request_failed",
    ):
        super().__init__(message, transient=False, status_code=status_code, reason=reason)


class ResponseValidationError(ProjectEngineError):
    """Raised when a parsed response violates its schema or references unknown IDs."""


class ReferenceConflictError(ProjectEngineError):
    """Raised when a proposal references a project changed since the preview."""


def describe_failure(error: Exception) -> str:
    """Turn an engine error into a message suitable for showing to a user."""
    if isinstance(error, UpstreamError):
        if error.reason == "rate_limited" or error.status_code == 429:
            return "AI rate limit exceeded. Please try again later."
        if error.reason in ("unavailable", "timeout") or (
            error.status_code is not None and error.status_code >= 500
        ):
            return "AI service temporarily unavailable. Please try again later."
        if error.reason == "not_configured":
            return "AI API key not configured or invalid."
        if error.reason in ("bad_response", "no_content"):
            return "Invalid response from AI. Please try again."
        return str(error) or "Failed to analyze projects"
    if isinstance(error, ResponseValidationError):
        return f"Invalid response from AI: {error}"
    return str(error) or "Failed to analyze projects"
