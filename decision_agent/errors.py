"""Structured error types for decision_agent.

Callers can catch specific error types instead of parsing raw litellm or
MCP exceptions:

    from decision_agent.errors import ConfigurationError, LLMError

    try:
        result = await run_config_mode(config)
    except ConfigurationError:
        # Fix agent.config.json or the environment; retrying won't help
        ...
    except LLMError:
        # Model backend failed; the decision loop never retries these
        ...

Non-compliance (the model never calling the submission tool) is NOT an error:
it is reported through ``DecisionRunResult.submitted``.
"""

from __future__ import annotations

from typing import Any


class AgentError(Exception):
    """Base for all decision_agent errors."""

    def __init__(self, message: str, original: Exception | None = None) -> None:
        super().__init__(message)
        self.original = original


class ConfigurationError(AgentError, ValueError):
    """Invalid agent configuration or missing credential. Fatal before any loop activity."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message, original=original)
        self.details = details or {}


class ToolProviderConnectionError(AgentError):
    """A tool provider could not be reached or its transport could not be built."""

    def __init__(self, message: str, *, server: str, original: Exception | None = None) -> None:
        super().__init__(message, original=original)
        self.server = server


class ToolExecutionError(AgentError):
    """A tool provider reported a failed tool call."""


class LLMError(AgentError):
    """A model invocation failed. Fatal for the run; never retried."""

    def __init__(self, message: str, *, model: str = "", original: Exception | None = None) -> None:
        super().__init__(message, original=original)
        self.model = model


def invocation_error(error: Exception, model: str) -> LLMError:
    """Wrap a backend failure for ``model`` as LLMError. LLMErrors pass through unchanged."""
    if isinstance(error, LLMError):
        return error
    detail = str(error) or type(error).__name__
    return LLMError(f"Model call to {model} failed: {detail}", model=model, original=error)


__all__ = [
    "AgentError",
    "ConfigurationError",
    "LLMError",
    "ToolExecutionError",
    "ToolProviderConnectionError",
    "invocation_error",
]
