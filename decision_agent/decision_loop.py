"""Bounded decision loop: converse with the model until it submits a decision.

The loop:
    1. Invoke the model with the full conversation, the tool set, the system
       prompt and a per-invocation step ceiling
    2. Scan every step's tool calls for the submission tool → done
    3. Otherwise echo the model's text as an assistant message, append a
       corrective user message, and try again (up to max_attempts)

Running out of attempts is not an error: the result's ``submitted`` flag is
the success signal. Model invocation failures are never retried here.
"""

from __future__ import annotations

import json as _json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from decision_agent.client import GenerationResult, Step, generate
from decision_agent.config import (
    DEFAULT_SUBMIT_TOOL,
    AgentConfig,
    RunSettings,
)
from decision_agent.errors import ConfigurationError
from decision_agent.models import ModelHandle, resolve_model
from decision_agent.tools import ToolSet

logger = logging.getLogger(__name__)

SUBMIT_TOOL: str = DEFAULT_SUBMIT_TOOL

SEED_MESSAGE = "Analyze the market and make your trading decision for this interval."


def correction_message(submit_tool: str = SUBMIT_TOOL) -> str:
    """User message restating that the submission tool must be called."""
    return (
        f"You did not call {submit_tool}. You MUST call "
        f"{submit_tool} with your trades to complete "
        "your turn. Analyze the market and submit now."
    )


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass
class DecisionRunResult:
    """Summary of one decision loop run.

    ``messages`` is the conversation as it stood when the loop ended: the
    seed message plus two messages per retried attempt.
    """

    submitted: bool = False
    attempts: int = 0
    total_steps: int = 0
    total_tool_calls: int = 0
    messages: list[dict[str, str]] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return not self.submitted


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_submit_call(steps: list[Step], submit_tool: str = SUBMIT_TOOL) -> bool:
    return any(
        call.tool_name == submit_tool
        for step in steps
        for call in step.tool_calls
    )


def _log_steps(steps: list[Step], submit_tool: str) -> None:
    for step in steps:
        for call in step.tool_calls:
            if call.tool_name == submit_tool:
                logger.info("Tool call: %s %s", call.tool_name, _json.dumps(call.input, default=str))
            else:
                logger.info("Tool call: %s", call.tool_name)


async def _invoke_model(
    model: ModelHandle,
    tools: ToolSet,
    *,
    system: str,
    messages: list[dict[str, Any]],
    max_steps: int,
) -> GenerationResult:
    """Run one model invocation. Separate function for testability."""
    return await generate(model, tools, system=system, messages=messages, max_steps=max_steps)


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


async def run_decision_loop(
    tools: ToolSet,
    config: AgentConfig,
    *,
    settings: RunSettings | None = None,
    model: ModelHandle | None = None,
    env: Mapping[str, str] | None = None,
) -> DecisionRunResult:
    """Drive the model until it calls the submission tool or attempts run out.

    Args:
        tools: Merged, sanitized tool set
        config: Agent config (system prompt + model selection)
        settings: Attempt/step ceilings and submission tool name
        model: Pre-resolved model handle; resolved from config.model when omitted
        env: Environment used to resolve the model (defaults to os.environ)

    Returns:
        DecisionRunResult; check ``submitted``; exhaustion does not raise.

    Raises:
        ConfigurationError: Model cannot be resolved, or max_attempts < 1.
        LLMError: A model invocation failed.
    """
    settings = settings or RunSettings()
    if settings.max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be >= 1, got {settings.max_attempts}")
    if model is None:
        model = resolve_model(config.model, os.environ if env is None else env)
    submit_tool = settings.submit_tool

    result = DecisionRunResult(messages=[{"role": "user", "content": SEED_MESSAGE}])

    for attempt in range(1, settings.max_attempts + 1):
        result.attempts = attempt
        generation = await _invoke_model(
            model,
            tools,
            system=config.system_prompt,
            messages=list(result.messages),
            max_steps=settings.max_steps,
        )

        _log_steps(generation.steps, submit_tool)
        result.total_steps += len(generation.steps)
        result.total_tool_calls += generation.tool_call_count

        if has_submit_call(generation.steps, submit_tool):
            result.submitted = True
            break

        if attempt < settings.max_attempts:
            logger.warning("No %s in attempt %d, retrying...", submit_tool, attempt)
            result.messages.append({"role": "assistant", "content": generation.text})
            result.messages.append({"role": "user", "content": correction_message(submit_tool)})
        else:
            logger.warning(
                "Warning: no %s after %d attempts", submit_tool, settings.max_attempts,
            )

    logger.info(
        "Completed %d step(s), %d tool call(s)",
        result.total_steps, result.total_tool_calls,
    )
    return result


__all__ = [
    "DecisionRunResult",
    "SEED_MESSAGE",
    "SUBMIT_TOOL",
    "correction_message",
    "has_submit_call",
    "run_decision_loop",
]
