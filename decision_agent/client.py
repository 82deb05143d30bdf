"""Multi-step model invocation over litellm.

One call to ``generate`` is one "invocation": up to ``max_steps`` sequential
model calls. After each call, any tool calls the model made are executed
through the ToolSet's handlers and their results fed back; the invocation
ends at the first step without tool calls or when the step ceiling is hit,
whichever comes first.

Usage:
    result = await generate(
        resolve_model(config.model),
        tools,
        system=config.system_prompt,
        messages=[{"role": "user", "content": "..."}],
        max_steps=10,
    )
    for step in result.steps:
        for call in step.tool_calls:
            print(call.tool_name, call.input)

Tool failures (unknown tool, bad JSON arguments, handler errors) are reported
back to the model as ``{"error": ...}`` tool results. Backend failures are
wrapped as ``LLMError`` and propagate.
"""

from __future__ import annotations

import json as _json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import litellm

from decision_agent.config import DEFAULT_MAX_STEPS
from decision_agent.errors import LLMError, invocation_error
from decision_agent.models import ModelHandle
from decision_agent.tools import ToolSet, tools_to_openai

logger = logging.getLogger(__name__)

# Silence litellm's noisy default logging
litellm.suppress_debug_info = True

DEFAULT_TOOL_RESULT_MAX_LENGTH: int = 50_000
"""Maximum character length for a single tool result. Longer results are truncated."""


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass
class ToolCallRecord:
    """One tool call the model made, in the order the backend reported it."""

    tool_name: str
    input: dict[str, Any]
    id: str = ""
    result: str | None = None
    error: str | None = None
    latency_s: float = 0.0


@dataclass
class Step:
    """One model call within an invocation."""

    text: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    finish_reason: str = ""
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Outcome of one invocation.

    Attributes:
        text: Text of the final step (empty when the model only called tools)
        steps: Steps in the order they happened
    """

    text: str
    steps: list[Step] = field(default_factory=list)

    @property
    def tool_call_count(self) -> int:
        return sum(len(step.tool_calls) for step in self.steps)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _truncate(text: str, max_length: int) -> str:
    """Truncate text if it exceeds max_length, appending a notice."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"\n... [truncated at {max_length} chars]"


def _extract_tool_calls(message: Any) -> list[dict[str, Any]]:
    """Extract tool calls from a response message into plain dicts."""
    if not getattr(message, "tool_calls", None):
        return []
    result: list[dict[str, Any]] = []
    for tc in message.tool_calls:
        result.append({
            "id": tc.id,
            "type": getattr(tc, "type", None) or "function",
            "function": {
                "name": tc.function.name,
                "arguments": tc.function.arguments,
            },
        })
    return result


def _extract_usage(response: Any) -> dict[str, int]:
    """Extract token usage from a litellm response; zeros when absent."""
    usage = getattr(response, "usage", None)
    return {
        "prompt_tokens": int(getattr(usage, "prompt_tokens", 0) or 0),
        "completion_tokens": int(getattr(usage, "completion_tokens", 0) or 0),
        "total_tokens": int(getattr(usage, "total_tokens", 0) or 0),
    }


def _parse_arguments(raw: Any) -> dict[str, Any]:
    """Parse function-call arguments. Raises ValueError when they aren't a JSON object."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    parsed = _json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"arguments must be a JSON object, got {type(parsed).__name__}")
    return parsed


async def _execute_tool_calls(
    tool_calls: list[dict[str, Any]],
    tools: ToolSet,
    max_result_length: int,
) -> tuple[list[ToolCallRecord], list[dict[str, Any]]]:
    """Execute tool calls sequentially through the tools' handlers.

    Returns:
        (records, tool_messages): records for the Step, messages to append
    """
    records: list[ToolCallRecord] = []
    tool_messages: list[dict[str, Any]] = []

    for tc in tool_calls:
        fn = tc.get("function", {})
        tool_name = fn.get("name", "")
        tc_id = tc.get("id", "")
        record = ToolCallRecord(tool_name=tool_name, input={}, id=tc_id)

        t0 = time.monotonic()
        try:
            record.input = _parse_arguments(fn.get("arguments"))
        except (ValueError, TypeError) as exc:
            logger.error(
                "Failed to parse tool call arguments for %s: %s",
                tool_name, str(fn.get("arguments"))[:200],
            )
            record.error = f"Invalid JSON arguments: {exc}"
            tool_content = _json.dumps({"error": record.error})
        else:
            tool = tools.get(tool_name)
            if tool is None:
                record.error = f"Unknown tool: {tool_name}"
                tool_content = _json.dumps({"error": record.error})
            else:
                try:
                    tool_content = _truncate(await tool.handler(record.input), max_result_length)
                    record.result = tool_content
                except Exception as e:
                    record.error = f"{type(e).__name__}: {e}"
                    tool_content = _json.dumps({"error": record.error})

        record.latency_s = round(time.monotonic() - t0, 3)
        if record.error:
            logger.debug("Tool %s failed: %s", tool_name, record.error)
        records.append(record)
        tool_messages.append({
            "role": "tool",
            "tool_call_id": tc_id,
            "content": tool_content,
        })

    return records, tool_messages


async def _acompletion(
    model: ModelHandle,
    messages: list[dict[str, Any]],
    openai_tools: list[dict[str, Any]],
    kwargs: dict[str, Any],
) -> Any:
    """One backend call. Every failure, including an empty response, is raised as LLMError."""
    call_kwargs: dict[str, Any] = {
        "model": model.litellm_model,
        "messages": messages,
        "api_key": model.api_key,
        **kwargs,
    }
    if openai_tools:
        call_kwargs["tools"] = openai_tools
    if model.api_base is not None:
        call_kwargs["api_base"] = model.api_base
    try:
        response = await litellm.acompletion(**call_kwargs)
    except Exception as exc:
        raise invocation_error(exc, model.litellm_model) from exc
    if not getattr(response, "choices", None):
        raise LLMError(
            f"Model call to {model.litellm_model} failed: response has no choices",
            model=model.litellm_model,
        )
    return response


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


async def generate(
    model: ModelHandle,
    tools: ToolSet,
    *,
    system: str,
    messages: list[dict[str, Any]],
    max_steps: int = DEFAULT_MAX_STEPS,
    tool_result_max_length: int = DEFAULT_TOOL_RESULT_MAX_LENGTH,
    **kwargs: Any,
) -> GenerationResult:
    """Run one invocation: model ↔ tool round-trips until the model stops or max_steps.

    Args:
        model: Resolved model handle
        tools: Merged, sanitized tool set offered to the model
        system: System prompt, sent as the first message
        messages: Conversation so far (user/assistant); not mutated
        max_steps: Ceiling on model calls in this invocation
        tool_result_max_length: Max chars per tool result (truncated if longer)
        **kwargs: Passed through to litellm.acompletion (temperature, timeout, ...)

    Raises:
        LLMError: Any backend failure, or a response with no choices.
    """
    if max_steps < 1:
        raise ValueError(f"max_steps must be >= 1, got {max_steps}")

    openai_tools = tools_to_openai(tools)
    history: list[dict[str, Any]] = [{"role": "system", "content": system}]
    history.extend(dict(m) for m in messages)
    steps: list[Step] = []

    for step_index in range(max_steps):
        response = await _acompletion(model, history, openai_tools, kwargs)
        choice = response.choices[0]
        text: str = choice.message.content or ""
        raw_calls = _extract_tool_calls(choice.message)
        step = Step(
            text=text,
            finish_reason=choice.finish_reason or "",
            usage=_extract_usage(response),
        )
        steps.append(step)
        logger.debug(
            "Step %d/%d: model=%s tool_calls=%d finish=%s",
            step_index + 1, max_steps, model.litellm_model, len(raw_calls), step.finish_reason,
        )

        if not raw_calls:
            break

        history.append({
            "role": "assistant",
            "content": text or None,
            "tool_calls": raw_calls,
        })
        records, tool_messages = await _execute_tool_calls(
            raw_calls, tools, tool_result_max_length,
        )
        step.tool_calls.extend(records)
        history.extend(tool_messages)

    return GenerationResult(text=steps[-1].text, steps=steps)


__all__ = [
    "DEFAULT_TOOL_RESULT_MAX_LENGTH",
    "GenerationResult",
    "Step",
    "ToolCallRecord",
    "generate",
]
