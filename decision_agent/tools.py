"""Tool values shared by the aggregator, the sanitizer and the invocation layer.

A Tool is owned by the connection that produced it: the handler closes over
that connection's MCP session. Only the schema is ever rewritten (by
returning a copy), never the handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]
"""Async callable executing one tool call and returning its text result."""


@dataclass(frozen=True)
class Tool:
    """A named callable capability exposed by a tool provider."""

    name: str
    handler: ToolHandler
    input_schema: Any = None
    description: str = ""
    server: str = ""


ToolSet = dict[str, Tool]
"""Tools keyed by name. Insertion order is the order tools were merged."""


def tool_to_openai(tool: Tool) -> dict[str, Any]:
    """Convert a Tool to OpenAI function-calling format for litellm.

    Tool: name, description, input_schema {...}
    OpenAI: {"type": "function", "function": {"name", "description", "parameters"}}
    """
    parameters = tool.input_schema
    if not isinstance(parameters, dict) or not parameters:
        parameters = {"type": "object", "properties": {}}
    else:
        parameters = dict(parameters)
        parameters.setdefault("type", "object")
        if parameters["type"] == "object" and not isinstance(parameters.get("properties"), dict):
            parameters["properties"] = {}

    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description or "",
            "parameters": parameters,
        },
    }


def tools_to_openai(tools: ToolSet) -> list[dict[str, Any]]:
    """Convert a whole ToolSet, preserving merge order."""
    return [tool_to_openai(tool) for tool in tools.values()]


__all__ = [
    "Tool",
    "ToolHandler",
    "ToolSet",
    "tool_to_openai",
    "tools_to_openai",
]
