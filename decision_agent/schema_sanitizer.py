"""Strip provider-incompatible JSON Schema constraints from tool schemas.

Several non-OpenAI backends (DeepSeek via Chutes, some OpenAI-compatible
gateways) reject or mis-parse length/pattern/format constraints and
defaults in function-calling schemas. Stripping them trades constraint
strictness for call compatibility. The transform is lossy and one-way.

Usage:
    from decision_agent.schema_sanitizer import sanitize_schema, sanitize_tools

    cleaned = sanitize_schema({"type": "string", "maxLength": 8})
    # {"type": "string"}

    tools = sanitize_tools(aggregate_tools(servers))
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from decision_agent.tools import Tool, ToolSet

logger = logging.getLogger(__name__)

STRIP_KEYS: frozenset[str] = frozenset({
    "minLength",
    "maxLength",
    "minItems",
    "maxItems",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "pattern",
    "format",
    "default",
    "$schema",
})
"""Keys removed from every mapping node, at every depth."""


def sanitize_schema(schema: Any) -> Any:
    """Return a copy of ``schema`` with every STRIP_KEYS entry removed.

    Mappings drop denylisted keys and recurse into their values; lists and
    tuples are traversed element-wise. Anything else is returned unchanged,
    so malformed input is never rejected. The input is not mutated.
    """
    if isinstance(schema, Mapping):
        return {
            key: sanitize_schema(value)
            for key, value in schema.items()
            if key not in STRIP_KEYS
        }
    if isinstance(schema, list):
        return [sanitize_schema(item) for item in schema]
    if isinstance(schema, tuple):
        return tuple(sanitize_schema(item) for item in schema)
    return schema


def resolve_input_schema(schema: Any) -> dict[str, Any] | None:
    """Resolve a tool's input schema to a plain JSON Schema mapping.

    Accepts a mapping, a pydantic model class, or any object exposing a
    ``json_schema`` attribute or ``model_json_schema()`` method. Returns None
    when nothing structural comes out; callers treat that the same as a
    resolution failure.
    """
    if schema is None:
        return None
    if isinstance(schema, Mapping):
        resolved: Any = schema
    elif hasattr(schema, "model_json_schema"):
        resolved = schema.model_json_schema()
    elif hasattr(schema, "json_schema"):
        resolved = schema.json_schema
    else:
        return None
    if not isinstance(resolved, Mapping) or not resolved:
        return None
    return dict(resolved)


def sanitize_tools(tools: ToolSet) -> ToolSet:
    """Sanitize every tool's input schema, keeping tool order and handlers.

    A tool whose schema cannot be resolved (resolution raises, yields a
    non-mapping, or yields an empty mapping) is passed through untouched.
    Sanitization never drops a tool.
    """
    out: ToolSet = {}
    for name, tool in tools.items():
        try:
            raw = resolve_input_schema(tool.input_schema)
        except Exception as exc:
            logger.debug("Schema for tool %s could not be resolved: %s", name, exc)
            raw = None
        if raw is None:
            out[name] = tool
            continue
        out[name] = dataclasses.replace(tool, input_schema=sanitize_schema(raw))
    return out


__all__ = [
    "STRIP_KEYS",
    "resolve_input_schema",
    "sanitize_schema",
    "sanitize_tools",
]
