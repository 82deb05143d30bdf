"""Typed configuration for decision_agent.

Two layers:
- ``AgentConfig`` (pydantic): what the agent is: system prompt, model, and
  the tool providers to aggregate. Loaded from ``agent.config.json`` or YAML.
- ``RunSettings`` (frozen dataclass): run-time ceilings, resolved once from
  the environment and passed explicitly through calls.

Example agent.config.json:

    {
      "system_prompt": "You are a trading agent...",
      "model": {"provider": "anthropic", "model_id": "claude-sonnet-4-5"},
      "tool_providers": {
        "arena": {
          "requires": ["AGENT_TOKEN"],
          "transport": {
            "type": "sse",
            "url": "${ARENA_API_URL}/mcp/sse",
            "params": {"token": "${AGENT_TOKEN}"}
          }
        },
        "local": {
          "transport": {"type": "stdio", "command": "python", "args": ["-u", "server.py"]}
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from decision_agent.env import expand_all_env_vars
from decision_agent.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "agent.config.json"
CONFIG_PATH_ENV = "DECISION_AGENT_CONFIG"
MAX_ATTEMPTS_ENV = "DECISION_AGENT_MAX_ATTEMPTS"
MAX_STEPS_ENV = "DECISION_AGENT_MAX_STEPS"
MCP_INIT_TIMEOUT_ENV = "DECISION_AGENT_MCP_INIT_TIMEOUT"

DEFAULT_MAX_ATTEMPTS: int = 3
"""Model invocations per run before giving up on a submission."""

DEFAULT_MAX_STEPS: int = 10
"""Model/tool round-trips allowed within one invocation."""

DEFAULT_SUBMIT_TOOL: str = "submit_decision"
"""The tool whose call ends the decision loop successfully."""

DEFAULT_MCP_INIT_TIMEOUT: float = 30.0
"""Seconds to wait for each tool provider's MCP handshake."""


# ---------------------------------------------------------------------------
# Agent configuration
# ---------------------------------------------------------------------------


class StdioTransport(BaseModel):
    """Tool provider spawned as a child process speaking MCP over stdio."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["stdio"]
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class NetworkTransport(BaseModel):
    """Tool provider reached over the network: ``sse`` streaming or ``http`` request/response."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["sse", "http"]
    url: str = Field(min_length=1)
    params: dict[str, str] | None = None
    headers: dict[str, str] | None = None


Transport = Annotated[StdioTransport | NetworkTransport, Field(discriminator="type")]


class ToolProviderConfig(BaseModel):
    """One tool provider: required credentials plus how to reach it."""

    model_config = ConfigDict(extra="forbid")

    requires: list[str] = Field(default_factory=list)
    transport: Transport


class ModelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    provider: str = Field(min_length=1)
    model_id: str = Field(min_length=1)
    base_url: str | None = None


class AgentConfig(BaseModel):
    """Top-level agent configuration."""

    model_config = ConfigDict(extra="forbid")

    system_prompt: str
    model: ModelConfig
    tool_providers: dict[str, ToolProviderConfig] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("tool_providers", "mcp_servers"),
    )


def expand_transport(
    transport: StdioTransport | NetworkTransport,
    env: Mapping[str, str],
) -> StdioTransport | NetworkTransport:
    """Return a copy of ``transport`` with ``${NAME}`` placeholders expanded.

    Raises:
        ConfigurationError: the expanded transport is no longer valid, e.g. a
            required field expanded to an empty string.
    """
    expanded = expand_all_env_vars(transport.model_dump(), env)
    try:
        return type(transport).model_validate(expanded)
    except ValidationError as exc:
        errors = _format_validation_error(exc)
        raise ConfigurationError(
            "Invalid transport after env expansion: " + "; ".join(errors),
            details={"errors": errors},
            original=exc,
        ) from exc


def _format_validation_error(exc: ValidationError) -> list[str]:
    out: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        out.append(f"{loc or '<root>'}: {err.get('msg', 'invalid')}")
    return out


def parse_agent_config(data: Mapping[str, Any]) -> AgentConfig:
    """Validate a raw mapping into AgentConfig.

    Raises:
        ConfigurationError: listing every invalid location.
    """
    try:
        return AgentConfig.model_validate(dict(data))
    except ValidationError as exc:
        errors = _format_validation_error(exc)
        raise ConfigurationError(
            "Invalid agent configuration: " + "; ".join(errors),
            details={"errors": errors},
            original=exc,
        ) from exc


def load_agent_config(path: str | Path = DEFAULT_CONFIG_PATH) -> AgentConfig:
    """Load and validate an agent config from a .json, .yaml or .yml file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: On unsupported suffix, unparseable content,
            non-mapping root, or schema violations.
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Agent config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            raise ConfigurationError(
                f"Unsupported agent config extension {suffix!r} for {path}. "
                "Use .json, .yaml, or .yml."
            )
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse agent config {path}: {exc}", original=exc) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Agent config root must be a mapping. Got: {type(data).__name__}"
        )
    config = parse_agent_config(data)
    logger.debug(
        "Loaded agent config from %s (%d tool provider(s))",
        path, len(config.tool_providers),
    )
    return config


# ---------------------------------------------------------------------------
# Run settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunSettings:
    """Run-time ceilings resolved once and passed explicitly through calls."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_steps: int = DEFAULT_MAX_STEPS
    submit_tool: str = DEFAULT_SUBMIT_TOOL
    init_timeout: float = DEFAULT_MCP_INIT_TIMEOUT

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RunSettings":
        """Build settings from environment variables, warning on invalid values."""
        env = os.environ if env is None else env
        return cls(
            max_attempts=_positive_int(env, MAX_ATTEMPTS_ENV, DEFAULT_MAX_ATTEMPTS),
            max_steps=_positive_int(env, MAX_STEPS_ENV, DEFAULT_MAX_STEPS),
            init_timeout=_positive_float(env, MCP_INIT_TIMEOUT_ENV, DEFAULT_MCP_INIT_TIMEOUT),
        )


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        logger.warning("Invalid %s=%r; expected a positive integer. Defaulting to %d.", name, raw, default)
        return default
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        logger.warning("Invalid %s=%r; expected a positive number. Defaulting to %.1f.", name, raw, default)
        return default
    return value


__all__ = [
    "AgentConfig",
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_STEPS",
    "DEFAULT_MCP_INIT_TIMEOUT",
    "DEFAULT_SUBMIT_TOOL",
    "ModelConfig",
    "NetworkTransport",
    "RunSettings",
    "StdioTransport",
    "ToolProviderConfig",
    "Transport",
    "expand_transport",
    "load_agent_config",
    "parse_agent_config",
]
