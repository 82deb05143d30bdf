"""Decision agent: make a tool-calling model submit a decision.

Aggregates tools from MCP servers, sanitizes their schemas for picky model
backends, and runs a bounded loop that keeps nudging the model until it
calls ``submit_decision``.

Usage:
    from decision_agent import load_agent_config, run_config_mode

    config = load_agent_config("agent.config.json")
    result = await run_config_mode(config)
    print(result.submitted, result.total_tool_calls)

    # Or wire the pieces yourself
    from decision_agent import ToolProviderPool, run_decision_loop

    async with ToolProviderPool(config.tool_providers) as pool:
        result = await run_decision_loop(pool.tools, config)
"""

from decision_agent.client import GenerationResult, Step, ToolCallRecord, generate
from decision_agent.config import (
    AgentConfig,
    ModelConfig,
    NetworkTransport,
    RunSettings,
    StdioTransport,
    ToolProviderConfig,
    load_agent_config,
    parse_agent_config,
)
from decision_agent.decision_loop import (
    SUBMIT_TOOL,
    DecisionRunResult,
    run_decision_loop,
)
from decision_agent.errors import (
    AgentError,
    ConfigurationError,
    LLMError,
    ToolExecutionError,
    ToolProviderConnectionError,
)
from decision_agent.mcp_servers import (
    ConnectedServer,
    ToolProviderPool,
    aggregate_tools,
    close_servers,
    connect_servers,
)
from decision_agent.models import ModelHandle, resolve_model
from decision_agent.runner import run_config_mode
from decision_agent.schema_sanitizer import STRIP_KEYS, sanitize_schema, sanitize_tools
from decision_agent.tools import Tool, ToolSet

__all__ = [
    "AgentConfig",
    "AgentError",
    "ConfigurationError",
    "ConnectedServer",
    "DecisionRunResult",
    "GenerationResult",
    "LLMError",
    "ModelConfig",
    "ModelHandle",
    "NetworkTransport",
    "RunSettings",
    "STRIP_KEYS",
    "SUBMIT_TOOL",
    "StdioTransport",
    "Step",
    "Tool",
    "ToolCallRecord",
    "ToolExecutionError",
    "ToolProviderConfig",
    "ToolProviderConnectionError",
    "ToolProviderPool",
    "ToolSet",
    "aggregate_tools",
    "close_servers",
    "connect_servers",
    "generate",
    "load_agent_config",
    "parse_agent_config",
    "resolve_model",
    "run_config_mode",
    "run_decision_loop",
    "sanitize_schema",
    "sanitize_tools",
]
