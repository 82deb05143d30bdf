"""Tests for decision_agent.config: agent config models, loading, run settings."""

from __future__ import annotations

import json
import logging

import pytest

from decision_agent.config import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_STEPS,
    DEFAULT_MCP_INIT_TIMEOUT,
    NetworkTransport,
    RunSettings,
    StdioTransport,
    expand_transport,
    load_agent_config,
    parse_agent_config,
)
from decision_agent.errors import ConfigurationError


def _valid_config() -> dict:
    return {
        "system_prompt": "You trade.",
        "model": {"provider": "anthropic", "model_id": "claude-sonnet-4-5"},
        "tool_providers": {
            "arena": {
                "requires": ["AGENT_TOKEN"],
                "transport": {
                    "type": "sse",
                    "url": "${ARENA_API_URL}/mcp/sse",
                    "params": {"token": "${AGENT_TOKEN}"},
                },
            },
            "taostats": {
                "transport": {
                    "type": "http",
                    "url": "https://mcp.taostats.io?tools=data",
                    "headers": {"Authorization": "${TAOSTATS_API_KEY}"},
                },
            },
            "local": {
                "transport": {"type": "stdio", "command": "python", "args": ["-u", "server.py"]},
            },
        },
    }


# ---------------------------------------------------------------------------
# parse_agent_config
# ---------------------------------------------------------------------------


class TestParseAgentConfig:
    def test_transport_union_dispatches_on_type(self) -> None:
        config = parse_agent_config(_valid_config())
        providers = config.tool_providers
        assert list(providers) == ["arena", "taostats", "local"]
        assert isinstance(providers["arena"].transport, NetworkTransport)
        assert providers["arena"].transport.type == "sse"
        assert isinstance(providers["taostats"].transport, NetworkTransport)
        assert providers["taostats"].transport.type == "http"
        assert isinstance(providers["local"].transport, StdioTransport)
        assert providers["local"].transport.env == {}
        assert providers["local"].requires == []

    def test_tool_providers_optional(self) -> None:
        raw = _valid_config()
        raw.pop("tool_providers")
        assert parse_agent_config(raw).tool_providers == {}

    def test_mcp_servers_alias(self) -> None:
        raw = _valid_config()
        raw["mcp_servers"] = raw.pop("tool_providers")
        assert list(parse_agent_config(raw).tool_providers) == ["arena", "taostats", "local"]

    def test_base_url_optional(self) -> None:
        raw = _valid_config()
        raw["model"] = {"provider": "chutes", "model_id": "deepseek-v3", "base_url": "https://llm.chutes.ai/v1"}
        assert parse_agent_config(raw).model.base_url == "https://llm.chutes.ai/v1"

    def test_unknown_transport_type_rejected(self) -> None:
        raw = _valid_config()
        raw["tool_providers"]["local"]["transport"]["type"] = "websocket"
        with pytest.raises(ConfigurationError, match="tool_providers.local.transport"):
            parse_agent_config(raw)

    def test_missing_system_prompt_rejected(self) -> None:
        raw = _valid_config()
        raw.pop("system_prompt")
        with pytest.raises(ConfigurationError, match="system_prompt") as excinfo:
            parse_agent_config(raw)
        assert excinfo.value.details["errors"]

    def test_extra_keys_rejected(self) -> None:
        raw = _valid_config()
        raw["model"]["temperature"] = 0.2
        with pytest.raises(ConfigurationError, match="model.temperature"):
            parse_agent_config(raw)


# ---------------------------------------------------------------------------
# expand_transport
# ---------------------------------------------------------------------------


class TestExpandTransport:
    def test_network_transport(self) -> None:
        transport = NetworkTransport(
            type="sse",
            url="${BASE}/mcp/sse",
            params={"token": "${TOKEN}"},
            headers={"Authorization": "Bearer ${TOKEN}"},
        )
        expanded = expand_transport(transport, {"BASE": "https://arena.dev", "TOKEN": "t1"})
        assert isinstance(expanded, NetworkTransport)
        assert expanded.url == "https://arena.dev/mcp/sse"
        assert expanded.params == {"token": "t1"}
        assert expanded.headers == {"Authorization": "Bearer t1"}
        # Original unchanged
        assert transport.url == "${BASE}/mcp/sse"

    def test_stdio_transport(self) -> None:
        transport = StdioTransport(type="stdio", command="${BIN}", args=["${ARG}"], env={"K": "${V}"})
        expanded = expand_transport(transport, {"BIN": "node", "ARG": "srv.js"})
        assert isinstance(expanded, StdioTransport)
        assert expanded.command == "node"
        assert expanded.args == ["srv.js"]
        assert expanded.env == {"K": ""}

    @pytest.mark.parametrize(
        "transport",
        [
            StdioTransport(type="stdio", command="${CMD}"),
            NetworkTransport(type="http", url="${URL}"),
        ],
    )
    def test_required_field_expanding_to_empty(self, transport) -> None:
        with pytest.raises(ConfigurationError, match="Invalid transport after env expansion") as excinfo:
            expand_transport(transport, {})
        assert excinfo.value.details["errors"]


# ---------------------------------------------------------------------------
# load_agent_config
# ---------------------------------------------------------------------------


class TestLoadAgentConfig:
    def test_json(self, tmp_path) -> None:
        path = tmp_path / "agent.config.json"
        path.write_text(json.dumps(_valid_config()))
        config = load_agent_config(path)
        assert config.system_prompt == "You trade."
        assert config.model.provider == "anthropic"

    def test_yaml(self, tmp_path) -> None:
        path = tmp_path / "agent.yaml"
        path.write_text(
            "system_prompt: You trade.\n"
            "model:\n"
            "  provider: openai\n"
            "  model_id: gpt-4o\n"
            "mcp_servers:\n"
            "  local:\n"
            "    transport:\n"
            "      type: stdio\n"
            "      command: python\n"
        )
        config = load_agent_config(path)
        assert config.model.model_id == "gpt-4o"
        assert config.tool_providers["local"].transport.command == "python"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_agent_config(tmp_path / "nope.json")

    def test_unsupported_suffix(self, tmp_path) -> None:
        path = tmp_path / "agent.toml"
        path.write_text("x = 1")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_agent_config(path)

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "agent.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Could not parse"):
            load_agent_config(path)

    def test_non_mapping_root(self, tmp_path) -> None:
        path = tmp_path / "agent.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_agent_config(path)


# ---------------------------------------------------------------------------
# RunSettings
# ---------------------------------------------------------------------------


class TestRunSettings:
    def test_defaults(self) -> None:
        settings = RunSettings()
        assert settings.max_attempts == DEFAULT_MAX_ATTEMPTS == 3
        assert settings.max_steps == DEFAULT_MAX_STEPS == 10
        assert settings.submit_tool == "submit_decision"
        assert settings.init_timeout == DEFAULT_MCP_INIT_TIMEOUT

    def test_from_env(self) -> None:
        settings = RunSettings.from_env({
            "DECISION_AGENT_MAX_ATTEMPTS": "5",
            "DECISION_AGENT_MAX_STEPS": "4",
            "DECISION_AGENT_MCP_INIT_TIMEOUT": "2.5",
        })
        assert settings.max_attempts == 5
        assert settings.max_steps == 4
        assert settings.init_timeout == 2.5

    def test_from_env_empty(self) -> None:
        assert RunSettings.from_env({}) == RunSettings()

    @pytest.mark.parametrize("raw", ["zero", "0", "-2"])
    def test_invalid_values_warn_and_default(self, raw: str, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="decision_agent.config"):
            settings = RunSettings.from_env({"DECISION_AGENT_MAX_ATTEMPTS": raw})
        assert settings.max_attempts == DEFAULT_MAX_ATTEMPTS
        assert "DECISION_AGENT_MAX_ATTEMPTS" in caplog.text
