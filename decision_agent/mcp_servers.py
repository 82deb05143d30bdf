"""Connect to MCP tool providers and aggregate their tools.

Usage:
    async with ToolProviderPool(config.tool_providers) as pool:
        result = await run_decision_loop(pool.tools, config)

The pool:
    1. Skips providers whose ``requires`` env vars are missing
    2. Expands ``${NAME}`` placeholders in each transport
    3. Connects over stdio, SSE, or streamable HTTP, one provider at a time
    4. Lists each provider's tools once, right after connecting
    5. Merges tools (later providers win on name collision) and sanitizes schemas
    6. Closes every connected provider on exit, whatever happened in between
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any
from urllib.parse import urlencode

from decision_agent.config import (
    DEFAULT_MCP_INIT_TIMEOUT,
    NetworkTransport,
    StdioTransport,
    ToolProviderConfig,
    expand_transport,
)
from decision_agent.env import missing_env_vars
from decision_agent.errors import ConfigurationError, ToolExecutionError, ToolProviderConnectionError
from decision_agent.schema_sanitizer import sanitize_tools
from decision_agent.tools import Tool, ToolHandler, ToolSet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass
class ConnectedServer:
    """A live connection to one tool provider and the tools it exposed at connect time."""

    name: str
    client: Any
    tools: ToolSet = field(default_factory=dict)
    _stack: AsyncExitStack = field(default_factory=AsyncExitStack, repr=False)
    closed: bool = False

    async def close(self) -> None:
        """Close the session and its transport. Further calls are no-ops."""
        if self.closed:
            return
        self.closed = True
        await self._stack.aclose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _import_mcp() -> SimpleNamespace:
    """Import mcp client components on first connection.

    Returns a namespace with ClientSession, StdioServerParameters,
    stdio_client, sse_client and streamablehttp_client.
    """
    from mcp import ClientSession, StdioServerParameters
    from mcp.client.sse import sse_client
    from mcp.client.stdio import stdio_client
    from mcp.client.streamable_http import streamablehttp_client

    return SimpleNamespace(
        ClientSession=ClientSession,
        StdioServerParameters=StdioServerParameters,
        stdio_client=stdio_client,
        sse_client=sse_client,
        streamablehttp_client=streamablehttp_client,
    )


def build_transport_url(url: str, params: Mapping[str, str] | None = None) -> str:
    """Append URL-encoded ``params`` to ``url`` with ``?`` or ``&`` as appropriate."""
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(dict(params))}"


def _open_transport(
    transport: StdioTransport | NetworkTransport,
    env: Mapping[str, str],
    mcp: SimpleNamespace,
) -> Any:
    """Build the async context manager yielding the transport's (read, write, ...) streams."""
    if transport.type == "stdio":
        params = mcp.StdioServerParameters(
            command=transport.command,
            args=list(transport.args),
            env={**env, **transport.env},
        )
        return mcp.stdio_client(params)
    if transport.type == "sse":
        return mcp.sse_client(build_transport_url(transport.url, transport.params), headers=transport.headers)
    if transport.type == "http":
        return mcp.streamablehttp_client(
            build_transport_url(transport.url, transport.params),
            headers=transport.headers,
        )
    raise ConfigurationError(f"Unsupported transport type: {transport.type!r}")


def _content_to_text(content: Any) -> str:
    parts: list[str] = []
    for item in content or []:
        if hasattr(item, "text"):
            parts.append(item.text)
        else:
            parts.append(str(item))
    return "\n".join(parts)


def _make_handler(session: Any, tool_name: str) -> ToolHandler:
    """Bind a tool name to the session that exposed it."""

    async def _call(arguments: dict[str, Any]) -> str:
        mcp_result = await session.call_tool(tool_name, arguments)
        text = _content_to_text(mcp_result.content)
        if mcp_result.isError:
            raise ToolExecutionError(text or f"Tool {tool_name} reported an error")
        return text

    return _call


def _tools_from_listing(server_name: str, session: Any, listing: Any) -> ToolSet:
    tools: ToolSet = {}
    for mcp_tool in listing.tools:
        tools[mcp_tool.name] = Tool(
            name=mcp_tool.name,
            handler=_make_handler(session, mcp_tool.name),
            input_schema=mcp_tool.inputSchema,
            description=mcp_tool.description or "",
            server=server_name,
        )
    return tools


async def _close_stack(stack: AsyncExitStack, name: str) -> None:
    try:
        await stack.aclose()
    except Exception as exc:
        logger.warning("Failed to clean up %s MCP server transport: %s", name, exc)


async def _connect_one(
    name: str,
    transport: StdioTransport | NetworkTransport,
    env: Mapping[str, str],
    mcp: SimpleNamespace,
    init_timeout: float,
) -> ConnectedServer:
    stack = AsyncExitStack()
    try:
        transport = expand_transport(transport, env)
        streams = await stack.enter_async_context(_open_transport(transport, env, mcp))
        read_stream, write_stream = streams[0], streams[1]
        session = await stack.enter_async_context(mcp.ClientSession(read_stream, write_stream))
        await asyncio.wait_for(session.initialize(), timeout=init_timeout)
        listing = await session.list_tools()
    except BaseException as exc:
        await _close_stack(stack, name)
        if isinstance(exc, Exception):
            raise ToolProviderConnectionError(
                f"Failed to connect to {name} MCP server: {type(exc).__name__}: {exc}",
                server=name,
                original=exc,
            ) from exc
        raise

    tools = _tools_from_listing(name, session, listing)
    logger.info("Connected to %s MCP server (%d tools)", name, len(tools))
    return ConnectedServer(name=name, client=session, tools=tools, _stack=stack)


# ---------------------------------------------------------------------------
# Connect / merge / close
# ---------------------------------------------------------------------------


async def connect_servers(
    descriptors: Mapping[str, ToolProviderConfig],
    env: Mapping[str, str] | None = None,
    *,
    init_timeout: float = DEFAULT_MCP_INIT_TIMEOUT,
) -> list[ConnectedServer]:
    """Connect to every provider whose credentials are present, in mapping order.

    Providers with missing ``requires`` env vars are skipped without a
    connection attempt. A connection failure closes every server connected
    so far and propagates as ToolProviderConnectionError; nothing is retried.
    """
    env = os.environ if env is None else env
    connected: list[ConnectedServer] = []
    if not descriptors:
        return connected

    mcp = _import_mcp()
    try:
        for name, descriptor in descriptors.items():
            missing = missing_env_vars(descriptor.requires, env)
            if missing:
                logger.info("Skipping %s: missing env vars: %s", name, ", ".join(missing))
                continue

            logger.info("Connecting to %s MCP server...", name)
            connected.append(await _connect_one(name, descriptor.transport, env, mcp, init_timeout))
    except BaseException:
        await close_servers(connected)
        raise

    return connected


def aggregate_tools(servers: list[ConnectedServer]) -> ToolSet:
    """Merge the servers' tools into one namespace. Later servers win on name collision."""
    merged: ToolSet = {}
    for server in servers:
        for name, tool in server.tools.items():
            if name in merged:
                logger.debug(
                    "Tool %r from %r replaces the one from %r",
                    name, server.name, merged[name].server,
                )
            merged[name] = tool
    return merged


async def close_servers(servers: list[ConnectedServer]) -> None:
    """Close every server, most recently connected first.

    A failure to close one server is logged and does not stop the others.
    """
    for server in reversed(servers):
        try:
            await server.close()
        except Exception as exc:
            logger.warning("Failed to close %s MCP server: %s", server.name, exc)


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class ToolProviderPool:
    """Connected tool providers plus their merged, sanitized tool set.

    Usage:
        async with ToolProviderPool(config.tool_providers) as pool:
            await run_decision_loop(pool.tools, config)
    """

    def __init__(
        self,
        descriptors: Mapping[str, ToolProviderConfig],
        env: Mapping[str, str] | None = None,
        init_timeout: float = DEFAULT_MCP_INIT_TIMEOUT,
    ):
        self.descriptors = descriptors
        self.env = env
        self.init_timeout = init_timeout
        self.servers: list[ConnectedServer] = []
        self.tools: ToolSet = {}

    async def __aenter__(self) -> "ToolProviderPool":
        self.servers = await connect_servers(
            self.descriptors, self.env, init_timeout=self.init_timeout,
        )
        try:
            self.tools = sanitize_tools(aggregate_tools(self.servers))
        except BaseException:
            await self._close()
            raise
        logger.info(
            "Loaded %d tools from %d server(s)",
            len(self.tools), len(self.servers),
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._close()

    async def _close(self) -> None:
        servers, self.servers = self.servers, []
        self.tools = {}
        await close_servers(servers)


__all__ = [
    "ConnectedServer",
    "ToolProviderPool",
    "aggregate_tools",
    "build_transport_url",
    "close_servers",
    "connect_servers",
]
