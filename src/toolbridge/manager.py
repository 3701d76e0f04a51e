from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from .command_resolver import CommandResolver
from .config import BridgeConfig, ServerDefinition
from .errors import (
    CleanupError,
    ServerConfigError,
    ToolExecutionError,
    ToolTimeoutError,
)
from .registry import Action, ActionRegistry, ActionResult
from .schema import json_schema_to_host_schema
from .transports import (
    McpClient,
    SseTransport,
    StdioTransport,
    StreamableHttpTransport,
    ToolDescriptor,
    Transport,
)

log = logging.getLogger(__name__)

# Keys the host adds to every invocation that the remote tool must not see.
HOST_CONTEXT_KEYS = frozenset({"session"})

_SSE_SCHEMES = {"sse": "http", "sses": "https"}


class ServerState(str, Enum):
    CONFIGURED = "configured"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    LISTING_TOOLS = "listing-tools"
    REGISTERED = "registered"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass
class Connection:
    server: str
    client: McpClient
    transport: Transport
    tools: list[str] = field(default_factory=list)


class ConnectionManager:
    def __init__(
        self,
        config: BridgeConfig,
        resolver: CommandResolver,
        registry: ActionRegistry,
        *,
        client_factory: Callable[[str], McpClient] = McpClient,
        on_available: Callable[[list[str]], Any] | None = None,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.registry = registry
        self.client_factory = client_factory
        self.on_available = on_available
        self.connections: dict[str, Connection] = {}
        self._available: list[str] = []
        self._registered: list[str] = []
        self._states: dict[str, ServerState] = {name: ServerState.CONFIGURED for name in config.servers}

    @property
    def available_tools(self) -> list[str]:
        return list(self._available)

    @property
    def registered_tools(self) -> list[str]:
        return list(self._registered)

    def states(self) -> dict[str, str]:
        return {name: state.value for name, state in self._states.items()}

    async def connect_all(self) -> None:
        servers = self.config.servers
        if not servers:
            log.info("No MCP servers configured")
            return

        log.info("Connecting to %d MCP server(s)", len(servers))
        results = await asyncio.gather(*(self.connect_one(name) for name in servers), return_exceptions=True)
        for name, outcome in zip(servers, results):
            if isinstance(outcome, BaseException):
                self._states[name] = ServerState.FAILED
                log.error("Unexpected error connecting to %s: %s", name, outcome)

        self._available = list(dict.fromkeys(self._available))
        self._registered = list(dict.fromkeys(self._registered))

        if not self.connections:
            log.error("Failed to connect to any MCP server")
        else:
            log.info(
                "Connected to %d/%d MCP server(s), %d tool(s) registered",
                len(self.connections),
                len(servers),
                len(self._registered),
            )
        if self.on_available is not None:
            try:
                self.on_available(self.available_tools)
            except Exception as exc:  # noqa: BLE001
                log.error("Publishing available tools failed: %s", exc)

    async def connect_one(self, name: str) -> Connection | None:
        server = self.config.servers[name]
        try:
            transport = self.select_transport(server)
        except ServerConfigError as exc:
            self._states[name] = ServerState.FAILED
            log.error("Invalid configuration for server %s: %s", name, exc)
            return None

        self._states[name] = ServerState.CONNECTING
        log.info("Connecting to %s via %s (%s)", name, transport.kind, transport.describe())
        client = self.client_factory(name)
        try:
            await client.connect(transport)
        except Exception as exc:  # noqa: BLE001
            self._states[name] = ServerState.FAILED
            log.error("Failed to connect to %s: %s", name, exc)
            await self._best_effort(f"close transport of {name}", transport.close())
            return None

        connection = Connection(server=name, client=client, transport=transport)
        self.connections[name] = connection
        self._states[name] = ServerState.CONNECTED
        log.info("Connected to %s", name)
        await self.register_tools(connection)
        return connection

    def select_transport(self, server: ServerDefinition) -> Transport:
        server.validate()
        if server.url:
            scheme = server.scheme
            if scheme in ("http", "https"):
                return StreamableHttpTransport(server.url)
            if scheme in _SSE_SCHEMES:
                return SseTransport(urlparse(server.url)._replace(scheme=_SSE_SCHEMES[scheme]).geturl())
            raise ServerConfigError(f"Unsupported URL scheme '{scheme}' for server {server.name}")

        transform = server.enable_command_transform
        if transform is None:
            transform = self.config.enable_command_transform
        command, args, env = self.resolver.resolve(server.command or "", server.args, transform, server.env)
        return StdioTransport(command, args, env)

    async def register_tools(self, connection: Connection) -> None:
        name = connection.server
        self._states[name] = ServerState.LISTING_TOOLS
        try:
            tools = await connection.client.list_tools()
        except Exception as exc:  # noqa: BLE001
            self._states[name] = ServerState.CONNECTED
            log.error("Failed to list tools of %s: %s", name, exc)
            return

        if not tools:
            log.warning("No tools found on server %s", name)

        allowed = self.config.active_tools
        for tool in tools:
            self._available.append(tool.name)
            if allowed is not None and tool.name not in allowed:
                log.debug("Tool %s is not in active_tools, skipping", tool.name)
                continue
            try:
                self.registry.register_action(self._make_action(connection.client, tool))
            except Exception as exc:  # noqa: BLE001
                log.error("Failed to register tool %s from %s: %s", tool.name, name, exc)
                continue
            connection.tools.append(tool.name)
            self._registered.append(tool.name)
            log.info("Registered tool %s from %s", tool.name, name)
        self._states[name] = ServerState.REGISTERED

    def _make_action(self, client: McpClient, tool: ToolDescriptor) -> Action:
        async def execute(params: dict[str, Any]) -> ActionResult:
            arguments = {key: value for key, value in params.items() if key not in HOST_CONTEXT_KEYS}
            return await self.execute_tool(client, tool.name, arguments)

        return Action(
            name=tool.name,
            description=tool.description,
            parameters=json_schema_to_host_schema(tool.input_schema),
            execute=execute,
        )

    async def execute_tool(self, client: McpClient, tool_name: str, params: dict[str, Any]) -> ActionResult:
        timeout = self.config.timeout
        log.debug("Calling %s with %s", tool_name, params)
        try:
            try:
                result = await asyncio.wait_for(client.call_tool(tool_name, params), timeout)
            except asyncio.TimeoutError:
                raise ToolTimeoutError(tool_name, timeout) from None

            content = self.normalize_content(result.get("content"))
            if result.get("isError"):
                raise ToolExecutionError(str(result.get("error") or content))
        except Exception as exc:  # noqa: BLE001
            log.warning("Tool %s failed: %s", tool_name, exc)
            return ActionResult.failed(str(exc))
        return ActionResult.success(content)

    @staticmethod
    def normalize_content(content: Any) -> str:
        if isinstance(content, list):
            return "".join(_render_part(part) for part in content)
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        return json.dumps(content, ensure_ascii=False)

    async def cleanup(self) -> None:
        connections = list(self.connections.values())
        for connection in connections:
            self._states[connection.server] = ServerState.CLOSING
            for tool in connection.tools:
                await self._best_effort(f"unregister {tool}", _call(self.registry.unregister_action, tool))
        for connection in connections:
            await self._best_effort(f"close client {connection.server}", connection.client.close())
        for connection in connections:
            await self._best_effort(f"close transport {connection.server}", connection.transport.close())
            self._states[connection.server] = ServerState.CLOSED

        self.connections.clear()
        self._registered.clear()
        log.info("Closed %d MCP connection(s)", len(connections))

    async def _best_effort(self, step: str, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception as exc:  # noqa: BLE001
            log.warning("%s", CleanupError(f"{step} failed: {exc}"))


def _render_part(part: Any) -> str:
    if hasattr(part, "model_dump"):
        part = part.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(part, dict) and part.get("type") == "text":
        return str(part.get("text", ""))
    return json.dumps(part, ensure_ascii=False)


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    return func(*args)
