"""Tool-server transports and the MCP client session wrapper.

The ``mcp`` SDK exposes its transports and ``ClientSession`` as anyio async
context managers, which must be exited from the task that entered them.  The
manager opens and closes connections from different tasks (connect fans out
under ``asyncio.gather``; cleanup runs later), so every context is parked in a
:class:`HeldContext` task that enters it, waits for a release signal and exits
it again.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation

from .errors import ServerConnectionError, ToolListError

log = logging.getLogger(__name__)

T = TypeVar("T")

CLIENT_VERSION = "1.0.0"


class HeldContext(Generic[T]):
    def __init__(self, factory: Callable[[], AbstractAsyncContextManager[T]], name: str = "context") -> None:
        self._factory = factory
        self.name = name
        self._task: asyncio.Task[None] | None = None
        self._release = asyncio.Event()
        self._entered: asyncio.Future[T] | None = None

    @property
    def is_open(self) -> bool:
        return self._task is not None and not self._task.done()

    async def enter(self) -> T:
        if self._task is not None:
            raise RuntimeError(f"{self.name} already entered")
        self._entered = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._hold(), name=f"hold:{self.name}")
        try:
            return await asyncio.shield(self._entered)
        except asyncio.CancelledError:
            self._task.cancel()
            raise

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        self._release.set()
        if task.done() and task.cancelled():
            return
        await task

    async def _hold(self) -> None:
        entered = self._entered
        assert entered is not None
        try:
            async with self._factory() as value:
                entered.set_result(value)
                await self._release.wait()
        except asyncio.CancelledError:
            if not entered.done():
                entered.cancel()
            raise
        except BaseException as exc:
            if not entered.done():
                entered.set_exception(exc)
                return
            raise


class Transport(ABC):
    kind: str = ""

    def __init__(self) -> None:
        self._held: HeldContext[Any] | None = None

    @property
    def is_open(self) -> bool:
        return self._held is not None and self._held.is_open

    @abstractmethod
    def _context(self) -> AbstractAsyncContextManager[Any]:
        raise NotImplementedError

    @abstractmethod
    def describe(self) -> str:
        raise NotImplementedError

    async def open(self) -> tuple[Any, Any]:
        held: HeldContext[Any] = HeldContext(self._context, name=f"{self.kind}:{self.describe()}")
        streams = await held.enter()
        self._held = held
        return streams[0], streams[1]

    async def close(self) -> None:
        held, self._held = self._held, None
        if held is not None:
            await held.close()


class StdioTransport(Transport):
    kind = "stdio"

    def __init__(self, command: str, args: list[str] | None = None, env: dict[str, str] | None = None) -> None:
        super().__init__()
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})

    def _context(self) -> AbstractAsyncContextManager[Any]:
        params = StdioServerParameters(command=self.command, args=self.args, env=self.env or None)
        return stdio_client(params)

    def describe(self) -> str:
        return " ".join([self.command, *self.args])


class SseTransport(Transport):
    kind = "sse"

    def __init__(self, url: str) -> None:
        super().__init__()
        self.url = url

    def _context(self) -> AbstractAsyncContextManager[Any]:
        return sse_client(self.url)

    def describe(self) -> str:
        return self.url


class StreamableHttpTransport(Transport):
    kind = "streamable-http"

    def __init__(self, url: str) -> None:
        super().__init__()
        self.url = url

    def _context(self) -> AbstractAsyncContextManager[Any]:
        # Yields (read, write, get_session_id); Transport.open keeps the streams.
        return streamablehttp_client(self.url)

    def describe(self) -> str:
        return self.url


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)
    server: str = ""


class McpClient:
    def __init__(self, name: str, *, version: str = CLIENT_VERSION) -> None:
        self.name = name
        self.version = version
        self._session: ClientSession | None = None
        self._held: HeldContext[ClientSession] | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self, transport: Transport) -> None:
        try:
            read, write = await transport.open()
            held: HeldContext[ClientSession] = HeldContext(
                lambda: ClientSession(read, write, client_info=Implementation(name=self.name, version=self.version)),
                name=f"session:{self.name}",
            )
            session = await held.enter()
        except Exception as exc:
            raise ServerConnectionError(f"Cannot open {transport.kind} transport for {self.name}: {exc}") from exc
        try:
            await session.initialize()
        except Exception as exc:
            await self._discard(held)
            raise ServerConnectionError(f"Handshake with {self.name} failed: {exc}") from exc
        self._session, self._held = session, held

    async def list_tools(self) -> list[ToolDescriptor]:
        session = self._require_session()
        try:
            result = await session.list_tools()
        except Exception as exc:
            raise ToolListError(f"Cannot list tools of {self.name}: {exc}") from exc
        return [
            ToolDescriptor(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
                server=self.name,
            )
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        session = self._require_session()
        result = await session.call_tool(name, arguments)
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def close(self) -> None:
        held, self._held = self._held, None
        self._session = None
        if held is not None:
            await held.close()

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise ServerConnectionError(f"Client {self.name} is not connected")
        return self._session

    async def _discard(self, held: HeldContext[Any]) -> None:
        try:
            await held.close()
        except Exception as exc:  # noqa: BLE001
            log.debug("Closing half-open session %s failed: %s", self.name, exc)
