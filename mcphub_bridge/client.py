"""
JSON-RPC client for an MCPHub endpoint, built on the MCP SDK's ClientSession.

A HubClient is connected over a started Transport and then serves any
number of concurrent ``call_tool`` requests until it is closed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from mcp.shared.exceptions import McpError

from mcphub_bridge import __version__
from mcphub_bridge.errors import RemoteTimeoutError, TransportConnectError
from mcphub_bridge.results import CallResult
from mcphub_bridge.transport import ContextHolder, Transport

logger = logging.getLogger(__name__)

CLIENT_NAME = "mcphub-bridge"

# -32001 is the MCP request-timeout code; 408 is what the Python SDK
# uses when its own read timeout fires.
TIMEOUT_ERROR_CODES = frozenset({-32001, 408})


def _unwrap(error: BaseException) -> BaseException:
    """Dig the single root error out of (nested) task-group exception groups."""
    while True:
        inner = getattr(error, "exceptions", None)
        if not inner or len(inner) != 1:
            return error
        error = inner[0]


def describe_error(error: BaseException) -> str:
    error = _unwrap(error)
    if isinstance(error, McpError):
        return f"MCP error {error.error.code}: {error.error.message}"
    return str(error) or type(error).__name__


def translate_mcp_error(error: McpError) -> TransportConnectError:
    code = error.error.code
    message = describe_error(error)
    if code in TIMEOUT_ERROR_CODES:
        return RemoteTimeoutError(message, code=code)
    return TransportConnectError(message)


class HubClient:
    """
    Client handle for one hub connection.

    Usage:
        client = HubClient()
        await client.connect(transport)
        result = await client.call_tool("search_tools", {"query": "git"})
        await client.close()
    """

    def __init__(self, name: str = CLIENT_NAME, version: str = __version__):
        self.name = name
        self.version = version
        self._transport: Transport | None = None
        self._holder: ContextHolder | None = None
        self._session: Any = None
        self._closed = False

    @asynccontextmanager
    async def _open_session(self, read: Any, write: Any) -> AsyncIterator[Any]:
        from mcp import ClientSession
        from mcp.types import Implementation

        info = Implementation(name=self.name, version=self.version)
        async with ClientSession(read, write, client_info=info) as session:
            await session.initialize()
            yield session

    async def connect(self, transport: Transport) -> None:
        """
        Start ``transport`` and run the MCP handshake over it.

        Raises:
            RemoteTimeoutError: the handshake timed out.
            TransportConnectError: anything else went wrong.
        """
        if self._closed:
            raise TransportConnectError("[mcphub] Client was closed before connecting")
        if self._holder is not None:
            raise RuntimeError("HubClient.connect() may only be called once")

        self._transport = transport
        try:
            read, write = await transport.start()
            if self._closed:
                raise ConnectionAbortedError("client closed while connecting")
            self._holder = ContextHolder(
                lambda: self._open_session(read, write),
                name=f"{self.name}-session",
            )
            self._session = await self._holder.enter()
        except McpError as e:
            raise translate_mcp_error(e) from e
        except Exception as e:
            root = _unwrap(e)
            if isinstance(root, McpError):
                raise translate_mcp_error(root) from e
            raise TransportConnectError(
                f"[mcphub] Failed to connect to {transport.url}: {describe_error(e)}"
            ) from e

        logger.info(f"Connected to MCPHub at {transport.url} ({transport.mode.value})")

    def is_alive(self) -> bool:
        return (
            not self._closed
            and self._holder is not None
            and self._holder.is_alive()
            and (self._transport is None or self._transport.is_alive())
        )

    def _require_session(self) -> Any:
        if self._closed:
            raise TransportConnectError("[mcphub] Client is closed")
        if self._session is None:
            raise TransportConnectError("[mcphub] Client is not connected")
        if not self.is_alive():
            cause = self._holder.error if self._holder else None
            detail = f": {describe_error(cause)}" if cause else ""
            raise TransportConnectError(f"[mcphub] Connection to hub was lost{detail}")
        return self._session

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallResult:
        """Invoke a hub tool via ``tools/call``."""
        session = self._require_session()
        try:
            result = await session.call_tool(name, arguments)
        except McpError as e:
            raise translate_mcp_error(e) from e
        return CallResult.from_mcp(result)

    async def close(self) -> None:
        """Close the MCP session. Does not stop the transport."""
        self._closed = True
        self._session = None
        holder, self._holder = self._holder, None
        if holder is not None:
            await holder.release()
