"""
Transport layer for talking to an MCPHub endpoint.

Currently implements:
  - StreamableHttpTransport: MCP streamable HTTP (request/response streaming)
  - SseTransport: MCP over server-sent events

Both carry the same JSON-RPC protocol; which one is used is decided by
``negotiate_transport_mode`` from an explicit hint or the URL shape.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Any, Callable, Generic, Mapping, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SSE_HINTS = {"sse"}
_HTTP_HINTS = {"http", "streamablehttp", "streamable"}


class TransportMode(str, Enum):
    SSE = "sse"
    STREAMABLE_HTTP = "http"


def negotiate_transport_mode(url: str, hint: str | None = None) -> TransportMode:
    """
    Pick the wire transport for ``url``.

    An explicit hint wins. Without one (or with an unknown one), a URL whose
    path ends in ``/sse`` or contains ``/sse?`` selects SSE; everything else
    uses streamable HTTP.
    """
    normalized = (hint or "").strip().lower()
    if normalized in _SSE_HINTS:
        return TransportMode.SSE
    if normalized in _HTTP_HINTS:
        return TransportMode.STREAMABLE_HTTP

    url = str(url)
    if url.endswith("/sse") or "/sse?" in url:
        return TransportMode.SSE
    return TransportMode.STREAMABLE_HTTP


class ContextHolder(Generic[T]):
    """
    Keeps an async context manager open inside its own task.

    The MCP SDK contexts run anyio task groups, which must be exited by
    the task that entered them. The holder task enters the context,
    hands the value back through ``enter()``, and parks until ``release()``
    so the exit happens in the same task no matter who asks for it.
    """

    def __init__(self, factory: Callable[[], AbstractAsyncContextManager[T]], name: str):
        self._factory = factory
        self._name = name
        self._task: asyncio.Task | None = None
        self._entered: asyncio.Future | None = None
        self._release = asyncio.Event()
        self.error: BaseException | None = None

    async def enter(self) -> T:
        if self._task is not None:
            raise RuntimeError(f"{self._name} already entered")
        self._entered = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._hold(), name=self._name)
        return await asyncio.shield(self._entered)

    async def _hold(self) -> None:
        try:
            async with self._factory() as value:
                self._entered.set_result(value)
                await self._release.wait()
        except asyncio.CancelledError:
            if not self._entered.done():
                self._entered.set_exception(self._aborted())
            raise
        except Exception as e:
            self.error = e
            if not self._entered.done():
                self._entered.set_exception(e)
            else:
                logger.debug(f"{self._name} ended with error: {e!r}")

    def is_alive(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._entered is not None
            and self._entered.done()
            and not self._entered.cancelled()
            and self._entered.exception() is None
        )

    async def release(self) -> None:
        """Exit the held context and wait for the holder task to finish."""
        if self._task is None:
            return
        self._release.set()
        if not self._entered.done():
            self._task.cancel()
        await asyncio.wait({self._task})
        if not self._entered.done():
            # Cancelled before _hold() ever ran.
            self._entered.set_exception(self._aborted())

    def _aborted(self) -> ConnectionAbortedError:
        return ConnectionAbortedError(f"{self._name} closed while connecting")


class Transport(ABC):
    """Abstract transport to an MCPHub endpoint."""

    mode: TransportMode

    def __init__(self, url: str, headers: Mapping[str, str] | None = None):
        """
        Args:
            url: Endpoint URL.
            headers: Sent on every request (carries Authorization).
        """
        self.url = url
        self.headers = dict(headers or {})
        self._holder: ContextHolder | None = None

    @abstractmethod
    def _open_streams(self) -> AbstractAsyncContextManager[Any]:
        """Return the SDK context manager that yields the (read, write, ...) streams."""
        ...

    async def start(self) -> tuple[Any, Any]:
        """Open the connection and return the (read, write) stream pair."""
        if self._holder is not None:
            raise RuntimeError("Transport already started")

        logger.info(f"Starting {self.mode.value} transport: {self.url}")
        self._holder = ContextHolder(self._open_streams, name=f"mcphub-{self.mode.value}-transport")
        streams = await self._holder.enter()
        return streams[0], streams[1]

    async def stop(self) -> None:
        """Close the connection. Safe to call more than once."""
        holder, self._holder = self._holder, None
        if holder is not None:
            await holder.release()
            logger.info(f"{self.mode.value} transport stopped: {self.url}")

    def is_alive(self) -> bool:
        return self._holder is not None and self._holder.is_alive()


class StreamableHttpTransport(Transport):
    """MCP streamable HTTP transport (the default)."""

    mode = TransportMode.STREAMABLE_HTTP

    def _open_streams(self) -> AbstractAsyncContextManager[Any]:
        from mcp.client.streamable_http import streamablehttp_client

        return streamablehttp_client(self.url, headers=self.headers)


class SseTransport(Transport):
    """MCP over server-sent events."""

    mode = TransportMode.SSE

    def _open_streams(self) -> AbstractAsyncContextManager[Any]:
        from mcp.client.sse import sse_client

        return sse_client(self.url, headers=self.headers)


_TRANSPORTS: dict[TransportMode, type[Transport]] = {
    TransportMode.SSE: SseTransport,
    TransportMode.STREAMABLE_HTTP: StreamableHttpTransport,
}


def create_transport(
    mode: TransportMode,
    url: str,
    headers: Mapping[str, str] | None = None,
) -> Transport:
    """Build (but do not start) the transport for ``mode``."""
    return _TRANSPORTS[mode](url, headers)
