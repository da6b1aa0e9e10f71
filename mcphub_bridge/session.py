"""
Session Manager — owns the single live connection to MCPHub.

At most one session exists per process. It is keyed by a fingerprint of
(transport mode, URL, headers); a request for a different fingerprint
replaces it, a request for the same one reuses it.

Usage:
    sessions = SessionManager()

    # Get a connected client (connects lazily, reuses when possible)
    client = await sessions.acquire(endpoint)
    result = await client.call_tool("search_tools", {"query": "git"})

    # Tear everything down
    await sessions.close()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from mcphub_bridge.client import HubClient
from mcphub_bridge.config import EndpointDescriptor
from mcphub_bridge.transport import (
    Transport,
    TransportMode,
    create_transport,
    negotiate_transport_mode,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[TransportMode, str, dict], Transport]
ClientFactory = Callable[[], HubClient]


class SessionState(str, Enum):
    EMPTY = "empty"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class SessionFingerprint:
    """Two endpoints with equal fingerprints may share a session."""
    mode: TransportMode
    url: str
    headers: str

    @classmethod
    def for_endpoint(cls, endpoint: EndpointDescriptor, hint: str | None = None) -> "SessionFingerprint":
        return cls(
            mode=negotiate_transport_mode(endpoint.url, hint),
            url=endpoint.url,
            headers=json.dumps(endpoint.headers, sort_keys=True),
        )


@dataclass
class Session:
    """
    One transport + client pair and the connect attempt that binds them.

    ``connect`` is the in-flight (or finished) connect task itself, so
    every acquirer of this session awaits the same attempt.
    """
    fingerprint: SessionFingerprint
    transport: Transport
    client: HubClient
    connect: asyncio.Task

    @property
    def state(self) -> SessionState:
        if not self.connect.done():
            return SessionState.CONNECTING
        return SessionState.CONNECTED

    async def close(self) -> None:
        """
        Close client and transport, ignoring failures.

        Never raises. Both halves are always attempted, the transport
        even when closing the client fails. A connect still in flight
        fails with TransportConnectError for whoever is awaiting it.
        """
        try:
            await self.client.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing client: {e!r}")
        try:
            await self.transport.stop()
        except Exception as e:
            logger.debug(f"Ignoring error while stopping transport: {e!r}")

        await asyncio.wait({self.connect})
        if not self.connect.cancelled():
            # Mark the outcome as retrieved; acquirers see it through shield().
            self.connect.exception()


class SessionManager:
    """
    Single-slot session cache with Empty / Connecting / Connected states.

    Responsibilities:
    - Build transport and client for an endpoint (lazily, on acquire)
    - Share one in-flight connect between concurrent acquirers
    - Replace the session when the endpoint fingerprint changes
    - Drop a session whose connect failed, so it is never handed out
    """

    def __init__(
        self,
        transport_factory: TransportFactory = create_transport,
        client_factory: ClientFactory = HubClient,
        transport_hint: str | None = None,
    ):
        self._transport_factory = transport_factory
        self._client_factory = client_factory
        self.transport_hint = transport_hint
        self._session: Session | None = None

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.EMPTY
        return self._session.state

    @property
    def fingerprint(self) -> SessionFingerprint | None:
        return self._session.fingerprint if self._session else None

    def _open(self, fingerprint: SessionFingerprint, endpoint: EndpointDescriptor) -> Session:
        transport = self._transport_factory(fingerprint.mode, endpoint.url, dict(endpoint.headers))
        client = self._client_factory()
        connect = asyncio.ensure_future(client.connect(transport))
        session = Session(fingerprint, transport, client, connect)
        self._session = session
        logger.info(f"Opening MCPHub session: {fingerprint.mode.value} {fingerprint.url}")
        return session

    def _is_reusable(self, session: Session, fingerprint: SessionFingerprint) -> bool:
        if session.fingerprint != fingerprint:
            return False
        if session.state is SessionState.CONNECTING:
            return True
        if session.connect.cancelled() or session.connect.exception() is not None:
            return False
        # Connected but the link has since died: replace it.
        return session.client.is_alive()

    async def acquire(self, endpoint: EndpointDescriptor) -> HubClient:
        """
        Return a connected client for ``endpoint``.

        Raises:
            The connect error of a failed attempt (the session is dropped first).
        """
        fingerprint = SessionFingerprint.for_endpoint(endpoint, self.transport_hint)

        while True:
            session = self._session
            if session is None:
                session = self._open(fingerprint, endpoint)
                break
            if self._is_reusable(session, fingerprint):
                break
            # Another task may install a session while we close; re-check.
            await self._close_session(session)

        try:
            await asyncio.shield(session.connect)
        except Exception:
            await self._close_session(session)
            raise

        return session.client

    async def _close_session(self, session: Session) -> None:
        if self._session is session:
            self._session = None
        logger.info(f"Closing MCPHub session: {session.fingerprint.mode.value} {session.fingerprint.url}")
        await session.close()

    async def close(self) -> None:
        """Close the live session, if any. Idempotent."""
        session = self._session
        if session is not None:
            await self._close_session(session)
