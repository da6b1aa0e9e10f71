"""Tests for the single-slot session manager."""

import asyncio

import pytest

from mcphub_bridge.config import EndpointDescriptor
from mcphub_bridge.errors import TransportConnectError
from mcphub_bridge.session import SessionFingerprint, SessionManager, SessionState
from mcphub_bridge.transport import TransportMode


def endpoint(url="https://hub.example.com/mcp", auth="Bearer a", **extra):
    return EndpointDescriptor("mcphub", url, {"Authorization": auth, **extra})


class TestSessionFingerprint:
    """Tests for fingerprint derivation."""

    def test_equal_for_same_endpoint(self):
        assert SessionFingerprint.for_endpoint(endpoint()) == SessionFingerprint.for_endpoint(endpoint())

    def test_header_order_does_not_matter(self):
        a = EndpointDescriptor("mcphub", "https://h/mcp", {"Authorization": "t", "X-A": "1"})
        b = EndpointDescriptor("mcphub", "https://h/mcp", {"X-A": "1", "Authorization": "t"})
        assert SessionFingerprint.for_endpoint(a) == SessionFingerprint.for_endpoint(b)

    def test_mode_follows_hint(self):
        fingerprint = SessionFingerprint.for_endpoint(endpoint(), hint="sse")
        assert fingerprint.mode is TransportMode.SSE


class TestAcquire:
    """Tests for reuse, replacement and failure handling."""

    @pytest.mark.asyncio
    async def test_starts_empty(self, sessions):
        assert sessions.state is SessionState.EMPTY
        assert sessions.fingerprint is None

    @pytest.mark.asyncio
    async def test_connects_lazily(self, hub, sessions):
        client = await sessions.acquire(endpoint())

        assert client is hub.clients[0]
        assert client.connect_count == 1
        assert hub.transports[0].started
        assert hub.transports[0].headers == {"Authorization": "Bearer a"}
        assert hub.transports[0].mode is TransportMode.STREAMABLE_HTTP
        assert sessions.state is SessionState.CONNECTED

    @pytest.mark.asyncio
    async def test_reuses_matching_session(self, hub, sessions):
        first = await sessions.acquire(endpoint())
        second = await sessions.acquire(endpoint())

        assert first is second
        assert len(hub.clients) == 1
        assert first.connect_count == 1

    @pytest.mark.parametrize("changed", [
        {"url": "https://hub.example.com/sse"},
        {"url": "https://other.example.com/mcp"},
        {"auth": "Bearer b"},
        {"X_Team": "core"},
    ])
    @pytest.mark.asyncio
    async def test_any_change_replaces_session(self, hub, sessions, changed):
        old = await sessions.acquire(endpoint())
        new = await sessions.acquire(endpoint(**changed))

        assert new is not old
        assert old.closed
        assert hub.transports[0].stopped
        assert not new.closed
        assert len(hub.clients) == 2

    @pytest.mark.asyncio
    async def test_transport_hint_changes_fingerprint(self, hub):
        sessions = SessionManager(hub.transport_factory, hub.client_factory)
        old = await sessions.acquire(endpoint())

        sessions.transport_hint = "sse"
        new = await sessions.acquire(endpoint())

        assert new is not old
        assert hub.transports[1].mode is TransportMode.SSE

    @pytest.mark.asyncio
    async def test_concurrent_acquirers_share_one_connect(self, hub, sessions):
        results = await asyncio.gather(*(sessions.acquire(endpoint()) for _ in range(5)))

        assert all(client is results[0] for client in results)
        assert len(hub.clients) == 1
        assert results[0].connect_count == 1

    @pytest.mark.asyncio
    async def test_state_is_connecting_while_in_flight(self, sessions):
        task = asyncio.ensure_future(sessions.acquire(endpoint()))
        await asyncio.sleep(0)

        assert sessions.state is SessionState.CONNECTING
        await task
        assert sessions.state is SessionState.CONNECTED

    @pytest.mark.asyncio
    async def test_failed_connect_empties_slot(self, hub, sessions):
        hub.connect_errors.append(TransportConnectError("connection refused"))

        with pytest.raises(TransportConnectError, match="connection refused"):
            await sessions.acquire(endpoint())

        assert sessions.state is SessionState.EMPTY
        assert hub.clients[0].closed
        assert hub.transports[0].stopped

    @pytest.mark.asyncio
    async def test_next_acquire_after_failure_reconnects(self, hub, sessions):
        hub.connect_errors.append(TransportConnectError("connection refused"))
        with pytest.raises(TransportConnectError):
            await sessions.acquire(endpoint())

        client = await sessions.acquire(endpoint())

        assert client is hub.clients[1]
        assert not client.closed

    @pytest.mark.asyncio
    async def test_concurrent_acquirers_all_see_connect_failure(self, hub, sessions):
        hub.connect_errors.append(TransportConnectError("boom"))

        results = await asyncio.gather(
            *(sessions.acquire(endpoint()) for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(r, TransportConnectError) for r in results)
        assert len(hub.clients) == 1
        assert sessions.state is SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_dead_client_is_replaced(self, hub, sessions):
        old = await sessions.acquire(endpoint())
        old.dead = True

        new = await sessions.acquire(endpoint())

        assert new is not old
        assert old.closed

    @pytest.mark.asyncio
    async def test_replacing_different_endpoints_concurrently_keeps_one_session(self, hub, sessions):
        await asyncio.gather(
            sessions.acquire(endpoint(auth="Bearer a")),
            sessions.acquire(endpoint(auth="Bearer b")),
            return_exceptions=True,
        )

        live = [c for c in hub.clients if not c.closed]
        assert len(live) <= 1


class TestClose:
    """Tests for best-effort session teardown."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, hub, sessions):
        await sessions.close()
        await sessions.acquire(endpoint())
        await sessions.close()
        await sessions.close()

        assert sessions.state is SessionState.EMPTY
        assert hub.clients[0].closed
        assert hub.transports[0].stopped

    @pytest.mark.asyncio
    async def test_close_errors_are_swallowed(self, hub, sessions):
        client = await sessions.acquire(endpoint())
        client.close_error = RuntimeError("client close failed")
        hub.transports[0].stop_error = RuntimeError("transport close failed")

        await sessions.close()

        assert sessions.state is SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_transport_stopped_even_if_client_close_fails(self, hub, sessions):
        client = await sessions.acquire(endpoint())
        client.close_error = RuntimeError("client close failed")

        await sessions.acquire(endpoint(auth="Bearer b"))

        assert hub.transports[0].stopped
        assert sessions.state is SessionState.CONNECTED

    @pytest.mark.asyncio
    async def test_stale_client_fails_naturally(self, hub, sessions):
        stale = await sessions.acquire(endpoint())
        await sessions.acquire(endpoint(auth="Bearer b"))

        with pytest.raises(TransportConnectError):
            await stale.call_tool("search_tools", {"query": "x"})
