"""Shared fakes for bridge tests: a scripted hub, fake transports and clients."""

import asyncio
from typing import Any

import pytest

from mcphub_bridge.errors import TransportConnectError
from mcphub_bridge.hub import McpHubBridge
from mcphub_bridge.results import CallResult
from mcphub_bridge.session import SessionManager

HUB_URL = "https://hub.example.com/mcp"
HUB_AUTH = "Bearer secret-token"


def text_result(text: str, is_error: bool = False) -> CallResult:
    return CallResult.from_dict({
        "content": [{"type": "text", "text": text}],
        "isError": is_error,
    })


class FakeTransport:
    def __init__(self, mode, url, headers):
        self.mode = mode
        self.url = url
        self.headers = headers
        self.started = False
        self.stopped = False
        self.stop_error: Exception | None = None

    async def start(self):
        self.started = True
        return "read-stream", "write-stream"

    async def stop(self):
        self.stopped = True
        if self.stop_error:
            raise self.stop_error

    def is_alive(self):
        return self.started and not self.stopped


class FakeClient:
    def __init__(self, hub: "FakeHub", connect_error: Exception | None = None):
        self.hub = hub
        self.connect_error = connect_error
        self.connect_count = 0
        self.closed = False
        self.close_error: Exception | None = None
        self.dead = False

    async def connect(self, transport):
        self.connect_count += 1
        # Yield once so concurrent acquirers can observe the in-flight connect.
        await asyncio.sleep(0)
        if self.closed:
            raise TransportConnectError("[mcphub] Client closed while connecting")
        if self.connect_error:
            raise self.connect_error
        await transport.start()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallResult:
        if self.closed:
            raise TransportConnectError("[mcphub] Client is closed")
        return self.hub.handle(name, arguments)

    async def close(self):
        self.closed = True
        if self.close_error:
            raise self.close_error

    def is_alive(self):
        return not self.closed and not self.dead


class FakeHub:
    """
    Scripted stand-in for MCPHub.

    ``respond(tool, *outcomes)`` queues results or exceptions for a hub
    tool; the last outcome repeats once the queue is drained.
    """

    def __init__(self):
        self.responses: dict[str, list] = {}
        self.calls: list[tuple[str, dict]] = []
        self.transports: list[FakeTransport] = []
        self.clients: list[FakeClient] = []
        self.connect_errors: list[Exception] = []

    def respond(self, tool: str, *outcomes) -> None:
        self.responses[tool] = list(outcomes)

    def handle(self, name: str, arguments: dict[str, Any]) -> CallResult:
        self.calls.append((name, arguments))
        queue = self.responses.get(name)
        if not queue:
            raise AssertionError(f"unexpected hub call: {name}")
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_to(self, name: str) -> list[dict]:
        return [args for tool, args in self.calls if tool == name]

    def transport_factory(self, mode, url, headers):
        transport = FakeTransport(mode, url, headers)
        self.transports.append(transport)
        return transport

    def client_factory(self):
        error = self.connect_errors.pop(0) if self.connect_errors else None
        client = FakeClient(self, connect_error=error)
        self.clients.append(client)
        return client


@pytest.fixture
def hub():
    return FakeHub()


@pytest.fixture
def env():
    return {"MCPHUB_URL": HUB_URL, "MCPHUB_AUTH": HUB_AUTH}


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def sessions(hub):
    return SessionManager(hub.transport_factory, hub.client_factory)


@pytest.fixture
def bridge(sessions, env, fake_sleep):
    return McpHubBridge(sessions=sessions, environ=env, sleep=fake_sleep)
