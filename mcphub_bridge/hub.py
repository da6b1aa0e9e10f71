"""
MCPHub bridge — search, describe and call tools on a remote MCPHub.

Each operation resolves the endpoint, acquires a client from the
session manager, runs the remote hub tool under the retry policy and
reduces the result to a string for the host.

Usage:
    bridge = McpHubBridge()
    bridge.configure(host_config)           # host "config" hook

    print(await bridge.search("github issues", limit=5))
    print(await bridge.describe("github_create_issue"))
    print(await bridge.call("github_create_issue", '{"title": "Bug"}'))

    await bridge.aclose()
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Mapping

from mcphub_bridge.config import EndpointDescriptor, load_endpoint, transport_hint
from mcphub_bridge.errors import ConfigurationError, RemoteToolError
from mcphub_bridge.results import CallResult, dump_raw, format_call_result
from mcphub_bridge.retry import MAX_RETRIES, with_retries
from mcphub_bridge.session import SessionManager

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = MAX_RETRIES
FALLBACK_SEARCH_LIMIT = 10
FALLBACK_MESSAGE = "Fallback schema from search_tools"

# Hub-side tool names
SEARCH_TOOLS = "search_tools"
DESCRIBE_TOOL = "describe_tool"
CALL_TOOL = "call_tool"

MUTATING_TOOL_PATTERN = re.compile(
    r"(create|delete|update|merge|rename|add|remove|complete|dispose"
    r"|run|start|logout|auth|upload|install)",
    re.IGNORECASE,
)


def is_potentially_mutating(tool_name: str) -> bool:
    """Heuristic: does the tool name look like it changes remote state?"""
    return MUTATING_TOOL_PATTERN.search(tool_name) is not None


def parse_arguments(value: str | None, label: str = "arguments") -> dict[str, Any]:
    """
    Parse a JSON object string. Empty or missing input means ``{}``.

    Raises:
        ConfigurationError: not a string, not JSON, or not a JSON object.
    """
    if value is None or value == "":
        return {}
    if not isinstance(value, str):
        raise ConfigurationError(
            f"[mcphub] {label} must be a JSON string",
            ConfigurationError.INVALID_ARGUMENTS,
        )
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"[mcphub] Invalid {label}: {e}",
            ConfigurationError.INVALID_ARGUMENTS,
        ) from e
    if not isinstance(parsed, dict):
        raise ConfigurationError(
            f"[mcphub] Invalid {label}: expected a JSON object",
            ConfigurationError.INVALID_ARGUMENTS,
        )
    return parsed


def find_tool_entry(search_text: str, tool_name: str) -> dict[str, Any] | None:
    """
    Look for an exact-name entry in a ``search_tools`` reply.

    Best effort: relies on the hub ranking the exact match within the
    fallback search page. Returns None when the text is not a JSON
    object with a ``tools`` list or no entry matches.
    """
    try:
        parsed = json.loads(search_text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    tools = parsed.get("tools")
    if not isinstance(tools, list):
        return None
    return next(
        (t for t in tools if isinstance(t, dict) and t.get("name") == tool_name),
        None,
    )


def fallback_descriptor(entry: Mapping[str, Any]) -> str:
    tool = {
        key: entry[key]
        for key in ("name", "description", "inputSchema", "serverName")
        if entry.get(key) is not None
    }
    return json.dumps({"tool": tool, "metadata": {"message": FALLBACK_MESSAGE}}, ensure_ascii=False)


class McpHubBridge:
    """
    Host-facing facade over the session manager and retry policy.

    The host configuration is handed over once through ``configure``;
    the endpoint itself is re-resolved on every call so environment
    changes take effect without a restart.
    """

    def __init__(
        self,
        sessions: SessionManager | None = None,
        environ: Mapping[str, str] | None = None,
        is_mutating: Callable[[str], bool] = is_potentially_mutating,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._environ = environ
        self._sessions = sessions or SessionManager(transport_hint=transport_hint(environ))
        self._is_mutating = is_mutating
        self._sleep = sleep
        self._host_config: Mapping[str, Any] | None = None

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def configure(self, host_config: Mapping[str, Any] | None) -> None:
        """Host ``config`` hook: remember the host configuration."""
        self._host_config = host_config

    def endpoint(self) -> EndpointDescriptor:
        """Resolve and validate the endpoint for this invocation."""
        return load_endpoint(self._host_config, self._environ)

    async def _invoke(
        self,
        endpoint: EndpointDescriptor,
        remote_tool: str,
        arguments: dict[str, Any],
        retries: int,
    ) -> CallResult:
        async def attempt() -> CallResult:
            client = await self._sessions.acquire(endpoint)
            return await client.call_tool(remote_tool, arguments)

        return await with_retries(attempt, retries, sleep=self._sleep)

    async def _fallback_search(self, endpoint: EndpointDescriptor, tool_name: str, retries: int) -> CallResult:
        return await self._invoke(
            endpoint,
            SEARCH_TOOLS,
            {"query": tool_name, "limit": FALLBACK_SEARCH_LIMIT},
            retries,
        )

    async def search(
        self,
        query: str,
        limit: int | None = None,
        retries: int | None = None,
        raw: bool = False,
    ) -> str:
        """Search the hub's tool catalogue."""
        endpoint = self.endpoint()
        arguments: dict[str, Any] = {"query": query}
        if limit:
            arguments["limit"] = limit

        result = await self._invoke(endpoint, SEARCH_TOOLS, arguments, _retries(retries))
        return dump_raw(result) if raw else format_call_result(result)

    async def describe(
        self,
        tool_name: str,
        retries: int | None = None,
        raw: bool = False,
    ) -> str:
        """
        Fetch the full schema of a hub tool.

        Degrades to a ``search_tools`` lookup when ``describe_tool`` fails
        outright or answers with ``isError``. In the latter case an exact
        name match in the search reply is turned into a minimal schema;
        without one the original error result is returned.
        """
        endpoint = self.endpoint()
        retries = _retries(retries)

        try:
            result = await self._invoke(endpoint, DESCRIBE_TOOL, {"toolName": tool_name}, retries)
        except Exception as e:
            logger.debug(f"describe_tool failed for {tool_name!r} ({e}); falling back to search_tools")
            fallback = await self._fallback_search(endpoint, tool_name, retries)
            return dump_raw(fallback) if raw else format_call_result(fallback)

        if raw:
            return dump_raw(result)

        try:
            return format_call_result(result.raise_for_error())
        except RemoteToolError:
            logger.debug(f"describe_tool returned an error for {tool_name!r}; trying search_tools")

        search_result = await self._fallback_search(endpoint, tool_name, retries)
        entry = find_tool_entry(format_call_result(search_result), tool_name)
        if entry is not None:
            return fallback_descriptor(entry)
        return format_call_result(result)

    async def call(
        self,
        tool_name: str,
        arguments: str | None = None,
        retries: int | None = None,
        allow_retry_for_mutating: bool = True,
        raw: bool = False,
    ) -> str:
        """
        Execute a hub tool.

        Args:
            tool_name: Target tool name (as returned by search).
            arguments: JSON object string; empty or None means no arguments.
            retries: Timeout retries (0..3, default 3).
            allow_retry_for_mutating: When False, tools whose names look
                mutating are attempted exactly once.
            raw: Return the whole result as JSON instead of its text.
        """
        endpoint = self.endpoint()
        parsed = parse_arguments(arguments)

        effective = _retries(retries)
        if not allow_retry_for_mutating and self._is_mutating(tool_name):
            effective = 0

        result = await self._invoke(
            endpoint,
            CALL_TOOL,
            {"toolName": tool_name, "arguments": parsed},
            effective,
        )
        return dump_raw(result) if raw else format_call_result(result)

    async def aclose(self) -> None:
        await self._sessions.close()


def _retries(value: int | None) -> int:
    return DEFAULT_RETRIES if value is None else value
