"""
Bridge between MCPHub and LangChain/agent hosts.

This module exposes the three hub operations as LangChain tools that
can be handed to an agent or registered in a host ToolRegistry.

Usage:
    from mcphub_bridge.bridge import McpHubPlugin, register_mcphub_tools

    plugin = McpHubPlugin()
    await plugin.config(host_config)
    agent_tools = list(plugin.tools.values())

    # Or register them with an agent factory
    register_mcphub_tools(plugin.bridge, tool_registry)
"""

from __future__ import annotations

from typing import Any, Mapping

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from mcphub_bridge.hub import McpHubBridge

SEARCH_TOOL_NAME = "mcphub_search_tools"
DESCRIBE_TOOL_NAME = "mcphub_describe_tool"
CALL_TOOL_NAME = "mcphub_call_tool"


class SearchToolsArgs(BaseModel):
    query: str = Field(min_length=1, description="Search query")
    limit: int | None = Field(default=None, ge=1, le=200, description="Max results")
    retries: int | None = Field(default=None, ge=0, le=3, description="Retry count on timeout")
    raw: bool | None = Field(default=None, description="Return raw MCP result")


class DescribeToolArgs(BaseModel):
    tool_name: str = Field(min_length=1, description="Tool name from search_tools")
    retries: int | None = Field(default=None, ge=0, le=3, description="Retry count on timeout")
    raw: bool | None = Field(default=None, description="Return raw MCP result")


class CallToolArgs(BaseModel):
    tool_name: str = Field(min_length=1, description="Target tool name")
    arguments: str | None = Field(default=None, description="JSON string of tool arguments")
    retries: int | None = Field(default=None, ge=0, le=3, description="Retry count on timeout")
    allow_retry_for_mutating: bool | None = Field(
        default=None, description="Allow retry for mutating tool names"
    )
    raw: bool | None = Field(default=None, description="Return raw MCP result")


def mcphub_langchain_tools(bridge: McpHubBridge) -> list[StructuredTool]:
    """
    Create the LangChain StructuredTools that proxy to the hub.

    Errors are not caught here: configuration and connection failures
    propagate to the host, which decides how to present them.
    """

    async def _search(
        query: str,
        limit: int | None = None,
        retries: int | None = None,
        raw: bool | None = None,
    ) -> str:
        return await bridge.search(query, limit=limit, retries=retries, raw=bool(raw))

    async def _describe(
        tool_name: str,
        retries: int | None = None,
        raw: bool | None = None,
    ) -> str:
        return await bridge.describe(tool_name, retries=retries, raw=bool(raw))

    async def _call(
        tool_name: str,
        arguments: str | None = None,
        retries: int | None = None,
        allow_retry_for_mutating: bool | None = None,
        raw: bool | None = None,
    ) -> str:
        return await bridge.call(
            tool_name,
            arguments,
            retries=retries,
            allow_retry_for_mutating=True if allow_retry_for_mutating is None else allow_retry_for_mutating,
            raw=bool(raw),
        )

    return [
        StructuredTool.from_function(
            coroutine=_search,
            name=SEARCH_TOOL_NAME,
            description="Search the MCPHub aggregation layer for available tools (remote search_tools).",
            args_schema=SearchToolsArgs,
        ),
        StructuredTool.from_function(
            coroutine=_describe,
            name=DESCRIBE_TOOL_NAME,
            description="Get the full schema of an MCPHub tool (remote describe_tool).",
            args_schema=DescribeToolArgs,
        ),
        StructuredTool.from_function(
            coroutine=_call,
            name=CALL_TOOL_NAME,
            description="Execute a tool through the MCPHub aggregation layer (remote call_tool).",
            args_schema=CallToolArgs,
        ),
    ]


def register_mcphub_tools(
    bridge: McpHubBridge,
    tool_registry: Any,  # host ToolRegistry with register_langchain_tool()
    domain_tags: dict[str, list[str]] | None = None,
    prompt_instructions: dict[str, str] | None = None,
) -> list[str]:
    """
    Register the hub tools in an agent ToolRegistry.

    Args:
        bridge: The McpHubBridge the tools will call through
        tool_registry: Any registry with ``register_langchain_tool``
        domain_tags: Optional {tool_name: [tags]} for categorization
        prompt_instructions: Optional {tool_name: instructions} for
                             system prompt injection

    Returns:
        List of registered tool IDs.
    """
    domain_tags = domain_tags or {}
    prompt_instructions = prompt_instructions or {}
    registered = []

    for lc_tool in mcphub_langchain_tools(bridge):
        instructions = prompt_instructions.get(lc_tool.name) or _auto_prompt_instructions(lc_tool)
        tool_registry.register_langchain_tool(
            tool_id=lc_tool.name,
            tool=lc_tool,
            prompt_instructions=instructions,
            domain_tags=domain_tags.get(lc_tool.name, []),
        )
        registered.append(lc_tool.name)

    return registered


def _auto_prompt_instructions(lc_tool: StructuredTool) -> str:
    """Generate prompt instructions from a tool's argument schema."""
    schema = lc_tool.args_schema.model_json_schema()
    required = set(schema.get("required", []))

    lines = [f"## Tool: {lc_tool.name}", lc_tool.description, ""]
    params = schema.get("properties", {})
    if params:
        lines.append("Parameters:")
        for pname, pinfo in params.items():
            ptype = pinfo.get("type") or "/".join(
                option.get("type", "any") for option in pinfo.get("anyOf", [])
            ) or "any"
            optional = "" if pname in required else ", optional"
            lines.append(f"  - {pname} ({ptype}{optional}): {pinfo.get('description', '')}")

    return "\n".join(lines)


class McpHubPlugin:
    """
    Host plugin: a ``config`` hook plus the three tools.

    The host calls ``config`` once at initialization with its
    configuration object; the tools read it on every invocation.
    """

    def __init__(self, bridge: McpHubBridge | None = None):
        self.bridge = bridge or McpHubBridge()
        self.tools: dict[str, StructuredTool] = {
            t.name: t for t in mcphub_langchain_tools(self.bridge)
        }

    async def config(self, host_config: Mapping[str, Any] | None) -> None:
        self.bridge.configure(host_config)

    async def aclose(self) -> None:
        await self.bridge.aclose()
