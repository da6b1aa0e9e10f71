"""
MCPHub Bridge — remote MCPHub tools as local agent tools.

Architecture:
    ┌──────────────┐   streamable HTTP   ┌──────────────┐
    │  Agent Host  │ ──────────────────  │    MCPHub    │
    │ (LangChain)  │   or SSE, JSON-RPC  │ (aggregator) │
    └──────────────┘                     └──────────────┘

The hub exposes three tools of its own: search_tools, describe_tool and
call_tool. McpHubBridge wraps them as search / describe / call, adding
session reuse, timeout retries and a describe -> search fallback.

The SessionManager keeps a single live connection, keyed by transport
mode, URL and headers, and reconnects when any of them changes.
"""

__version__ = "0.1.3"

from mcphub_bridge.config import EndpointDescriptor, load_endpoint, resolve_endpoint
from mcphub_bridge.errors import (
    BridgeError,
    ConfigurationError,
    RemoteTimeoutError,
    RemoteToolError,
    TransportConnectError,
)
from mcphub_bridge.hub import McpHubBridge, is_potentially_mutating
from mcphub_bridge.session import SessionManager
from mcphub_bridge.transport import TransportMode, negotiate_transport_mode


# LangChain wrappers are imported lazily so the core stays usable without an agent host
def mcphub_langchain_tools(*args, **kwargs):
    from mcphub_bridge.bridge import mcphub_langchain_tools as _impl
    return _impl(*args, **kwargs)


def register_mcphub_tools(*args, **kwargs):
    from mcphub_bridge.bridge import register_mcphub_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "BridgeError",
    "ConfigurationError",
    "EndpointDescriptor",
    "McpHubBridge",
    "RemoteTimeoutError",
    "RemoteToolError",
    "SessionManager",
    "TransportConnectError",
    "TransportMode",
    "is_potentially_mutating",
    "load_endpoint",
    "mcphub_langchain_tools",
    "negotiate_transport_mode",
    "register_mcphub_tools",
    "resolve_endpoint",
]
