"""
Error types raised by the MCPHub bridge.

    BridgeError
    ├── ConfigurationError      bad endpoint config or tool arguments (no I/O happened)
    ├── TransportConnectError   session could not be established or used
    │   └── RemoteTimeoutError  protocol-level timeout, the only retryable error
    └── RemoteToolError         the remote call returned with its error flag set
"""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for every error the bridge raises on purpose."""


class ConfigurationError(BridgeError):
    """
    Endpoint configuration or call arguments are invalid.

    Raised before any network attempt. ``reason`` is one of the
    class-level constants below, so callers can tell the failures
    apart without parsing the message.
    """

    MISSING_URL = "missing_url"
    MISSING_AUTHORIZATION = "missing_authorization"
    EMPTY_AUTHORIZATION = "empty_authorization"
    INVALID_ARGUMENTS = "invalid_arguments"
    INVALID_HOST_CONFIG = "invalid_host_config"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class TransportConnectError(BridgeError):
    """Failure to establish or keep the session with the hub."""


class RemoteTimeoutError(TransportConnectError, TimeoutError):
    """The hub (or the protocol layer) reported a request timeout."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class RemoteToolError(BridgeError):
    """The call reached the hub, but the result carries ``isError``."""

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result
