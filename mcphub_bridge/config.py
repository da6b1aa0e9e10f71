"""
Endpoint configuration for the MCPHub connector.

The endpoint is assembled from two sources on every invocation:

  1. The host configuration (``opencode.json`` shape):

        {"mcp": {"mcphub": {"url": "https://hub/mcp",
                            "headers": {"Authorization": "Bearer ..."}}}}

  2. Environment variables, which always win over the host config:

        MCPHUB_MCP_NAME              connector name (default "mcphub")
        MCPHUB_URL                   endpoint URL
        MCPHUB_AUTH                  Authorization header value
        MCPHUB_AUTHORIZATION           (first non-empty of the three wins)
        MCPHUB_AUTHORIZATION_HEADER
        MCPHUB_TRANSPORT             "sse" | "http" | "streamablehttp" | "streamable"
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from mcphub_bridge.errors import ConfigurationError

DEFAULT_CONNECTOR_NAME = "mcphub"

ENV_CONNECTOR_NAME = "MCPHUB_MCP_NAME"
ENV_URL = "MCPHUB_URL"
ENV_AUTH_VARS = ("MCPHUB_AUTH", "MCPHUB_AUTHORIZATION", "MCPHUB_AUTHORIZATION_HEADER")
ENV_TRANSPORT = "MCPHUB_TRANSPORT"

AUTHORIZATION = "Authorization"


@dataclass(frozen=True)
class EndpointDescriptor:
    """Where the hub lives and which headers every request carries."""
    name: str
    url: str | None
    headers: dict[str, str] = field(default_factory=dict)

    def validate(self) -> "EndpointDescriptor":
        """Return self, or raise ConfigurationError naming how to fix it."""
        if not self.url:
            raise ConfigurationError(
                f"[mcphub] Missing mcphub URL. Configure it under "
                f"mcp.{self.name}.url (or set {ENV_URL}).",
                ConfigurationError.MISSING_URL,
            )

        auth = self.headers.get(AUTHORIZATION)
        if auth is None:
            raise ConfigurationError(
                f"[mcphub] Missing Authorization header. Configure "
                f"mcp.{self.name}.headers.Authorization (or set {ENV_AUTH_VARS[0]}).",
                ConfigurationError.MISSING_AUTHORIZATION,
            )

        if not isinstance(auth, str) or not auth.strip():
            raise ConfigurationError(
                f"[mcphub] Authorization header must be a non-empty string. "
                f"Fix mcp.{self.name}.headers.Authorization (or set {ENV_AUTH_VARS[0]}).",
                ConfigurationError.EMPTY_AUTHORIZATION,
            )

        return self


def resolve_endpoint(
    host_config: Mapping[str, Any] | None,
    environ: Mapping[str, str] | None = None,
) -> EndpointDescriptor:
    """
    Merge host configuration and environment into an EndpointDescriptor.

    Does not validate; call ``.validate()`` (or use ``load_endpoint``)
    before touching the network.
    """
    env = os.environ if environ is None else environ

    name = env.get(ENV_CONNECTOR_NAME) or DEFAULT_CONNECTOR_NAME

    entry: Mapping[str, Any] = {}
    if isinstance(host_config, Mapping):
        servers = host_config.get("mcp")
        if isinstance(servers, Mapping) and isinstance(servers.get(name), Mapping):
            entry = servers[name]

    url = env.get(ENV_URL) or entry.get("url")

    config_headers = entry.get("headers")
    headers = dict(config_headers) if isinstance(config_headers, Mapping) else {}

    env_auth = next((env[var] for var in ENV_AUTH_VARS if env.get(var)), None)
    if env_auth:
        headers[AUTHORIZATION] = env_auth

    return EndpointDescriptor(name=name, url=url, headers=headers)


def load_endpoint(
    host_config: Mapping[str, Any] | None,
    environ: Mapping[str, str] | None = None,
) -> EndpointDescriptor:
    """Resolve and validate in one step."""
    return resolve_endpoint(host_config, environ).validate()


def transport_hint(environ: Mapping[str, str] | None = None) -> str | None:
    env = os.environ if environ is None else environ
    return env.get(ENV_TRANSPORT) or None


def load_host_config(path: str | Path) -> dict[str, Any]:
    """Read a host configuration JSON file (e.g. opencode.json)."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"[mcphub] Host config not found: {path}",
            ConfigurationError.INVALID_HOST_CONFIG,
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"[mcphub] Host config is not valid JSON ({path}): {e}",
            ConfigurationError.INVALID_HOST_CONFIG,
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"[mcphub] Host config must be a JSON object: {path}",
            ConfigurationError.INVALID_HOST_CONFIG,
        )
    return data
