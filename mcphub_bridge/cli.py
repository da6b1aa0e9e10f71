"""
mcphub-bridge — run one hub operation from the shell.

Usage:
    # Search the hub catalogue
    mcphub-bridge --config opencode.json search "github issues" --limit 5

    # Describe a tool
    mcphub-bridge describe github_create_issue

    # Call a tool (arguments are a JSON object string)
    mcphub-bridge call github_create_issue --arguments '{"title": "Bug"}' --no-mutating-retry

    # Endpoint and auth can come from the environment instead of a config file
    MCPHUB_URL=https://hub/mcp MCPHUB_AUTH="Bearer ..." mcphub-bridge search git
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mcphub_bridge.config import load_host_config
from mcphub_bridge.errors import BridgeError
from mcphub_bridge.hub import McpHubBridge


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcphub-bridge",
        description="Search, describe and call tools on an MCPHub endpoint.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mcphub-bridge --config opencode.json search "github"
  mcphub-bridge describe github_create_issue --raw
  mcphub-bridge call echo --arguments '{"message": "hi"}'
        """,
    )
    parser.add_argument("--config", "-c", type=str, default=None, help="Host config JSON (opencode.json shape)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    retries = argparse.ArgumentParser(add_help=False)
    retries.add_argument("--retries", type=int, choices=range(0, 4), default=None, help="Retry count on timeout")
    retries.add_argument("--raw", action="store_true", help="Return raw MCP result")

    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", parents=[retries], help="Search hub tools")
    search.add_argument("query", type=str)
    search.add_argument("--limit", type=int, default=None, help="Max results (1-200)")

    describe = sub.add_parser("describe", parents=[retries], help="Show a tool's schema")
    describe.add_argument("tool_name", type=str)

    call = sub.add_parser("call", parents=[retries], help="Execute a hub tool")
    call.add_argument("tool_name", type=str)
    call.add_argument("--arguments", "-a", type=str, default=None, help="JSON object of tool arguments")
    call.add_argument(
        "--no-mutating-retry",
        dest="allow_retry_for_mutating",
        action="store_false",
        help="Never retry tools whose names look state-changing",
    )

    return parser


async def run(args: argparse.Namespace) -> str:
    bridge = McpHubBridge()
    bridge.configure(load_host_config(args.config) if args.config else None)

    try:
        if args.command == "search":
            return await bridge.search(args.query, limit=args.limit, retries=args.retries, raw=args.raw)
        if args.command == "describe":
            return await bridge.describe(args.tool_name, retries=args.retries, raw=args.raw)
        return await bridge.call(
            args.tool_name,
            args.arguments,
            retries=args.retries,
            allow_retry_for_mutating=args.allow_retry_for_mutating,
            raw=args.raw,
        )
    finally:
        await bridge.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        output = asyncio.run(run(args))
    except BridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
