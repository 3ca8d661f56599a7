"""
peerlink CLI — launch peers, inspect their tools, call one.

It:
1. Loads configuration (peerlink.toml, $PEERLINK_CONFIG or --config)
2. Launches the configured peers (or the built-in reference peers)
3. Lists tools, calls a tool, or reports health
4. Shuts every peer down

Usage:
    # List tools from the built-in echo and calculator peers
    peerlink --list

    # Call a tool
    peerlink --call add --args '{"a": 5, "b": 3}'

    # Only start some peers, and check they answer pings
    peerlink --peers calculator --health

    # Use a config file
    peerlink --config ./peerlink.toml --list
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys

from peerlink.prompts import tool_instructions
from peerlink.config import PeerConfig, PeerlinkConfig, load_config
from peerlink.errors import ConfigError, PeerlinkError
from peerlink.hub import ToolHub

logger = logging.getLogger(__name__)


# ============================================================
# BUILT-IN PEERS
# ============================================================
# Used when the configuration declares no peers.

DEFAULT_PEERS = [
    PeerConfig(name="echo", command=sys.executable, args=["-m", "peerlink.servers.echo"]),
    PeerConfig(name="calculator", command=sys.executable, args=["-m", "peerlink.servers.calculator"]),
]


def start_peers(hub: ToolHub, config: PeerlinkConfig, names: list[str] | None = None) -> list[str]:
    """Launch the selected peers. Returns the names that started."""
    available = config.peers or DEFAULT_PEERS
    selected = [p for p in available if names is None or p.name in names]
    for unknown in set(names or []) - {p.name for p in available}:
        logger.warning(f"Unknown peer: {unknown}")

    started = []
    for peer in selected:
        try:
            handle = hub.add_peer(peer)
            logger.info(f"  [{peer.name}] started — tools: {[t.name for t in handle.tools]}")
            started.append(peer.name)
        except PeerlinkError as e:
            logger.error(f"  [{peer.name}] failed to start: {e}")
    return started


def print_tools(hub: ToolHub, verbose: bool = False) -> None:
    tools = hub.list_tools()
    print(f"\nAvailable tools ({len(tools)}):\n")
    for tool in sorted(tools, key=lambda t: t.name):
        source = hub.registry.get_source(tool.name)
        print(f"  {tool.name:<25} [{source}] {tool.description}")
        if verbose:
            print()
            print("    " + tool_instructions(tool).replace("\n", "\n    "))
            print()


def print_health(hub: ToolHub, timeout: float | None) -> bool:
    healthy = True
    for name, error in sorted(hub.manager.monitor_health(timeout).items()):
        if error is None:
            print(f"  {name:<20} ok")
        else:
            healthy = False
            print(f"  {name:<20} FAILED: {error}")
    return healthy


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="peerlink",
        description="Launch tool peers and talk to them.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  peerlink --list
  peerlink --call add --args '{"a": 5, "b": 3}'
  peerlink --peers echo --health
        """,
    )
    parser.add_argument("--config", "-c", type=str, default=None, help="Path to a peerlink.toml")
    parser.add_argument("--peers", type=str, nargs="*", default=None, help="Which peers to start (default: all)")
    parser.add_argument("--list", action="store_true", help="List available tools")
    parser.add_argument("--call", type=str, default=None, help="Tool to call")
    parser.add_argument("--args", type=str, default="{}", help="Tool arguments as a JSON object")
    parser.add_argument("--health", action="store_true", help="Ping every peer")
    parser.add_argument("--timeout", type=float, default=None, help="Send deadline in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    args = parser.parse_args(argv)

    try:
        config = load_config(path=args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging.level,
        format=config.logging.format,
    )

    if not (args.list or args.call or args.health):
        parser.error("one of --list, --call or --health is required")

    try:
        arguments = json.loads(args.args)
    except json.JSONDecodeError as e:
        parser.error(f"--args is not valid JSON: {e}")
    if not isinstance(arguments, dict):
        parser.error("--args must be a JSON object")

    hub = ToolHub.from_config(config)

    # Graceful shutdown on Ctrl+C
    def shutdown(sig, frame):
        print("\nShutting down peers...", file=sys.stderr)
        hub.shutdown()
        sys.exit(130)
    signal.signal(signal.SIGINT, shutdown)

    exit_code = 0
    try:
        started = start_peers(hub, config, args.peers)
        if not started:
            print("Error: no peers started.", file=sys.stderr)
            return 1

        if args.list:
            print_tools(hub, verbose=args.verbose)

        if args.health:
            print("\nPeer health:\n")
            if not print_health(hub, args.timeout):
                exit_code = 1

        if args.call:
            try:
                result = hub.call_tool(args.call, arguments, args.timeout)
            except PeerlinkError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(result.text)
            if result.is_error:
                exit_code = 1
    finally:
        try:
            hub.shutdown()
        except PeerlinkError as e:
            logger.error(f"Shutdown failed: {e}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
