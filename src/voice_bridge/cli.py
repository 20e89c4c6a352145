"""voice-bridge command-line entry point.

``voice-bridge start`` runs an embedded relay (or joins an existing one with
``--relay-url``), connects to it as an agent and answers each client message
with one agent turn.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from voice_bridge.bridge.agent_bridge import AgentBridge
from voice_bridge.bridge.runner import BridgeRunner
from voice_bridge.client.agent_client import AgentRelayClient
from voice_bridge.client.reconnect import ReconnectionDriver
from voice_bridge.config import RelayConfig
from voice_bridge.relay.server import RelayServer, run_until_signalled
from voice_bridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def format_pairing_banner(code: str, url: str | None = None) -> str:
    """Render the pairing code box shown to the operator."""
    lines = [f"Pairing code:  {code}"]
    if url:
        lines += ["", "Open in browser to start talking:", url]
    width = max(len(line) for line in lines) + 4
    border = "─" * width
    body = [f"  │  {line.ljust(width - 4)}  │" for line in ["", *lines, ""]]
    return "\n".join(["", f"  ┌{border}┐", *body, f"  └{border}┘", ""])


async def run_bridge(config: RelayConfig, relay_url: str | None = None) -> int:
    """Run the agent bridge until interrupted.

    Args:
        config: Loaded configuration
        relay_url: External relay URL; an embedded relay is started if None

    Returns:
        Process exit status
    """
    server: RelayServer | None = None
    pairing_base: str | None = None

    if relay_url is None:
        server = RelayServer(config)
        try:
            await server.start()
        except OSError as e:
            port = config.server.port
            print(f"\n  Error: Port {port} is already in use ({e}).", file=sys.stderr)
            print(f"  Try: voice-bridge start --port {port + 2}\n", file=sys.stderr)
            return 1
        relay_url = f"ws://localhost:{server.port}"
        pairing_base = server.ui_url
        logger.info("Embedded relay started", extra={"port": server.port})

    agent = AgentRelayClient(
        relay_url,
        agent_name=config.bridge.agent_name,
        driver=ReconnectionDriver.from_config(
            config.reconnect, config.reconnect.agent_max_attempts
        ),
    )
    bridge = AgentBridge(
        command=config.bridge.command,
        agent=config.bridge.agent,
        timeout_s=config.bridge.timeout_seconds,
    )

    def show_code(code: str) -> None:
        url = f"{pairing_base}?code={code}" if pairing_base else None
        print(format_pairing_banner(code, url), flush=True)

    BridgeRunner(agent, bridge, on_code=show_code)

    try:
        await agent.connect()
        await run_until_signalled()
    finally:
        print("\n[voice-bridge] Shutting down...")
        await agent.disconnect()
        if server is not None:
            await server.stop()
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the voice-bridge CLI."""
    parser = argparse.ArgumentParser(
        prog="voice-bridge",
        description="Talk to a local agent from a browser via a pairing relay",
    )
    subparsers = parser.add_subparsers(dest="command")

    start = subparsers.add_parser("start", help="Start the relay and connect as an agent")
    start.add_argument("--port", type=int, default=None, help="Relay WebSocket port (default: 3000)")
    start.add_argument("--agent-name", type=str, default=None, help="Name shown to the client")
    start.add_argument("--config", type=Path, default=None, help="Path to config YAML file")
    start.add_argument(
        "--relay-url",
        type=str,
        default=None,
        help="Join an existing relay instead of starting an embedded one",
    )
    start.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)
    if args.command != "start":
        parser.print_usage()
        sys.exit(0)

    load_dotenv()
    config = RelayConfig.from_yaml_with_defaults(args.config)
    if args.port is not None:
        config.server.port = args.port
        config.server.http_port = None
    if args.agent_name:
        config.bridge.agent_name = args.agent_name
    setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        status = asyncio.run(run_bridge(config, args.relay_url))
    except KeyboardInterrupt:
        status = 0
    sys.exit(status)


if __name__ == "__main__":
    main()
