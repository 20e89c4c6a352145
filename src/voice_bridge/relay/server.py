"""Relay server.

Main server implementation that:
1. Starts the WebSocket relay endpoints (/ws/agent, /ws/client)
2. Provides HTTP status endpoints (and the optional UI on the WebSocket port)
3. Runs the pairing-code sweep and the liveness monitor
4. Routes frames between paired agents and clients
"""

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from aiohttp.web import Application, AppRunner, TCPSite
from dotenv import load_dotenv

from voice_bridge.config import RelayConfig
from voice_bridge.relay.connections import ConnectionRegistry
from voice_bridge.relay.health import SameOriginRoutes, StatusHandler, setup_status_routes
from voice_bridge.relay.liveness import LivenessMonitor
from voice_bridge.relay.pairing import PairingLedger
from voice_bridge.relay.router import ConnectionRouter
from voice_bridge.relay.sessions import SessionTable
from voice_bridge.relay.transport.websocket_transport import WebSocketRelayServer
from voice_bridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)


class RelayServer:
    """Owns the process-wide ledger, session table and connection arena.

    Thread-safety: This class is NOT thread-safe. Use from a single event loop.
    """

    def __init__(self, config: RelayConfig | None = None) -> None:
        """Initialize relay server.

        Args:
            config: Relay configuration (defaults if omitted)
        """
        self.config = config or RelayConfig()

        self.pairing = PairingLedger(
            ttl_s=self.config.pairing.code_ttl_seconds,
            sweep_interval_s=self.config.pairing.sweep_interval_seconds,
            code_length=self.config.pairing.code_length,
        )
        self.sessions = SessionTable()
        self.connections = ConnectionRegistry()
        self.router = ConnectionRouter(self.pairing, self.sessions, self.connections)
        self.liveness = LivenessMonitor(
            self.connections, interval_s=self.config.liveness.ping_interval_seconds
        )
        self.status = StatusHandler(self.sessions, self.pairing, self.connections)
        self.transport = WebSocketRelayServer(
            self.router.serve,
            host=self.config.server.host,
            port=self.config.server.port,
            max_size=self.config.server.max_message_size,
            http_handler=SameOriginRoutes(self.status, self.config.server.static_path),
        )

        self._http_runner: AppRunner | None = None
        self._http_site: TCPSite | None = None

    @property
    def port(self) -> int:
        """Bound WebSocket port."""
        return self.transport.port

    @property
    def http_port(self) -> int | None:
        """Bound status HTTP port, once started."""
        if self._http_runner is None:
            return None
        for address in self._http_runner.addresses:
            return int(address[1])
        return None

    @property
    def ui_url(self) -> str | None:
        """Local URL of the pairing/chat UI, on the same origin as ``/ws/client``."""
        if self.config.server.static_path is None:
            return None
        return f"http://localhost:{self.port}"

    async def start(self) -> None:
        """Start WebSocket endpoints, status HTTP server and background timers.

        Raises:
            OSError: If either port cannot be bound
        """
        await self.transport.start()

        app = Application()
        setup_status_routes(app, self.sessions, self.pairing, self.connections, handler=self.status)
        self._http_runner = AppRunner(app)
        await self._http_runner.setup()
        http_port = self.config.server.http_port_for(self.port)
        self._http_site = TCPSite(self._http_runner, self.config.server.host, http_port)
        try:
            await self._http_site.start()
        except OSError:
            await self._http_runner.cleanup()
            self._http_runner = None
            await self.transport.stop()
            raise

        self.pairing.start()
        self.liveness.start()

        logger.info(
            "Relay server ready",
            extra={"port": self.port, "http_port": self.http_port},
        )

    async def stop(self) -> None:
        """Stop all components and release resources."""
        logger.info("Shutting down relay server")

        await self.liveness.stop()
        await self.transport.stop()
        await self.pairing.stop()

        if self._http_runner is not None:
            await self._http_runner.cleanup()
            self._http_runner = None
            self._http_site = None

        logger.info("Relay server stopped")

    async def __aenter__(self) -> "RelayServer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()


async def run_until_signalled(stop_event: asyncio.Event | None = None) -> None:
    """Block until SIGINT/SIGTERM (or ``stop_event``) fires."""
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    try:
        await stop_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def start_server(config: RelayConfig) -> None:
    """Run a relay server until interrupted.

    Args:
        config: Relay configuration
    """
    async with RelayServer(config):
        await run_until_signalled()


def main() -> None:
    """Entry point for the standalone relay server."""
    parser = argparse.ArgumentParser(description="Voice bridge pairing relay")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to relay config YAML file",
    )
    parser.add_argument("--port", type=int, default=None, help="WebSocket port (overrides config)")
    args = parser.parse_args()

    load_dotenv()
    config = RelayConfig.from_yaml_with_defaults(args.config)
    if args.port is not None:
        config.server.port = args.port
    setup_logging(config.log_level)

    try:
        asyncio.run(start_server(config))
    except KeyboardInterrupt:
        logger.info("Relay server interrupted")


if __name__ == "__main__":
    main()
