"""Status endpoints for the relay.

Provides a read-only HTTP surface reporting session count, pending pairing
count and process uptime, for operators and container health probes. The
same status routes, plus the optional static pairing/chat UI, are also
answered on the WebSocket port so the UI shares an origin with the relay.
"""

import json
import logging
import mimetypes
import time
from http import HTTPStatus
from pathlib import Path
from typing import Any
from urllib.parse import unquote

from aiohttp import web

from voice_bridge.relay.connections import ConnectionRegistry
from voice_bridge.relay.pairing import PairingLedger
from voice_bridge.relay.protocol import Role
from voice_bridge.relay.sessions import SessionTable
from voice_bridge.relay.transport.websocket_transport import HttpReply

logger = logging.getLogger(__name__)


class StatusHandler:
    """Status handler for the relay."""

    def __init__(
        self,
        sessions: SessionTable,
        pairing: PairingLedger,
        connections: ConnectionRegistry | None = None,
    ) -> None:
        self.sessions = sessions
        self.pairing = pairing
        self.connections = connections
        self.start_time = time.monotonic()

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.start_time

    def snapshot(self) -> dict[str, Any]:
        """Current relay status.

        Response format:
        {
            "status": "ok",
            "activeSessions": int,
            "pendingPairings": int,
            "uptime": float,
            "connections": {"agent": int, "client": int}  # when tracked
        }
        """
        data: dict[str, Any] = {
            "status": "ok",
            "activeSessions": self.sessions.active_count,
            "pendingPairings": self.pairing.pending_count,
            "uptime": self.uptime_seconds,
        }
        if self.connections is not None:
            data["connections"] = {
                Role.AGENT.value: self.connections.count(Role.AGENT),
                Role.CLIENT.value: self.connections.count(Role.CLIENT),
            }
        return data

    def liveness(self) -> dict[str, Any]:
        return {"status": "alive", "uptime": self.uptime_seconds}

    async def health_check(self, request: web.Request) -> web.Response:
        """Relay status endpoint. Always 200 while the process is serving."""
        return web.json_response(self.snapshot(), status=200)

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Liveness endpoint for process supervisors."""
        return web.json_response(self.liveness(), status=200)


def setup_status_routes(
    app: web.Application,
    sessions: SessionTable,
    pairing: PairingLedger,
    connections: ConnectionRegistry | None = None,
    handler: StatusHandler | None = None,
) -> StatusHandler:
    """Set up status routes on an application.

    Args:
        app: aiohttp Application instance
        sessions: Session table
        pairing: Pairing ledger
        connections: Connection arena (optional, adds per-role counts)
        handler: Existing handler to share (a new one is created if omitted)

    Returns:
        The handler backing the routes
    """
    handler = handler or StatusHandler(sessions, pairing, connections)

    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/liveness", handler.liveness_check)

    logger.info("Status endpoints configured: /health, /liveness")
    return handler


def json_reply(data: dict[str, Any]) -> HttpReply:
    return HttpReply(HTTPStatus.OK, json.dumps(data).encode(), "application/json")


class SameOriginRoutes:
    """Plain HTTP routes answered on the WebSocket port.

    Serves ``/health``, ``/liveness`` and, when a static directory is
    configured, the pairing/chat UI with ``index.html`` at ``/``.
    """

    def __init__(self, status: StatusHandler, static_path: Path | None = None) -> None:
        """Initialize routes.

        Args:
            status: Handler producing the status payloads
            static_path: Directory of UI assets (optional)

        Raises:
            FileNotFoundError: If ``static_path`` is not a directory
        """
        if static_path is not None and not static_path.is_dir():
            raise FileNotFoundError(f"Static UI directory not found: {static_path}")
        self.status = status
        self.static_root = static_path.resolve() if static_path is not None else None

    def __call__(self, path: str) -> HttpReply | None:
        if path == "/health":
            return json_reply(self.status.snapshot())
        if path == "/liveness":
            return json_reply(self.status.liveness())
        if self.static_root is None:
            return None
        return self.static_file(path)

    def static_file(self, path: str) -> HttpReply | None:
        """Resolve a request path inside the static directory."""
        assert self.static_root is not None
        candidate = (self.static_root / unquote(path).lstrip("/")).resolve()
        if candidate.is_dir():
            candidate = candidate / "index.html"
        if not candidate.is_relative_to(self.static_root) or not candidate.is_file():
            return None

        content_type, _ = mimetypes.guess_type(candidate.name)
        return HttpReply(
            HTTPStatus.OK,
            candidate.read_bytes(),
            content_type or "application/octet-stream",
        )
