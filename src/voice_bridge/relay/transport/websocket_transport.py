"""WebSocket transport implementation.

Serves the agent and client endpoints of the relay over WebSocket and adapts
each accepted connection to the ``RelayTransport`` interface. Plain HTTP
requests on the same port are answered by an optional HTTP handler, so a
page served from here can open ``/ws/client`` on its own origin.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any
from urllib.parse import urlsplit

import websockets
from websockets.asyncio.server import ServerConnection, serve
from websockets.datastructures import Headers
from websockets.http11 import Request, Response
from websockets.protocol import State

from voice_bridge.errors import TransportClosedError
from voice_bridge.relay.protocol import Role
from voice_bridge.relay.transport.base import RelayTransport

logger = logging.getLogger(__name__)

AGENT_PATH = "/ws/agent"
CLIENT_PATH = "/ws/client"
UNKNOWN_ROUTE_CLOSE_CODE = 4000

ROUTES: dict[str, Role] = {
    AGENT_PATH: Role.AGENT,
    CLIENT_PATH: Role.CLIENT,
}

ConnectionHandler = Callable[[RelayTransport, Role], Awaitable[None]]


@dataclass(frozen=True)
class HttpReply:
    """Plain HTTP response served on the WebSocket port."""

    status: HTTPStatus
    body: bytes
    content_type: str = "text/plain; charset=utf-8"


# Maps a request path to a reply; None means 404
HttpHandler = Callable[[str], HttpReply | None]


class WebSocketConnection(RelayTransport):
    """WebSocket-backed relay transport."""

    def __init__(self, websocket: ServerConnection) -> None:
        """Initialize WebSocket connection wrapper.

        Args:
            websocket: Accepted server-side WebSocket connection
        """
        self._websocket = websocket

    @property
    def is_open(self) -> bool:
        return self._websocket.state == State.OPEN

    @property
    def remote_address(self) -> str:
        address = self._websocket.remote_address
        if isinstance(address, tuple) and len(address) >= 2:
            return f"{address[0]}:{address[1]}"
        return str(address)

    async def send(self, frame: str) -> None:
        if not self.is_open:
            raise TransportClosedError("WebSocket connection is closed")
        try:
            await self._websocket.send(frame)
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportClosedError(f"WebSocket connection closed: {e}") from e

    async def receive(self) -> AsyncIterator[str | bytes]:
        try:
            async for raw_message in self._websocket:
                yield raw_message
        except websockets.exceptions.ConnectionClosed:
            # Abnormal closure (e.g. terminated by the liveness monitor)
            logger.debug("WebSocket closed abnormally", extra={"remote": self.remote_address})

    async def ping(self, on_pong: Callable[[], None]) -> None:
        try:
            pong_waiter = await self._websocket.ping()
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportClosedError(f"WebSocket connection closed: {e}") from e

        def _resolved(future: "asyncio.Future[Any]") -> None:
            if not future.cancelled() and future.exception() is None:
                on_pong()

        pong_waiter.add_done_callback(_resolved)  # type: ignore[attr-defined]

    async def close(self, code: int = 1000, reason: str = "") -> None:
        try:
            await self._websocket.close(code, reason)
        except Exception as e:
            logger.warning("Error during WebSocket close", extra={"error": str(e)})

    def terminate(self) -> None:
        transport = self._websocket.transport
        if transport is not None:
            transport.abort()


class WebSocketRelayServer:
    """WebSocket server for the relay's agent and client endpoints.

    Routes each accepted connection by request path and hands it to the
    connection handler together with its role. Unknown paths are closed with
    code 4000.
    """

    def __init__(
        self,
        handler: ConnectionHandler,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 3000,
        max_size: int = 2**20,
        http_handler: HttpHandler | None = None,
    ) -> None:
        """Initialize WebSocket relay server.

        Args:
            handler: Coroutine run for the lifetime of each connection
            host: Bind host address
            port: Bind port (0 picks a free port)
            max_size: Maximum inbound frame size in bytes
            http_handler: Answers non-upgrade HTTP requests (optional)
        """
        self._handler = handler
        self._host = host
        self._port = port
        self._max_size = max_size
        self._http_handler = http_handler
        self._server: Any = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        """Bound port (resolved after start when configured as 0)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return int(sock.getsockname()[1])
        return self._port

    async def start(self) -> None:
        """Bind and start accepting connections.

        Raises:
            RuntimeError: If the server is already running
            OSError: If port binding fails
        """
        if self._server is not None:
            raise RuntimeError("WebSocket relay server is already running")

        try:
            # Keepalive is driven by the liveness monitor, not the library
            self._server = await serve(
                self._handle_connection,
                self._host,
                self._port,
                max_size=self._max_size,
                ping_interval=None,
                process_request=self._process_request,
            )
        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": self._host, "port": self._port, "error": str(e)},
            )
            raise

        logger.info("WebSocket relay server started", extra={"host": self._host, "port": self.port})

    async def stop(self) -> None:
        """Stop accepting connections and close open ones."""
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("WebSocket relay server stopped")

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None

        path = urlsplit(request.path).path
        reply = self._http_handler(path) if self._http_handler is not None else None
        if reply is None:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

        headers = Headers(
            [
                ("Content-Type", reply.content_type),
                ("Content-Length", str(len(reply.body))),
                ("Connection", "close"),
            ]
        )
        return Response(reply.status.value, reply.status.phrase, headers, reply.body)

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        path = urlsplit(websocket.request.path).path if websocket.request else ""
        role = ROUTES.get(path.rstrip("/") or path)
        if role is None:
            logger.warning("Rejected connection to unknown route", extra={"path": path})
            await websocket.close(UNKNOWN_ROUTE_CLOSE_CODE, "Unknown route")
            return

        try:
            await self._handler(WebSocketConnection(websocket), role)
        except Exception as e:
            logger.exception("Error in connection handler", extra={"role": role.value, "error": str(e)})
