"""Unit tests for the WebSocket relay transport.

Tests the connection adapter against a mocked websockets connection and the
server's start/stop lifecycle.
"""

import asyncio
from collections.abc import AsyncGenerator
from http import HTTPStatus
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
import websockets
from websockets.asyncio.client import connect
from websockets.protocol import State

from voice_bridge.errors import TransportClosedError
from voice_bridge.relay.protocol import Role
from voice_bridge.relay.transport.base import RelayTransport
from voice_bridge.relay.transport.websocket_transport import (
    ROUTES,
    HttpReply,
    WebSocketConnection,
    WebSocketRelayServer,
)


class TestWebSocketConnection:
    """Test the transport adapter around a server-side WebSocket."""

    @pytest.fixture
    def mock_websocket(self) -> MagicMock:
        """Create mock WebSocket connection."""
        ws = MagicMock()
        ws.state = State.OPEN
        ws.remote_address = ("127.0.0.1", 12345)
        ws.send = AsyncMock()
        ws.close = AsyncMock()
        return ws

    def test_initialization(self, mock_websocket: MagicMock) -> None:
        connection = WebSocketConnection(mock_websocket)

        assert connection.is_open is True
        assert connection.remote_address == "127.0.0.1:12345"

    @pytest.mark.asyncio
    async def test_send(self, mock_websocket: MagicMock) -> None:
        connection = WebSocketConnection(mock_websocket)

        await connection.send('{"type": "relay:code", "code": "042817"}')

        mock_websocket.send.assert_awaited_once_with('{"type": "relay:code", "code": "042817"}')

    @pytest.mark.asyncio
    async def test_send_when_closed(self, mock_websocket: MagicMock) -> None:
        """Test sending on a closed connection raises TransportClosedError."""
        mock_websocket.state = State.CLOSED
        connection = WebSocketConnection(mock_websocket)

        with pytest.raises(TransportClosedError, match="closed"):
            await connection.send("{}")
        mock_websocket.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_race_with_close(self, mock_websocket: MagicMock) -> None:
        """Test a close that lands mid-send surfaces as TransportClosedError."""
        mock_websocket.send = AsyncMock(side_effect=websockets.exceptions.ConnectionClosedOK(None, None))
        connection = WebSocketConnection(mock_websocket)

        with pytest.raises(TransportClosedError):
            await connection.send("{}")

    @pytest.mark.asyncio
    async def test_receive(self, mock_websocket: MagicMock) -> None:
        messages = ['{"type": "agent:register", "agentId": "a1"}', '{"type": "agent:typing"}']

        async def mock_iter() -> AsyncGenerator[str]:
            for msg in messages:
                yield msg

        mock_websocket.__aiter__ = lambda self: mock_iter()
        connection = WebSocketConnection(mock_websocket)

        received = [raw async for raw in connection.receive()]

        assert received == messages

    @pytest.mark.asyncio
    async def test_receive_ends_on_abnormal_close(self, mock_websocket: MagicMock) -> None:
        async def mock_iter() -> AsyncGenerator[str]:
            yield '{"type": "agent:typing"}'
            raise websockets.exceptions.ConnectionClosedError(None, None)

        mock_websocket.__aiter__ = lambda self: mock_iter()
        connection = WebSocketConnection(mock_websocket)

        received = [raw async for raw in connection.receive()]

        assert received == ['{"type": "agent:typing"}']

    @pytest.mark.asyncio
    async def test_ping_calls_back_on_pong(self, mock_websocket: MagicMock) -> None:
        """Test the pong callback fires once the pong waiter resolves."""
        pong_waiter: asyncio.Future[float] = asyncio.get_running_loop().create_future()
        mock_websocket.ping = AsyncMock(return_value=pong_waiter)
        connection = WebSocketConnection(mock_websocket)
        pongs: list[bool] = []

        await connection.ping(lambda: pongs.append(True))
        assert pongs == []

        pong_waiter.set_result(0.001)
        await asyncio.sleep(0)

        assert pongs == [True]

    @pytest.mark.asyncio
    async def test_ping_without_pong(self, mock_websocket: MagicMock) -> None:
        pong_waiter: asyncio.Future[float] = asyncio.get_running_loop().create_future()
        mock_websocket.ping = AsyncMock(return_value=pong_waiter)
        connection = WebSocketConnection(mock_websocket)
        pongs: list[bool] = []

        await connection.ping(lambda: pongs.append(True))
        pong_waiter.cancel()
        await asyncio.sleep(0)

        assert pongs == []

    @pytest.mark.asyncio
    async def test_ping_on_closed_connection(self, mock_websocket: MagicMock) -> None:
        mock_websocket.ping = AsyncMock(side_effect=websockets.exceptions.ConnectionClosedOK(None, None))
        connection = WebSocketConnection(mock_websocket)

        with pytest.raises(TransportClosedError):
            await connection.ping(lambda: None)

    @pytest.mark.asyncio
    async def test_close(self, mock_websocket: MagicMock) -> None:
        connection = WebSocketConnection(mock_websocket)

        await connection.close(1000, "bye")

        mock_websocket.close.assert_awaited_once_with(1000, "bye")

    def test_terminate_aborts_socket(self, mock_websocket: MagicMock) -> None:
        """Test terminate drops the TCP connection without a close handshake."""
        connection = WebSocketConnection(mock_websocket)

        connection.terminate()

        mock_websocket.transport.abort.assert_called_once()
        mock_websocket.close.assert_not_called()


class TestWebSocketRelayServer:
    """Test the relay WebSocket server lifecycle."""

    async def handler(self, transport: RelayTransport, role: Role) -> None:
        pass

    def test_routes(self) -> None:
        assert ROUTES == {"/ws/agent": Role.AGENT, "/ws/client": Role.CLIENT}

    def test_initialization(self) -> None:
        server = WebSocketRelayServer(self.handler, host="127.0.0.1", port=3000)

        assert server.is_running is False
        assert server.port == 3000

    @pytest.mark.asyncio
    async def test_start_stop(self) -> None:
        """Test start binds an ephemeral port and stop releases it."""
        server = WebSocketRelayServer(self.handler, host="127.0.0.1", port=0)

        await server.start()
        assert server.is_running is True
        assert server.port > 0

        await server.stop()
        assert server.is_running is False

    @pytest.mark.asyncio
    async def test_double_start(self) -> None:
        server = WebSocketRelayServer(self.handler, host="127.0.0.1", port=0)
        await server.start()

        with pytest.raises(RuntimeError, match="already running"):
            await server.start()

        await server.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self) -> None:
        await WebSocketRelayServer(self.handler, host="127.0.0.1", port=0).stop()

    @pytest.mark.asyncio
    async def test_plain_http_requests(self) -> None:
        """Test non-upgrade requests reach the HTTP handler on the same port."""

        def http_handler(path: str) -> HttpReply | None:
            if path == "/hello":
                return HttpReply(HTTPStatus.OK, b"hi", "text/plain")
            return None

        server = WebSocketRelayServer(
            self.handler, host="127.0.0.1", port=0, http_handler=http_handler
        )
        await server.start()
        try:
            base = f"http://127.0.0.1:{server.port}"
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{base}/hello?code=042817") as resp:
                    assert resp.status == 200
                    assert resp.headers["Content-Type"] == "text/plain"
                    assert await resp.text() == "hi"
                async with session.get(f"{base}/nowhere") as resp:
                    assert resp.status == 404
        finally:
            await server.stop()

    @pytest.mark.asyncio
    async def test_upgrade_still_routed_with_http_handler(self) -> None:
        roles: list[Role] = []

        async def handler(transport: RelayTransport, role: Role) -> None:
            roles.append(role)

        server = WebSocketRelayServer(
            handler, host="127.0.0.1", port=0, http_handler=lambda path: None
        )
        await server.start()
        try:
            async with connect(f"ws://127.0.0.1:{server.port}/ws/client") as websocket:
                await websocket.wait_closed()
        finally:
            await server.stop()

        assert roles == [Role.CLIENT]
