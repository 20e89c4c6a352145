"""Client-side relay client.

The Python counterpart of the browser client: connects to the relay's client
endpoint, redeems a pairing code and chats with the paired agent. Gives up
after a bounded number of reconnect attempts and emits ``reconnect-failed``.

Whether to re-submit a remembered code after a reconnect is left to the
application (see ``connected`` and ``disconnected`` events).

Events:
    connected, disconnected({"was_paired"}), reconnecting({"attempt", "delay"}),
    reconnect-failed, state(ClientState), paired({"session_id", "agent_name"}),
    message({"text", "timestamp"}), typing({"active"}), agent-disconnected,
    error({"error", "message"})
"""

import logging

from websockets.asyncio.client import ClientConnection

from voice_bridge.client.base import ClientState, Connector, RelayClientBase, Sleeper
from voice_bridge.client.reconnect import CLIENT_MAX_RECONNECT_ATTEMPTS, ReconnectionDriver
from voice_bridge.relay.protocol import (
    ClientDisconnect,
    ClientMessage,
    ClientPair,
    ErrorCode,
    Frame,
    RelayAgentDisconnected,
    RelayErrorFrame,
    RelayMessage,
    RelayPaired,
    RelayTyping,
)
from voice_bridge.relay.transport.websocket_transport import CLIENT_PATH

logger = logging.getLogger(__name__)


class PairingClient(RelayClientBase):
    """Relay client for the client role."""

    endpoint = CLIENT_PATH

    def __init__(
        self,
        relay_url: str,
        driver: ReconnectionDriver | None = None,
        connector: Connector | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize pairing client.

        Args:
            relay_url: Relay base URL
            driver: Reconnection driver (10 attempts if omitted)
            connector: WebSocket opener (test seam)
            sleep: Reconnect delay function (test seam)
        """
        super().__init__(
            relay_url,
            driver or ReconnectionDriver(max_attempts=CLIENT_MAX_RECONNECT_ATTEMPTS),
            connector,
            sleep,
        )
        self.session_id: str | None = None
        self.agent_name: str | None = None

    @property
    def is_paired(self) -> bool:
        return self.state is ClientState.PAIRED

    async def pair(self, code: str) -> bool:
        """Submit a pairing code."""
        return await self._send(ClientPair(code=code))

    async def send_message(self, text: str) -> bool:
        """Send text to the paired agent."""
        return await self._send(ClientMessage(text=text))

    async def end_session(self) -> bool:
        """Leave the current session but keep the transport open."""
        sent = await self._send(ClientDisconnect())
        self._clear_session()
        if self.state is ClientState.PAIRED:
            self._set_state(ClientState.CONNECTED)
        return sent

    def _clear_session(self) -> None:
        self.session_id = None
        self.agent_name = None

    def _on_lost(self) -> None:
        self._clear_session()

    async def _before_close(self, websocket: ClientConnection) -> None:
        await self._send_on(websocket, ClientDisconnect())

    def _handle_frame(self, frame: Frame) -> None:
        if isinstance(frame, RelayPaired):
            self.session_id = frame.session_id
            self.agent_name = frame.agent_name
            self._set_state(ClientState.PAIRED)
            self._emit("paired", {"session_id": frame.session_id, "agent_name": frame.agent_name})
        elif isinstance(frame, RelayMessage):
            self._emit("message", {"text": frame.text, "timestamp": frame.timestamp})
        elif isinstance(frame, RelayTyping):
            self._emit("typing", {"active": frame.active})
        elif isinstance(frame, RelayAgentDisconnected):
            self._clear_session()
            if self.state is ClientState.PAIRED:
                self._set_state(ClientState.CONNECTED)
            self._emit("agent-disconnected")
        elif isinstance(frame, RelayErrorFrame):
            if frame.error == ErrorCode.SESSION_EXPIRED.value:
                self._clear_session()
                if self.state is ClientState.PAIRED:
                    self._set_state(ClientState.CONNECTED)
            logger.warning("Relay error", extra={"error": frame.error, "detail": frame.message})
            self._emit("error", {"error": frame.error, "message": frame.message})
        else:
            logger.debug("Ignoring frame for client role", extra={"type": frame.type})  # type: ignore[attr-defined]
