"""Agent-side relay client.

Connects an agent process to the relay's agent endpoint, registers for a
pairing code on every (re)connect and exchanges messages with the paired
client.

Events:
    connected, disconnected({"was_paired"}), reconnecting({"attempt", "delay"}),
    reconnect-failed, state(ClientState), code(str), paired({"session_id"}),
    message({"session_id", "text", "timestamp"}),
    client-disconnected({"session_id"}), error({"error", "message"})
"""

import logging
import uuid

from voice_bridge.client.base import Connector, RelayClientBase, Sleeper
from voice_bridge.client.reconnect import ReconnectionDriver
from voice_bridge.relay.protocol import (
    AgentMessage,
    AgentRegister,
    AgentTyping,
    Frame,
    RelayClientDisconnected,
    RelayCode,
    RelayErrorFrame,
    RelayMessage,
    RelayPaired,
)
from voice_bridge.relay.transport.websocket_transport import AGENT_PATH

logger = logging.getLogger(__name__)


class AgentRelayClient(RelayClientBase):
    """Relay client for the agent role.

    Pairing state does not survive a transport loss: each reconnect
    registers again and receives a fresh code.
    """

    endpoint = AGENT_PATH

    def __init__(
        self,
        relay_url: str,
        agent_id: str | None = None,
        agent_name: str = "Agent",
        reregister_on_release: bool = True,
        driver: ReconnectionDriver | None = None,
        connector: Connector | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize agent client.

        Args:
            relay_url: Relay base URL
            agent_id: Stable agent identifier (random if omitted)
            agent_name: Display name shown to clients
            reregister_on_release: Request a fresh code after the client leaves
            driver: Reconnection driver (unbounded attempts if omitted)
            connector: WebSocket opener (test seam)
            sleep: Reconnect delay function (test seam)
        """
        super().__init__(relay_url, driver or ReconnectionDriver(), connector, sleep)
        self.agent_id = agent_id or str(uuid.uuid4())
        self.agent_name = agent_name
        self.reregister_on_release = reregister_on_release
        self.session_id: str | None = None
        self.pairing_code: str | None = None

    async def register(self) -> None:
        """Request a pairing code from the relay."""
        await self._send(AgentRegister(agent_id=self.agent_id, agent_name=self.agent_name))

    async def send_message(self, text: str) -> bool:
        """Send text to the paired client. No-op while unpaired."""
        if self.session_id is None:
            return False
        return await self._send(AgentMessage(text=text))

    async def send_typing(self, active: bool) -> bool:
        """Send a typing indicator to the paired client. No-op while unpaired."""
        if self.session_id is None:
            return False
        return await self._send(AgentTyping(active=active))

    async def _on_open(self) -> None:
        await self.register()

    def _on_lost(self) -> None:
        self.session_id = None
        self.pairing_code = None

    def _handle_frame(self, frame: Frame) -> None:
        if isinstance(frame, RelayCode):
            self.pairing_code = frame.code
            self._emit("code", frame.code)
        elif isinstance(frame, RelayPaired):
            self.session_id = frame.session_id
            self.pairing_code = None
            self._emit("paired", {"session_id": frame.session_id})
        elif isinstance(frame, RelayMessage):
            self._emit(
                "message",
                {
                    "session_id": frame.session_id or self.session_id,
                    "text": frame.text,
                    "timestamp": frame.timestamp,
                },
            )
        elif isinstance(frame, RelayClientDisconnected):
            self.session_id = None
            self._emit("client-disconnected", {"session_id": frame.session_id})
            if self.reregister_on_release:
                self._spawn(self.register())
        elif isinstance(frame, RelayErrorFrame):
            logger.warning("Relay error", extra={"error": frame.error, "detail": frame.message})
            self._emit("error", {"error": frame.error, "message": frame.message})
        else:
            logger.debug("Ignoring frame for agent role", extra={"type": frame.type})  # type: ignore[attr-defined]
