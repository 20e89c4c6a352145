"""Connection router.

Per-connection protocol handler for the relay. Classifies each inbound frame
by role and type, drives the pairing ledger and session table, and forwards
application messages to the bound peer.

Each connection's frames are processed one at a time in arrival order, so
forwarding preserves the sender's emission order. Ledger and table mutations
happen between awaits and never interleave.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from voice_bridge.errors import FrameError, TransportClosedError
from voice_bridge.relay.connections import (
    Connection,
    ConnectionRegistry,
    Paired,
    Registered,
    Role,
    Unbound,
)
from voice_bridge.relay.pairing import PairingLedger
from voice_bridge.relay.protocol import (
    AGENT_FRAMES,
    CLIENT_FRAMES,
    AgentMessage,
    AgentRegister,
    AgentTyping,
    ClientDisconnect,
    ClientMessage,
    ClientPair,
    ErrorCode,
    Frame,
    RelayAgentDisconnected,
    RelayClientDisconnected,
    RelayCode,
    RelayErrorFrame,
    RelayMessage,
    RelayPaired,
    RelayTyping,
    parse_frame,
    utc_timestamp,
)
from voice_bridge.relay.sessions import SessionTable
from voice_bridge.relay.transport.base import RelayTransport

logger = logging.getLogger(__name__)


class ConnectionRouter:
    """Routes frames between agent and client connections.

    The router is the sole mutator of the pairing ledger and session table.

    Thread-safety: NOT thread-safe. Use from the relay's event loop only.
    """

    def __init__(
        self,
        pairing: PairingLedger,
        sessions: SessionTable,
        connections: ConnectionRegistry | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize router.

        Args:
            pairing: Pairing code ledger
            sessions: Session table
            connections: Connection arena (a fresh one if omitted)
            now: Wall-clock source used to stamp forwarded messages
        """
        self.pairing = pairing
        self.sessions = sessions
        self.connections = connections if connections is not None else ConnectionRegistry()
        self._now = now

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def open(self, transport: RelayTransport, role: Role) -> Connection:
        """Admit a new transport under the given role."""
        connection = self.connections.add(transport, role)
        logger.info(
            "Connection opened",
            extra={"handle": connection.handle, "role": role.value},
        )
        return connection

    async def serve(self, transport: RelayTransport, role: Role) -> None:
        """Run the full lifecycle of one transport.

        Reads frames until the transport closes, then runs close handling.
        """
        connection = self.open(transport, role)
        try:
            async for raw in transport.receive():
                await self.handle_frame(connection, raw)
        except ConnectionError as e:
            logger.warning(
                "Transport error",
                extra={"handle": connection.handle, "error": str(e)},
            )
        finally:
            await self.handle_close(connection)

    async def handle_close(self, connection: Connection) -> None:
        """Scrub all state owned by a closed connection and notify its peer."""
        if self.connections.release(connection.handle) is None:
            return

        logger.info(
            "Connection closed",
            extra={"handle": connection.handle, "role": connection.role.value},
        )

        if connection.role is Role.AGENT:
            self.pairing.remove_by_agent(connection.handle)
            session = self.sessions.remove_by_agent(connection.handle)
            if session is not None:
                await self._send_to(session.client, RelayAgentDisconnected())
        else:
            session = self.sessions.remove_by_client(connection.handle)
            if session is not None:
                await self._send_to(
                    session.agent, RelayClientDisconnected(session_id=session.session_id)
                )

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    async def handle_frame(self, connection: Connection, raw: str | bytes) -> None:
        """Process one inbound frame to completion.

        Protocol violations are reported to the sender as ``relay:error``
        frames; the connection stays open.
        """
        frames = AGENT_FRAMES if connection.role is Role.AGENT else CLIENT_FRAMES
        try:
            frame = parse_frame(raw, frames)
        except FrameError as e:
            logger.warning(
                "Rejected frame",
                extra={"handle": connection.handle, "code": e.code.value, "error": e.message},
            )
            await self._send_error(connection, e.code, e.message)
            return

        if isinstance(frame, AgentRegister):
            await self._on_agent_register(connection, frame)
        elif isinstance(frame, AgentMessage):
            await self._on_agent_message(connection, frame)
        elif isinstance(frame, AgentTyping):
            await self._on_agent_typing(connection, frame)
        elif isinstance(frame, ClientPair):
            await self._on_client_pair(connection, frame)
        elif isinstance(frame, ClientMessage):
            await self._on_client_message(connection, frame)
        elif isinstance(frame, ClientDisconnect):
            await self._on_client_disconnect(connection)

    # ------------------------------------------------------------------
    # Agent frames
    # ------------------------------------------------------------------

    async def _on_agent_register(self, connection: Connection, frame: AgentRegister) -> None:
        if self.sessions.find_by_agent(connection.handle) is not None:
            await self._send_error(connection, ErrorCode.ALREADY_PAIRED)
            return

        connection.state = Registered(agent_id=frame.agent_id, agent_name=frame.agent_name)
        code = self.pairing.register(connection.handle, frame.agent_id, frame.agent_name)
        await self._send(connection.transport, RelayCode(code=code))
        logger.info(
            "Agent registered",
            extra={"handle": connection.handle, "agent_id": frame.agent_id},
        )

    async def _on_agent_message(self, connection: Connection, frame: AgentMessage) -> None:
        if not isinstance(connection.state, Registered):
            await self._send_error(connection, ErrorCode.NOT_REGISTERED)
            return

        found = self.sessions.find_by_agent(connection.handle)
        if found is None:
            await self._send_error(connection, ErrorCode.NO_ACTIVE_SESSION)
            return

        _, session = found
        await self._send_to(
            session.client,
            RelayMessage(text=frame.text, timestamp=self._timestamp()),
        )

    async def _on_agent_typing(self, connection: Connection, frame: AgentTyping) -> None:
        found = self.sessions.find_by_agent(connection.handle)
        if found is None:
            return
        _, session = found
        await self._send_to(session.client, RelayTyping(active=frame.active))

    # ------------------------------------------------------------------
    # Client frames
    # ------------------------------------------------------------------

    async def _on_client_pair(self, connection: Connection, frame: ClientPair) -> None:
        if isinstance(connection.state, Paired):
            if self.sessions.get(connection.state.session_id) is not None:
                await self._send_error(connection, ErrorCode.ALREADY_PAIRED)
                return
            # Stale binding: the agent side already went away
            connection.state = Unbound()

        entry = self.pairing.claim(frame.code)
        agent_transport = self.connections.transport_for(entry.agent) if entry else None
        if entry is None or agent_transport is None:
            logger.info("Pairing rejected", extra={"handle": connection.handle})
            await self._send_error(connection, ErrorCode.INVALID_OR_EXPIRED_CODE)
            return

        session_id = self.sessions.create(
            entry.agent, connection.handle, entry.agent_id, entry.agent_name
        )
        connection.state = Paired(session_id=session_id)

        await self._send(
            connection.transport,
            RelayPaired(session_id=session_id, agent_name=entry.agent_name),
        )
        await self._send(agent_transport, RelayPaired(session_id=session_id))
        logger.info(
            "Client paired",
            extra={"session_id": session_id, "agent": entry.agent, "client": connection.handle},
        )

    async def _on_client_message(self, connection: Connection, frame: ClientMessage) -> None:
        state = connection.state
        if not isinstance(state, Paired):
            await self._send_error(connection, ErrorCode.NOT_PAIRED)
            return

        session = self.sessions.get(state.session_id)
        if session is None:
            connection.state = Unbound()
            await self._send_error(connection, ErrorCode.SESSION_EXPIRED)
            return

        await self._send_to(
            session.agent,
            RelayMessage(
                text=frame.text, timestamp=self._timestamp(), session_id=state.session_id
            ),
        )

    async def _on_client_disconnect(self, connection: Connection) -> None:
        state = connection.state
        if not isinstance(state, Paired):
            return

        connection.state = Unbound()
        session = self.sessions.remove(state.session_id)
        if session is not None:
            await self._send_to(
                session.agent, RelayClientDisconnected(session_id=state.session_id)
            )
            logger.info("Client left session", extra={"session_id": state.session_id})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _timestamp(self) -> str:
        return utc_timestamp(self._now() if self._now is not None else None)

    async def _send_error(
        self, connection: Connection, code: ErrorCode, message: str | None = None
    ) -> None:
        await self._send(connection.transport, RelayErrorFrame.for_code(code, message))

    async def _send_to(self, handle: str, frame: Frame) -> None:
        """Send to a connection by handle, if it is still registered."""
        transport = self.connections.transport_for(handle)
        if transport is None:
            return
        await self._send(transport, frame)

    async def _send(self, transport: RelayTransport, frame: Frame) -> None:
        """Best-effort send; frames to a closing transport are dropped."""
        if not transport.is_open:
            return
        try:
            await transport.send(frame.to_json())
        except TransportClosedError as e:
            logger.debug("Dropped frame to closing transport", extra={"error": str(e)})
