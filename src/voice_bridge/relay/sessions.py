"""Session table.

Tracks live agent/client bindings created by successful pairing. Sessions
reference connections by handle, with reverse indexes so close events keyed
by connection can be reconciled without scanning.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """One active agent/client binding."""

    session_id: str
    agent: str  # connection handle
    client: str  # connection handle
    agent_id: str
    agent_name: str
    created_at: float


class SessionTable:
    """Live sessions keyed by session id.

    Thread-safety: NOT thread-safe. Use from the relay's event loop only.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._by_agent: dict[str, str] = {}
        self._by_client: dict[str, str] = {}

    @property
    def active_count(self) -> int:
        """Number of live sessions."""
        return len(self._sessions)

    def create(self, agent: str, client: str, agent_id: str, agent_name: str) -> str:
        """Bind an agent connection to a client connection.

        Inputs are assumed validated by the router: neither connection is
        already bound.

        Returns:
            New session id
        """
        session_id = str(uuid.uuid4())
        while session_id in self._sessions:
            session_id = str(uuid.uuid4())

        self._sessions[session_id] = Session(
            session_id=session_id,
            agent=agent,
            client=client,
            agent_id=agent_id,
            agent_name=agent_name,
            created_at=self._clock(),
        )
        self._by_agent[agent] = session_id
        self._by_client[client] = session_id

        logger.info(
            "Session created",
            extra={"session_id": session_id, "agent": agent, "client": client},
        )
        return session_id

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def find_by_agent(self, agent: str) -> tuple[str, Session] | None:
        """Look up the session bound to an agent connection."""
        session_id = self._by_agent.get(agent)
        if session_id is None:
            return None
        return session_id, self._sessions[session_id]

    def find_by_client(self, client: str) -> tuple[str, Session] | None:
        """Look up the session bound to a client connection."""
        session_id = self._by_client.get(client)
        if session_id is None:
            return None
        return session_id, self._sessions[session_id]

    def remove(self, session_id: str) -> Session | None:
        """Remove a session. Unknown ids are a no-op.

        Returns:
            The removed session, or None if it did not exist
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        self._by_agent.pop(session.agent, None)
        self._by_client.pop(session.client, None)
        logger.info("Session removed", extra={"session_id": session_id})
        return session

    def remove_by_agent(self, agent: str) -> Session | None:
        session_id = self._by_agent.get(agent)
        return self.remove(session_id) if session_id is not None else None

    def remove_by_client(self, client: str) -> Session | None:
        session_id = self._by_client.get(client)
        return self.remove(session_id) if session_id is not None else None
