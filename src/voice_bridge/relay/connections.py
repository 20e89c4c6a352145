"""Connection arena and per-connection protocol state.

Live transports are stored here under opaque handles. The pairing ledger and
session table only ever hold handles; the router resolves a handle to its
transport through this registry, so once a handle is released nothing can
forward into a dead transport.

Connection states:
- Unbound: no handshake completed yet (agent unregistered, client unpaired)
- Registered: agent has registered and holds (or held) a pairing code
- Paired: client is bound to a session

Agent transitions: Unbound → Registered (terminal until close).
Client transitions: Unbound → Paired → Unbound (on client:disconnect or a
stale session); both roles end when the transport closes.
"""

import itertools
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from voice_bridge.relay.protocol import Role
from voice_bridge.relay.transport.base import RelayTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unbound:
    """No handshake completed."""


@dataclass(frozen=True)
class Registered:
    """Agent has registered."""

    agent_id: str
    agent_name: str


@dataclass(frozen=True)
class Paired:
    """Client is bound to a session."""

    session_id: str


ConnectionState = Unbound | Registered | Paired


@dataclass
class Connection:
    """One open transport and its protocol state."""

    handle: str
    role: Role
    transport: RelayTransport
    state: ConnectionState = field(default_factory=Unbound)
    is_alive: bool = True


class ConnectionRegistry:
    """Arena of live connections keyed by handle."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._counter = itertools.count(1)

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        # Snapshot: callers may release connections while iterating
        return iter(list(self._connections.values()))

    def add(self, transport: RelayTransport, role: Role) -> Connection:
        """Register a freshly opened transport.

        Returns:
            The new connection, in the Unbound state
        """
        handle = f"{role.value}-{next(self._counter)}"
        connection = Connection(handle=handle, role=role, transport=transport)
        self._connections[handle] = connection
        logger.debug(
            "Connection added",
            extra={"handle": handle, "role": role.value, "remote": transport.remote_address},
        )
        return connection

    def get(self, handle: str) -> Connection | None:
        return self._connections.get(handle)

    def transport_for(self, handle: str) -> RelayTransport | None:
        """Resolve a handle to its live transport, if still registered."""
        connection = self._connections.get(handle)
        return connection.transport if connection is not None else None

    def release(self, handle: str) -> Connection | None:
        """Forget a connection. Unknown handles are a no-op."""
        return self._connections.pop(handle, None)

    def count(self, role: Role) -> int:
        return sum(1 for c in self._connections.values() if c.role is role)
