"""Base transport abstraction for relay connections.

Defines the interface the router, liveness monitor and tests program against,
so the relay core never touches a concrete socket library.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable


class RelayTransport(ABC):
    """One full-duplex, message-oriented connection to a peer."""

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Send one UTF-8 text frame.

        Args:
            frame: Serialized JSON frame

        Raises:
            TransportClosedError: If the connection is closed or closing
        """
        pass

    @abstractmethod
    async def receive(self) -> AsyncIterator[str | bytes]:
        """Receive frames until the connection closes.

        Yields:
            Raw frame payloads in arrival order
        """
        # Using yield to make this an async generator
        if False:
            yield ""

    @abstractmethod
    async def ping(self, on_pong: Callable[[], None]) -> None:
        """Send a transport-level ping.

        Args:
            on_pong: Called once when the matching pong arrives

        Raises:
            TransportClosedError: If the connection is closed or closing
        """
        pass

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection with a close handshake."""
        pass

    @abstractmethod
    def terminate(self) -> None:
        """Drop the connection immediately, without a close handshake."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if the connection can still carry frames."""
        pass

    @property
    def remote_address(self) -> str:
        """Peer address for logging."""
        return "unknown"
