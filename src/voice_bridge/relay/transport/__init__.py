"""Transport layer for relay connections.

Provides the transport abstraction the relay core programs against and its
WebSocket implementation.
"""

from voice_bridge.relay.transport.base import RelayTransport
from voice_bridge.relay.transport.websocket_transport import (
    AGENT_PATH,
    CLIENT_PATH,
    WebSocketConnection,
    WebSocketRelayServer,
)

__all__ = [
    "AGENT_PATH",
    "CLIENT_PATH",
    "RelayTransport",
    "WebSocketConnection",
    "WebSocketRelayServer",
]
