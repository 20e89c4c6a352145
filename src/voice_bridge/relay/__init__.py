"""Pairing relay.

Issues pairing codes to agents, binds agents to clients into sessions and
forwards frames between them.
"""

from voice_bridge.relay.connections import ConnectionRegistry
from voice_bridge.relay.liveness import LivenessMonitor
from voice_bridge.relay.pairing import PairingEntry, PairingLedger
from voice_bridge.relay.router import ConnectionRouter
from voice_bridge.relay.server import RelayServer
from voice_bridge.relay.sessions import Session, SessionTable

__all__ = [
    "ConnectionRegistry",
    "ConnectionRouter",
    "LivenessMonitor",
    "PairingEntry",
    "PairingLedger",
    "RelayServer",
    "Session",
    "SessionTable",
]
