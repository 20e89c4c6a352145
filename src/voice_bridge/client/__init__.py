"""Relay client libraries for the agent and client roles."""

from voice_bridge.client.agent_client import AgentRelayClient
from voice_bridge.client.base import ClientState
from voice_bridge.client.pair_client import PairingClient
from voice_bridge.client.reconnect import ReconnectionDriver

__all__ = [
    "AgentRelayClient",
    "ClientState",
    "PairingClient",
    "ReconnectionDriver",
]
