"""Bridge between relay sessions and an external conversational agent."""

from voice_bridge.bridge.agent_bridge import ERROR_REPLY, AgentBridge

__all__ = ["AgentBridge", "ERROR_REPLY"]
