"""Wires an agent relay client to the conversational-turn executor."""

import logging
from collections.abc import Callable
from typing import Any

from voice_bridge.bridge.agent_bridge import ERROR_REPLY, AgentBridge
from voice_bridge.client.agent_client import AgentRelayClient
from voice_bridge.errors import ExecutionError

logger = logging.getLogger(__name__)


class BridgeRunner:
    """Answers each client message with one agent turn.

    While a turn runs the client sees a typing indicator. A failed turn is
    answered with a generic apology instead of surfacing the error.
    """

    def __init__(
        self,
        relay: AgentRelayClient,
        bridge: AgentBridge,
        on_code: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize runner.

        Args:
            relay: Agent-side relay client
            bridge: Conversational-turn executor
            on_code: Called with every pairing code issued to this agent
        """
        self.relay = relay
        self.bridge = bridge
        self._on_code = on_code

        relay.on("code", self.handle_code)
        relay.on("paired", self.handle_paired)
        relay.on("message", self.handle_message)
        relay.on("client-disconnected", self.handle_client_disconnected)
        relay.on("reconnecting", self.handle_reconnecting)
        relay.on("disconnected", self.handle_disconnected)
        relay.on("error", self.handle_error)

    def handle_code(self, code: str) -> None:
        logger.info("Pairing code issued", extra={"code": code})
        if self._on_code is not None:
            self._on_code(code)

    def handle_paired(self, event: dict[str, Any]) -> None:
        logger.info("Client paired", extra={"session_id": event["session_id"]})

    async def handle_message(self, event: dict[str, Any]) -> None:
        """Run one agent turn for a client message and send back the reply."""
        session_id = event.get("session_id") or self.relay.session_id or ""
        text = event["text"]
        logger.info("Client message received", extra={"session_id": session_id, "chars": len(text)})

        await self.relay.send_typing(True)
        try:
            response = await self.bridge.send_message(session_id, text)
        except ExecutionError as e:
            logger.error("Agent turn failed", extra={"session_id": session_id, "error": str(e)})
            response = ERROR_REPLY

        await self.relay.send_message(response)
        await self.relay.send_typing(False)

    def handle_client_disconnected(self, event: dict[str, Any]) -> None:
        logger.info("Client disconnected", extra={"session_id": event["session_id"]})

    def handle_reconnecting(self, event: dict[str, Any]) -> None:
        logger.info(
            "Reconnecting to relay",
            extra={"attempt": event["attempt"], "delay_s": event["delay"]},
        )

    def handle_disconnected(self, event: dict[str, Any]) -> None:
        logger.info("Disconnected from relay")

    def handle_error(self, event: dict[str, Any]) -> None:
        logger.error(
            "Relay error",
            extra={"error": event.get("error"), "detail": event.get("message")},
        )
