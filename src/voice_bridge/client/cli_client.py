"""Text chat CLI for the relay's client role.

Provides a command-line stand-in for the browser client: pairs with an agent
using its pairing code and exchanges text messages with it.
"""

import argparse
import asyncio
import logging
import re
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from voice_bridge.client.pair_client import PairingClient
from voice_bridge.client.reconnect import ReconnectionDriver
from voice_bridge.config import RelayConfig
from voice_bridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^\d{6}$")

HELP_TEXT = """
Commands:
  /pair <code> - Pair with an agent using its 6-digit code
  /end         - End the current session (stay connected)
  /quit        - Exit client
  /help        - Show this help
"""


def is_valid_code(code: str) -> bool:
    return bool(CODE_PATTERN.match(code.strip()))


class ChatCLI:
    """Interactive text chat over a pairing client."""

    def __init__(
        self,
        relay_url: str,
        code: str | None = None,
        driver: ReconnectionDriver | None = None,
    ) -> None:
        """Initialize chat CLI.

        Args:
            relay_url: Relay base URL
            code: Pairing code to submit once connected
            driver: Reconnection driver (client default if omitted)
        """
        self.relay_url = relay_url
        self.client = PairingClient(relay_url, driver=driver)
        self.pending_code = code
        self.running = True
        self.finished = asyncio.Event()

        self.client.on("connected", self.on_connected)
        self.client.on("paired", self.on_paired)
        self.client.on("message", self.on_message)
        self.client.on("typing", self.on_typing)
        self.client.on("agent-disconnected", self.on_agent_disconnected)
        self.client.on("disconnected", self.on_disconnected)
        self.client.on("reconnecting", self.on_reconnecting)
        self.client.on("reconnect-failed", self.on_reconnect_failed)
        self.client.on("error", self.on_error)

    async def on_connected(self) -> None:
        if self.pending_code:
            print("Pairing...")
            await self.client.pair(self.pending_code)

    def on_paired(self, event: dict[str, Any]) -> None:
        self.pending_code = None
        print(f"\n🔗 Connected to {event.get('agent_name') or 'Agent'}")

    def on_message(self, event: dict[str, Any]) -> None:
        print(f"\nAgent: {event['text']}")

    def on_typing(self, event: dict[str, Any]) -> None:
        if event["active"]:
            print("\n(agent is typing...)")

    def on_agent_disconnected(self) -> None:
        print("\nAgent disconnected. Use /pair <code> to pair again.")

    def on_disconnected(self, event: dict[str, Any]) -> None:
        logger.info("Connection to relay lost")

    def on_reconnecting(self, event: dict[str, Any]) -> None:
        print(f"\nReconnecting (attempt {event['attempt']}, {event['delay']:.0f}s)...")

    def on_reconnect_failed(self) -> None:
        print("\n❌ Could not reconnect to the relay.")
        self.running = False
        self.finished.set()

    def on_error(self, event: dict[str, Any]) -> None:
        print(f"\n❌ Error: {event.get('message') or event.get('error')}")

    async def handle_command(self, text: str) -> None:
        """Handle one line of user input."""
        if not text.startswith("/"):
            if not self.client.is_paired:
                print("Not paired. Use /pair <code> first.")
                return
            await self.client.send_message(text)
            return

        command, _, argument = text[1:].partition(" ")
        command = command.lower()

        if command == "quit":
            self.running = False
            self.finished.set()
        elif command == "help":
            print(HELP_TEXT)
        elif command == "pair":
            code = argument.strip()
            if not is_valid_code(code):
                print("Enter a 6-digit code")
                return
            self.pending_code = code
            await self.client.pair(code)
        elif command == "end":
            await self.client.end_session()
            print("Session ended.")
        else:
            print(f"Unknown command: {command}")
            print("Type /help for available commands")

    async def input_loop(self) -> None:
        """Handle user input from stdin."""
        print("\n" + "=" * 60)
        print("Voice Bridge Chat Client")
        print("=" * 60)
        print(HELP_TEXT)

        loop = asyncio.get_running_loop()
        while self.running:
            try:
                text = await loop.run_in_executor(None, input, "You: ")
            except EOFError:
                break
            text = text.strip()
            if text:
                await self.handle_command(text)
        self.finished.set()

    async def run(self) -> None:
        """Run the chat client until /quit, EOF or reconnect failure."""
        await self.client.connect()
        input_task = asyncio.create_task(self.input_loop())
        try:
            await self.finished.wait()
        finally:
            input_task.cancel()
            await self.client.disconnect()


def build_chat(
    relay_url: str, code: str | None = None, config: RelayConfig | None = None
) -> ChatCLI:
    """Create a chat client whose reconnect backoff follows ``config``."""
    config = config or RelayConfig()
    driver = ReconnectionDriver.from_config(
        config.reconnect, config.reconnect.client_max_attempts
    )
    return ChatCLI(relay_url, code, driver=driver)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the chat client."""
    parser = argparse.ArgumentParser(description="Text chat client for the voice bridge relay")
    parser.add_argument(
        "--relay-url",
        type=str,
        default="ws://localhost:3000",
        help="Relay URL (default: ws://localhost:3000)",
    )
    parser.add_argument("--code", type=str, default=None, help="Pairing code to use on connect")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(argv)

    load_dotenv()
    config = RelayConfig.from_yaml_with_defaults(args.config)
    setup_logging("DEBUG" if args.verbose else "WARNING")

    if args.code and not is_valid_code(args.code):
        print("Enter a 6-digit code", file=sys.stderr)
        sys.exit(2)

    try:
        asyncio.run(build_chat(args.relay_url, args.code, config).run())
    except KeyboardInterrupt:
        print("\nExiting...")
    sys.exit(0)


if __name__ == "__main__":
    main()
