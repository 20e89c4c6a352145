"""Conversational-turn executor.

Runs one agent turn by invoking the agent CLI as a subprocess
(``<command> agent --session-id <id> -m <text> [--agent <name>]``) and
returns its stdout as the response text.
"""

import asyncio
import logging

from voice_bridge.errors import ExecutionError

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = "openclaw"
DEFAULT_TIMEOUT_S = 120.0
ERROR_REPLY = "Sorry, I encountered an error processing your message."


class AgentBridge:
    """Bridges relay messages to an external agent process."""

    def __init__(
        self,
        command: str = DEFAULT_COMMAND,
        agent: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        """Initialize agent bridge.

        Args:
            command: Agent CLI executable
            agent: Optional agent name passed via ``--agent``
            timeout_s: Seconds allowed per turn
        """
        self.command = command
        self.agent = agent
        self.timeout_s = timeout_s

    def build_args(self, session_id: str, text: str) -> list[str]:
        args = ["agent", "--session-id", session_id, "-m", text]
        if self.agent:
            args.extend(["--agent", self.agent])
        return args

    async def send_message(self, session_id: str, text: str) -> str:
        """Run one agent turn.

        When the agent CLI is not installed the text is echoed back, so the
        relay can be exercised without an agent.

        Args:
            session_id: Session identifier (used as the agent's session id)
            text: User's transcribed speech

        Returns:
            Agent response text

        Raises:
            ExecutionError: If the turn fails or times out
        """
        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *self.build_args(session_id, text),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.warning(
                "Agent command not found, echoing message back",
                extra={"command": self.command},
            )
            return f"[echo] {text}"
        except OSError as e:
            raise ExecutionError(f"Failed to start {self.command}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_s)
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise ExecutionError(f"Agent turn timed out after {self.timeout_s:.0f}s") from e

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise ExecutionError(detail or f"{self.command} exited with status {process.returncode}")

        return stdout.decode("utf-8", errors="replace").strip()
