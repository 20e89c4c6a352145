"""Pairing code ledger.

Issues short-lived, single-use numeric pairing codes to registered agents and
redeems them for clients. Entries reference agents by connection handle only;
the ledger never owns a transport.
"""

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
CODE_TTL_S = 5 * 60.0
SWEEP_INTERVAL_S = 60.0


@dataclass(frozen=True)
class PairingEntry:
    """One outstanding invitation from a registered agent."""

    code: str
    agent: str  # connection handle
    agent_id: str
    agent_name: str
    created_at: float


def random_code(length: int = CODE_LENGTH) -> str:
    """Generate a zero-padded decimal code of ``length`` digits."""
    return str(secrets.randbelow(10**length)).zfill(length)


class PairingLedger:
    """Pending pairing codes keyed by code.

    Thread-safety: NOT thread-safe. Use from the relay's event loop only.
    """

    def __init__(
        self,
        ttl_s: float = CODE_TTL_S,
        sweep_interval_s: float = SWEEP_INTERVAL_S,
        code_length: int = CODE_LENGTH,
        clock: Callable[[], float] = time.monotonic,
        code_factory: Callable[[int], str] = random_code,
    ) -> None:
        """Initialize the ledger.

        Args:
            ttl_s: Seconds a code stays redeemable
            sweep_interval_s: Seconds between background expiry sweeps
            code_length: Number of decimal digits per code
            clock: Monotonic time source (seconds)
            code_factory: Code generator taking the code length
        """
        self.ttl_s = ttl_s
        self.sweep_interval_s = sweep_interval_s
        self.code_length = code_length
        self._clock = clock
        self._code_factory = code_factory
        self._pending: dict[str, PairingEntry] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def pending_count(self) -> int:
        """Number of codes currently awaiting redemption."""
        return len(self._pending)

    def __contains__(self, code: object) -> bool:
        return code in self._pending

    def _generate_code(self) -> str:
        code = self._code_factory(self.code_length)
        while code in self._pending:
            code = self._code_factory(self.code_length)
        return code

    def register(self, agent: str, agent_id: str, agent_name: str = "Agent") -> str:
        """Issue a fresh code for an agent connection.

        Any code previously issued to the same connection is withdrawn first,
        so an agent holds at most one pending code.

        Args:
            agent: Agent connection handle
            agent_id: Stable identifier chosen by the agent
            agent_name: Display name shown to the client

        Returns:
            Newly issued code
        """
        self.remove_by_agent(agent)
        code = self._generate_code()
        self._pending[code] = PairingEntry(
            code=code,
            agent=agent,
            agent_id=agent_id,
            agent_name=agent_name or "Agent",
            created_at=self._clock(),
        )
        logger.debug("Pairing code issued", extra={"agent": agent, "agent_id": agent_id})
        return code

    def claim(self, code: str) -> PairingEntry | None:
        """Redeem a code exactly once.

        Unknown and expired codes both return None; an expired entry is
        deleted as a side effect.

        Args:
            code: Code submitted by a client

        Returns:
            The redeemed entry, or None if invalid or expired
        """
        entry = self._pending.pop(code, None)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            logger.info("Expired pairing code presented", extra={"agent": entry.agent})
            return None
        return entry

    def remove_by_agent(self, agent: str) -> int:
        """Drop every pending code owned by an agent connection.

        Returns:
            Number of entries removed
        """
        codes = [code for code, entry in self._pending.items() if entry.agent == agent]
        for code in codes:
            del self._pending[code]
        return len(codes)

    def sweep(self) -> int:
        """Delete entries older than the TTL.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [code for code, entry in self._pending.items() if self._is_expired(entry, now)]
        for code in expired:
            del self._pending[code]
        if expired:
            logger.info("Expired pairing codes swept", extra={"count": len(expired)})
        return len(expired)

    def _is_expired(self, entry: PairingEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl_s

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            self.sweep()

    def start(self) -> None:
        """Start the background expiry sweep."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the background sweep and drop all pending codes."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self._pending.clear()
