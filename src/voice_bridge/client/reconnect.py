"""Reconnection backoff shared by the agent and client relay libraries."""

import logging
from collections.abc import Sequence

from voice_bridge.config import ReconnectConfig

logger = logging.getLogger(__name__)

RECONNECT_DELAYS_S: tuple[float, ...] = (2.0, 4.0, 8.0, 16.0)
CLIENT_MAX_RECONNECT_ATTEMPTS = 10


class ReconnectionDriver:
    """Bounded exponential backoff schedule.

    Attempts beyond the schedule length reuse its last delay. With
    ``max_attempts`` set, ``next_delay`` returns None once that many attempts
    have been scheduled since the last ``reset``.
    """

    def __init__(
        self,
        delays_s: Sequence[float] = RECONNECT_DELAYS_S,
        max_attempts: int | None = None,
    ) -> None:
        """Initialize driver.

        Args:
            delays_s: Ordered backoff delays in seconds
            max_attempts: Attempt ceiling, or None to retry forever

        Raises:
            ValueError: If the delay schedule is empty
        """
        if not delays_s:
            raise ValueError("Reconnect delay schedule must not be empty")
        self.delays_s = tuple(delays_s)
        self.max_attempts = max_attempts
        self.attempt = 0

    @property
    def exhausted(self) -> bool:
        return self.max_attempts is not None and self.attempt >= self.max_attempts

    def next_delay(self) -> float | None:
        """Consume one attempt and return its delay.

        Returns:
            Delay in seconds, or None if the attempt ceiling was reached
        """
        if self.exhausted:
            return None
        delay = self.delays_s[min(self.attempt, len(self.delays_s) - 1)]
        self.attempt += 1
        return delay

    def reset(self) -> None:
        """Forget past attempts after a successful connection."""
        self.attempt = 0

    @classmethod
    def from_config(
        cls, config: ReconnectConfig, max_attempts: int | None
    ) -> "ReconnectionDriver":
        """Build a driver from the ``reconnect`` config section.

        Args:
            config: Reconnect configuration (delays in milliseconds)
            max_attempts: Attempt ceiling for the caller's role
        """
        return cls(delays_s=[d / 1000.0 for d in config.delays_ms], max_attempts=max_attempts)
