"""Liveness monitor.

Pings every open connection on a fixed cadence and terminates connections
that did not answer the previous ping. Termination ends the transport's
receive loop, so reclamation runs through the router's normal close path.
"""

import asyncio
import logging

from voice_bridge.errors import TransportClosedError
from voice_bridge.relay.connections import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

PING_INTERVAL_S = 30.0


class LivenessMonitor:
    """Ping/pong keepalive over a connection registry."""

    def __init__(self, connections: ConnectionRegistry, interval_s: float = PING_INTERVAL_S) -> None:
        """Initialize liveness monitor.

        Args:
            connections: Registry of live connections
            interval_s: Seconds between ping cycles
        """
        self.connections = connections
        self.interval_s = interval_s
        self._task: asyncio.Task[None] | None = None

    async def check(self) -> int:
        """Run one ping cycle.

        Returns:
            Number of connections terminated this cycle
        """
        terminated = 0
        for connection in self.connections:
            if not connection.is_alive:
                logger.info(
                    "Terminating unresponsive connection",
                    extra={"handle": connection.handle, "role": connection.role.value},
                )
                connection.transport.terminate()
                terminated += 1
                continue

            connection.is_alive = False
            try:
                await connection.transport.ping(_pong_callback(connection))
            except TransportClosedError:
                # Close handling runs from the receive loop
                continue
        return terminated

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            await self.check()

    def start(self) -> None:
        """Start the periodic ping cycle."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the periodic ping cycle."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


def _pong_callback(connection: Connection):
    def on_pong() -> None:
        connection.is_alive = True

    return on_pong
