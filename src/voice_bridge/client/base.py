"""Shared WebSocket client for both relay roles.

Implements the connection state machine and automatic reconnection used by
the agent-side and client-side relay libraries:

    DISCONNECTED → CONNECTING → CONNECTED → (PAIRED) → DISCONNECTED

While the reconnect flag is set, every unintended transition to
DISCONNECTED schedules a new attempt using the reconnection driver's
backoff. ``disconnect()`` clears the flag and cancels any pending attempt.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection, connect

from voice_bridge.client.reconnect import ReconnectionDriver
from voice_bridge.errors import FrameError
from voice_bridge.relay.protocol import RELAY_FRAMES, Frame, parse_frame

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Any]
Connector = Callable[[str], Awaitable[ClientConnection]]
Sleeper = Callable[[float], Awaitable[None]]


class ClientState(str, Enum):
    """Relay client connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PAIRED = "paired"


def relay_endpoint(relay_url: str, path: str) -> str:
    """Build a WebSocket endpoint URL from an http(s) or ws(s) relay URL."""
    url = relay_url.rstrip("/")
    if url.startswith("http"):
        url = "ws" + url[len("http"):]
    return url + path


async def _default_connect(url: str) -> ClientConnection:
    return await connect(url)


class RelayClientBase:
    """Base class for relay clients.

    Subclasses set ``endpoint`` and implement ``_handle_frame``; they may
    override ``_on_open`` (sent after every successful open),
    ``_on_lost`` (clear role state on transport loss) and ``_before_close``.

    Events are delivered to handlers registered with ``on``. A handler may be
    a coroutine function; its coroutine is scheduled as a task.
    """

    endpoint = ""

    def __init__(
        self,
        relay_url: str,
        driver: ReconnectionDriver | None = None,
        connector: Connector | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        """Initialize relay client.

        Args:
            relay_url: Relay base URL (http://, https://, ws:// or wss://)
            driver: Reconnection backoff driver
            connector: Opens a WebSocket for a URL (test seam)
            sleep: Awaitable delay used between reconnect attempts (test seam)
        """
        self.relay_url = relay_url
        self.driver = driver or ReconnectionDriver()
        self.handlers: dict[str, EventHandler] = {}

        self._connector = connector or _default_connect
        self._sleep = sleep or asyncio.sleep
        self._websocket: ClientConnection | None = None
        self._state = ClientState.DISCONNECTED
        self._should_reconnect = False
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._handler_tasks: set[asyncio.Task[Any]] = set()

    @property
    def url(self) -> str:
        return relay_endpoint(self.relay_url, self.endpoint)

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: EventHandler) -> None:
        """Register the handler for an event (replaces any previous one)."""
        self.handlers[event] = handler

    def _emit(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is None:
            return
        try:
            result = handler(*args)
        except Exception:
            logger.exception("Event handler failed", extra={"event": event})
            return
        if inspect.isawaitable(result):
            self._spawn(result)

    def _spawn(self, awaitable: Awaitable[Any]) -> None:
        """Run an awaitable in the background, keeping a reference until done."""
        task = asyncio.ensure_future(awaitable)
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_done)

    def _handler_done(self, task: "asyncio.Task[Any]") -> None:
        self._handler_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Event handler task failed", exc_info=task.exception())

    def _set_state(self, state: ClientState) -> None:
        if state is self._state:
            return
        self._state = state
        self._emit("state", state)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the transport and keep it open until ``disconnect()``."""
        self._should_reconnect = True
        await self._open()

    async def _open(self) -> None:
        self._set_state(ClientState.CONNECTING)
        try:
            websocket = await self._connector(self.url)
        except (OSError, TimeoutError, websockets.exceptions.WebSocketException) as e:
            logger.warning("Relay connection failed", extra={"url": self.url, "error": str(e)})
            self._emit("error", {"error": "Connection failed", "message": str(e)})
            self._on_transport_lost()
            return

        if not self._should_reconnect:
            # disconnect() was called while the handshake was in flight
            await websocket.close()
            return

        self._websocket = websocket
        self.driver.reset()
        self._set_state(ClientState.CONNECTED)
        logger.info("Connected to relay", extra={"url": self.url})
        self._emit("connected")
        await self._on_open()
        self._reader_task = asyncio.create_task(self._read_loop(websocket))

    async def _read_loop(self, websocket: ClientConnection) -> None:
        try:
            async for raw in websocket:
                self._dispatch(raw)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            if self._websocket is websocket:
                self._websocket = None
                self._on_transport_lost()

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            frame = parse_frame(raw, RELAY_FRAMES)
        except FrameError as e:
            logger.warning("Ignoring relay frame", extra={"error": e.message})
            return
        self._handle_frame(frame)

    def _on_transport_lost(self) -> None:
        was_paired = self._state is ClientState.PAIRED
        self._set_state(ClientState.DISCONNECTED)
        self._on_lost()
        logger.info("Disconnected from relay", extra={"url": self.url, "was_paired": was_paired})
        self._emit("disconnected", {"was_paired": was_paired})
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self._should_reconnect:
            return

        delay = self.driver.next_delay()
        if delay is None:
            logger.error(
                "Giving up on relay reconnection",
                extra={"url": self.url, "attempts": self.driver.attempt},
            )
            self._emit("reconnect-failed")
            return

        logger.info(
            "Reconnecting to relay",
            extra={"attempt": self.driver.attempt, "delay_s": delay},
        )
        self._emit("reconnecting", {"attempt": self.driver.attempt, "delay": delay})
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        if self._should_reconnect:
            await self._open()

    async def disconnect(self) -> None:
        """Shut down cleanly; no automatic reconnects until ``connect()``."""
        self._should_reconnect = False

        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        websocket = self._websocket
        self._websocket = None
        if websocket is not None:
            await self._before_close(websocket)
            await websocket.close()

        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task():
            await asyncio.gather(reader, return_exceptions=True)

        self._on_lost()
        self.driver.reset()
        self._set_state(ClientState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def _send(self, frame: Frame) -> bool:
        """Send a frame if the transport is open.

        Returns:
            True if the frame was handed to the transport
        """
        websocket = self._websocket
        if websocket is None:
            return False
        return await self._send_on(websocket, frame)

    async def _send_on(self, websocket: ClientConnection, frame: Frame) -> bool:
        try:
            await websocket.send(frame.to_json())
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Dropped frame on closed transport", extra={"type": frame.type})  # type: ignore[attr-defined]
            return False
        return True

    # ------------------------------------------------------------------
    # Role hooks
    # ------------------------------------------------------------------

    async def _on_open(self) -> None:
        pass

    def _on_lost(self) -> None:
        pass

    async def _before_close(self, websocket: ClientConnection) -> None:
        pass

    def _handle_frame(self, frame: Frame) -> None:
        raise NotImplementedError
