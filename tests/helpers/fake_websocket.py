"""In-memory stand-in for a client-side WebSocket connection."""

import asyncio
import json
from typing import Any


class FakeClientWebSocket:
    """Records sent frames; iterates over pushed frames until closed."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.drop()

    def push(self, frame: dict[str, Any] | str) -> None:
        """Deliver a frame from the relay."""
        self._inbox.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def drop(self) -> None:
        """End the connection from the relay side."""
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def __aiter__(self) -> "FakeClientWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]


class SocketFactory:
    """Connector handing out a fresh fake socket per connection attempt."""

    def __init__(self) -> None:
        self.sockets: list[FakeClientWebSocket] = []
        self.urls: list[str] = []

    async def __call__(self, url: str) -> FakeClientWebSocket:
        self.urls.append(url)
        websocket = FakeClientWebSocket()
        self.sockets.append(websocket)
        return websocket

    @property
    def current(self) -> FakeClientWebSocket:
        return self.sockets[-1]


async def settle(condition, timeout: float = 1.0) -> None:
    """Yield to the loop until ``condition()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
