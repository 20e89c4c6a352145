"""Integration test fixtures and utilities.

Provides shared fixtures for:
- Relay server lifecycle on ephemeral ports
- Raw WebSocket connections to the agent and client endpoints
- JSON frame helpers
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest_asyncio
from websockets.asyncio.client import ClientConnection, connect

from voice_bridge.config import LivenessConfig, RelayConfig, ServerConfig
from voice_bridge.relay.server import RelayServer

logger = logging.getLogger(__name__)

RECV_TIMEOUT_S = 2.0


# ============================================================================
# Relay Server
# ============================================================================


@pytest_asyncio.fixture
async def relay() -> AsyncIterator[RelayServer]:
    """Start a relay on free ports and stop it after the test."""
    config = RelayConfig(
        server=ServerConfig(host="127.0.0.1", port=0, http_port=0),
        liveness=LivenessConfig(ping_interval_seconds=3600),
    )
    server = RelayServer(config)
    await server.start()
    logger.info("Test relay started", extra={"port": server.port, "http_port": server.http_port})
    try:
        yield server
    finally:
        await server.stop()


@pytest_asyncio.fixture
async def relay_url(relay: RelayServer) -> str:
    return f"ws://127.0.0.1:{relay.port}"


# ============================================================================
# Frame Helpers
# ============================================================================


async def open_socket(relay_url: str, path: str) -> ClientConnection:
    return await connect(relay_url + path)


async def send_json(websocket: ClientConnection, frame: dict[str, Any]) -> None:
    await websocket.send(json.dumps(frame))


async def recv_json(websocket: ClientConnection, timeout: float = RECV_TIMEOUT_S) -> dict[str, Any]:
    """Receive and decode one frame, failing the test on timeout."""
    raw = await asyncio.wait_for(websocket.recv(), timeout=timeout)
    data: dict[str, Any] = json.loads(raw)
    return data


async def wait_for(condition, timeout: float = RECV_TIMEOUT_S) -> None:
    """Poll until ``condition()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def ui_relay(tmp_path: Path) -> AsyncIterator[RelayServer]:
    """Start a relay that also serves a static UI directory."""
    (tmp_path / "index.html").write_text("<title>Voice Bridge</title>")
    config = RelayConfig(
        server=ServerConfig(host="127.0.0.1", port=0, http_port=0, static_path=tmp_path),
        liveness=LivenessConfig(ping_interval_seconds=3600),
    )
    server = RelayServer(config)
    await server.start()
    try:
        yield server
    finally:
        await server.stop()
