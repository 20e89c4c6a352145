"""Relay message protocol definitions.

Defines Pydantic models for the JSON frames exchanged between the relay,
agent connections and client connections. Every frame carries a ``type``
discriminator; field names are camelCase on the wire.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from voice_bridge.errors import FrameError


class Role(str, Enum):
    """Which side of a session a connection speaks for."""

    AGENT = "agent"
    CLIENT = "client"


class ErrorCode(str, Enum):
    """Application-level error codes carried by ``relay:error`` frames."""

    INVALID_FRAME = "invalid-frame"
    UNKNOWN_TYPE = "unknown-type"
    NOT_REGISTERED = "not-registered"
    NOT_PAIRED = "not-paired"
    NO_ACTIVE_SESSION = "no-active-session"
    INVALID_OR_EXPIRED_CODE = "invalid-or-expired-code"
    SESSION_EXPIRED = "session-expired"
    ALREADY_PAIRED = "already-paired"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_FRAME: "Invalid frame",
    ErrorCode.UNKNOWN_TYPE: "Unknown message type",
    ErrorCode.NOT_REGISTERED: "Not registered",
    ErrorCode.NOT_PAIRED: "Not paired",
    ErrorCode.NO_ACTIVE_SESSION: "No active session",
    ErrorCode.INVALID_OR_EXPIRED_CODE: "Invalid or expired pairing code",
    ErrorCode.SESSION_EXPIRED: "Session expired",
    ErrorCode.ALREADY_PAIRED: "Already paired",
}


def utc_timestamp(now: datetime | None = None) -> str:
    """Format a timestamp as ISO-8601 UTC with millisecond precision."""
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Frame(BaseModel):
    """Base for all relay frames (camelCase aliases on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> str:
        """Serialize to a wire frame."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Agent → Relay
# ---------------------------------------------------------------------------


class AgentRegister(Frame):
    """Agent → Relay: announce the agent and request a pairing code."""

    type: Literal["agent:register"] = "agent:register"
    agent_id: str = Field(..., alias="agentId", min_length=1)
    agent_name: str = Field(default="Agent", alias="agentName")

    @field_validator("agent_name", mode="before")
    @classmethod
    def default_agent_name(cls, v: Any) -> Any:
        """Fall back to the generic display name when none is given."""
        if v is None or v == "":
            return "Agent"
        return v


class AgentMessage(Frame):
    """Agent → Relay: text for the bound client."""

    type: Literal["agent:message"] = "agent:message"
    text: str


class AgentTyping(Frame):
    """Agent → Relay: typing indicator for the bound client."""

    type: Literal["agent:typing"] = "agent:typing"
    active: bool = False


# ---------------------------------------------------------------------------
# Client → Relay
# ---------------------------------------------------------------------------


class ClientPair(Frame):
    """Client → Relay: redeem a pairing code."""

    type: Literal["client:pair"] = "client:pair"
    code: str

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, v: Any) -> Any:
        """Accept numeric codes and strip surrounding whitespace."""
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        if isinstance(v, str):
            return v.strip()
        return v


class ClientMessage(Frame):
    """Client → Relay: text for the bound agent."""

    type: Literal["client:message"] = "client:message"
    text: str


class ClientDisconnect(Frame):
    """Client → Relay: end the current session but keep the transport open."""

    type: Literal["client:disconnect"] = "client:disconnect"


# ---------------------------------------------------------------------------
# Relay → Agent / Client
# ---------------------------------------------------------------------------


class RelayCode(Frame):
    """Relay → Agent: freshly issued pairing code."""

    type: Literal["relay:code"] = "relay:code"
    code: str


class RelayPaired(Frame):
    """Relay → Agent/Client: pairing confirmation.

    The client copy carries ``agentName``; the agent copy only the session id.
    """

    type: Literal["relay:paired"] = "relay:paired"
    session_id: str = Field(..., alias="sessionId")
    agent_name: str | None = Field(default=None, alias="agentName")


class RelayMessage(Frame):
    """Relay → Agent/Client: forwarded text stamped with relay time."""

    type: Literal["relay:message"] = "relay:message"
    text: str
    timestamp: str
    session_id: str | None = Field(default=None, alias="sessionId")


class RelayTyping(Frame):
    """Relay → Client: agent typing indicator."""

    type: Literal["relay:typing"] = "relay:typing"
    active: bool


class RelayClientDisconnected(Frame):
    """Relay → Agent: the bound client left."""

    type: Literal["relay:client-disconnected"] = "relay:client-disconnected"
    session_id: str = Field(..., alias="sessionId")


class RelayAgentDisconnected(Frame):
    """Relay → Client: the bound agent left."""

    type: Literal["relay:agent-disconnected"] = "relay:agent-disconnected"


class RelayErrorFrame(Frame):
    """Relay → Agent/Client: non-fatal protocol error."""

    type: Literal["relay:error"] = "relay:error"
    error: str
    message: str | None = None

    @classmethod
    def for_code(cls, code: ErrorCode, message: str | None = None) -> "RelayErrorFrame":
        return cls(error=code.value, message=message or ERROR_MESSAGES[code])


AgentFrame = AgentRegister | AgentMessage | AgentTyping
ClientFrame = ClientPair | ClientMessage | ClientDisconnect
RelayFrame = (
    RelayCode
    | RelayPaired
    | RelayMessage
    | RelayTyping
    | RelayClientDisconnected
    | RelayAgentDisconnected
    | RelayErrorFrame
)

AGENT_FRAMES: dict[str, type[Frame]] = {
    "agent:register": AgentRegister,
    "agent:message": AgentMessage,
    "agent:typing": AgentTyping,
}

CLIENT_FRAMES: dict[str, type[Frame]] = {
    "client:pair": ClientPair,
    "client:message": ClientMessage,
    "client:disconnect": ClientDisconnect,
}

RELAY_FRAMES: dict[str, type[Frame]] = {
    "relay:code": RelayCode,
    "relay:paired": RelayPaired,
    "relay:message": RelayMessage,
    "relay:typing": RelayTyping,
    "relay:client-disconnected": RelayClientDisconnected,
    "relay:agent-disconnected": RelayAgentDisconnected,
    "relay:error": RelayErrorFrame,
}


def parse_frame(raw: str | bytes, frames: dict[str, type[Frame]]) -> Frame:
    """Decode and validate a wire frame against a role's frame table.

    Args:
        raw: Raw frame text (bytes are decoded as UTF-8)
        frames: Mapping of ``type`` value to frame model

    Returns:
        Validated frame model

    Raises:
        FrameError: With ``INVALID_FRAME`` for malformed payloads and
            ``UNKNOWN_TYPE`` for a well-formed frame of unrecognized type
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FrameError(ErrorCode.INVALID_FRAME, f"Invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise FrameError(ErrorCode.INVALID_FRAME, "Frame must be an object with a type")

    model = frames.get(data["type"])
    if model is None:
        raise FrameError(ErrorCode.UNKNOWN_TYPE, f"Unknown message type: {data['type']}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise FrameError(
            ErrorCode.INVALID_FRAME, f"Invalid {data['type']} frame: {e.error_count()} error(s)"
        ) from e
