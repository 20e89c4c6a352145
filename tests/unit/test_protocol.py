"""Unit tests for relay frame parsing and serialization."""

import json
from datetime import UTC, datetime, timedelta, timezone

import pytest

from voice_bridge.errors import FrameError
from voice_bridge.relay.protocol import (
    AGENT_FRAMES,
    CLIENT_FRAMES,
    RELAY_FRAMES,
    AgentRegister,
    AgentTyping,
    ClientPair,
    ErrorCode,
    RelayErrorFrame,
    RelayMessage,
    RelayPaired,
    parse_frame,
    utc_timestamp,
)


class TestParseFrame:
    """Test decoding of inbound frames."""

    def test_agent_register(self) -> None:
        frame = parse_frame(
            json.dumps({"type": "agent:register", "agentId": "a1", "agentName": "Claw"}),
            AGENT_FRAMES,
        )
        assert isinstance(frame, AgentRegister)
        assert frame.agent_id == "a1"
        assert frame.agent_name == "Claw"

    def test_agent_name_defaults(self) -> None:
        """Test missing, null and empty agent names fall back to "Agent"."""
        for extra in ({}, {"agentName": None}, {"agentName": ""}):
            frame = parse_frame(
                json.dumps({"type": "agent:register", "agentId": "a1", **extra}), AGENT_FRAMES
            )
            assert isinstance(frame, AgentRegister)
            assert frame.agent_name == "Agent"

    def test_empty_agent_id_rejected(self) -> None:
        with pytest.raises(FrameError) as exc_info:
            parse_frame(json.dumps({"type": "agent:register", "agentId": ""}), AGENT_FRAMES)
        assert exc_info.value.code is ErrorCode.INVALID_FRAME

    def test_typing_defaults_inactive(self) -> None:
        frame = parse_frame('{"type": "agent:typing"}', AGENT_FRAMES)
        assert isinstance(frame, AgentTyping)
        assert frame.active is False

    def test_pair_code_normalized(self) -> None:
        frame = parse_frame('{"type": "client:pair", "code": " 123456 "}', CLIENT_FRAMES)
        assert isinstance(frame, ClientPair)
        assert frame.code == "123456"

        frame = parse_frame('{"type": "client:pair", "code": 123456}', CLIENT_FRAMES)
        assert isinstance(frame, ClientPair)
        assert frame.code == "123456"

    def test_bytes_accepted(self) -> None:
        frame = parse_frame(b'{"type": "client:disconnect"}', CLIENT_FRAMES)
        assert frame.type == "client:disconnect"  # type: ignore[attr-defined]

    def test_unknown_fields_ignored(self) -> None:
        frame = parse_frame('{"type": "client:message", "text": "hi", "extra": 1}', CLIENT_FRAMES)
        assert frame.text == "hi"  # type: ignore[attr-defined]

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[]",
            "42",
            '{"text": "no type"}',
            '{"type": 7}',
            b"\xff",
            '{"type": "client:message"}',
            '{"type": "client:message", "text": 5}',
        ],
    )
    def test_invalid_frames(self, raw: str | bytes) -> None:
        with pytest.raises(FrameError) as exc_info:
            parse_frame(raw, CLIENT_FRAMES)
        assert exc_info.value.code is ErrorCode.INVALID_FRAME

    def test_unknown_type(self) -> None:
        with pytest.raises(FrameError) as exc_info:
            parse_frame('{"type": "agent:message", "text": "hi"}', CLIENT_FRAMES)
        assert exc_info.value.code is ErrorCode.UNKNOWN_TYPE
        assert "agent:message" in exc_info.value.message


class TestSerialization:
    """Test outbound frames use camelCase and omit unset optionals."""

    def test_paired_for_agent_omits_agent_name(self) -> None:
        assert json.loads(RelayPaired(session_id="s1").to_json()) == {
            "type": "relay:paired",
            "sessionId": "s1",
        }

    def test_paired_for_client(self) -> None:
        data = json.loads(RelayPaired(session_id="s1", agent_name="Claw").to_json())
        assert data == {"type": "relay:paired", "sessionId": "s1", "agentName": "Claw"}

    def test_error_frame_for_code(self) -> None:
        data = json.loads(RelayErrorFrame.for_code(ErrorCode.NOT_PAIRED).to_json())
        assert data == {"type": "relay:error", "error": "not-paired", "message": "Not paired"}

    def test_error_frame_custom_message(self) -> None:
        frame = RelayErrorFrame.for_code(ErrorCode.INVALID_FRAME, "Invalid JSON")
        assert frame.message == "Invalid JSON"

    def test_relay_frames_parse_back(self) -> None:
        """Test the client libraries can read what the relay writes."""
        raw = RelayMessage(text="hi", timestamp="2026-01-01T00:00:00.000Z", session_id="s1").to_json()
        frame = parse_frame(raw, RELAY_FRAMES)
        assert isinstance(frame, RelayMessage)
        assert frame.session_id == "s1"


class TestTimestamp:
    """Test relay timestamps."""

    def test_millisecond_precision_with_z(self) -> None:
        now = datetime(2026, 3, 4, 5, 6, 7, 891234, tzinfo=UTC)
        assert utc_timestamp(now) == "2026-03-04T05:06:07.891Z"

    def test_converted_to_utc(self) -> None:
        now = datetime(2026, 3, 4, 7, 6, 7, tzinfo=timezone(timedelta(hours=2)))
        assert utc_timestamp(now) == "2026-03-04T05:06:07.000Z"

    def test_default_is_now(self) -> None:
        stamp = utc_timestamp()
        assert stamp.endswith("Z")
        assert len(stamp) == len("2026-03-04T05:06:07.891Z")
