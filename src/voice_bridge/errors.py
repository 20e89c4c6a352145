"""Exception hierarchy for voice-bridge."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voice_bridge.relay.protocol import ErrorCode


class RelayError(Exception):
    """Base exception for relay-related errors."""

    pass


class FrameError(RelayError):
    """Raised when an inbound frame cannot be accepted.

    Carries the protocol error code reported back to the sender.
    """

    def __init__(self, code: "ErrorCode", message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class TransportClosedError(RelayError, ConnectionError):
    """Raised when sending over a transport that is closed or closing."""

    pass


class ExecutionError(RelayError):
    """Raised when the conversational-turn executor fails."""

    pass


class ConfigurationError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""

    pass
