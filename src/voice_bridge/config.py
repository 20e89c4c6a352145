"""Configuration schema for voice-bridge.

Defines Pydantic models for loading and validating relay, client and bridge
configuration from YAML files and environment variables.
"""

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from voice_bridge.errors import ConfigurationError


class ServerConfig(BaseModel):
    """Relay server bind configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=3000, ge=0, le=65535, description="WebSocket port")
    http_port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Status/health HTTP port (defaults to port + 1)",
    )
    max_message_size: int = Field(
        default=2**20, ge=1024, description="Maximum inbound frame size in bytes"
    )
    static_path: Path | None = Field(
        default=None, description="Optional directory of static UI assets served over HTTP"
    )

    def http_port_for(self, bound_port: int) -> int:
        """Status HTTP port given the bound WebSocket port."""
        if self.http_port is not None:
            return self.http_port
        return bound_port + 1


class PairingConfig(BaseModel):
    """Pairing code configuration."""

    code_length: int = Field(default=6, ge=4, le=12, description="Digits per pairing code")
    code_ttl_seconds: float = Field(
        default=300.0, gt=0, description="Seconds a code stays redeemable"
    )
    sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Seconds between expired-code sweeps"
    )


class LivenessConfig(BaseModel):
    """Keepalive configuration."""

    ping_interval_seconds: float = Field(
        default=30.0, gt=0, description="Seconds between ping cycles"
    )


class ReconnectConfig(BaseModel):
    """Client-side reconnection backoff configuration."""

    delays_ms: list[int] = Field(
        default_factory=lambda: [2000, 4000, 8000, 16000],
        description="Backoff schedule; the last value repeats",
    )
    client_max_attempts: int | None = Field(
        default=10,
        ge=1,
        description="Attempts before a client gives up (None retries forever)",
    )
    agent_max_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Attempts before an agent gives up (None retries forever)",
    )

    @field_validator("delays_ms")
    @classmethod
    def validate_delays(cls, v: list[int]) -> list[int]:
        """Validate that the schedule is non-empty and non-negative."""
        if not v:
            raise ValueError("reconnect delays_ms must not be empty")
        if any(d < 0 for d in v):
            raise ValueError(f"reconnect delays_ms must be non-negative, got {v}")
        return v


class BridgeConfig(BaseModel):
    """Conversational-turn executor configuration."""

    command: str = Field(default="openclaw", description="Agent CLI executable")
    agent: str | None = Field(default=None, description="Agent name passed via --agent")
    timeout_seconds: float = Field(default=120.0, gt=0, description="Per-turn timeout")
    agent_name: str = Field(default="Agent", description="Display name shown to clients")


class RelayConfig(BaseModel):
    """Root configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    liveness: LivenessConfig = Field(default_factory=LivenessConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @model_validator(mode="after")
    def validate_ports(self) -> "RelayConfig":
        """Reject an HTTP port that collides with the WebSocket port."""
        if self.server.port and self.server.http_port_for(self.server.port) == self.server.port:
            raise ValueError("server.http_port must differ from server.port")
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> "RelayConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ConfigurationError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {path}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RelayConfig":
        """Validate a raw mapping after applying environment overrides."""
        data = apply_env_overrides(data)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "RelayConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Environment overrides apply in both cases.
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)
        return cls.from_dict({})


# Environment variable → (section, key); section None means a root key
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "RELAY_HOST": ("server", "host"),
    "RELAY_PORT": ("server", "port"),
    "RELAY_HTTP_PORT": ("server", "http_port"),
    "RELAY_STATIC_PATH": ("server", "static_path"),
    "RELAY_LOG_LEVEL": (None, "log_level"),
    "VOICE_BRIDGE_COMMAND": ("bridge", "command"),
    "VOICE_BRIDGE_AGENT": ("bridge", "agent"),
    "VOICE_BRIDGE_AGENT_NAME": ("bridge", "agent_name"),
}


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    for env_var, (section, key) in ENV_OVERRIDES.items():
        if (value := os.getenv(env_var)) is None:
            continue
        if section is None:
            merged[key] = value
        else:
            merged.setdefault(section, {})[key] = value
    return merged
