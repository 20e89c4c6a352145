"""Unit tests for voice-bridge configuration.

Tests configuration loading, validation, defaults and environment overrides.
"""

from pathlib import Path

import pytest

from voice_bridge.config import (
    ENV_OVERRIDES,
    BridgeConfig,
    PairingConfig,
    ReconnectConfig,
    RelayConfig,
    ServerConfig,
    apply_env_overrides,
)
from voice_bridge.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for env_var in ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)


def test_server_config_defaults() -> None:
    """Test server configuration defaults."""
    config = ServerConfig()
    assert config.host == "0.0.0.0"  # noqa: S104
    assert config.port == 3000
    assert config.http_port is None
    assert config.http_port_for(config.port) == 3001
    assert config.static_path is None


def test_server_config_validation() -> None:
    """Test port range validation."""
    assert ServerConfig(port=0).http_port_for(45123) == 45124
    assert ServerConfig(port=4000, http_port=8080).http_port_for(4000) == 8080

    with pytest.raises(ValueError):
        ServerConfig(port=-1)

    with pytest.raises(ValueError):
        ServerConfig(port=70000)


def test_pairing_config_defaults() -> None:
    """Test pairing code defaults (six digits, five minutes)."""
    config = PairingConfig()
    assert config.code_length == 6
    assert config.code_ttl_seconds == 300.0
    assert config.sweep_interval_seconds == 60.0


def test_reconnect_config_defaults() -> None:
    """Test reconnect backoff defaults."""
    config = ReconnectConfig()
    assert config.delays_ms == [2000, 4000, 8000, 16000]
    assert config.client_max_attempts == 10
    assert config.agent_max_attempts is None


def test_reconnect_config_validation() -> None:
    """Test the backoff schedule must be non-empty and non-negative."""
    with pytest.raises(ValueError, match="must not be empty"):
        ReconnectConfig(delays_ms=[])

    with pytest.raises(ValueError, match="non-negative"):
        ReconnectConfig(delays_ms=[1000, -1])


def test_bridge_config_defaults() -> None:
    config = BridgeConfig()
    assert config.command == "openclaw"
    assert config.agent is None
    assert config.timeout_seconds == 120.0
    assert config.agent_name == "Agent"


def test_log_level_normalized() -> None:
    """Test log level is validated and upper-cased."""
    assert RelayConfig(log_level="debug").log_level == "DEBUG"

    with pytest.raises(ValueError, match="log_level must be one of"):
        RelayConfig(log_level="chatty")


def test_http_port_collision_rejected() -> None:
    with pytest.raises(ValueError, match="must differ"):
        RelayConfig(server=ServerConfig(port=4000, http_port=4000))


def test_relay_config_from_yaml(tmp_path: Path) -> None:
    """Test loading configuration from YAML file."""
    config_file = tmp_path / "relay.yaml"
    config_file.write_text(
        """
server:
  port: 4100
  http_port: 4200
pairing:
  code_ttl_seconds: 120
bridge:
  command: myagent
  agent: helper
log_level: warning
"""
    )

    config = RelayConfig.from_yaml(config_file)

    assert config.server.port == 4100
    assert config.server.http_port == 4200
    assert config.pairing.code_ttl_seconds == 120
    assert config.bridge.command == "myagent"
    assert config.bridge.agent == "helper"
    assert config.log_level == "WARNING"


def test_relay_config_from_yaml_with_env_overrides(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test environment variables override file values."""
    config_file = tmp_path / "relay.yaml"
    config_file.write_text("server:\n  port: 4100\n")
    monkeypatch.setenv("RELAY_PORT", "5100")
    monkeypatch.setenv("RELAY_LOG_LEVEL", "error")
    monkeypatch.setenv("VOICE_BRIDGE_AGENT_NAME", "Claw")

    config = RelayConfig.from_yaml(config_file)

    assert config.server.port == 5100
    assert config.log_level == "ERROR"
    assert config.bridge.agent_name == "Claw"


def test_relay_config_from_yaml_not_found() -> None:
    with pytest.raises(FileNotFoundError):
        RelayConfig.from_yaml(Path("/nonexistent/relay.yaml"))


def test_relay_config_from_yaml_invalid_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "relay.yaml"
    config_file.write_text("server: [unclosed\n")

    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        RelayConfig.from_yaml(config_file)


def test_relay_config_from_yaml_invalid_values(tmp_path: Path) -> None:
    config_file = tmp_path / "relay.yaml"
    config_file.write_text("server:\n  port: not-a-port\n")

    with pytest.raises(ConfigurationError):
        RelayConfig.from_yaml(config_file)


def test_relay_config_from_yaml_non_mapping(tmp_path: Path) -> None:
    config_file = tmp_path / "relay.yaml"
    config_file.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="must be a mapping"):
        RelayConfig.from_yaml(config_file)


def test_relay_config_from_yaml_with_defaults_missing() -> None:
    """Test defaults are used when the file doesn't exist."""
    config = RelayConfig.from_yaml_with_defaults(Path("/nonexistent/relay.yaml"))
    assert config.server.port == 3000


def test_relay_config_from_yaml_with_defaults_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_HTTP_PORT", "9000")
    config = RelayConfig.from_yaml_with_defaults(None)
    assert config.server.http_port == 9000


def test_apply_env_overrides_does_not_mutate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_HOST", "127.0.0.1")
    data = {"server": {"port": 1234}}

    merged = apply_env_overrides(data)

    assert merged == {"server": {"port": 1234, "host": "127.0.0.1"}}
    assert data == {"server": {"port": 1234}}


def test_sample_config_loads() -> None:
    """Test the shipped sample configuration is valid."""
    sample = Path(__file__).parents[2] / "configs" / "relay.yaml"
    config = RelayConfig.from_yaml(sample)
    assert config.server.port == 3000
