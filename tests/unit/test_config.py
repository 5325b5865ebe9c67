"""Unit tests for edge governor configuration."""

import pytest
from pydantic import ValidationError

from edge_governor.domain.entities.device import AcceleratorModel
from edge_governor.domain.entities.thermal import ThermalPolicy
from edge_governor.infrastructure.config import (
    Config,
    DeviceSettings,
    FleetConfig,
    MemoryConfig,
    ObservabilityConfig,
    ServerConfig,
    ThermalConfig,
    ThermalPolicySettings,
    get_config,
)


@pytest.mark.unit
class TestConfig:
    """Test configuration loading and validation."""

    def test_thermal_config_defaults(self):
        """Test thermal presets match the policy presets."""
        config = ThermalConfig()
        assert config.default_profile == "conservative"
        assert config.policy() == ThermalPolicy.conservative()
        assert config.policy("aggressive") == ThermalPolicy.aggressive()

    def test_thermal_hysteresis_validated(self):
        with pytest.raises(ValidationError):
            ThermalPolicySettings(threshold_c=60.0, cooldown_c=60.0)

    def test_memory_config_defaults(self):
        assert MemoryConfig().reserved_fraction == 0.25
        with pytest.raises(ValidationError):
            MemoryConfig(reserved_fraction=1.0)

    def test_fleet_config_defaults(self):
        """Test fleet timeouts and grace period defaults."""
        fleet_config = FleetConfig()
        assert fleet_config.staging_timeout_seconds == 30.0
        assert fleet_config.commit_timeout_seconds == 30.0
        assert fleet_config.probe_timeout_seconds == 5.0
        assert fleet_config.offline_grace_seconds == 60.0
        assert fleet_config.devices == []

    def test_device_settings(self):
        device = DeviceSettings(id="jetson-01", model="orin_nano_4gb", thermal_profile="aggressive")
        assert device.model is AcceleratorModel.ORIN_NANO_4GB
        assert device.total_memory_mb is None

    def test_server_config_defaults(self):
        server_config = ServerConfig()
        assert server_config.serve_metrics is False
        assert server_config.metrics_port == 9108

    def test_server_config_from_env(self, monkeypatch):
        monkeypatch.setenv("EDGE_GOVERNOR_SERVER__SERVE_METRICS", "true")
        monkeypatch.setenv("EDGE_GOVERNOR_SERVER__METRICS_PORT", "9200")
        config = Config()
        assert config.server.serve_metrics is True
        assert config.server.metrics_port == 9200

    def test_metrics_port_range(self):
        with pytest.raises(ValidationError):
            ServerConfig(metrics_port=70000)

    def test_observability_config_defaults(self):
        observability = ObservabilityConfig()
        assert observability.log_format == "json"
        assert observability.otlp_endpoint is None
        assert observability.environment == "development"

    def test_env_overrides(self, monkeypatch):
        """Test nested environment variables override defaults."""
        monkeypatch.setenv("EDGE_GOVERNOR_FLEET__STAGING_TIMEOUT_SECONDS", "12.5")
        monkeypatch.setenv("EDGE_GOVERNOR_THERMAL__DEFAULT_PROFILE", "aggressive")
        monkeypatch.setenv("EDGE_GOVERNOR_OBSERVABILITY__LOG_LEVEL", "DEBUG")

        config = Config()
        assert config.fleet.staging_timeout_seconds == 12.5
        assert config.thermal.policy() == ThermalPolicy.aggressive()
        assert config.observability.log_level == "DEBUG"

    def test_get_config_is_cached(self):
        assert get_config() is get_config()
