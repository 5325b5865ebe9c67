"""Configuration for the edge governor."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edge_governor.domain.entities.device import AcceleratorModel
from edge_governor.domain.entities.thermal import ThermalPolicy


class ThermalPolicySettings(BaseModel):
    """Thermal breaker limits."""

    threshold_c: float = Field(default=65.0)
    cooldown_c: float = Field(default=55.0)
    check_interval_ms: int = Field(default=500, gt=0)

    @model_validator(mode="after")
    def check_hysteresis(self) -> ThermalPolicySettings:
        if self.cooldown_c >= self.threshold_c:
            raise ValueError(
                f"cooldown_c ({self.cooldown_c}) must be below threshold_c ({self.threshold_c})"
            )
        return self

    def to_policy(self) -> ThermalPolicy:
        return ThermalPolicy(
            threshold_c=self.threshold_c,
            cooldown_c=self.cooldown_c,
            check_interval_ms=self.check_interval_ms,
        )


class ThermalConfig(BaseModel):
    """Thermal policy presets."""

    conservative: ThermalPolicySettings = Field(default_factory=ThermalPolicySettings)
    aggressive: ThermalPolicySettings = Field(
        default_factory=lambda: ThermalPolicySettings(threshold_c=75.0, cooldown_c=65.0, check_interval_ms=1000)
    )
    default_profile: Literal["conservative", "aggressive"] = Field(default="conservative")

    def policy(self, profile: str | None = None) -> ThermalPolicy:
        """Policy for a named profile, or the default profile."""
        name = profile or self.default_profile
        return getattr(self, name).to_policy()


class MemoryConfig(BaseModel):
    """Memory budget configuration."""

    reserved_fraction: float = Field(default=0.25, ge=0.0, lt=1.0)


class DeviceSettings(BaseModel):
    """A statically configured fleet device."""

    id: str
    model: AcceleratorModel = Field(default=AcceleratorModel.UNKNOWN)
    address: str | None = Field(default=None)
    thermal_profile: Literal["conservative", "aggressive"] | None = Field(default=None)
    total_memory_mb: int | None = Field(default=None, ge=0)
    reserved_mb: int | None = Field(default=None, ge=0)


class FleetConfig(BaseModel):
    """Fleet governor configuration."""

    name: str = Field(default="edge-fleet")
    staging_timeout_seconds: float = Field(default=30.0, gt=0)
    commit_timeout_seconds: float = Field(default=30.0, gt=0)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)
    offline_grace_seconds: float = Field(default=60.0, ge=0)
    devices: list[DeviceSettings] = Field(default_factory=list)


class ServerConfig(BaseModel):
    """Metrics endpoint configuration."""

    serve_metrics: bool = Field(default=False)
    metrics_port: int = Field(default=9108, ge=0, le=65535)


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    otlp_endpoint: str | None = Field(default=None)
    environment: str = Field(default="development")
    service_name: str = Field(default="edge-governor")


class Config(BaseSettings):
    """Main configuration."""

    model_config = SettingsConfigDict(env_prefix="EDGE_GOVERNOR_", env_nested_delimiter="__")

    thermal: ThermalConfig = Field(default_factory=ThermalConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    fleet: FleetConfig = Field(default_factory=FleetConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    return Config()
