"""Domain entities for the edge governor.

Entities represent core objects with identity and lifecycle:
- DeviceInfo: Accelerator identity and model
- TelemetrySnapshot: One hardware sample
- ThermalPolicy / BreakerState: Thermal gating configuration and state
- FleetMember: Device under governance with health and live model
"""

from edge_governor.domain.entities.device import (
    AcceleratorModel,
    ComputeHint,
    DeviceInfo,
)
from edge_governor.domain.entities.fleet import (
    DeployedModel,
    DeploymentConfig,
    DeploymentReport,
    FleetHealth,
    FleetMember,
    MemberHealth,
)
from edge_governor.domain.entities.model import (
    ModelArtifact,
    ModelMemoryEstimate,
)
from edge_governor.domain.entities.telemetry import TelemetrySnapshot
from edge_governor.domain.entities.thermal import (
    BreakerState,
    BreakerTransition,
    ThermalPolicy,
)

__all__ = [
    # Device
    "AcceleratorModel",
    "ComputeHint",
    "DeviceInfo",
    # Fleet
    "DeployedModel",
    "DeploymentConfig",
    "DeploymentReport",
    "FleetHealth",
    "FleetMember",
    "MemberHealth",
    # Model
    "ModelArtifact",
    "ModelMemoryEstimate",
    # Telemetry
    "TelemetrySnapshot",
    # Thermal
    "BreakerState",
    "BreakerTransition",
    "ThermalPolicy",
]
