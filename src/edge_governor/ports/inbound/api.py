"""Inbound port interfaces for the edge governor.

Inbound ports define what the system offers to external clients.
Adapters implement these with REST, CLI, etc.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol, TypeVar, Union

from edge_governor.domain.entities.device import ComputeHint, DeviceInfo
from edge_governor.domain.entities.fleet import (
    DeploymentConfig,
    DeploymentReport,
    FleetHealth,
    FleetMember,
)
from edge_governor.domain.entities.model import ModelArtifact
from edge_governor.domain.services.memory_budget import MemoryGuard
from edge_governor.domain.services.quantization_selector import QuantizationPlan
from edge_governor.domain.value_objects.device_identifiers import DeviceId

T = TypeVar("T")


class EdgeGovernorAPI(Protocol):
    """Main API offered by the edge governor."""

    def list_devices(self) -> list[FleetMember]:
        """List fleet members.

        Returns:
            Current members in insertion order.
        """
        ...

    def get_device(self, device_id: DeviceId) -> FleetMember | None:
        """Get a fleet member.

        Args:
            device_id: Device to query.

        Returns:
            The member, or None if not found.
        """
        ...

    def add_device(self, device: DeviceInfo) -> FleetMember:
        """Add a device to the fleet.

        Raises:
            ConfigInvalidError: If the device id is already present.
        """
        ...

    def remove_device(self, device_id: DeviceId) -> bool:
        """Remove a device.

        Returns:
            True if removed, False if not found.
        """
        ...

    def fleet_health(self) -> FleetHealth:
        """Get the fleet health summary."""
        ...

    async def refresh_health(self) -> FleetHealth:
        """Sample every member and return the updated summary."""
        ...

    async def run_guarded(self, device_id: DeviceId, work: Callable[[], Union[Awaitable[T], T]]) -> T:
        """Run work behind a device's thermal breaker."""
        ...

    def allocate(self, device_id: DeviceId, size_mb: int, label: str = "") -> MemoryGuard:
        """Reserve memory on a device.

        Raises:
            InsufficientMemoryError: If the budget cannot fit the request.
        """
        ...

    def select_quantization(self, device_id: DeviceId, f16_size_mb: float) -> QuantizationPlan:
        """Pick a quantization level for a device's current headroom."""
        ...

    def compute_hint(self, device_id: DeviceId) -> ComputeHint:
        """Backend hint for the compute-dispatch layer."""
        ...

    async def deploy_model(
        self,
        model: bytes | ModelArtifact,
        config: DeploymentConfig | None = None,
    ) -> DeploymentReport:
        """Deploy a model with all-or-nothing semantics.

        Raises:
            DeploymentPartialFailureError: If staging failed on any reachable
                member; nothing was committed.
        """
        ...
