"""Outbound ports - external collaborator interfaces for the governor.

The governor consumes structured telemetry, drives model staging and reports
deployment steps to tracing through these protocols. Parsing vendor telemetry formats and the network transport
itself live behind the implementations.
"""

from __future__ import annotations

from typing import Any, ContextManager, Protocol

from edge_governor.domain.entities.model import ModelArtifact
from edge_governor.domain.entities.telemetry import TelemetrySnapshot
from edge_governor.domain.value_objects.device_identifiers import DeploymentId, DeviceId
from edge_governor.domain.value_objects.quant_levels import QuantLevel


# =============================================================================
# Telemetry Source Port
# =============================================================================


class TelemetrySourcePort(Protocol):
    """Supplies periodic hardware snapshots."""

    async def sample_raw(self, device_id: DeviceId) -> TelemetrySnapshot:
        """Take one telemetry sample.

        Args:
            device_id: Device to sample.

        Returns:
            Parsed snapshot.

        Raises:
            TelemetryUnavailableError: If the device could not be sampled.
        """
        ...


# =============================================================================
# Device Transport Port
# =============================================================================


class DeviceTransportPort(Protocol):
    """Moves model artifacts to devices and checks reachability.

    Staging must be side-effect free apart from a staged copy that
    ``discard_model`` removes. ``commit_model`` is the only irreversible step.
    """

    async def stage_model(
        self,
        device_id: DeviceId,
        deployment_id: DeploymentId,
        artifact: ModelArtifact,
        level: QuantLevel,
    ) -> None:
        """Upload and prepare a model without making it live.

        Raises:
            StagingError: If the device rejected the model.
            DeviceUnreachableError: If the device could not be reached.
        """
        ...

    async def commit_model(self, device_id: DeviceId, deployment_id: DeploymentId) -> None:
        """Atomically make a staged model live.

        Raises:
            DeviceUnreachableError: If the device could not be reached.
        """
        ...

    async def discard_model(self, device_id: DeviceId, deployment_id: DeploymentId) -> None:
        """Drop a staged model that will not be committed."""
        ...

    async def probe(self, device_id: DeviceId) -> None:
        """Check that a device answers.

        Raises:
            DeviceUnreachableError: If the device did not answer.
        """
        ...


# =============================================================================
# Deployment Tracer Port
# =============================================================================


class DeploymentTracerPort(Protocol):
    """Wraps each member's staging and commit step in a trace span."""

    def trace_stage(self, device_id: DeviceId) -> ContextManager[Any]:
        """Context covering one member's memory reservation and upload."""
        ...

    def trace_commit(self, device_id: DeviceId, level: QuantLevel) -> ContextManager[Any]:
        """Context covering one member's commit."""
        ...


__all__ = [
    "DeploymentTracerPort",
    "DeviceTransportPort",
    "TelemetrySourcePort",
]
