"""In-memory fleet for development mode and tests.

Implements both outbound ports without hardware: temperatures come from
scripted sequences, and staging/commit only track which deployment is staged
or live per device. Faults (unavailable telemetry, unreachable devices,
rejected staging, slow uploads) are injected per device.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Iterable, Optional

from edge_governor.domain.entities.model import ModelArtifact
from edge_governor.domain.entities.telemetry import TelemetrySnapshot
from edge_governor.domain.exceptions import (
    DeviceUnreachableError,
    StagingError,
    TelemetryUnavailableError,
)
from edge_governor.domain.value_objects.device_identifiers import DeploymentId, DeviceId
from edge_governor.domain.value_objects.quant_levels import QuantLevel


class SimulatedFleet:
    """Scripted telemetry source and device transport."""

    def __init__(
        self,
        default_temp_c: float = 45.0,
        total_memory_mb: int = 8192,
        power_watts: float = 7.0,
        history_size: int = 1000,
    ) -> None:
        """Create an idle fleet.

        Args:
            default_temp_c: GPU temperature once a device's script runs out.
            total_memory_mb: Reported device memory.
            power_watts: Reported board power.
            history_size: Most recent transport and telemetry calls kept in
                ``calls``.
        """
        self.default_temp_c = default_temp_c
        self.total_memory_mb = total_memory_mb
        self.power_watts = power_watts

        self._temperatures: dict[DeviceId, deque[float]] = {}
        self._unavailable: set[DeviceId] = set()
        self._unreachable: set[DeviceId] = set()
        self._staging_failures: dict[DeviceId, str] = {}
        self._commit_failures: set[DeviceId] = set()
        self._delays: dict[DeviceId, float] = {}

        self.staged: dict[DeviceId, dict[DeploymentId, QuantLevel]] = {}
        self.live: dict[DeviceId, DeploymentId] = {}
        self.calls: deque[tuple[str, DeviceId]] = deque(maxlen=history_size)

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def set_temperatures(self, device_id: DeviceId, temperatures: Iterable[float]) -> None:
        """Script GPU temperatures; the last value repeats once exhausted."""
        self._temperatures[device_id] = deque(temperatures)

    def set_unavailable(self, device_id: DeviceId, unavailable: bool = True) -> None:
        """Make telemetry sampling fail for a device."""
        if unavailable:
            self._unavailable.add(device_id)
        else:
            self._unavailable.discard(device_id)

    def set_unreachable(self, device_id: DeviceId, unreachable: bool = True) -> None:
        """Make every transport call and telemetry sample fail for a device."""
        if unreachable:
            self._unreachable.add(device_id)
        else:
            self._unreachable.discard(device_id)

    def fail_staging(self, device_id: DeviceId, reason: str = "rejected by device") -> None:
        self._staging_failures[device_id] = reason

    def fail_commit(self, device_id: DeviceId) -> None:
        self._commit_failures.add(device_id)

    def set_delay(self, device_id: DeviceId, seconds: float) -> None:
        """Slow down staging on a device."""
        self._delays[device_id] = seconds

    def live_deployment(self, device_id: DeviceId) -> Optional[DeploymentId]:
        return self.live.get(device_id)

    # ------------------------------------------------------------------
    # TelemetrySourcePort
    # ------------------------------------------------------------------

    async def sample_raw(self, device_id: DeviceId) -> TelemetrySnapshot:
        self.calls.append(("sample", device_id))
        if device_id in self._unreachable:
            raise TelemetryUnavailableError(device_id, "device unreachable")
        if device_id in self._unavailable:
            raise TelemetryUnavailableError(device_id, "sensor read failed")

        temperature = self._next_temperature(device_id)
        return TelemetrySnapshot(
            gpu_temp_c=temperature,
            cpu_temp_c=temperature - 5.0,
            soc_temp_c=temperature - 3.0,
            used_memory_mb=0,
            total_memory_mb=self.total_memory_mb,
            power_watts=self.power_watts,
        )

    def _next_temperature(self, device_id: DeviceId) -> float:
        script = self._temperatures.get(device_id)
        if not script:
            return self.default_temp_c
        if len(script) > 1:
            return script.popleft()
        return script[0]

    # ------------------------------------------------------------------
    # DeviceTransportPort
    # ------------------------------------------------------------------

    async def stage_model(
        self,
        device_id: DeviceId,
        deployment_id: DeploymentId,
        artifact: ModelArtifact,
        level: QuantLevel,
    ) -> None:
        self.calls.append(("stage", device_id))
        delay = self._delays.get(device_id)
        if delay:
            await asyncio.sleep(delay)
        self._check_reachable(device_id)
        if device_id in self._staging_failures:
            raise StagingError(device_id, self._staging_failures[device_id])
        self.staged.setdefault(device_id, {})[deployment_id] = level

    async def commit_model(self, device_id: DeviceId, deployment_id: DeploymentId) -> None:
        self.calls.append(("commit", device_id))
        self._check_reachable(device_id)
        if device_id in self._commit_failures:
            raise DeviceUnreachableError(device_id, "connection dropped during commit")
        self.staged.get(device_id, {}).pop(deployment_id, None)
        self.live[device_id] = deployment_id

    async def discard_model(self, device_id: DeviceId, deployment_id: DeploymentId) -> None:
        self.calls.append(("discard", device_id))
        self._check_reachable(device_id)
        self.staged.get(device_id, {}).pop(deployment_id, None)

    async def probe(self, device_id: DeviceId) -> None:
        self.calls.append(("probe", device_id))
        self._check_reachable(device_id)

    def _check_reachable(self, device_id: DeviceId) -> None:
        if device_id in self._unreachable:
            raise DeviceUnreachableError(device_id, "no route to device")
