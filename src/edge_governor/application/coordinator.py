"""Edge Governor Application Coordinator.

Implements the EdgeGovernorAPI by wrapping the fleet governor with
configuration-driven fleet setup, structured logging, Prometheus metrics and
OpenTelemetry tracing.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Optional, TypeVar, Union

from edge_governor.adapters.outbound.metrics import PrometheusExporter
from edge_governor.adapters.outbound.tracing import OpenTelemetryTracer
from edge_governor.domain.entities.device import ComputeHint, DeviceInfo
from edge_governor.domain.entities.fleet import (
    DeploymentConfig,
    DeploymentReport,
    FleetHealth,
    FleetMember,
)
from edge_governor.domain.entities.model import ModelArtifact
from edge_governor.domain.entities.thermal import BreakerTransition, ThermalPolicy
from edge_governor.domain.exceptions import DeploymentPartialFailureError, InsufficientMemoryError
from edge_governor.domain.services.fleet_governor import FleetGovernor
from edge_governor.domain.services.memory_budget import MemoryBudget, MemoryGuard
from edge_governor.domain.services.quantization_selector import QuantizationPlan
from edge_governor.domain.value_objects.device_identifiers import DeviceId
from edge_governor.infrastructure.config import Config, DeviceSettings, get_config
from edge_governor.infrastructure.logging import get_logger
from edge_governor.ports.outbound import DeviceTransportPort, TelemetrySourcePort

logger = get_logger(__name__)

T = TypeVar("T")


class EdgeGovernorCoordinator:
    """Coordinates edge governor operations with full observability."""

    def __init__(
        self,
        telemetry: TelemetrySourcePort,
        transport: DeviceTransportPort,
        config: Optional[Config] = None,
        metrics: Optional[PrometheusExporter] = None,
        tracer: Optional[OpenTelemetryTracer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            telemetry: Telemetry source for every device.
            transport: Model staging transport.
            config: Configuration. Loaded from the environment if None.
            metrics: Prometheus exporter, or None to disable metrics.
            tracer: Tracing adapter, or None to disable tracing.
            clock: Monotonic clock for offline grace accounting.
        """
        self._config = config or get_config()
        fleet = self._config.fleet
        self._governor = FleetGovernor(
            telemetry,
            transport,
            staging_timeout_seconds=fleet.staging_timeout_seconds,
            commit_timeout_seconds=fleet.commit_timeout_seconds,
            probe_timeout_seconds=fleet.probe_timeout_seconds,
            offline_grace_seconds=fleet.offline_grace_seconds,
            reserved_fraction=self._config.memory.reserved_fraction,
            clock=clock,
            tracer=tracer,
        )
        self._metrics = metrics
        self._tracer = tracer
        self._governor.register_transition_callback(self._on_transition)
        self._initialized = False

    @property
    def governor(self) -> FleetGovernor:
        return self._governor

    @property
    def config(self) -> Config:
        return self._config

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Register every device listed in the fleet configuration."""
        try:
            for settings in self._config.fleet.devices:
                device = DeviceInfo(
                    device_id=DeviceId(settings.id),
                    model=settings.model,
                    address=settings.address,
                )
                self.add_device(
                    device,
                    policy=self._config.thermal.policy(settings.thermal_profile),
                    budget=self._budget_from_settings(settings),
                )
        except Exception as e:
            logger.error("fleet_initialization_failed", error=str(e))
            raise

        self._initialized = True
        logger.info(
            "fleet_initialized",
            fleet=self._config.fleet.name,
            devices=len(self._governor),
        )

    def _budget_from_settings(self, settings: DeviceSettings) -> Optional[MemoryBudget]:
        if settings.total_memory_mb is None and settings.reserved_mb is None:
            return None
        total = settings.total_memory_mb
        if total is None:
            total = settings.model.memory_mb
        reserved = settings.reserved_mb
        if reserved is None:
            reserved = int(total * self._config.memory.reserved_fraction)
        return MemoryBudget(total, reserved)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def add_device(
        self,
        device: DeviceInfo,
        policy: Optional[ThermalPolicy] = None,
        budget: Optional[MemoryBudget] = None,
    ) -> FleetMember:
        """Add a device, defaulting to the configured thermal profile."""
        member = self._governor.add_device(device, policy or self._config.thermal.policy(), budget)
        logger.info(
            "device_added",
            device_id=device.device_id,
            model=device.model.value,
            threshold_c=member.policy.threshold_c,
            usable_mb=member.budget.usable_mb,
        )
        self._update_member_metrics(member)
        self._update_health_metrics()
        return member

    def remove_device(self, device_id: DeviceId) -> bool:
        member = self._governor.remove_device(device_id)
        if member is None:
            return False
        logger.info("device_removed", device_id=device_id)
        if self._metrics:
            self._metrics.remove_device(device_id)
        self._update_health_metrics()
        return True

    def list_devices(self) -> list[FleetMember]:
        return self._governor.members()

    def get_device(self, device_id: DeviceId) -> Optional[FleetMember]:
        return self._governor.get(device_id)

    def enable_device(self, device_id: DeviceId) -> None:
        self._governor.enable(device_id)
        logger.info("device_enabled", device_id=device_id)
        self._update_health_metrics()

    def disable_device(self, device_id: DeviceId) -> None:
        self._governor.disable(device_id)
        logger.info("device_disabled", device_id=device_id)
        self._update_health_metrics()

    async def reconnect(self, device_id: DeviceId) -> bool:
        reconnected = await self._governor.reconnect(device_id)
        logger.info("device_reconnect", device_id=device_id, success=reconnected)
        self._update_health_metrics()
        return reconnected

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def fleet_health(self) -> FleetHealth:
        return self._governor.health_status()

    async def refresh_health(self) -> FleetHealth:
        """Sample every member and refresh health and metrics."""
        if self._tracer:
            with self._tracer.trace_health_refresh(len(self._governor)):
                health = await self._governor.refresh_health()
        else:
            health = await self._governor.refresh_health()

        for member in self._governor.members():
            self._update_member_metrics(member)
        self._update_health_metrics(health)
        logger.info("fleet_health_refreshed", **health.as_dict())
        return health

    # ------------------------------------------------------------------
    # Per-device resources
    # ------------------------------------------------------------------

    async def run_guarded(self, device_id: DeviceId, work: Callable[[], Union[Awaitable[T], T]]) -> T:
        """Run work behind a device's thermal breaker."""
        if self._tracer:
            with self._tracer.trace_guard(device_id):
                return await self._governor.guard(device_id, work)
        return await self._governor.guard(device_id, work)

    def allocate(self, device_id: DeviceId, size_mb: int, label: str = "") -> MemoryGuard:
        """Reserve memory on a device.

        Raises:
            InsufficientMemoryError: If the budget cannot fit the request.
        """
        try:
            guard = self._governor.allocate(device_id, size_mb, label)
        except InsufficientMemoryError as e:
            if self._metrics:
                self._metrics.record_allocation_failure(device_id)
            logger.warning(
                "allocation_rejected",
                device_id=device_id,
                requested_mb=e.requested_mb,
                available_mb=e.available_mb,
                label=label,
            )
            raise
        member = self._governor.get(device_id)
        if member is not None:
            self._update_member_metrics(member)
        return guard

    def select_quantization(self, device_id: DeviceId, f16_size_mb: float) -> QuantizationPlan:
        return self._governor.select_quantization(device_id, f16_size_mb)

    def compute_hint(self, device_id: DeviceId) -> ComputeHint:
        return self._governor.compute_hint(device_id)

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    async def deploy_model(
        self,
        model: Union[bytes, ModelArtifact],
        config: Optional[DeploymentConfig] = None,
    ) -> DeploymentReport:
        """Deploy a model across the fleet.

        Raises:
            DeploymentPartialFailureError: If staging failed anywhere; nothing
                was committed.
        """
        model_name = model.name if isinstance(model, ModelArtifact) else "model"
        targets = config.target_devices if config else ()

        if self._tracer:
            with self._tracer.trace_deployment(model_name, targets) as span:
                try:
                    report = await self._deploy(model, config)
                except DeploymentPartialFailureError as e:
                    span.set_attribute("deployment.aborted", True)
                    span.set_attribute("deployment.failed_members", ",".join(sorted(e.failed_members)))
                    raise
                span.set_attribute("deployment.id", report.deployment_id)
                span.set_attribute("deployment.committed", len(report.committed))
                return report
        return await self._deploy(model, config)

    async def _deploy(
        self,
        model: Union[bytes, ModelArtifact],
        config: Optional[DeploymentConfig],
    ) -> DeploymentReport:
        try:
            report = await self._governor.deploy_model(model, config)
        except DeploymentPartialFailureError as e:
            if self._metrics:
                self._metrics.record_deployment_aborted()
            logger.warning(
                "deployment_aborted",
                deployment_id=e.deployment_id,
                failed_members=e.failed_members,
            )
            self._update_health_metrics()
            raise

        if self._metrics:
            self._metrics.record_deployment(report)
        for member in self._governor.members():
            self._update_member_metrics(member)
        self._update_health_metrics()

        logger.info(
            "deployment_committed",
            deployment_id=report.deployment_id,
            model=report.model_name,
            committed={device_id: str(level) for device_id, level in report.committed.items()},
            excluded=report.excluded,
            commit_failures=report.commit_failures,
            duration_s=round(report.duration_s, 3),
        )
        return report

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def _on_transition(self, transition: BreakerTransition) -> None:
        logger.info(
            "breaker_transition",
            device_id=transition.device_id,
            previous=transition.previous.value,
            current=transition.current.value,
            temperature_c=transition.temperature_c,
            reason=transition.reason,
        )
        if self._metrics:
            self._metrics.record_transition(transition)
        if self._tracer:
            self._tracer.record_transition(transition)

    def _update_member_metrics(self, member: FleetMember) -> None:
        if self._metrics:
            self._metrics.update_member_metrics(member)

    def _update_health_metrics(self, health: Optional[FleetHealth] = None) -> None:
        if self._metrics:
            self._metrics.update_fleet_health(health or self._governor.health_status())
