"""Prometheus metrics export for edge governor monitoring.

Exports thermal breaker state, memory budgets, fleet health and deployment
outcomes in Prometheus format for time-series collection.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from edge_governor.domain.entities.fleet import MemberHealth
from edge_governor.domain.entities.thermal import BreakerState

if TYPE_CHECKING:
    from edge_governor.domain.entities.fleet import DeploymentReport, FleetHealth, FleetMember
    from edge_governor.domain.entities.thermal import BreakerTransition

_BREAKER_STATE_VALUES = {
    BreakerState.CLOSED: 0,
    BreakerState.OPEN: 1,
    BreakerState.COOLING: 2,
}


class PrometheusExporter:
    """Export edge governor metrics to Prometheus."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Prometheus exporter.

        Args:
            registry: Prometheus collector registry. Creates a private one if None.
        """
        self.registry = registry or CollectorRegistry()

        # Thermal Metrics
        self.breaker_state = Gauge(
            'edge_breaker_state',
            'Thermal breaker state (0=CLOSED, 1=OPEN, 2=COOLING)',
            ['device_id'],
            registry=self.registry,
        )

        self.breaker_transitions = Counter(
            'edge_breaker_transitions_total',
            'Thermal breaker state transitions',
            ['device_id', 'state'],
            registry=self.registry,
        )

        self.device_temperature = Gauge(
            'edge_device_temperature_celsius',
            'Last sampled GPU temperature in Celsius',
            ['device_id'],
            registry=self.registry,
        )

        # Memory Metrics
        self.memory_allocated = Gauge(
            'edge_memory_allocated_mb',
            'Memory reserved through the budget in MB',
            ['device_id'],
            registry=self.registry,
        )

        self.memory_available = Gauge(
            'edge_memory_available_mb',
            'Memory still available in the budget in MB',
            ['device_id'],
            registry=self.registry,
        )

        self.allocation_failures = Counter(
            'edge_memory_allocation_failures_total',
            'Rejected memory reservations',
            ['device_id'],
            registry=self.registry,
        )

        # Fleet Metrics
        self.fleet_members = Gauge(
            'edge_fleet_members',
            'Fleet members by health',
            ['health'],
            registry=self.registry,
        )

        self.fleet_health_percent = Gauge(
            'edge_fleet_health_percent',
            'Share of healthy fleet members',
            registry=self.registry,
        )

        # Deployment Metrics
        self.deployments = Counter(
            'edge_deployments_total',
            'Fleet deployments by outcome',
            ['outcome'],
            registry=self.registry,
        )

        self.staging_duration = Histogram(
            'edge_staging_duration_seconds',
            'Per-device model staging duration in seconds',
            buckets=(0.1, 0.5, 1, 5, 10, 30, 60),
            registry=self.registry,
        )

    def record_transition(self, transition: BreakerTransition) -> None:
        """Record a thermal breaker state change."""
        device_id = str(transition.device_id)
        self.breaker_state.labels(device_id=device_id).set(_BREAKER_STATE_VALUES[transition.current])
        self.breaker_transitions.labels(device_id=device_id, state=transition.current.value).inc()
        if transition.temperature_c is not None:
            self.device_temperature.labels(device_id=device_id).set(transition.temperature_c)

    def update_member_metrics(self, member: FleetMember) -> None:
        """Update per-device gauges from a fleet member.

        Args:
            member: Member with current breaker, budget and telemetry.
        """
        device_id = str(member.device_id)
        self.breaker_state.labels(device_id=device_id).set(_BREAKER_STATE_VALUES[member.breaker_state])
        self.memory_allocated.labels(device_id=device_id).set(member.budget.allocated_mb)
        self.memory_available.labels(device_id=device_id).set(member.budget.available_mb())

        snapshot = member.breaker.last_snapshot
        if snapshot is not None:
            self.device_temperature.labels(device_id=device_id).set(snapshot.gpu_temp_c)

    def remove_device(self, device_id: str) -> None:
        """Drop every per-device series of a device that left the fleet."""
        device_id = str(device_id)
        labelled = [
            (self.breaker_state, (device_id,)),
            (self.device_temperature, (device_id,)),
            (self.memory_allocated, (device_id,)),
            (self.memory_available, (device_id,)),
            (self.allocation_failures, (device_id,)),
        ]
        labelled.extend((self.breaker_transitions, (device_id, state.value)) for state in BreakerState)
        for metric, labels in labelled:
            try:
                metric.remove(*labels)
            except KeyError:
                # Series never written for this device
                continue

    def update_fleet_health(self, health: FleetHealth) -> None:
        """Update fleet health gauges."""
        self.fleet_members.labels(health=MemberHealth.HEALTHY.value).set(health.healthy)
        self.fleet_members.labels(health=MemberHealth.DEGRADED.value).set(health.degraded)
        self.fleet_members.labels(health=MemberHealth.OFFLINE.value).set(health.offline)
        self.fleet_health_percent.set(health.health_percent)

    def record_allocation_failure(self, device_id: str) -> None:
        self.allocation_failures.labels(device_id=device_id).inc()

    def record_deployment(self, report: DeploymentReport) -> None:
        """Record a deployment that reached the commit phase.

        Args:
            report: Deployment report with per-device staging durations.
        """
        outcome = "committed" if report.succeeded else "partial_commit"
        if not report.committed and not report.commit_failures:
            outcome = "no_targets"
        self.deployments.labels(outcome=outcome).inc()
        for duration in report.stage_durations_s.values():
            self.staging_duration.observe(duration)

    def record_deployment_aborted(self) -> None:
        """Record a deployment aborted during staging."""
        self.deployments.labels(outcome="aborted").inc()

    def export_metrics(self) -> str:
        """Export metrics in Prometheus text format.

        Returns:
            Prometheus text format metrics.
        """
        return generate_latest(self.registry).decode('utf-8')
