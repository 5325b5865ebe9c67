"""Outbound adapters for the edge governor.

Provides the simulated fleet (telemetry and transport), Prometheus metrics
export and OpenTelemetry tracing.
"""

from edge_governor.adapters.outbound.metrics import PrometheusExporter
from edge_governor.adapters.outbound.simulated_fleet import SimulatedFleet
from edge_governor.adapters.outbound.tracing import OpenTelemetryTracer

__all__ = [
    "OpenTelemetryTracer",
    "PrometheusExporter",
    "SimulatedFleet",
]
