"""Prometheus metrics endpoint for the edge governor."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, start_http_server

from edge_governor.adapters.outbound.metrics import PrometheusExporter

_metrics: PrometheusExporter | None = None


def setup_metrics(port: int = 9108, registry: CollectorRegistry | None = None) -> PrometheusExporter:
    """Create the exporter and serve it over HTTP."""
    global _metrics
    registry = registry or REGISTRY
    _metrics = PrometheusExporter(registry)
    start_http_server(port, registry=registry)
    return _metrics


def get_metrics() -> PrometheusExporter:
    """Get the process exporter, creating an unserved one if needed."""
    global _metrics
    if _metrics is None:
        _metrics = PrometheusExporter()
    return _metrics
