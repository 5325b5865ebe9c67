"""Dependency injection container for the edge governor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from opentelemetry import trace

from edge_governor.adapters.outbound.metrics import PrometheusExporter
from edge_governor.adapters.outbound.simulated_fleet import SimulatedFleet
from edge_governor.adapters.outbound.tracing import OpenTelemetryTracer
from edge_governor.application.coordinator import EdgeGovernorCoordinator
from edge_governor.infrastructure.config import Config, get_config
from edge_governor.infrastructure.logging import setup_logging
from edge_governor.infrastructure.metrics import get_metrics, setup_metrics
from edge_governor.infrastructure.tracing import setup_tracing
from edge_governor.ports.outbound import DeviceTransportPort, TelemetrySourcePort


@dataclass
class Container:
    """Dependency injection container for edge governor components."""

    config: Config
    logger: structlog.stdlib.BoundLogger
    tracer: trace.Tracer
    metrics: PrometheusExporter
    coordinator: EdgeGovernorCoordinator

    _instance: "Container | None" = None

    @classmethod
    def create(
        cls,
        telemetry: Optional[TelemetrySourcePort] = None,
        transport: Optional[DeviceTransportPort] = None,
    ) -> "Container":
        """Create and initialize the container with all dependencies.

        Without explicit adapters the fleet is simulated in memory.
        """
        if cls._instance is not None:
            return cls._instance

        config = get_config()
        logger = setup_logging(config.observability.log_level, config.observability.log_format)
        tracer = setup_tracing()
        if config.server.serve_metrics:
            metrics = setup_metrics(config.server.metrics_port)
        else:
            metrics = get_metrics()

        if telemetry is None or transport is None:
            simulated = SimulatedFleet()
            telemetry = telemetry or simulated
            transport = transport or simulated

        coordinator = EdgeGovernorCoordinator(
            telemetry,
            transport,
            config=config,
            metrics=metrics,
            tracer=OpenTelemetryTracer(tracer, service_name=config.observability.service_name),
        )
        coordinator.initialize()

        cls._instance = cls(
            config=config,
            logger=logger,
            tracer=tracer,
            metrics=metrics,
            coordinator=coordinator,
        )

        logger.info(
            "edge_governor_container_initialized",
            environment=config.observability.environment,
            fleet=config.fleet.name,
        )

        return cls._instance

    @classmethod
    def get(cls) -> "Container":
        """Get the singleton container instance."""
        if cls._instance is None:
            return cls.create()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        cls._instance = None


def get_container() -> Container:
    """Get the dependency injection container."""
    return Container.get()
