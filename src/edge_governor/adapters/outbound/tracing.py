"""OpenTelemetry tracing for the edge governor.

Provides spans around fleet deployments, health sweeps and thermally guarded
work, and records breaker transitions as span events.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Generator, Iterable, Optional

from opentelemetry import trace

if TYPE_CHECKING:
    from edge_governor.domain.entities.thermal import BreakerTransition
    from edge_governor.domain.value_objects.quant_levels import QuantLevel


class OpenTelemetryTracer:
    """Distributed tracing for the edge governor using OpenTelemetry."""

    def __init__(
        self,
        tracer: Optional[trace.Tracer] = None,
        service_name: str = "edge-governor",
    ):
        """Initialize the tracer adapter.

        Args:
            tracer: Tracer to create spans with. Uses the global provider if None.
            service_name: Name of the service for traces.
        """
        self.tracer = tracer or trace.get_tracer("edge_governor")
        self.service_name = service_name

    @contextmanager
    def trace_deployment(
        self, model_name: str, targets: Iterable[str] = ()
    ) -> Generator[trace.Span, None, None]:
        """Trace a whole fleet deployment.

        Args:
            model_name: Model being deployed.
            targets: Explicit target device ids, if any.

        Yields:
            Span for the deployment.
        """
        with self.tracer.start_as_current_span(
            "deployment.run",
            attributes={
                "model.name": model_name,
                "deployment.targets": ",".join(targets),
                "service.name": self.service_name,
            },
        ) as span:
            yield span

    @contextmanager
    def trace_stage(self, device_id: str) -> Generator[trace.Span, None, None]:
        """Trace memory reservation and upload on one device.

        Args:
            device_id: Device the model is staged on.

        Yields:
            Span for the staging step.
        """
        with self.tracer.start_as_current_span(
            "deployment.stage",
            attributes={
                "device.id": device_id,
                "service.name": self.service_name,
            },
        ) as span:
            yield span

    @contextmanager
    def trace_commit(self, device_id: str, level: QuantLevel) -> Generator[trace.Span, None, None]:
        """Trace the commit on one device."""
        with self.tracer.start_as_current_span(
            "deployment.commit",
            attributes={
                "device.id": device_id,
                "model.quant_level": level.value,
                "service.name": self.service_name,
            },
        ) as span:
            yield span

    @contextmanager
    def trace_health_refresh(self, member_count: int) -> Generator[trace.Span, None, None]:
        """Trace a fleet health sweep."""
        with self.tracer.start_as_current_span(
            "fleet.health_refresh",
            attributes={
                "fleet.members": member_count,
                "service.name": self.service_name,
            },
        ) as span:
            yield span

    @contextmanager
    def trace_guard(self, device_id: str) -> Generator[trace.Span, None, None]:
        """Trace work run behind a thermal breaker."""
        with self.tracer.start_as_current_span(
            "thermal.guard",
            attributes={
                "device.id": device_id,
                "service.name": self.service_name,
            },
        ) as span:
            yield span

    def record_transition(self, transition: BreakerTransition) -> None:
        """Record a breaker transition as an event on the current span.

        Args:
            transition: Breaker state change.
        """
        attributes = {
            "device.id": str(transition.device_id),
            "breaker.previous": transition.previous.value,
            "breaker.current": transition.current.value,
            "breaker.reason": transition.reason,
        }
        if transition.temperature_c is not None:
            attributes["device.temperature_c"] = transition.temperature_c
        trace.get_current_span().add_event("thermal.transition", attributes=attributes)
