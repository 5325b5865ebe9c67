"""FastAPI REST adapter for the edge governor.

Provides HTTP endpoints for fleet health, device management and per-device
resource queries.

Usage:
    from edge_governor.adapters.inbound.rest_api import create_app

    app = create_app(coordinator)
    # Serve with any ASGI server, e.g. uvicorn module:app --port 8080

References:
    - ports/inbound/api.py (EdgeGovernorAPI interface)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from edge_governor import __version__
from edge_governor.domain.entities.fleet import FleetMember
from edge_governor.domain.exceptions import (
    ConfigInvalidError,
    DeviceNotFoundError,
    InsufficientMemoryError,
)
from edge_governor.domain.value_objects.device_identifiers import DeviceId

if TYPE_CHECKING:
    from edge_governor.application.coordinator import EdgeGovernorCoordinator


# Pydantic models for request/response serialization


class HealthResponse(BaseModel):
    """Service health check response."""

    status: str
    initialized: bool
    devices: int


class FleetHealthResponse(BaseModel):
    """Fleet health summary."""

    total: int
    enabled: int
    healthy: int
    degraded: int
    offline: int
    health_percent: float


class LiveModelResponse(BaseModel):
    """Model currently committed on a device."""

    deployment_id: str
    model_name: str
    quant_level: str
    size_mb: int


class DeviceResponse(BaseModel):
    """Device status response."""

    device_id: str
    model: str
    address: Optional[str]
    enabled: bool
    health: str
    breaker_state: str
    threshold_c: float
    cooldown_c: float
    total_mb: int
    reserved_mb: int
    allocated_mb: int
    available_mb: int
    last_temperature_c: Optional[float]
    last_error: Optional[str]
    live_model: Optional[LiveModelResponse]


class ComputeHintResponse(BaseModel):
    """Backend hint for the compute-dispatch layer."""

    prefer_simd_backend: bool
    memory_budget_mb: int
    accelerator_available: bool


class QuantizationRequest(BaseModel):
    """Request a quantization level for a model."""

    f16_size_mb: float = Field(..., gt=0, description="Model weight size at F16 in MB")


class QuantizationResponse(BaseModel):
    """Selected quantization level."""

    level: str
    size_mb: float
    available_mb: int
    fits: bool
    perplexity_delta_percent: float


class ReconnectResponse(BaseModel):
    device_id: str
    reconnected: bool
    health: str


def _device_response(member: FleetMember) -> DeviceResponse:
    snapshot = member.breaker.last_snapshot
    live = member.live_model
    return DeviceResponse(
        device_id=member.device_id,
        model=member.device.model.value,
        address=member.device.address,
        enabled=member.enabled,
        health=member.health.value,
        breaker_state=member.breaker_state.value,
        threshold_c=member.policy.threshold_c,
        cooldown_c=member.policy.cooldown_c,
        total_mb=member.budget.total_mb,
        reserved_mb=member.budget.reserved_mb,
        allocated_mb=member.budget.allocated_mb,
        available_mb=member.budget.available_mb(),
        last_temperature_c=snapshot.gpu_temp_c if snapshot else None,
        last_error=member.last_error,
        live_model=LiveModelResponse(
            deployment_id=live.deployment_id,
            model_name=live.model_name,
            quant_level=str(live.level),
            size_mb=live.size_mb,
        ) if live else None,
    )


def create_app(coordinator: EdgeGovernorCoordinator) -> FastAPI:
    """Create FastAPI application with edge governor endpoints.

    Args:
        coordinator: EdgeGovernorCoordinator instance.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Edge Governor API",
        description="Thermal, memory and deployment governance for edge accelerator fleets",
        version=__version__,
    )

    @app.exception_handler(DeviceNotFoundError)
    async def device_not_found_handler(request: Request, exc: DeviceNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(ConfigInvalidError)
    async def config_invalid_handler(request: Request, exc: ConfigInvalidError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(InsufficientMemoryError)
    async def insufficient_memory_handler(request: Request, exc: InsufficientMemoryError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": str(exc),
                "requested_mb": exc.requested_mb,
                "available_mb": exc.available_mb,
            },
        )

    def require_device(device_id: str) -> FleetMember:
        member = coordinator.get_device(DeviceId(device_id))
        if member is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Device {device_id} not found",
            )
        return member

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Check service health status."""
        return HealthResponse(
            status="healthy" if coordinator.initialized else "initializing",
            initialized=coordinator.initialized,
            devices=len(coordinator.list_devices()),
        )

    @app.get("/fleet/health", response_model=FleetHealthResponse, tags=["Fleet"])
    async def get_fleet_health():
        """Get the fleet health summary."""
        return FleetHealthResponse(**coordinator.fleet_health().as_dict())

    @app.post("/fleet/refresh", response_model=FleetHealthResponse, tags=["Fleet"])
    async def refresh_fleet_health():
        """Sample every member and return the updated summary."""
        health = await coordinator.refresh_health()
        return FleetHealthResponse(**health.as_dict())

    @app.get("/devices", response_model=list[DeviceResponse], tags=["Devices"])
    async def list_devices():
        """List fleet members."""
        return [_device_response(m) for m in coordinator.list_devices()]

    @app.get("/devices/{device_id}", response_model=DeviceResponse, tags=["Devices"])
    async def get_device(device_id: str):
        """Get a device's status."""
        return _device_response(require_device(device_id))

    @app.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Devices"])
    async def remove_device(device_id: str):
        """Remove a device from the fleet."""
        if not coordinator.remove_device(DeviceId(device_id)):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Device {device_id} not found",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/devices/{device_id}/enable", response_model=DeviceResponse, tags=["Devices"])
    async def enable_device(device_id: str):
        """Include a device in scheduling."""
        member = require_device(device_id)
        coordinator.enable_device(member.device_id)
        return _device_response(member)

    @app.post("/devices/{device_id}/disable", response_model=DeviceResponse, tags=["Devices"])
    async def disable_device(device_id: str):
        """Exclude a device from scheduling."""
        member = require_device(device_id)
        coordinator.disable_device(member.device_id)
        return _device_response(member)

    @app.post("/devices/{device_id}/reconnect", response_model=ReconnectResponse, tags=["Devices"])
    async def reconnect_device(device_id: str):
        """Probe a device and bring it back online if it answers."""
        member = require_device(device_id)
        reconnected = await coordinator.reconnect(member.device_id)
        return ReconnectResponse(
            device_id=member.device_id,
            reconnected=reconnected,
            health=member.health.value,
        )

    @app.get(
        "/devices/{device_id}/compute-hint",
        response_model=ComputeHintResponse,
        tags=["Resources"],
    )
    async def get_compute_hint(device_id: str):
        """Get the compute backend hint for a device."""
        member = require_device(device_id)
        hint = coordinator.compute_hint(member.device_id)
        return ComputeHintResponse(
            prefer_simd_backend=hint.prefer_simd_backend,
            memory_budget_mb=hint.memory_budget_mb,
            accelerator_available=hint.accelerator_available,
        )

    @app.post(
        "/devices/{device_id}/quantization",
        response_model=QuantizationResponse,
        tags=["Resources"],
    )
    async def select_quantization(device_id: str, request: QuantizationRequest):
        """Select a quantization level for the device's current headroom."""
        member = require_device(device_id)
        plan = coordinator.select_quantization(member.device_id, request.f16_size_mb)
        return QuantizationResponse(
            level=str(plan.level),
            size_mb=plan.size_mb,
            available_mb=plan.available_mb,
            fits=plan.fits,
            perplexity_delta_percent=plan.perplexity_delta_percent,
        )

    return app
