"""Integration tests for the coordinator and its REST adapter."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from edge_governor.adapters.inbound.rest_api import create_app
from edge_governor.adapters.outbound.metrics import PrometheusExporter
from edge_governor.application.coordinator import EdgeGovernorCoordinator
from edge_governor.domain.entities.fleet import MemberHealth
from edge_governor.domain.entities.model import ModelArtifact
from edge_governor.domain.entities.thermal import ThermalPolicy
from edge_governor.domain.exceptions import DeploymentPartialFailureError, InsufficientMemoryError
from edge_governor.domain.value_objects.device_identifiers import DeviceId
from edge_governor.infrastructure.config import Config, DeviceSettings, FleetConfig, ServerConfig
from edge_governor.infrastructure.container import Container


@pytest.fixture
def fleet_config() -> Config:
    """Provide a configuration with three devices."""
    return Config(
        fleet=FleetConfig(
            name="test-fleet",
            probe_timeout_seconds=0.2,
            staging_timeout_seconds=0.2,
            commit_timeout_seconds=0.2,
            devices=[
                DeviceSettings(id="nano-01", model="orin_nano_8gb"),
                DeviceSettings(id="nano-02", model="orin_nano_8gb", thermal_profile="aggressive"),
                DeviceSettings(id="nx-01", model="orin_nx_16gb", total_memory_mb=16384, reserved_mb=4096),
            ],
        )
    )


@pytest.fixture
def coordinator(fleet_config, simulated_fleet, exporter, clock) -> EdgeGovernorCoordinator:
    coordinator = EdgeGovernorCoordinator(
        simulated_fleet,
        simulated_fleet,
        config=fleet_config,
        metrics=exporter,
        clock=clock,
    )
    coordinator.initialize()
    return coordinator


@pytest.fixture
def client(coordinator) -> TestClient:
    return TestClient(create_app(coordinator))


@pytest.mark.integration
class TestCoordinator:
    """Test configuration-driven setup and observability wiring."""

    def test_initialize_from_config(self, coordinator):
        assert coordinator.initialized
        assert [m.device_id for m in coordinator.list_devices()] == ["nano-01", "nano-02", "nx-01"]

        nano2 = coordinator.get_device(DeviceId("nano-02"))
        assert nano2.policy.threshold_c == 75.0
        nx = coordinator.get_device(DeviceId("nx-01"))
        assert nx.budget.usable_mb == 12288

    def test_allocation_failure_is_counted(self, coordinator, exporter):
        with pytest.raises(InsufficientMemoryError):
            coordinator.allocate(DeviceId("nano-01"), 7000)

        assert exporter.registry.get_sample_value(
            "edge_memory_allocation_failures_total", {"device_id": "nano-01"}
        ) == 1

    def test_deployment_metrics(self, coordinator, simulated_fleet, exporter):
        asyncio.run(coordinator.deploy_model(ModelArtifact("m", b"", f16_size_mb=1000)))
        simulated_fleet.fail_staging(DeviceId("nx-01"))
        with pytest.raises(DeploymentPartialFailureError):
            asyncio.run(coordinator.deploy_model(ModelArtifact("m2", b"", f16_size_mb=1000)))

        registry = exporter.registry
        assert registry.get_sample_value("edge_deployments_total", {"outcome": "committed"}) == 1
        assert registry.get_sample_value("edge_deployments_total", {"outcome": "aborted"}) == 1
        assert registry.get_sample_value("edge_memory_allocated_mb", {"device_id": "nano-01"}) == 2000

    def test_removed_device_series_are_dropped(self, coordinator, simulated_fleet, exporter):
        device_id = DeviceId("nano-01")
        coordinator.get_device(device_id).breaker.policy = ThermalPolicy(
            threshold_c=65.0, cooldown_c=55.0, check_interval_ms=1
        )
        simulated_fleet.set_temperatures(device_id, [70.0, 50.0])
        asyncio.run(coordinator.run_guarded(device_id, lambda: None))
        with pytest.raises(InsufficientMemoryError):
            coordinator.allocate(device_id, 7000)

        assert coordinator.remove_device(device_id)

        registry = exporter.registry
        labels = {"device_id": "nano-01"}
        for name in (
            "edge_breaker_state",
            "edge_device_temperature_celsius",
            "edge_memory_allocated_mb",
            "edge_memory_available_mb",
            "edge_memory_allocation_failures_total",
        ):
            assert registry.get_sample_value(name, labels) is None
        for state in ("open", "cooling", "closed"):
            assert registry.get_sample_value(
                "edge_breaker_transitions_total", {"device_id": "nano-01", "state": state}
            ) is None
        assert registry.get_sample_value("edge_memory_allocated_mb", {"device_id": "nano-02"}) == 0

    def test_breaker_transitions_reach_metrics(self, coordinator, simulated_fleet, exporter):
        device_id = DeviceId("nano-01")
        member = coordinator.get_device(device_id)
        member.breaker.policy = ThermalPolicy(threshold_c=65.0, cooldown_c=55.0, check_interval_ms=1)
        simulated_fleet.set_temperatures(device_id, [70.0, 50.0])

        assert asyncio.run(coordinator.run_guarded(device_id, lambda: "ok")) == "ok"
        assert exporter.registry.get_sample_value(
            "edge_breaker_transitions_total", {"device_id": "nano-01", "state": "closed"}
        ) == 1


@pytest.mark.integration
class TestRestApi:
    """Test HTTP endpoints over the simulated fleet."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "initialized": True, "devices": 3}

    def test_fleet_health(self, client):
        body = client.get("/fleet/health").json()
        assert body["total"] == 3
        assert body["health_percent"] == 100.0

    def test_refresh_marks_unreachable(self, client, simulated_fleet):
        simulated_fleet.set_unreachable(DeviceId("nx-01"))
        body = client.post("/fleet/refresh").json()
        assert body["degraded"] == 1
        assert body["healthy"] == 2

    def test_list_and_get_device(self, client):
        devices = client.get("/devices").json()
        assert [d["device_id"] for d in devices] == ["nano-01", "nano-02", "nx-01"]

        device = client.get("/devices/nano-01").json()
        assert device["model"] == "orin_nano_8gb"
        assert device["breaker_state"] == "closed"
        assert device["available_mb"] == 6144
        assert device["live_model"] is None

    def test_unknown_device_is_404(self, client):
        assert client.get("/devices/ghost").status_code == 404
        assert client.delete("/devices/ghost").status_code == 404
        assert client.get("/devices/ghost/compute-hint").status_code == 404

    def test_remove_device(self, client, coordinator):
        assert client.delete("/devices/nano-02").status_code == 204
        assert coordinator.get_device(DeviceId("nano-02")) is None

    def test_enable_disable(self, client):
        assert client.post("/devices/nano-01/disable").json()["enabled"] is False
        assert client.get("/fleet/health").json()["enabled"] == 2
        assert client.post("/devices/nano-01/enable").json()["enabled"] is True

    def test_reconnect(self, client, coordinator):
        coordinator.get_device(DeviceId("nx-01")).record_unreachable(0.0, 0.0)
        body = client.post("/devices/nx-01/reconnect").json()
        assert body["reconnected"] is True
        assert body["health"] == MemberHealth.HEALTHY.value

    def test_compute_hint(self, client):
        body = client.get("/devices/nano-01/compute-hint").json()
        assert body == {
            "prefer_simd_backend": False,
            "memory_budget_mb": 6144,
            "accelerator_available": True,
        }

    def test_quantization(self, client):
        response = client.post("/devices/nano-01/quantization", json={"f16_size_mb": 14000})
        assert response.status_code == 200
        body = response.json()
        assert body["level"] == "q5_1"
        assert body["fits"] is True

    def test_quantization_validates_input(self, client):
        response = client.post("/devices/nano-01/quantization", json={"f16_size_mb": 0})
        assert response.status_code == 422


@pytest.mark.integration
class TestContainer:
    def test_container_builds_simulated_coordinator(self, test_config, monkeypatch):
        monkeypatch.setattr("edge_governor.infrastructure.container.get_config", lambda: test_config)
        monkeypatch.setattr("edge_governor.infrastructure.tracing.get_config", lambda: test_config)

        container = Container.create()

        assert Container.get() is container
        assert container.coordinator.initialized
        assert container.config is test_config

    def test_container_serves_metrics_on_configured_port(self, monkeypatch):
        config = Config(server=ServerConfig(serve_metrics=True, metrics_port=9301))
        served = []
        exporter = PrometheusExporter(CollectorRegistry())

        def fake_setup_metrics(port):
            served.append(port)
            return exporter

        monkeypatch.setattr("edge_governor.infrastructure.container.get_config", lambda: config)
        monkeypatch.setattr("edge_governor.infrastructure.tracing.get_config", lambda: config)
        monkeypatch.setattr("edge_governor.infrastructure.container.setup_metrics", fake_setup_metrics)

        container = Container.create()

        assert served == [9301]
        assert container.metrics is exporter
        assert container.coordinator.initialized

    def test_container_skips_metrics_server_by_default(self, test_config, monkeypatch):
        monkeypatch.setattr("edge_governor.infrastructure.container.get_config", lambda: test_config)
        monkeypatch.setattr("edge_governor.infrastructure.tracing.get_config", lambda: test_config)
        monkeypatch.setattr(
            "edge_governor.infrastructure.container.setup_metrics",
            lambda port: pytest.fail("metrics server started"),
        )

        Container.create()
