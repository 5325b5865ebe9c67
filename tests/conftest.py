"""Pytest configuration and shared fixtures for edge governor tests."""

import pytest
from prometheus_client import CollectorRegistry

from edge_governor.adapters.outbound.metrics import PrometheusExporter
from edge_governor.adapters.outbound.simulated_fleet import SimulatedFleet
from edge_governor.domain.entities.device import AcceleratorModel, DeviceInfo
from edge_governor.domain.services.fleet_governor import FleetGovernor
from edge_governor.domain.value_objects.device_identifiers import DeviceId
from edge_governor.infrastructure.config import Config, get_config
from edge_governor.infrastructure.container import Container


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_container():
    """Reset the DI container and cached config before each test."""
    Container.reset()
    get_config.cache_clear()
    yield
    Container.reset()
    get_config.cache_clear()


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration."""
    return Config()


@pytest.fixture
def simulated_fleet() -> SimulatedFleet:
    """Provide an in-memory telemetry source and transport."""
    return SimulatedFleet()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def governor(simulated_fleet: SimulatedFleet, clock: FakeClock) -> FleetGovernor:
    """Provide a fleet governor with short timeouts over the simulated fleet."""
    return FleetGovernor(
        simulated_fleet,
        simulated_fleet,
        staging_timeout_seconds=0.2,
        commit_timeout_seconds=0.2,
        probe_timeout_seconds=0.2,
        offline_grace_seconds=60.0,
        clock=clock,
    )


@pytest.fixture
def three_device_fleet(governor: FleetGovernor) -> FleetGovernor:
    """Provide a governor with three Orin Nano 8GB members a, b and c."""
    for name in ("a", "b", "c"):
        governor.add_device(DeviceInfo(DeviceId(name), AcceleratorModel.ORIN_NANO_8GB))
    return governor


@pytest.fixture
def exporter() -> PrometheusExporter:
    """Provide an exporter on a private registry."""
    return PrometheusExporter(CollectorRegistry())


# Pytest markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
