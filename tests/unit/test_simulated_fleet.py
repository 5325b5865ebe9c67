"""Unit tests for the in-memory development fleet."""

import asyncio

import pytest

from edge_governor.adapters.outbound.simulated_fleet import SimulatedFleet
from edge_governor.domain.value_objects.device_identifiers import DeploymentId, DeviceId

DEVICE = DeviceId("sim-01")


@pytest.mark.unit
class TestSimulatedFleet:
    """Test scripted telemetry and call recording."""

    def test_call_history_is_bounded(self):
        """Test only the most recent calls are kept."""
        fleet = SimulatedFleet(history_size=5)

        async def sample_many():
            for _ in range(50):
                await fleet.sample_raw(DEVICE)
            await fleet.discard_model(DEVICE, DeploymentId("d-1"))

        asyncio.run(sample_many())

        assert len(fleet.calls) == 5
        assert fleet.calls[-1] == ("discard", DEVICE)
        assert list(fleet.calls)[:4] == [("sample", DEVICE)] * 4

    def test_script_repeats_last_temperature(self):
        fleet = SimulatedFleet()
        fleet.set_temperatures(DEVICE, [70.0, 60.0])

        async def sample_temps():
            return [(await fleet.sample_raw(DEVICE)).gpu_temp_c for _ in range(4)]

        assert asyncio.run(sample_temps()) == [70.0, 60.0, 60.0, 60.0]
