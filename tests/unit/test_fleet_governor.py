"""Unit tests for fleet membership, health and per-device operations."""

import asyncio

import pytest

from edge_governor.domain.entities.device import AcceleratorModel, DeviceInfo
from edge_governor.domain.entities.fleet import FleetHealth, MemberHealth
from edge_governor.domain.entities.thermal import BreakerState, ThermalPolicy
from edge_governor.domain.exceptions import (
    ConfigInvalidError,
    DeviceNotFoundError,
    InsufficientMemoryError,
)
from edge_governor.domain.services.fleet_governor import FleetGovernor
from edge_governor.domain.services.memory_budget import MemoryBudget
from edge_governor.domain.value_objects.device_identifiers import DeviceId, create_device_id
from edge_governor.domain.value_objects.quant_levels import QuantLevel


@pytest.mark.unit
class TestIdentifiers:
    def test_create_device_id(self):
        assert create_device_id("jetson", 3) == "jetson-03"


@pytest.mark.unit
class TestMembership:
    """Test adding, removing and toggling members."""

    def test_add_device_defaults(self, governor):
        """Test default policy and budget derived from the module memory."""
        member = governor.add_device(DeviceInfo(DeviceId("a"), AcceleratorModel.ORIN_NANO_8GB))

        assert member.policy == ThermalPolicy.conservative()
        assert member.budget.total_mb == 8192
        assert member.budget.reserved_mb == 2048
        assert member.health is MemberHealth.HEALTHY
        assert member.breaker_state is BreakerState.CLOSED
        assert len(governor) == 1
        assert DeviceId("a") in governor

    def test_duplicate_device_rejected(self, governor):
        governor.add_device(DeviceInfo(DeviceId("a")))
        with pytest.raises(ConfigInvalidError):
            governor.add_device(DeviceInfo(DeviceId("a")))
        assert len(governor) == 1

    def test_remove_device_is_idempotent(self, three_device_fleet):
        assert three_device_fleet.remove_device(DeviceId("b")) is not None
        assert three_device_fleet.remove_device(DeviceId("b")) is None
        assert [m.device_id for m in three_device_fleet.members()] == ["a", "c"]

    def test_unknown_device_raises(self, governor):
        with pytest.raises(DeviceNotFoundError):
            governor.disable(DeviceId("ghost"))
        assert governor.get(DeviceId("ghost")) is None

    def test_enable_disable(self, three_device_fleet):
        three_device_fleet.disable(DeviceId("a"))
        assert three_device_fleet.health_status().enabled == 2
        three_device_fleet.enable(DeviceId("a"))
        assert three_device_fleet.health_status().enabled == 3

    def test_invalid_reserved_fraction(self, simulated_fleet):
        with pytest.raises(ConfigInvalidError):
            FleetGovernor(simulated_fleet, simulated_fleet, reserved_fraction=1.0)


@pytest.mark.unit
class TestFleetHealth:
    """Test health aggregation and the member health machine."""

    def test_empty_fleet_is_zero_percent(self, governor):
        health = governor.health_status()
        assert health.total == 0
        assert health.health_percent == 0.0

    def test_one_offline_of_three(self, three_device_fleet):
        """Test 3 members with 1 offline report 66.7% health."""
        member = three_device_fleet.get(DeviceId("c"))
        member.record_unreachable(now=0.0, grace_seconds=0.0)

        health = three_device_fleet.health_status()
        assert (health.healthy, health.degraded, health.offline) == (2, 0, 1)
        assert health.health_percent == pytest.approx(66.67, abs=0.01)

    def test_as_dict(self):
        health = FleetHealth(total=4, enabled=4, healthy=3, degraded=1, offline=0)
        assert health.as_dict()["health_percent"] == 75.0

    def test_failure_degrades_and_success_recovers(self, three_device_fleet):
        member = three_device_fleet.get(DeviceId("a"))
        member.record_failure("staging rejected")
        assert member.health is MemberHealth.DEGRADED
        member.record_success()
        assert member.health is MemberHealth.HEALTHY

    def test_offline_after_grace_period(self, three_device_fleet):
        """Test unreachability goes offline only once the grace period elapses."""
        member = three_device_fleet.get(DeviceId("a"))

        assert member.record_unreachable(100.0, 60.0) is MemberHealth.DEGRADED
        assert member.record_unreachable(130.0, 60.0) is MemberHealth.DEGRADED
        assert member.record_unreachable(160.0, 60.0) is MemberHealth.OFFLINE

        # Success alone does not bring an offline member back
        member.record_success()
        assert member.health is MemberHealth.OFFLINE

    def test_refresh_marks_unreachable_members(self, three_device_fleet, simulated_fleet, clock):
        """Test a health sweep degrades, then takes offline, a silent member."""
        simulated_fleet.set_unreachable(DeviceId("b"))

        health = asyncio.run(three_device_fleet.refresh_health())
        assert (health.healthy, health.degraded, health.offline) == (2, 1, 0)

        clock.advance(61.0)
        health = asyncio.run(three_device_fleet.refresh_health())
        assert (health.healthy, health.degraded, health.offline) == (2, 0, 1)

        # Offline members are not sampled again
        simulated_fleet.calls.clear()
        asyncio.run(three_device_fleet.refresh_health())
        assert ("sample", DeviceId("b")) not in simulated_fleet.calls

    def test_refresh_recovers_degraded_member(self, three_device_fleet, simulated_fleet):
        simulated_fleet.set_unreachable(DeviceId("b"))
        asyncio.run(three_device_fleet.refresh_health())
        simulated_fleet.set_unreachable(DeviceId("b"), False)

        health = asyncio.run(three_device_fleet.refresh_health())
        assert health.healthy == 3

    def test_reconnect(self, three_device_fleet, simulated_fleet):
        """Test only a successful probe brings a member back from offline."""
        member = three_device_fleet.get(DeviceId("b"))
        member.record_unreachable(0.0, 0.0)
        simulated_fleet.set_unreachable(DeviceId("b"))

        assert asyncio.run(three_device_fleet.reconnect(DeviceId("b"))) is False
        assert member.health is MemberHealth.OFFLINE

        simulated_fleet.set_unreachable(DeviceId("b"), False)
        assert asyncio.run(three_device_fleet.reconnect(DeviceId("b"))) is True
        assert member.health is MemberHealth.HEALTHY


@pytest.mark.unit
class TestPerDeviceOperations:
    """Test operations delegated to a member's breaker and budget."""

    def test_allocate_on_member(self, three_device_fleet):
        guard = three_device_fleet.allocate(DeviceId("a"), 5000, "weights")
        assert three_device_fleet.get(DeviceId("a")).budget.available_mb() == 1144
        with pytest.raises(InsufficientMemoryError):
            three_device_fleet.allocate(DeviceId("a"), 2000)
        guard.release()

    def test_budgets_are_independent(self, three_device_fleet):
        three_device_fleet.allocate(DeviceId("a"), 6000)
        assert three_device_fleet.get(DeviceId("b")).budget.available_mb() == 6144

    def test_select_quantization(self, three_device_fleet):
        plan = three_device_fleet.select_quantization(DeviceId("a"), 14000)
        assert plan.level is QuantLevel.Q5_1

    def test_guard_runs_work(self, three_device_fleet):
        assert asyncio.run(three_device_fleet.guard(DeviceId("a"), lambda: "ok")) == "ok"

    def test_compute_hint(self, three_device_fleet):
        hint = three_device_fleet.compute_hint(DeviceId("a"))
        assert hint.accelerator_available
        assert not hint.prefer_simd_backend
        assert hint.memory_budget_mb == 6144

    def test_compute_hint_without_accelerator(self, governor):
        governor.add_device(DeviceInfo(DeviceId("cpu-only")), budget=MemoryBudget(4096, 1024))
        hint = governor.compute_hint(DeviceId("cpu-only"))
        assert hint.prefer_simd_backend
        assert hint.memory_budget_mb == 3072

    def test_transition_callback_reaches_late_members(self, governor, simulated_fleet):
        """Test callbacks registered before a member was added still fire."""
        transitions = []
        governor.register_transition_callback(transitions.append)
        fast = ThermalPolicy(threshold_c=65.0, cooldown_c=55.0, check_interval_ms=1)
        governor.add_device(DeviceInfo(DeviceId("hot"), AcceleratorModel.ORIN_NANO_8GB), policy=fast)
        simulated_fleet.set_temperatures(DeviceId("hot"), [70.0, 50.0])

        asyncio.run(governor.guard(DeviceId("hot"), lambda: None))

        assert [t.current for t in transitions] == [
            BreakerState.OPEN,
            BreakerState.COOLING,
            BreakerState.CLOSED,
        ]
