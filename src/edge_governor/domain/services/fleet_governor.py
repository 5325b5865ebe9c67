"""Fleet governor: per-device governors aggregated across a fleet.

The governor owns one FleetMember per device (thermal breaker, memory budget,
health) and runs fleet-wide operations as concurrent per-member tasks that
are joined before an aggregate result is reported.

Deployment is two-phase and all-or-nothing across reachable members:
1. Stage: pick a level, reserve memory, upload; concurrently, each member
   bounded by its own timeout. The live model's memory counts toward the
   headroom; staging reserves only what the new model needs beyond it, and
   commit swaps both reservations for one in a single budget operation.
2. Commit: only when every staging attempt succeeded. Any staging failure
   (or a timeout within the offline grace period) discards every staged copy
   and no member commits. Members that go offline during staging are
   excluded instead of blocking the rest of the fleet.

References:
    - Member health machine: see edge_governor.domain.entities.fleet
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, TypeVar, Union

from edge_governor.domain.entities.device import ComputeHint, DeviceInfo
from edge_governor.domain.entities.fleet import (
    DeployedModel,
    DeploymentConfig,
    DeploymentReport,
    FleetHealth,
    FleetMember,
    MemberHealth,
)
from edge_governor.domain.entities.model import ModelArtifact
from edge_governor.domain.entities.thermal import BreakerState, BreakerTransition, ThermalPolicy
from edge_governor.domain.exceptions import (
    ConfigInvalidError,
    DeploymentPartialFailureError,
    DeviceNotFoundError,
    DeviceUnreachableError,
    GovernorError,
    InsufficientMemoryError,
    StagingError,
    TelemetryUnavailableError,
)
from edge_governor.domain.services.memory_budget import MemoryBudget, MemoryGuard
from edge_governor.domain.services.quantization_selector import (
    QuantizationPlan,
    QuantizationSelector,
)
from edge_governor.domain.services.thermal_breaker import ThermalCircuitBreaker
from edge_governor.domain.value_objects.device_identifiers import (
    DeploymentId,
    DeviceId,
    create_deployment_id,
)
from edge_governor.domain.value_objects.quant_levels import QuantLevel
from edge_governor.ports.outbound import (
    DeploymentTracerPort,
    DeviceTransportPort,
    TelemetrySourcePort,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageStatus(Enum):
    """Result of one member's staging attempt."""
    STAGED = "staged"
    FAILED = "failed"         # Reachable but failed, or timed out within grace
    OFFLINE = "offline"       # Unreachable beyond grace, excluded


@dataclass
class StageOutcome:
    """Staging result for one member."""
    member: FleetMember
    status: StageStatus
    level: Optional[QuantLevel] = None
    guard: Optional[MemoryGuard] = field(default=None, repr=False)  # Staging headroom only
    size_mb: int = 0
    reason: str = ""
    duration_s: float = 0.0


class FleetGovernor:
    """Coordinates thermal, memory and deployment state across devices."""

    def __init__(
        self,
        telemetry: TelemetrySourcePort,
        transport: DeviceTransportPort,
        staging_timeout_seconds: float = 30.0,
        commit_timeout_seconds: float = 30.0,
        probe_timeout_seconds: float = 5.0,
        offline_grace_seconds: float = 60.0,
        reserved_fraction: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        tracer: Optional[DeploymentTracerPort] = None,
    ) -> None:
        """Initialize an empty fleet.

        Args:
            telemetry: Telemetry source shared by every member's breaker.
            transport: Model staging and reachability transport.
            staging_timeout_seconds: Per-member staging timeout.
            commit_timeout_seconds: Per-member commit timeout.
            probe_timeout_seconds: Timeout for telemetry sweeps and probes.
            offline_grace_seconds: Consecutive unreachability before a member
                is marked offline.
            reserved_fraction: System reserve for budgets derived from the
                device model's memory.
            clock: Monotonic clock, injectable for tests.
            tracer: Spans around each member's staging and commit, if any.
        """
        if not 0.0 <= reserved_fraction < 1.0:
            raise ConfigInvalidError(f"reserved_fraction must be in [0, 1), got {reserved_fraction}")
        self._telemetry = telemetry
        self._transport = transport
        self._staging_timeout = staging_timeout_seconds
        self._commit_timeout = commit_timeout_seconds
        self._probe_timeout = probe_timeout_seconds
        self._offline_grace = offline_grace_seconds
        self._reserved_fraction = reserved_fraction
        self._clock = clock
        self._tracer = tracer

        self._members: dict[DeviceId, FleetMember] = {}
        self._lock = threading.Lock()
        self._transition_callbacks: list[Callable[[BreakerTransition], None]] = []
        self._deployment_counter = 0
        self._deploy_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_device(
        self,
        device: DeviceInfo,
        policy: Optional[ThermalPolicy] = None,
        budget: Optional[MemoryBudget] = None,
    ) -> FleetMember:
        """Add a device to the fleet.

        Args:
            device: Device identity and model.
            policy: Thermal policy. Defaults to conservative.
            budget: Memory budget. Defaults to the model's memory with the
                configured reserve fraction held back.

        Returns:
            The new member.

        Raises:
            ConfigInvalidError: If the device id is already a member.
        """
        policy = policy or ThermalPolicy.conservative()
        if budget is None:
            total = device.model.memory_mb
            budget = MemoryBudget(total, int(total * self._reserved_fraction))

        breaker = ThermalCircuitBreaker(device.device_id, self._telemetry, policy)
        member = FleetMember(device=device, policy=policy, budget=budget, breaker=breaker)

        with self._lock:
            if device.device_id in self._members:
                raise ConfigInvalidError(f"Duplicate device id: {device.device_id}")
            self._members[device.device_id] = member
            for callback in self._transition_callbacks:
                breaker.register_transition_callback(callback)

        logger.info(f"Added {device.device_id} ({device.model.display_name}) to fleet")
        return member

    def remove_device(self, device_id: DeviceId) -> Optional[FleetMember]:
        """Remove a device. Removing an unknown id returns None."""
        with self._lock:
            member = self._members.pop(device_id, None)
        if member is not None:
            logger.info(f"Removed {device_id} from fleet")
        return member

    def get(self, device_id: DeviceId) -> Optional[FleetMember]:
        with self._lock:
            return self._members.get(device_id)

    def members(self) -> list[FleetMember]:
        """Snapshot of current members."""
        with self._lock:
            return list(self._members.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._members

    def enable(self, device_id: DeviceId) -> None:
        """Include a member in scheduling again."""
        self._require(device_id).enabled = True

    def disable(self, device_id: DeviceId) -> None:
        """Exclude a member from scheduling, keeping its history."""
        self._require(device_id).enabled = False

    def register_transition_callback(self, callback: Callable[[BreakerTransition], None]) -> None:
        """Observe breaker transitions on every current and future member."""
        with self._lock:
            self._transition_callbacks.append(callback)
            members = list(self._members.values())
        for member in members:
            member.breaker.register_transition_callback(callback)

    def _require(self, device_id: DeviceId) -> FleetMember:
        member = self.get(device_id)
        if member is None:
            raise DeviceNotFoundError(device_id)
        return member

    # ------------------------------------------------------------------
    # Per-device operations
    # ------------------------------------------------------------------

    async def guard(self, device_id: DeviceId, work: Callable[[], Union[Awaitable[T], T]]) -> T:
        """Run work behind a member's thermal breaker."""
        return await self._require(device_id).breaker.guard(work)

    def allocate(self, device_id: DeviceId, size_mb: int, label: str = "") -> MemoryGuard:
        """Reserve memory on a member.

        Raises:
            InsufficientMemoryError: If the member's budget cannot fit it.
        """
        return self._require(device_id).budget.try_allocate(size_mb, label)

    def select_quantization(self, device_id: DeviceId, f16_size_mb: float) -> QuantizationPlan:
        """Pick a quantization level for a member's current headroom."""
        return QuantizationSelector.plan(f16_size_mb, self._require(device_id).budget)

    def compute_hint(self, device_id: DeviceId) -> ComputeHint:
        """Backend hint for the compute-dispatch layer."""
        member = self._require(device_id)
        accelerator_available = (
            member.device.model.cuda_cores > 0
            and member.breaker.state is BreakerState.CLOSED
            and member.health is not MemberHealth.OFFLINE
        )
        return ComputeHint(
            prefer_simd_backend=not accelerator_available,
            memory_budget_mb=member.budget.available_mb(),
            accelerator_available=accelerator_available,
        )

    async def reconnect(self, device_id: DeviceId) -> bool:
        """Probe a member and mark it healthy if it answers.

        This is the only way out of OFFLINE.

        Returns:
            True if the probe succeeded.
        """
        member = self._require(device_id)
        try:
            await asyncio.wait_for(self._transport.probe(device_id), self._probe_timeout)
        except (DeviceUnreachableError, asyncio.TimeoutError) as e:
            logger.info(f"Reconnection probe failed for {device_id}: {e or 'timeout'}")
            return False
        member.mark_reconnected()
        return True

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_status(self) -> FleetHealth:
        """Aggregate health over one snapshot of member states."""
        with self._lock:
            states = [(m.enabled, m.health) for m in self._members.values()]

        return FleetHealth(
            total=len(states),
            enabled=sum(1 for enabled, _ in states if enabled),
            healthy=sum(1 for _, health in states if health is MemberHealth.HEALTHY),
            degraded=sum(1 for _, health in states if health is MemberHealth.DEGRADED),
            offline=sum(1 for _, health in states if health is MemberHealth.OFFLINE),
        )

    async def refresh_health(self) -> FleetHealth:
        """Sample every enabled, online member concurrently and update health.

        Offline members are skipped; use ``reconnect`` to bring them back.
        """
        targets = [m for m in self.members() if m.is_schedulable]
        await asyncio.gather(*(self._refresh_member(m) for m in targets))
        return self.health_status()

    async def _refresh_member(self, member: FleetMember) -> None:
        try:
            await asyncio.wait_for(member.breaker.sample(), self._probe_timeout)
        except (TelemetryUnavailableError, asyncio.TimeoutError) as e:
            member.record_unreachable(self._clock(), self._offline_grace, str(e) or "telemetry timeout")
            return
        member.record_success()

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    async def deploy_model(
        self,
        model: Union[bytes, ModelArtifact],
        config: Optional[DeploymentConfig] = None,
    ) -> DeploymentReport:
        """Deploy a model to the fleet with all-or-nothing semantics.

        Args:
            model: Raw model bytes or an artifact with a reported size.
            config: Targets, level, per-device ceiling and thermal policy.

        Returns:
            Report listing committed, excluded and commit-failed members.

        Raises:
            DeploymentPartialFailureError: If any member failed staging; no
                member committed.
            DeviceNotFoundError: If a target id is not a member.
        """
        artifact = model if isinstance(model, ModelArtifact) else ModelArtifact(name="model", payload=bytes(model))
        config = config or DeploymentConfig()
        # Staging counts each live model as reclaimable; only one deployment may claim it.
        async with self._deploy_lock:
            return await self._run_deployment(artifact, config)

    async def _run_deployment(self, artifact: ModelArtifact, config: DeploymentConfig) -> DeploymentReport:
        self._deployment_counter += 1
        deployment_id = create_deployment_id(artifact.name, self._deployment_counter)
        started = time.monotonic()

        targets, excluded = self._deployment_targets(config)
        logger.info(
            f"Deployment {deployment_id}: staging {artifact.name} ({artifact.size_mb}MB F16) "
            f"on {len(targets)} member(s), {len(excluded)} excluded"
        )

        results = await asyncio.gather(
            *(self._stage_member(m, artifact, deployment_id, config) for m in targets),
            return_exceptions=True,
        )
        outcomes = [r for r in results if isinstance(r, StageOutcome)]
        errors = [r for r in results if isinstance(r, BaseException)]

        staged = [o for o in outcomes if o.status is StageStatus.STAGED]
        failed = {o.member.device_id: o.reason for o in outcomes if o.status is StageStatus.FAILED}
        for outcome in outcomes:
            if outcome.status is StageStatus.OFFLINE:
                excluded[outcome.member.device_id] = outcome.reason

        if failed or errors:
            await self._discard(staged, deployment_id)
            if errors:
                raise errors[0]
            logger.warning(f"Deployment {deployment_id} aborted; staging failed on {sorted(failed)}")
            raise DeploymentPartialFailureError(failed, deployment_id)

        committed: dict[DeviceId, QuantLevel] = {}
        commit_failures: dict[DeviceId, str] = {}
        commit_results = await asyncio.gather(
            *(self._commit_member(o, artifact, deployment_id, config) for o in staged)
        )
        for outcome, error in zip(staged, commit_results):
            if error is None:
                committed[outcome.member.device_id] = outcome.level
            else:
                commit_failures[outcome.member.device_id] = error

        report = DeploymentReport(
            deployment_id=deployment_id,
            model_name=artifact.name,
            committed=committed,
            excluded=excluded,
            commit_failures=commit_failures,
            stage_durations_s={o.member.device_id: o.duration_s for o in staged},
            duration_s=time.monotonic() - started,
        )
        logger.info(
            f"Deployment {deployment_id} committed on {len(committed)} member(s), "
            f"{len(commit_failures)} commit failure(s)"
        )
        return report

    def _deployment_targets(
        self, config: DeploymentConfig
    ) -> tuple[list[FleetMember], dict[DeviceId, str]]:
        if config.target_devices:
            candidates = [self._require(device_id) for device_id in config.target_devices]
        else:
            candidates = self.members()

        targets: list[FleetMember] = []
        excluded: dict[DeviceId, str] = {}
        for member in candidates:
            if not member.enabled:
                excluded[member.device_id] = "disabled"
            elif member.health is MemberHealth.OFFLINE:
                excluded[member.device_id] = "offline"
            else:
                targets.append(member)
        return targets, excluded

    async def _stage_member(
        self,
        member: FleetMember,
        artifact: ModelArtifact,
        deployment_id: DeploymentId,
        config: DeploymentConfig,
    ) -> StageOutcome:
        with self._tracer.trace_stage(member.device_id) if self._tracer else nullcontext():
            return await self._reserve_and_stage(member, artifact, deployment_id, config)

    async def _reserve_and_stage(
        self,
        member: FleetMember,
        artifact: ModelArtifact,
        deployment_id: DeploymentId,
        config: DeploymentConfig,
    ) -> StageOutcome:
        started = time.monotonic()
        # The live model's reservation is handed over on commit.
        live = member.live_model
        reclaimable = live.size_mb if live is not None and live.guard is not None else 0
        ceiling = member.budget.available_mb() + reclaimable
        if config.memory_budget_mb is not None:
            ceiling = min(ceiling, config.memory_budget_mb)

        level = config.quant_level or QuantizationSelector.select_for_available(artifact.size_mb, ceiling)
        size_mb = math.ceil(QuantizationSelector.estimate_size_mb(artifact.size_mb, level))
        if size_mb > ceiling:
            reason = f"{level} needs {size_mb}MB, ceiling is {ceiling}MB"
            member.record_failure(reason)
            return StageOutcome(member, StageStatus.FAILED, level, reason=reason)

        try:
            guard = member.budget.try_allocate(
                max(0, size_mb - reclaimable), label=f"model:{artifact.name}:staging"
            )
        except InsufficientMemoryError as e:
            member.record_failure(str(e))
            return StageOutcome(member, StageStatus.FAILED, level, reason=str(e))

        try:
            await asyncio.wait_for(
                self._transport.stage_model(member.device_id, deployment_id, artifact, level),
                self._staging_timeout,
            )
        except StagingError as e:
            guard.release()
            member.record_failure(e.reason)
            return StageOutcome(member, StageStatus.FAILED, level, reason=e.reason)
        except (DeviceUnreachableError, asyncio.TimeoutError) as e:
            guard.release()
            reason = str(e) or f"staging timed out after {self._staging_timeout}s"
            health = member.record_unreachable(self._clock(), self._offline_grace, reason)
            status = StageStatus.OFFLINE if health is MemberHealth.OFFLINE else StageStatus.FAILED
            return StageOutcome(member, status, level, reason=reason)
        except BaseException:
            guard.release()
            raise

        member.record_success()
        return StageOutcome(
            member,
            StageStatus.STAGED,
            level,
            guard=guard,
            size_mb=size_mb,
            duration_s=time.monotonic() - started,
        )

    async def _commit_member(
        self,
        outcome: StageOutcome,
        artifact: ModelArtifact,
        deployment_id: DeploymentId,
        config: DeploymentConfig,
    ) -> Optional[str]:
        """Make a staged model live.

        Returns:
            None on success, otherwise the failure reason.
        """
        member = outcome.member
        with self._tracer.trace_commit(member.device_id, outcome.level) if self._tracer else nullcontext():
            try:
                await asyncio.wait_for(
                    self._transport.commit_model(member.device_id, deployment_id),
                    self._commit_timeout,
                )
            except (DeviceUnreachableError, asyncio.TimeoutError) as e:
                if outcome.guard is not None:
                    outcome.guard.release()
                reason = str(e) or f"commit timed out after {self._commit_timeout}s"
                member.record_failure(reason)
                logger.error(f"Commit failed on {member.device_id}: {reason}")
                return reason

        previous = member.live_model
        handed_over = [g for g in (outcome.guard, previous.guard if previous else None) if g is not None]
        guard = member.budget.exchange(handed_over, outcome.size_mb, label=f"model:{artifact.name}")
        member.live_model = DeployedModel(
            deployment_id=deployment_id,
            model_name=artifact.name,
            level=outcome.level,
            size_mb=outcome.size_mb,
            guard=guard,
        )
        if config.thermal_policy is not None:
            member.policy = config.thermal_policy
            member.breaker.policy = config.thermal_policy
        member.record_success()
        return None

    async def _discard(self, staged: Iterable[StageOutcome], deployment_id: DeploymentId) -> None:
        async def discard_one(outcome: StageOutcome) -> None:
            if outcome.guard is not None:
                outcome.guard.release()
            try:
                await asyncio.wait_for(
                    self._transport.discard_model(outcome.member.device_id, deployment_id),
                    self._commit_timeout,
                )
            except (GovernorError, asyncio.TimeoutError) as e:
                # Staged copies are inert; the next deployment overwrites them.
                logger.warning(f"Could not discard staged model on {outcome.member.device_id}: {e}")

        await asyncio.gather(*(discard_one(o) for o in staged))
