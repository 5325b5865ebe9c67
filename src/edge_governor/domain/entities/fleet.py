"""Fleet entities: members, health, and deployment values.

References:
    - Member health state machine:
      HEALTHY -> DEGRADED on a failed operation,
      DEGRADED -> HEALTHY on the next success,
      HEALTHY|DEGRADED -> OFFLINE after unreachability beyond the grace period,
      OFFLINE -> HEALTHY only after a successful reconnection probe.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from edge_governor.domain.entities.device import DeviceInfo
from edge_governor.domain.entities.thermal import BreakerState, ThermalPolicy
from edge_governor.domain.value_objects.device_identifiers import DeploymentId, DeviceId
from edge_governor.domain.value_objects.quant_levels import QuantLevel

if TYPE_CHECKING:
    from edge_governor.domain.services.memory_budget import MemoryBudget, MemoryGuard
    from edge_governor.domain.services.thermal_breaker import ThermalCircuitBreaker

logger = logging.getLogger(__name__)


class MemberHealth(Enum):
    """Operational health of a fleet member."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"     # Last operation failed
    OFFLINE = "offline"       # Unreachable beyond the grace period


@dataclass
class DeployedModel:
    """A model committed on a member, holding its memory reservation."""
    deployment_id: DeploymentId
    model_name: str
    level: QuantLevel
    size_mb: int
    guard: Optional[MemoryGuard] = field(default=None, repr=False)


@dataclass
class FleetMember:
    """A device managed by the fleet governor.

    Each member exclusively owns its breaker (and with it the breaker state)
    and its memory budget.
    """
    device: DeviceInfo
    policy: ThermalPolicy
    budget: MemoryBudget
    breaker: ThermalCircuitBreaker
    enabled: bool = True
    health: MemberHealth = MemberHealth.HEALTHY
    live_model: Optional[DeployedModel] = None
    unreachable_since: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def device_id(self) -> DeviceId:
        return self.device.device_id

    @property
    def breaker_state(self) -> BreakerState:
        return self.breaker.state

    @property
    def is_schedulable(self) -> bool:
        """Enabled and not offline."""
        return self.enabled and self.health is not MemberHealth.OFFLINE

    def record_success(self) -> None:
        """An operation on the member succeeded."""
        self.unreachable_since = None
        self.last_error = None
        if self.health is MemberHealth.DEGRADED:
            self.health = MemberHealth.HEALTHY
            logger.info(f"Member {self.device_id} recovered to healthy")

    def record_failure(self, reason: str) -> None:
        """An operation on a reachable member failed."""
        self.unreachable_since = None
        self.last_error = reason
        if self.health is MemberHealth.HEALTHY:
            self.health = MemberHealth.DEGRADED
            logger.warning(f"Member {self.device_id} degraded: {reason}")

    def record_unreachable(self, now: float, grace_seconds: float, reason: str = "") -> MemberHealth:
        """The member did not respond.

        Consecutive unreachability lasting at least ``grace_seconds`` takes
        the member offline; before that it counts as a failed operation.

        Returns:
            Health after the update.
        """
        self.last_error = reason or "unreachable"
        if self.health is MemberHealth.OFFLINE:
            return self.health
        if self.unreachable_since is None:
            self.unreachable_since = now
        if now - self.unreachable_since >= grace_seconds:
            self.health = MemberHealth.OFFLINE
            logger.warning(f"Member {self.device_id} offline: {self.last_error}")
        elif self.health is MemberHealth.HEALTHY:
            self.health = MemberHealth.DEGRADED
            logger.warning(f"Member {self.device_id} degraded: {self.last_error}")
        return self.health

    def mark_reconnected(self) -> None:
        """A reconnection probe succeeded."""
        self.health = MemberHealth.HEALTHY
        self.unreachable_since = None
        self.last_error = None
        logger.info(f"Member {self.device_id} reconnected")


@dataclass(frozen=True)
class FleetHealth:
    """Fleet health summary computed from one snapshot of member states."""
    total: int
    enabled: int
    healthy: int
    degraded: int
    offline: int

    @property
    def health_percent(self) -> float:
        """Share of healthy members; 0.0 for an empty fleet."""
        if self.total == 0:
            return 0.0
        return self.healthy / self.total * 100.0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "enabled": self.enabled,
            "healthy": self.healthy,
            "degraded": self.degraded,
            "offline": self.offline,
            "health_percent": self.health_percent,
        }


@dataclass(frozen=True)
class DeploymentConfig:
    """Parameters of one fleet deployment."""
    target_devices: tuple[DeviceId, ...] = ()      # Empty = every enabled member
    quant_level: Optional[QuantLevel] = None       # None = select per member
    memory_budget_mb: Optional[int] = None         # Per-device model ceiling
    thermal_policy: Optional[ThermalPolicy] = None  # None = keep member policies


@dataclass(frozen=True)
class DeploymentReport:
    """Outcome of a committed fleet deployment."""
    deployment_id: DeploymentId
    model_name: str
    committed: dict[DeviceId, QuantLevel]
    excluded: dict[DeviceId, str] = field(default_factory=dict)
    commit_failures: dict[DeviceId, str] = field(default_factory=dict)
    stage_durations_s: dict[DeviceId, float] = field(default_factory=dict)
    duration_s: float = 0.0

    @property
    def succeeded(self) -> bool:
        return bool(self.committed) and not self.commit_failures
