"""Thermal policy and circuit breaker state.

References:
    - Thermal circuit breaker: pause at threshold, resume at cooldown
      (hysteresis gap prevents oscillation at the boundary).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from edge_governor.domain.exceptions import ConfigInvalidError
from edge_governor.domain.value_objects.device_identifiers import DeviceId


class BreakerState(Enum):
    """Thermal circuit breaker state."""
    CLOSED = "closed"     # Work permitted
    OPEN = "open"         # Over threshold, work paused
    COOLING = "cooling"   # Waiting for temperature <= cooldown


@dataclass(frozen=True)
class ThermalPolicy:
    """Thermal limits for a device.

    Raises:
        ConfigInvalidError: If ``cooldown_c >= threshold_c`` or the check
            interval is not positive.
    """
    threshold_c: float = 65.0
    cooldown_c: float = 55.0
    check_interval_ms: int = 500

    def __post_init__(self) -> None:
        if self.cooldown_c >= self.threshold_c:
            raise ConfigInvalidError(
                f"cooldown_c ({self.cooldown_c}) must be below threshold_c ({self.threshold_c})"
            )
        if self.check_interval_ms <= 0:
            raise ConfigInvalidError(
                f"check_interval_ms must be positive, got {self.check_interval_ms}"
            )

    @classmethod
    def conservative(cls) -> ThermalPolicy:
        """Pause at 65°C, resume at 55°C."""
        return cls(threshold_c=65.0, cooldown_c=55.0, check_interval_ms=500)

    @classmethod
    def aggressive(cls) -> ThermalPolicy:
        """Pause at 75°C, resume at 65°C."""
        return cls(threshold_c=75.0, cooldown_c=65.0, check_interval_ms=1000)

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_ms / 1000.0

    @property
    def hysteresis_c(self) -> float:
        return self.threshold_c - self.cooldown_c


@dataclass(frozen=True)
class BreakerTransition:
    """Observable breaker state change."""
    device_id: DeviceId
    previous: BreakerState
    current: BreakerState
    temperature_c: Optional[float]  # None when telemetry was unavailable
    reason: str = ""
    timestamp: float = field(default_factory=time.time)
