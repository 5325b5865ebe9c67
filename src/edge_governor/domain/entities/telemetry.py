"""Hardware telemetry samples.

A snapshot is produced once per sample by the telemetry transport and is
never mutated afterwards.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Point-in-time hardware readings for one device."""
    gpu_temp_c: float             # GPU thermal zone
    cpu_temp_c: float             # CPU thermal zone
    soc_temp_c: float             # SoC junction
    used_memory_mb: int           # Unified memory in use
    total_memory_mb: int          # Unified memory capacity
    power_watts: float            # Board power draw
    captured_at: float = field(default_factory=time.time)
    gpu_utilization_percent: float = 0.0
    cpu_utilization_percent: float = 0.0

    @property
    def available_memory_mb(self) -> int:
        """Memory not in use according to the device."""
        return max(self.total_memory_mb - self.used_memory_mb, 0)

    @property
    def max_temp_c(self) -> float:
        """Hottest of the reported thermal zones."""
        return max(self.gpu_temp_c, self.cpu_temp_c, self.soc_temp_c)

    @property
    def memory_utilization_percent(self) -> float:
        if self.total_memory_mb <= 0:
            return 0.0
        return self.used_memory_mb / self.total_memory_mb * 100.0
