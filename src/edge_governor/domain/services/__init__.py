"""Domain services for edge governor business logic.

Services implement core workflows:
- ThermalCircuitBreaker: Temperature-gated admission of work
- MemoryBudget: Unified-memory ledger with exactly-once guards
- QuantizationSelector: Highest-fidelity level that fits a budget
- FleetGovernor: Fleet health and two-phase model deployment
"""

from edge_governor.domain.services.fleet_governor import FleetGovernor
from edge_governor.domain.services.memory_budget import MemoryBudget, MemoryGuard
from edge_governor.domain.services.quantization_selector import (
    QuantizationPlan,
    QuantizationSelector,
)
from edge_governor.domain.services.thermal_breaker import ThermalCircuitBreaker

__all__ = [
    "FleetGovernor",
    "MemoryBudget",
    "MemoryGuard",
    "QuantizationPlan",
    "QuantizationSelector",
    "ThermalCircuitBreaker",
]
