"""Model artifacts and memory estimates.

Sizes use decimal megabytes (1 MB = 1e6 bytes), matching how model
sources report weight file sizes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from edge_governor.domain.value_objects.quant_levels import QuantLevel

if TYPE_CHECKING:
    from edge_governor.domain.services.memory_budget import MemoryBudget

BYTES_PER_MB = 1_000_000


@dataclass(frozen=True)
class ModelMemoryEstimate:
    """Memory requirements of a model derived from its parameter count."""
    parameter_count: int
    max_context: int = 2048

    @classmethod
    def for_params(cls, params_billions: float, max_context: int = 2048) -> ModelMemoryEstimate:
        return cls(parameter_count=int(params_billions * 1e9), max_context=max_context)

    @property
    def params_billions(self) -> float:
        return self.parameter_count / 1e9

    @property
    def base_f32_size_mb(self) -> float:
        """Weight size at full precision."""
        return self.parameter_count * QuantLevel.F32.bits_per_param / 8 / BYTES_PER_MB

    @property
    def f16_size_mb(self) -> float:
        return self.size_mb(QuantLevel.F16)

    @property
    def activations_mb(self) -> float:
        # Rough estimate
        return self.params_billions * 100.0

    @property
    def kv_cache_per_token_kb(self) -> float:
        # Rough estimate
        return self.params_billions * 2.0

    def size_mb(self, level: QuantLevel) -> float:
        """Weight size at the given quantization level."""
        return self.base_f32_size_mb * level.memory_factor / QuantLevel.F32.memory_factor

    def total_mb(self, level: QuantLevel, context_length: Optional[int] = None) -> float:
        """Weights, activations and KV cache for a context length."""
        context = self.max_context if context_length is None else context_length
        kv_cache_mb = self.kv_cache_per_token_kb * context / 1024
        return self.size_mb(level) + self.activations_mb + kv_cache_mb

    def fits_in(self, budget: MemoryBudget, level: QuantLevel, context_length: Optional[int] = None) -> bool:
        return budget.can_allocate(math.ceil(self.total_mb(level, context_length)))


@dataclass(frozen=True)
class ModelArtifact:
    """Raw model bytes plus the size reported by the model source."""
    name: str
    payload: bytes = field(repr=False)
    f16_size_mb: Optional[int] = None   # Reported F16 weight size

    @property
    def size_mb(self) -> int:
        """Reported F16 size, or the payload size rounded up to whole MB."""
        if self.f16_size_mb is not None:
            return self.f16_size_mb
        return math.ceil(len(self.payload) / BYTES_PER_MB)
