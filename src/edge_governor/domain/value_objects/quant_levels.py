"""Quantization levels and their fixed memory/fidelity attributes.

Levels follow the llama.cpp legacy quantization names. Attribute values are
constants: memory factors are relative to F16 (the normalization baseline),
perplexity deltas are the expected increase over F16.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from edge_governor.domain.exceptions import ConfigInvalidError


class QuantLevel(Enum):
    """Weight quantization level."""
    Q4_0 = "q4_0"    # 4-bit, type 0
    Q4_1 = "q4_1"    # 4-bit, type 1
    Q5_0 = "q5_0"    # 5-bit, type 0
    Q5_1 = "q5_1"    # 5-bit, type 1
    Q8_0 = "q8_0"    # 8-bit
    F16 = "f16"      # Half precision
    F32 = "f32"      # Full precision (rarely fits on edge devices)

    @property
    def profile(self) -> QuantProfile:
        return QUANT_PROFILES[self]

    @property
    def bits_per_param(self) -> int:
        return QUANT_PROFILES[self].bits_per_param

    @property
    def memory_factor(self) -> float:
        return QUANT_PROFILES[self].memory_factor

    @property
    def perplexity_delta_percent(self) -> float:
        return QUANT_PROFILES[self].perplexity_delta_percent

    @classmethod
    def from_label(cls, label: str) -> QuantLevel:
        """Parse a level from its label (e.g. ``"Q4_0"`` or ``"q4_0"``).

        Raises:
            ConfigInvalidError: If the label names no known level.
        """
        normalized = label.strip().lower()
        for level in cls:
            if level.value == normalized:
                return level
        raise ConfigInvalidError(f"Unknown quantization level: {label!r}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class QuantProfile:
    """Fixed attributes of a quantization level."""
    bits_per_param: int
    memory_factor: float             # Size relative to F16
    perplexity_delta_percent: float  # Expected perplexity increase vs F16


QUANT_PROFILES: dict[QuantLevel, QuantProfile] = {
    QuantLevel.Q4_0: QuantProfile(bits_per_param=4, memory_factor=0.25, perplexity_delta_percent=5.0),
    QuantLevel.Q4_1: QuantProfile(bits_per_param=4, memory_factor=0.25, perplexity_delta_percent=4.0),
    QuantLevel.Q5_0: QuantProfile(bits_per_param=5, memory_factor=0.3125, perplexity_delta_percent=3.0),
    QuantLevel.Q5_1: QuantProfile(bits_per_param=5, memory_factor=0.3125, perplexity_delta_percent=2.5),
    QuantLevel.Q8_0: QuantProfile(bits_per_param=8, memory_factor=0.5, perplexity_delta_percent=1.0),
    QuantLevel.F16: QuantProfile(bits_per_param=16, memory_factor=1.0, perplexity_delta_percent=0.0),
    QuantLevel.F32: QuantProfile(bits_per_param=32, memory_factor=2.0, perplexity_delta_percent=0.0),
}

# Highest fidelity first
QUALITY_ORDER: tuple[QuantLevel, ...] = (
    QuantLevel.F32,
    QuantLevel.F16,
    QuantLevel.Q8_0,
    QuantLevel.Q5_1,
    QuantLevel.Q5_0,
    QuantLevel.Q4_1,
    QuantLevel.Q4_0,
)

# Lowest-memory level, returned when nothing fits
MOST_COMPRESSED: QuantLevel = QUALITY_ORDER[-1]
