"""Quantization level selection for a memory budget.

Candidates are tried from highest to lowest fidelity and the first one whose
weights fit the budget wins. The selection is a pure function of
``(f16_size_mb, available_mb)``: deterministic, and monotonic in
``available_mb`` (more headroom never yields a lower-fidelity level).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from edge_governor.domain.services.memory_budget import MemoryBudget
from edge_governor.domain.value_objects.quant_levels import (
    MOST_COMPRESSED,
    QUALITY_ORDER,
    QuantLevel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuantizationPlan:
    """Selected level with its memory footprint."""
    level: QuantLevel
    f16_size_mb: float
    size_mb: float
    available_mb: int

    @property
    def fits(self) -> bool:
        """False when even the most compressed level exceeds the budget."""
        return self.size_mb <= self.available_mb

    @property
    def perplexity_delta_percent(self) -> float:
        return self.level.perplexity_delta_percent

    @property
    def compression_ratio(self) -> float:
        """F16 size over selected size."""
        if self.size_mb == 0:
            return 0.0
        return self.f16_size_mb / self.size_mb


class QuantizationSelector:
    """Choose the highest-fidelity quantization level that fits."""

    @staticmethod
    def estimate_size_mb(f16_size_mb: float, level: QuantLevel) -> float:
        """Weight size of a model at a level, given its F16 size."""
        return f16_size_mb * (level.memory_factor / QuantLevel.F16.memory_factor)

    @classmethod
    def select_for_available(cls, f16_size_mb: float, available_mb: int) -> QuantLevel:
        """Select a level for a given amount of free memory.

        Returns:
            First level in descending fidelity whose size fits, or the most
            compressed level when none does.
        """
        for level in QUALITY_ORDER:
            if cls.estimate_size_mb(f16_size_mb, level) <= available_mb:
                return level
        return MOST_COMPRESSED

    @classmethod
    def select_for_budget(cls, f16_size_mb: float, budget: MemoryBudget) -> QuantLevel:
        """Select a level for the budget's current headroom."""
        return cls.select_for_available(f16_size_mb, budget.available_mb())

    @classmethod
    def plan(cls, f16_size_mb: float, budget: MemoryBudget) -> QuantizationPlan:
        """Select a level and report whether it actually fits.

        Callers decide whether a non-fitting plan is a hard failure.
        """
        available = budget.available_mb()
        level = cls.select_for_available(f16_size_mb, available)
        plan = QuantizationPlan(
            level=level,
            f16_size_mb=f16_size_mb,
            size_mb=cls.estimate_size_mb(f16_size_mb, level),
            available_mb=available,
        )
        if not plan.fits:
            logger.warning(
                f"No quantization level fits {f16_size_mb}MB (F16) in {available}MB; "
                f"{level} needs {plan.size_mb:.0f}MB"
            )
        return plan
