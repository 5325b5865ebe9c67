"""Unit tests for quantization levels and selection."""

import pytest

from edge_governor.domain.exceptions import ConfigInvalidError
from edge_governor.domain.services.memory_budget import MemoryBudget
from edge_governor.domain.services.quantization_selector import QuantizationSelector
from edge_governor.domain.value_objects.quant_levels import (
    MOST_COMPRESSED,
    QUALITY_ORDER,
    QuantLevel,
)


@pytest.mark.unit
class TestQuantLevel:
    """Test level attributes."""

    def test_memory_factors_relative_to_f16(self):
        assert QuantLevel.F16.memory_factor == 1.0
        assert QuantLevel.Q8_0.memory_factor == 0.5
        assert QuantLevel.Q4_0.memory_factor == 0.25
        assert QuantLevel.F32.memory_factor == 2.0

    def test_bits_per_param(self):
        assert [level.bits_per_param for level in QUALITY_ORDER] == [32, 16, 8, 5, 5, 4, 4]

    def test_quality_order_is_non_increasing_in_memory(self):
        """Test each level is at most as large as the one before it."""
        factors = [level.memory_factor for level in QUALITY_ORDER]
        assert factors == sorted(factors, reverse=True)

    def test_perplexity_delta(self):
        assert QuantLevel.F16.perplexity_delta_percent == 0.0
        assert QuantLevel.Q4_0.perplexity_delta_percent > QuantLevel.Q8_0.perplexity_delta_percent

    def test_from_label(self):
        assert QuantLevel.from_label("Q5_1") is QuantLevel.Q5_1
        assert QuantLevel.from_label(" f16 ") is QuantLevel.F16
        with pytest.raises(ConfigInvalidError):
            QuantLevel.from_label("q3_k")

    def test_str(self):
        assert str(QuantLevel.Q8_0) == "q8_0"


@pytest.mark.unit
class TestQuantizationSelector:
    """Test level selection for a budget."""

    def test_selects_q5_1_for_14gb_model_in_6gb(self):
        """Test a 14000MB F16 model with 6144MB available selects Q5_1."""
        assert QuantizationSelector.select_for_available(14000, 6144) is QuantLevel.Q5_1

    def test_selects_q4_1_when_q5_does_not_fit(self):
        """Test 20000MB F16 in 6144MB: Q5 needs 6250MB, Q4_1 fits."""
        assert QuantizationSelector.select_for_available(20000, 6144) is QuantLevel.Q4_1

    def test_selects_f32_when_it_fits(self):
        assert QuantizationSelector.select_for_available(1000, 6144) is QuantLevel.F32

    def test_selects_f16_when_f32_does_not_fit(self):
        assert QuantizationSelector.select_for_available(3500, 6144) is QuantLevel.F16

    def test_falls_back_to_most_compressed(self):
        """Test nothing fitting still returns the most compressed level."""
        assert QuantizationSelector.select_for_available(100000, 6144) is MOST_COMPRESSED
        assert QuantizationSelector.select_for_available(1000, 0) is MOST_COMPRESSED

    def test_select_for_budget_uses_available(self):
        budget = MemoryBudget(8192, 2048)
        assert QuantizationSelector.select_for_budget(14000, budget) is QuantLevel.Q5_1

        guard = budget.try_allocate(2000)
        assert QuantizationSelector.select_for_budget(14000, budget) is QuantLevel.Q4_1
        guard.release()

    def test_deterministic(self):
        results = {QuantizationSelector.select_for_available(9000, 4000) for _ in range(10)}
        assert len(results) == 1

    def test_monotonic_in_available_memory(self):
        """Test more headroom never yields a lower-fidelity level."""
        rank = {level: i for i, level in enumerate(QUALITY_ORDER)}
        for f16_size in (500, 3000, 7000, 14000, 20000, 60000):
            previous = None
            for available in range(0, 40001, 250):
                level = QuantizationSelector.select_for_available(f16_size, available)
                if previous is not None:
                    assert rank[level] <= rank[previous]
                previous = level

    def test_plan_reports_fit(self):
        plan = QuantizationSelector.plan(14000, MemoryBudget(8192, 2048))
        assert plan.level is QuantLevel.Q5_1
        assert plan.size_mb == pytest.approx(4375.0)
        assert plan.fits
        assert plan.compression_ratio == pytest.approx(3.2)

    def test_plan_reports_no_fit(self):
        plan = QuantizationSelector.plan(100000, MemoryBudget(8192, 2048))
        assert plan.level is MOST_COMPRESSED
        assert not plan.fits
