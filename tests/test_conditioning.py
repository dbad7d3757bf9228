"""Tests for hrvwatch.analytics.conditioning -- artifact rejection."""

import numpy as np
import pytest

from hrvwatch.analytics.conditioning import (
    CleanIntervalWindow,
    ConditioningConfig,
    DataQuality,
    condition_intervals,
)

from tests.conftest import synthetic_rr


class TestBoundsRejection:
    def test_in_range_input_fully_retained(self):
        rng = np.random.default_rng(7)
        for _ in range(20):
            rr = list(rng.uniform(200.0, 2500.0, size=50))
            window = condition_intervals(rr, ConditioningConfig(correct_ectopic=False))
            assert window.quality_score == 1.0
            assert window.clean_intervals == tuple(rr)

    def test_in_range_with_ectopic_correction_still_scores_one(self):
        rr = [1000.0] * 20 + [1500.0] + [1000.0] * 20
        window = condition_intervals(rr)
        assert window.quality_score == 1.0
        assert window.corrected_count >= 1

    def test_boundaries_inclusive(self):
        window = condition_intervals([200.0, 2500.0], ConditioningConfig(min_intervals=2, correct_ectopic=False))
        assert window.clean_intervals == (200.0, 2500.0)
        assert window.rejected_count == 0

    def test_out_of_range_rejected(self):
        rr = [1000.0] * 30 + [150.0, 3000.0]
        window = condition_intervals(rr)
        assert window.rejected_count == 2
        assert window.original_count == 32
        assert window.quality_score == pytest.approx(30 / 32)
        assert all(200.0 <= v <= 2500.0 for v in window.clean_intervals)


class TestEctopicCorrection:
    def test_premature_beat_replaced(self):
        rr = [1000.0 + (i % 3) for i in range(40)]
        rr[20] = 600.0
        window = condition_intervals(rr)
        assert window.corrected_count >= 1
        assert window.clean_intervals[20] == pytest.approx(1000.0, abs=10.0)
        assert len(window.clean_intervals) == len(rr)

    def test_correction_can_be_disabled(self):
        rr = [1000.0] * 40
        rr[20] = 600.0
        window = condition_intervals(rr, ConditioningConfig(correct_ectopic=False))
        assert window.corrected_count == 0
        assert window.clean_intervals[20] == 600.0

    def test_few_anchors_uses_linear(self):
        rr = [800.0, 1200.0, 800.0]
        window = condition_intervals(rr, ConditioningConfig(min_intervals=1))
        assert all(200.0 <= v <= 2500.0 for v in window.clean_intervals)

    def test_deterministic(self):
        rr = synthetic_rr(200, noise_ms=30.0)
        rr[50] = 450.0
        rr[120] = 1900.0
        assert condition_intervals(rr) == condition_intervals(rr)

    def test_normal_variation_not_flagged(self):
        window = condition_intervals(synthetic_rr(200))
        assert window.corrected_count == 0


class TestValidity:
    def test_empty(self):
        window = condition_intervals([])
        assert not window.is_valid
        assert window.quality_score == 0.0
        assert window.clean_intervals == ()

    def test_below_minimum_is_invalid(self):
        window = condition_intervals([1000.0] * 29)
        assert not window.is_valid

    def test_at_minimum_is_valid(self):
        window = condition_intervals([1000.0] * 30)
        assert window.is_valid

    def test_rejection_can_invalidate(self):
        window = condition_intervals([1000.0] * 30 + [50.0] * 10, ConditioningConfig(min_intervals=35))
        assert not window.is_valid

    def test_clean_duration(self):
        window = condition_intervals([1000.0] * 30)
        assert window.clean_duration_sec == 30.0


class TestDataQuality:
    @pytest.mark.parametrize("percent,band", [
        (100.0, DataQuality.EXCELLENT),
        (95.0, DataQuality.EXCELLENT),
        (94.9, DataQuality.GOOD),
        (85.0, DataQuality.GOOD),
        (70.0, DataQuality.ACCEPTABLE),
        (50.0, DataQuality.POOR),
        (49.9, DataQuality.UNUSABLE),
    ])
    def test_bands(self, percent, band):
        assert DataQuality.from_percent(percent) is band

    def test_usable(self):
        assert DataQuality.POOR.is_usable
        assert not DataQuality.UNUSABLE.is_usable

    def test_window_quality(self):
        window = CleanIntervalWindow(clean_intervals=(1000.0,), quality_score=0.9, is_valid=False)
        assert window.quality is DataQuality.GOOD
