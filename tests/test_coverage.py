"""Tests for hrvwatch.monitoring.coverage -- RR coverage and gap tracking."""

import pytest

from hrvwatch.analytics.conditioning import DataQuality
from hrvwatch.monitoring.coverage import CoverageConfig, CoverageTracker, DataGap

T0 = 1_000_000.0


def _tracker(**config) -> CoverageTracker:
    tracker = CoverageTracker(CoverageConfig(**config), clock=lambda: T0)
    tracker.start_tracking(T0)
    return tracker


def _feed(tracker: CoverageTracker, start: float, seconds: int) -> None:
    """One RR sample per second for *seconds* seconds."""
    for i in range(seconds):
        tracker.record_samples(1, start + i + 1)


class TestCoverageFormula:
    def test_full_coverage(self):
        tracker = _tracker()
        _feed(tracker, T0, 600)
        report = tracker.stop_tracking(T0 + 600)
        assert report.duration_minutes == pytest.approx(10.0)
        assert report.expected_samples == 600
        assert report.received_samples == 600
        assert report.coverage_percent == pytest.approx(100.0)
        assert not report.is_low_coverage
        assert report.data_quality is DataQuality.EXCELLENT

    def test_partial_coverage(self):
        tracker = _tracker()
        _feed(tracker, T0, 300)
        report = tracker.stop_tracking(T0 + 600)
        assert report.coverage_percent == pytest.approx(50.0)
        assert report.is_low_coverage

    def test_low_coverage_threshold(self):
        tracker = _tracker()
        _feed(tracker, T0, 480)
        assert not tracker.snapshot(T0 + 600).is_low_coverage
        tracker.reset()
        tracker.start_tracking(T0)
        _feed(tracker, T0, 479)
        assert tracker.snapshot(T0 + 600).is_low_coverage

    def test_fractional_minutes(self):
        tracker = _tracker()
        _feed(tracker, T0, 90)
        report = tracker.snapshot(T0 + 90)
        # 1.5 min * 60 = 90 expected
        assert report.expected_samples == 90
        assert report.coverage_percent == pytest.approx(100.0)

    def test_capped_at_100(self):
        tracker = _tracker()
        tracker.record_samples(500, T0 + 1)
        assert tracker.snapshot(T0 + 60).coverage_percent == 100.0

    def test_zero_duration(self):
        tracker = _tracker()
        report = tracker.snapshot(T0)
        assert report.expected_samples == 0
        assert report.coverage_percent == 0.0


class TestGaps:
    def test_no_gap_within_threshold(self):
        tracker = _tracker()
        tracker.record_samples(1, T0 + 10)
        assert not tracker.check_for_gap(T0 + 40)
        assert tracker.gaps == []

    def test_gap_opens_at_last_sample(self):
        tracker = _tracker()
        tracker.record_samples(1, T0 + 10)
        assert tracker.check_for_gap(T0 + 41)
        assert tracker.in_gap
        assert tracker.gaps == [DataGap(T0 + 10)]
        # polling again keeps the same gap
        assert tracker.check_for_gap(T0 + 60)
        assert len(tracker.gaps) == 1

    def test_sample_closes_gap(self):
        tracker = _tracker()
        tracker.record_samples(1, T0 + 10)
        tracker.check_for_gap(T0 + 50)
        tracker.record_samples(1, T0 + 70)
        assert not tracker.in_gap
        assert tracker.gaps == [DataGap(T0 + 10, T0 + 70)]
        report = tracker.snapshot(T0 + 100)
        assert report.gap_count == 1
        assert report.total_gap_seconds == pytest.approx(60.0)
        assert report.longest_gap_seconds == pytest.approx(60.0)

    def test_silence_from_start(self):
        tracker = _tracker()
        assert tracker.check_for_gap(T0 + 31)
        assert tracker.gaps[0].start == T0

    def test_open_gap_counts_toward_longest_only(self):
        tracker = _tracker()
        tracker.record_samples(1, T0 + 10)
        tracker.check_for_gap(T0 + 50)
        report = tracker.snapshot(T0 + 130)
        assert report.gap_count == 0
        assert report.longest_gap_seconds == pytest.approx(120.0)

    def test_stop_closes_open_gap(self):
        tracker = _tracker()
        tracker.record_samples(1, T0 + 10)
        tracker.check_for_gap(T0 + 50)
        report = tracker.stop_tracking(T0 + 200)
        assert report.gap_count == 1
        assert report.total_gap_seconds == pytest.approx(190.0)
        assert not tracker.in_gap

    def test_gap_duration(self):
        assert DataGap(10.0, 25.0).duration() == 15.0
        assert DataGap(10.0).duration() == 0.0
        assert DataGap(10.0).duration(now=40.0) == 30.0
        assert DataGap(10.0).is_open

    def test_custom_threshold(self):
        tracker = _tracker(gap_threshold_sec=5.0)
        assert tracker.check_for_gap(T0 + 6)


class TestLifecycle:
    def test_samples_ignored_before_start(self):
        tracker = CoverageTracker(clock=lambda: T0)
        tracker.record_samples(10, T0)
        assert not tracker.is_tracking
        assert tracker.snapshot(T0).received_samples == 0

    def test_stop_is_frozen(self):
        tracker = _tracker()
        _feed(tracker, T0, 60)
        first = tracker.stop_tracking(T0 + 60)
        tracker.record_samples(100, T0 + 70)
        assert not tracker.check_for_gap(T0 + 500)
        assert tracker.stop_tracking(T0 + 900) == first
        assert tracker.snapshot(T0 + 900) == first

    def test_restart_resets(self):
        tracker = _tracker()
        _feed(tracker, T0, 60)
        tracker.stop_tracking(T0 + 60)
        tracker.start_tracking(T0 + 100)
        assert tracker.is_tracking
        assert tracker.snapshot(T0 + 100).received_samples == 0

    def test_clock_default(self):
        tracker = CoverageTracker(clock=lambda: T0 + 60)
        tracker.start_tracking(T0)
        assert tracker.snapshot().duration_minutes == pytest.approx(1.0)

    def test_to_dict(self):
        tracker = _tracker()
        _feed(tracker, T0, 60)
        data = tracker.stop_tracking(T0 + 60).to_dict()
        assert data["data_quality"] == "excellent"
        assert data["expected_samples"] == 60
