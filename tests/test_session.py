"""Tests for hrvwatch.monitoring.session -- the wired monitoring pipeline."""

from datetime import timedelta

import pytest

from hrvwatch.config import MonitorConfig
from hrvwatch.monitoring.buffer import inline_dispatch
from hrvwatch.monitoring.events import SleepState
from hrvwatch.monitoring.overnight import SleepPhase
from hrvwatch.monitoring.session import MonitoringSession, session_day
from hrvwatch.monitoring.sleep_detection import DetectionState
from hrvwatch.monitoring.stress import StressSeverity
from hrvwatch.storage import InMemoryStore, JsonDirectoryStore

from tests.conftest import make_hr_payload, rr_ticks_to_ms, samples_for_duration, summary_history

DEEP_PATTERN = [1226.0, 1274.0]
# RMSSD 30 ms
STRESS_PATTERN = [842.0, 872.0]


def _session(scheduler, notifier=None, store=None, config=None) -> MonitoringSession:
    return MonitoringSession(
        config=config,
        scheduler=scheduler,
        clock=scheduler.clock,
        store=store,
        notifier=notifier,
        dispatch=inline_dispatch,
    )


def _drive(session, scheduler, samples) -> float:
    """Ingest samples at their own timestamps, firing due ticks first."""
    for s in samples:
        scheduler.advance_to(s.timestamp)
        session.ingest_sample(s)
    return samples[-1].timestamp


class TestLifecycle:
    def test_start_schedules_jobs(self, scheduler):
        session = _session(scheduler)
        session.start()
        # overnight tick, metrics tick, gap poll
        assert scheduler.pending == 3
        assert session.is_running

    def test_stop_cancels_jobs_and_is_idempotent(self, scheduler):
        session = _session(scheduler)
        session.start()
        scheduler.advance(60.0)
        first = session.stop()
        assert scheduler.pending == 0
        assert not session.is_running
        assert session.stop() is first
        assert first.duration_minutes == pytest.approx(1.0)

    def test_stop_without_start(self, scheduler):
        report = _session(scheduler).stop()
        assert report.sample_count == 0
        assert report.timeslices == ()

    def test_samples_ignored_after_stop(self, scheduler):
        session = _session(scheduler)
        session.start()
        session.stop()
        session.ingest_payload(make_hr_payload(60, rr_ticks_to_ms([1024])), scheduler.now)
        assert session.buffer.is_empty

    def test_start_twice(self, scheduler):
        session = _session(scheduler)
        session.start()
        session.start()
        assert scheduler.pending == 3


class TestIngest:
    def test_payload_decoded_and_counted(self, scheduler):
        session = _session(scheduler)
        session.start()
        sample = session.ingest_payload(make_hr_payload(60, rr_ticks_to_ms([1024, 1024])), scheduler.now + 1)
        assert sample is not None
        assert sample.timestamp == pytest.approx(scheduler.now + 1)
        assert session.buffer.count == 1
        assert session.coverage.snapshot(scheduler.now + 60).received_samples == 2

    def test_malformed_payload(self, scheduler):
        session = _session(scheduler)
        session.start()
        assert session.ingest_payload(b"\x01") is None
        assert session.buffer.is_empty

    def test_hr_only_sample_not_counted_for_coverage(self, scheduler):
        session = _session(scheduler)
        session.start()
        session.ingest_payload(make_hr_payload(60), scheduler.now + 1)
        report = session.stop(scheduler.now + 60)
        assert report.sample_count == 1
        assert report.coverage.received_samples == 0

    def test_disconnects_reported(self, scheduler):
        session = _session(scheduler)
        session.start()
        session.record_disconnect()
        session.record_disconnect()
        report = session.stop(scheduler.now + 3600)
        assert report.disconnect_count == 2
        assert report.confidence.components.ble == 60


class TestOvernightPipeline:
    def test_timeslices_and_daily_summary(self, scheduler, notifier):
        store = InMemoryStore()
        session = _session(scheduler, notifier=notifier, store=store)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=40.0)

        samples = samples_for_duration(700, DEEP_PATTERN, start=scheduler.now, hr_bpm=48)
        end = _drive(session, scheduler, samples)
        report = session.stop(end)

        assert len(report.timeslices) == 2
        assert all(t.phase is SleepPhase.DEEP for t in report.timeslices)
        assert notifier.phases == [SleepPhase.DEEP]
        assert report.overnight.total_timeslices == 2
        assert report.daily_summary is not None
        assert report.daily_summary.date == session_day(end)
        assert report.daily_summary.deep_min == pytest.approx(10.0)
        assert report.coverage.received_samples == len(samples)
        assert report.flush_count > 0

        assert store.session_reports == [report]
        assert store.daily_summaries() == [report.daily_summary]

    def test_summary_enriched_from_history(self, scheduler):
        end_day = session_day(scheduler.now + 700)
        store = InMemoryStore(summary_history([50.0] * 7, end=end_day - timedelta(days=1)))
        session = _session(scheduler, store=store)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=40.0)

        samples = samples_for_duration(700, DEEP_PATTERN, start=scheduler.now, hr_bpm=48)
        report = session.stop(_drive(session, scheduler, samples))

        assert report.daily_summary.baseline_7d == pytest.approx(50.0)
        assert report.daily_summary.recovery_score == 96

    def test_sleep_state_follows_overnight_phase(self, scheduler):
        session = _session(scheduler)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=40.0)
        assert session.current_sleep_state() is SleepState.AWAKE
        samples = samples_for_duration(400, DEEP_PATTERN, start=scheduler.now, hr_bpm=48)
        _drive(session, scheduler, samples)
        assert session.current_sleep_state() is SleepState.SLEEPING

    def test_waking_detector_does_not_count_as_asleep(self, scheduler):
        session = _session(scheduler)
        session.set_baselines(waking_hr=60.0, waking_rmssd=40.0)
        detector = session.sleep_detector
        for t in range(0, 930, 30):
            detector.update(48.0, 50.0, scheduler.now + t)
        assert session.current_sleep_state() is SleepState.SLEEPING

        detector.update(62.0, 30.0, scheduler.now + 1000)
        assert detector.state is DetectionState.WAKING
        assert session.current_sleep_state() is SleepState.AWAKE


class _BrokenHistoryStore(InMemoryStore):
    def daily_summaries(self, start=None, end=None):
        raise OSError("disk unavailable")


class TestStoreFailures:
    def test_truncated_summary_file(self, scheduler, tmp_path):
        store = JsonDirectoryStore(tmp_path)
        (tmp_path / "summaries" / "1970-01-01.json").write_text('{"date": "1970-01-01", "rmss')
        session = _session(scheduler, store=store)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=40.0)
        assert session.stress._baseline_rmssd == pytest.approx(40.0)

        samples = samples_for_duration(700, DEEP_PATTERN, start=scheduler.now, hr_bpm=48)
        report = session.stop(_drive(session, scheduler, samples))

        assert len(report.timeslices) == 2
        assert report.daily_summary.recovery_score == 100
        assert (tmp_path / "sessions.jsonl").exists()
        assert store.daily_summaries() == [report.daily_summary]

    def test_unreadable_history_leaves_summary_unenriched(self, scheduler):
        store = _BrokenHistoryStore()
        session = _session(scheduler, store=store)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=40.0)

        samples = samples_for_duration(700, DEEP_PATTERN, start=scheduler.now, hr_bpm=48)
        report = session.stop(_drive(session, scheduler, samples))

        assert report.daily_summary is not None
        assert report.daily_summary.recovery_score is None
        assert report.daily_summary.baseline_7d is None
        assert store.session_reports == [report]
        assert session.stop() is report


class TestStressPipeline:
    def test_sustained_stress_alert_and_event(self, scheduler, notifier):
        store = InMemoryStore()
        session = _session(scheduler, notifier=notifier, store=store)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=50.0)

        samples = samples_for_duration(420, STRESS_PATTERN, start=scheduler.now, hr_bpm=70)
        end = _drive(session, scheduler, samples)
        assert len(notifier.alerts) == 1
        assert notifier.alerts[0].severity is StressSeverity.HIGH

        report = session.stop(end)
        assert len(report.stress_events) == 1
        assert report.stress_events[0].severity is StressSeverity.HIGH
        assert report.stress_events[0].average_hr == pytest.approx(70.0)
        assert store.stress_events == list(report.stress_events)

    def test_stress_baseline_prefers_stored_history(self, scheduler):
        store = InMemoryStore(summary_history([80.0] * 7))
        session = _session(scheduler, store=store)
        session.set_baselines(waking_hr=60.0, waking_rmssd=50.0)
        assert session.stress._baseline_rmssd == pytest.approx(80.0)

    def test_suppressed_while_sleeping(self, scheduler, notifier):
        session = _session(scheduler, notifier=notifier)
        session.start()
        session.set_baselines(waking_hr=60.0, waking_rmssd=50.0)
        session.sleep_detector.start_manual_sleep(scheduler.now)

        samples = samples_for_duration(420, STRESS_PATTERN, start=scheduler.now, hr_bpm=70)
        _drive(session, scheduler, samples)
        assert notifier.alerts == []


class TestCoveragePipeline:
    def test_gap_poll_detects_silence(self, scheduler):
        session = _session(scheduler)
        session.start()
        first = samples_for_duration(100, [1000.0], start=scheduler.now, hr_bpm=60)
        end = _drive(session, scheduler, first)
        scheduler.advance(60.0)
        assert session.coverage.in_gap

        second = samples_for_duration(100, [1000.0], start=scheduler.now, hr_bpm=60)
        end = _drive(session, scheduler, second)
        report = session.stop(end)
        assert report.coverage.gap_count == 1
        assert report.coverage.longest_gap_seconds == pytest.approx(61.0, abs=1.0)


class TestCalibration:
    def test_waking_baseline_from_metric_ticks(self, scheduler):
        session = _session(scheduler)
        session.start()
        assert not session.calibrate_waking_baseline()

        samples = samples_for_duration(330, [1000.0, 1020.0], start=scheduler.now, hr_bpm=60)
        _drive(session, scheduler, samples)

        assert session.calibrate_waking_baseline()
        hr, rmssd = session.sleep_detector.waking_baseline
        assert hr == pytest.approx(60.0)
        assert rmssd == pytest.approx(20.0, abs=0.5)
        assert session.overnight.waking_baselines == (hr, rmssd)


class TestReport:
    def test_to_dict(self, scheduler):
        session = _session(scheduler, config=MonitorConfig())
        session.start()
        samples = samples_for_duration(120, [1000.0], start=scheduler.now, hr_bpm=60)
        report = session.stop(_drive(session, scheduler, samples))
        data = report.to_dict()
        assert data["sample_count"] == len(samples)
        assert data["daily_summary"] is None
        assert data["overnight"] is None
        assert "confidence" in data and "coverage" in data
