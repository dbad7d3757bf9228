"""Tests for the click CLI."""

import json
from datetime import date

import pytest
from click.testing import CliRunner

from hrvwatch.cli import main
from hrvwatch.storage import JsonDirectoryStore

from tests.conftest import (
    capture_from_samples,
    rr_ticks_to_ms,
    samples_for_duration,
    summary_history,
    write_jsonl,
)

T0 = 1_700_000_000.0


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def night_capture(tmp_path):
    samples = samples_for_duration(700, rr_ticks_to_ms([1255, 1305]), start=T0, hr_bpm=48)
    return write_jsonl(tmp_path / "night.jsonl", capture_from_samples(samples))


class TestDecode:
    def test_payload(self, runner):
        result = runner.invoke(main, ["decode", "10 3c 00 04"])
        assert result.exit_code == 0
        assert "60 bpm" in result.output
        assert "1000.0" in result.output
        assert "not supported" in result.output

    def test_malformed(self, runner):
        result = runner.invoke(main, ["decode", "01"])
        assert result.exit_code == 1
        assert "Malformed" in result.output

    def test_not_hex(self, runner):
        result = runner.invoke(main, ["decode", "xyz"])
        assert result.exit_code == 2


class TestReplay:
    def test_summary_and_report(self, runner, night_capture, tmp_path):
        out = tmp_path / "report.json"
        store_dir = tmp_path / "store"
        result = runner.invoke(main, [
            "replay", str(night_capture),
            "-o", str(out),
            "-s", str(store_dir),
            "--waking-hr", "60", "--waking-rmssd", "40",
        ])
        assert result.exit_code == 0, result.output
        assert "Confidence:" in result.output
        assert "Windows:     2" in result.output

        report = json.loads(out.read_text())
        assert len(report["timeslices"]) == 2
        assert report["timeslices"][0]["phase"] == "deep"
        assert len(JsonDirectoryStore(store_dir).daily_summaries()) == 1

    def test_baseline_options_go_together(self, runner, night_capture):
        result = runner.invoke(main, ["replay", str(night_capture), "--waking-hr", "60"])
        assert result.exit_code == 2

    def test_empty_capture(self, runner, tmp_path):
        path = write_jsonl(tmp_path / "empty.jsonl", [])
        result = runner.invoke(main, ["replay", str(path)])
        assert result.exit_code == 1
        assert "No heart rate entries" in result.output

    def test_bad_config(self, runner, night_capture, tmp_path):
        config = tmp_path / "bad.toml"
        config.write_text("[nope]\nx = 1\n")
        result = runner.invoke(main, ["replay", str(night_capture), "-c", str(config)])
        assert result.exit_code == 1
        assert "Unknown config section" in result.output


class TestAnalyze:
    def test_metrics(self, runner, night_capture, tmp_path):
        out = tmp_path / "metrics.json"
        result = runner.invoke(main, ["analyze", str(night_capture), "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert "RMSSD:" in result.output
        assert "DFA a1:" in result.output
        data = json.loads(out.read_text())
        assert data["metrics"]["rmssd"] == pytest.approx(1000.0 * 50 / 1024.0, abs=0.01)
        assert data["conditioning"]["is_valid"] is True

    def test_too_little_data(self, runner, tmp_path):
        path = write_jsonl(tmp_path / "cap.jsonl", capture_from_samples(
            samples_for_duration(1, [1000.0], start=T0, hr_bpm=60)
        ))
        result = runner.invoke(main, ["analyze", str(path)])
        assert result.exit_code == 1
        assert "Not enough clean intervals" in result.output


class TestBaseline:
    def _store(self, tmp_path, values):
        store = JsonDirectoryStore(tmp_path)
        for s in summary_history(values, end=date(2026, 3, 8)):
            store.save_daily_summary(s)
        return tmp_path

    def test_latest_day(self, runner, tmp_path):
        store_dir = self._store(tmp_path, [40.0, 60.0] * 4)
        result = runner.invoke(main, ["baseline", "--store", str(store_dir)])
        assert result.exit_code == 0, result.output
        assert "2026-03-08" in result.output
        assert "7 earlier day(s)" in result.output
        assert "Z-score:      +" in result.output

    def test_specific_day(self, runner, tmp_path):
        store_dir = self._store(tmp_path, [50.0] * 8)
        result = runner.invoke(main, ["baseline", "-s", str(store_dir), "-d", "2026-03-02"])
        assert result.exit_code == 0
        assert "Baseline 7d:  50.0 ms" in result.output
        assert "n/a (need 7 days of history)" in result.output
        assert "Recovery:     100" in result.output

    def test_unknown_day(self, runner, tmp_path):
        store_dir = self._store(tmp_path, [50.0] * 3)
        result = runner.invoke(main, ["baseline", "-s", str(store_dir), "-d", "2025-01-01"])
        assert result.exit_code == 1

    def test_bad_day(self, runner, tmp_path):
        store_dir = self._store(tmp_path, [50.0] * 3)
        result = runner.invoke(main, ["baseline", "-s", str(store_dir), "-d", "March"])
        assert result.exit_code == 2

    def test_empty_store(self, runner, tmp_path):
        result = runner.invoke(main, ["baseline", "-s", str(tmp_path)])
        assert result.exit_code == 0
        assert "No daily summaries" in result.output
