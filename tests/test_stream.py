"""Tests for the live-capture helpers (no radio needed)."""

from types import SimpleNamespace

from hrvwatch.decoders.hr import HR_SERVICE_UUID
from hrvwatch.replay import iter_capture
from hrvwatch.scanner import advertises_heart_rate
from hrvwatch.stream import capture_record

from tests.conftest import make_hr_payload, rr_ticks_to_ms, write_jsonl


class TestCaptureRecord:
    def test_fields(self):
        payload = make_hr_payload(64, rr_ticks_to_ms([960]))
        record = capture_record(payload, 1_700_000_000.25)
        assert record["hex_data"] == payload.hex()
        assert record["length"] == len(payload)
        assert record["timestamp"].startswith("2023-11-14T22:13:20.25")

    def test_readable_by_replay(self, tmp_path):
        payloads = [make_hr_payload(60 + i, rr_ticks_to_ms([1000 + i])) for i in range(3)]
        path = write_jsonl(tmp_path / "cap.jsonl", [
            capture_record(p, 1_700_000_000.0 + i) for i, p in enumerate(payloads)
        ])
        entries = list(iter_capture(path))
        assert [e.data for e in entries] == payloads
        assert [e.timestamp for e in entries] == [1_700_000_000.0 + i for i in range(3)]


class TestAdvertisement:
    def test_heart_rate_service(self):
        adv = SimpleNamespace(service_uuids=[HR_SERVICE_UUID.upper()])
        assert advertises_heart_rate(adv)

    def test_other_services(self):
        assert not advertises_heart_rate(SimpleNamespace(service_uuids=["0000180f-0000-1000-8000-00805f9b34fb"]))
        assert not advertises_heart_rate(SimpleNamespace(service_uuids=None))
