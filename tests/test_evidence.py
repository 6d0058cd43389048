"""Tests for the JSONL evidence log."""

import json
import os
import tempfile

from canary_gate.evidence import EvidenceEvent, append_event, create_event, read_events
from canary_gate.models import PHASE_INCONCLUSIVE, Measurement


class TestCreateEvent:
    def test_from_measurement(self):
        measurement = Measurement(
            phase=PHASE_INCONCLUSIVE,
            value="85",
            message="",
            metadata={"canaryId": "42", "reportUrl": "https://isd.example.com/report/42"},
        )
        event = create_event("testapp", measurement)
        assert event.application == "testapp"
        assert event.canary_id == "42"
        assert event.phase == "Inconclusive"
        assert event.score == "85"
        assert event.report_url == "https://isd.example.com/report/42"
        assert event.ts.endswith("Z")

    def test_without_canary_id(self):
        event = create_event("testapp", Measurement(phase="Error", message="boom"))
        assert event.canary_id == ""
        assert event.message == "boom"


class TestAppendAndRead:
    def test_append_creates_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "nested", "evidence.jsonl")
            append_event(EvidenceEvent(ts="t1", application="a", canary_id="1", phase="Running"), log_path)
            assert os.path.isfile(log_path)
            with open(log_path, "r") as f:
                entry = json.loads(f.readline())
            assert entry == {
                "ts": "t1",
                "application": "a",
                "canaryId": "1",
                "phase": "Running",
                "score": "",
                "reportUrl": "",
                "message": "",
            }

    def test_append_only(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "evidence.jsonl")
            append_event(EvidenceEvent(ts="t1", application="a", canary_id="1", phase="Running"), log_path)
            append_event(
                EvidenceEvent(ts="t2", application="a", canary_id="1", phase="Successful", score="95"),
                log_path,
            )
            events = read_events(log_path)
            assert [e.phase for e in events] == ["Running", "Successful"]
            assert events[1].score == "95"

    def test_read_missing_file(self):
        assert read_events("/nonexistent/evidence.jsonl") == []

    def test_skips_malformed_lines(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_path = os.path.join(tmpdir, "evidence.jsonl")
            with open(log_path, "w") as f:
                f.write("not json\n")
                f.write("[1, 2]\n")
                f.write("\n")
                f.write(json.dumps({"ts": "t1", "application": "a", "canaryId": "9", "phase": "Failed"}) + "\n")
            events = read_events(log_path)
            assert len(events) == 1
            assert events[0].canary_id == "9"
