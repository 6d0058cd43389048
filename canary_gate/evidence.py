"""Append-only evidence logging of analysis measurements in JSONL format."""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List

from canary_gate.models import TIMESTAMP_FORMAT, Measurement


@dataclass
class EvidenceEvent:
    ts: str
    application: str
    canary_id: str
    phase: str
    score: str = ""
    report_url: str = ""
    message: str = ""


def create_event(application: str, measurement: Measurement) -> EvidenceEvent:
    """Build an EvidenceEvent for a measurement with the current UTC timestamp.

    Args:
        application: Application the analysis ran for.
        measurement: The measurement returned by a run or resume call.

    Returns:
        A populated EvidenceEvent.
    """
    ts = datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)
    return EvidenceEvent(
        ts=ts,
        application=application,
        canary_id=measurement.metadata.get("canaryId", ""),
        phase=measurement.phase,
        score=measurement.value,
        report_url=measurement.metadata.get("reportUrl", ""),
        message=measurement.message,
    )


def append_event(event: EvidenceEvent, log_path: str) -> None:
    """Append a single evidence event as a JSONL line.

    Creates the file (and parent directories) if it does not exist.
    Never overwrites existing entries.
    """
    parent = os.path.dirname(log_path)
    if parent and not os.path.isdir(parent):
        os.makedirs(parent, exist_ok=True)

    line = json.dumps({
        "ts": event.ts,
        "application": event.application,
        "canaryId": event.canary_id,
        "phase": event.phase,
        "score": event.score,
        "reportUrl": event.report_url,
        "message": event.message,
    })

    with open(log_path, "a") as f:
        f.write(line + "\n")


def read_events(log_path: str) -> List[EvidenceEvent]:
    """Read all events from a JSONL evidence log.

    Malformed lines are skipped.
    """
    if not os.path.isfile(log_path):
        return []

    events = []
    with open(log_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(raw, dict):
                continue
            events.append(EvidenceEvent(
                ts=raw.get("ts", ""),
                application=raw.get("application", ""),
                canary_id=raw.get("canaryId", ""),
                phase=raw.get("phase", ""),
                score=raw.get("score", ""),
                report_url=raw.get("reportUrl", ""),
                message=raw.get("message", ""),
            ))
    return events
