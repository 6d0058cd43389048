"""Submit -> poll -> resume state machine for a remote analysis job."""

import logging
from datetime import datetime, timedelta, timezone

from canary_gate.client import AnalysisServiceClient
from canary_gate.models import (
    PHASE_FAILED,
    PHASE_RUNNING,
    STATUS_CANCELLED,
    STATUS_RUNNING,
    AnalysisSpec,
    JobHandle,
    Measurement,
)
from canary_gate.verdict import coerce_score, evaluate_result

logger = logging.getLogger(__name__)

DEFAULT_RESUME_AFTER_SECONDS = 3.0

CANCELLED_MESSAGE = "Analysis Cancelled"
INTERVAL_NO_KEY = "Current intervalNo"
INTERVAL_MESSAGE_KEY = "interval analysis message"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_measurement(
    handle: JobHandle, resume_after: float = DEFAULT_RESUME_AFTER_SECONDS
) -> Measurement:
    """Initial Running measurement right after a successful submission."""
    now = utcnow()
    return Measurement(
        phase=PHASE_RUNNING,
        metadata={"canaryId": handle.canary_id, "reportId": handle.report_token},
        started_at=now,
        resume_at=now + timedelta(seconds=resume_after),
    )


class PollingStateMachine:
    """Advance a measurement by one poll of the remote job status.

    The machine holds no state between calls: everything it needs is in the
    measurement handed back by the host on the next tick.
    """

    def __init__(
        self,
        client: AnalysisServiceClient,
        spec: AnalysisSpec,
        resume_after: float = DEFAULT_RESUME_AFTER_SECONDS,
    ):
        self.client = client
        self.spec = spec
        self.resume_after = resume_after

    @property
    def interval_mode(self) -> bool:
        return bool(self.spec.look_back_type)

    def resume(self, measurement: Measurement) -> Measurement:
        """Fetch the job status and return the updated measurement.

        RUNNING keeps the phase and re-arms ``resume_at``. CANCELLED fails the
        run. Any other status is treated as completion and scored.

        Raises:
            TransportError: If the status cannot be fetched or decoded.
        """
        canary_id = measurement.metadata.get("canaryId", "")
        result = self.client.get_canary(canary_id)
        logger.info("canary %s status %s", canary_id, result.status or "<none>")

        measurement.metadata["reportUrl"] = result.report_url
        if self.interval_mode:
            measurement.metadata[INTERVAL_NO_KEY] = result.interval_no or ""

        if result.status == STATUS_RUNNING:
            measurement.phase = PHASE_RUNNING
            measurement.resume_at = utcnow() + timedelta(seconds=self.resume_after)
            return measurement

        if result.status == STATUS_CANCELLED:
            measurement.phase = PHASE_FAILED
            measurement.message = CANCELLED_MESSAGE
        else:
            value, score = coerce_score(result.overall_score)
            measurement.value = value
            measurement.phase = evaluate_result(
                score, self.spec.pass_score, self.spec.marginal_score
            )
            if measurement.phase == PHASE_FAILED and self.interval_mode:
                measurement.metadata[INTERVAL_MESSAGE_KEY] = (
                    "Interval Analysis Failed at intervalNo. "
                    + measurement.metadata.get(INTERVAL_NO_KEY, "")
                )
            logger.info(
                "canary %s finished with score %s -> %s", canary_id, value, measurement.phase
            )

        measurement.resume_at = None
        measurement.finished_at = utcnow()
        return measurement
